"""
stone/users/service.py

User service layer for clean separation of business logic
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stone.schemas.errors import APIError, ErrorCode, bad_request
from stone.users.models import User
from stone.users.schemas import RegisterRequest
from stone.users.utils import get_password_hash

logger = logging.getLogger(__name__)


class UserService:
    """Service for user operations"""

    def __init__(self, session: Session):
        self.session = session

    def count_by_mobile(self, mobile: str) -> int:
        return self.session.scalar(
            select(func.count(User.user_id)).where(User.mobile == mobile)
        )

    def register(self, params: RegisterRequest) -> User:
        """Create a user; one account per mobile number"""
        problem = params.check()
        if problem:
            raise bad_request(problem)

        if self.count_by_mobile(params.mobile) != 0:
            raise APIError(ErrorCode.MOBILE_TAKEN)

        user = User(
            name=params.name,
            mobile=params.mobile,
            password=get_password_hash(params.password),
        )
        self.session.add(user)
        try:
            self.session.flush()
        except IntegrityError:
            # Lost a race with a concurrent registration
            self.session.rollback()
            raise APIError(ErrorCode.MOBILE_TAKEN) from None

        logger.info(f"User registered: {user.user_id}")
        return user
