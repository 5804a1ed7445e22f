"""
stone/users/views.py

User App APIs
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from . import users_router
from stone.database import get_db_session
from stone.schemas.response import APIResponse, success_response
from stone.users.schemas import RegisterRequest
from stone.users.service import UserService


@users_router.post("/register", response_model=APIResponse[dict])
def register(
    request: Request,
    params: RegisterRequest,
    session: Session = Depends(get_db_session),
):
    """Register a user with name, mobile number and password"""
    UserService(session).register(params)

    return success_response(
        data={}, message="Registration successful", request=request
    )
