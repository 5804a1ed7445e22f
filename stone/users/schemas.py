"""
stone/users/schemas.py

Registration request schema
"""

from typing import Optional

from pydantic import BaseModel, field_validator

MOBILE_LENGTH = 11


class RegisterRequest(BaseModel):
    name: str = ""
    mobile: str = ""
    password: str = ""

    @field_validator("name", "mobile", "password", mode="before")
    @classmethod
    def strip(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    def check(self) -> Optional[str]:
        """Return the first problem with the request, or None"""
        if not self.name:
            return "name must not be empty"
        if len(self.mobile) != MOBILE_LENGTH:
            return "mobile number is invalid"
        if not self.password:
            return "password must not be empty"
        return None
