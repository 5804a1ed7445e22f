"""
stone/users/__init__.py

User App root import users router and modules.
"""

from fastapi import APIRouter

users_router = APIRouter(prefix="/api", tags=["Users"])

from . import views, models  # noqa
