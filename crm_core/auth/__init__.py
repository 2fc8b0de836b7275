"""
Authentication Module

Multi-tenant aware authentication with JWT, password hashing, and owner/collaborator roles.
"""

from .models import User, UserRole
from .security import create_access_token, get_password_hash, verify_password
from .dependencies import get_current_user, require_role

__all__ = [
    "User",
    "UserRole",
    "create_access_token",
    "get_password_hash",
    "verify_password",
    "get_current_user",
    "require_role",
]
