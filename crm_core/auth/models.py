"""
User and Authentication Models

Defines agency user roles and the user data model.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class UserRole(str, Enum):
    """
    Role-based access control roles.

    Roles are hierarchical: OWNER > COLLABORATOR
    """

    OWNER = "OWNER"  # Agency owner, manages users, stages and billing
    COLLABORATOR = "COLLABORATOR"  # Agent working the pipeline


ROLE_HIERARCHY = {
    UserRole.OWNER: 2,
    UserRole.COLLABORATOR: 1,
}


class User(BaseModel):
    """
    User model.

    Stored in the tenant-specific database.
    """

    user_id: str = Field(..., description="Unique user identifier")
    tenant_id: str = Field(..., description="Tenant this user belongs to")

    # Authentication
    email: EmailStr
    hashed_password: str

    # Profile
    name: str
    avatar_url: Optional[str] = Field(default=None)

    role: UserRole = Field(default=UserRole.COLLABORATOR)
    is_active: bool = Field(default=True)

    # Metadata
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    last_login_at: Optional[datetime] = Field(default=None)
    created_by: Optional[str] = Field(default=None)

    @property
    def first_name(self) -> str:
        return self.name.split(" ")[0]

    def is_owner(self) -> bool:
        return self.role == UserRole.OWNER

    def has_role(self, required_role: UserRole) -> bool:
        """Check the role hierarchy."""
        return ROLE_HIERARCHY.get(self.role, 0) >= ROLE_HIERARCHY.get(required_role, 0)

    class Config:
        """Pydantic configuration."""

        json_schema_extra = {
            "example": {
                "user_id": "user_1a2b3c4d",
                "tenant_id": "imobsol_20260223",
                "email": "maria@imobsol.com.br",
                "name": "Maria Souza",
                "role": "OWNER",
                "is_active": True,
            }
        }


class UserCreate(BaseModel):
    """Request model for creating a new user."""

    email: EmailStr
    password: str = Field(..., min_length=8, description="Minimum 8 characters")
    name: str = Field(..., min_length=2, max_length=100)
    avatar_url: Optional[str] = Field(default=None)
    role: UserRole = Field(default=UserRole.COLLABORATOR)


class UserUpdate(BaseModel):
    """Request model for updating user information."""

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    avatar_url: Optional[str] = Field(default=None)
    role: Optional[UserRole] = Field(default=None)
    is_active: Optional[bool] = Field(default=None)


class UserResponse(BaseModel):
    """Response model for user data (excludes sensitive fields)."""

    user_id: str
    tenant_id: str
    email: EmailStr
    name: str
    avatar_url: Optional[str]
    role: UserRole
    is_active: bool
    created_at: datetime
    last_login_at: Optional[datetime]


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # Seconds until expiration
    user: UserResponse


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class ChangePasswordRequest(BaseModel):
    """Change password request (for logged-in users)."""

    current_password: str
    new_password: str = Field(..., min_length=8)
