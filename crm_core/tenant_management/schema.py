"""
Tenant Management API Schemas

Request and response models for onboarding and tenant administration endpoints.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .models import SUBDOMAIN_PATTERN, TenantConfig, TenantStatus


class OnboardingRequest(BaseModel):
    """Sign-up request: creates the agency, its owner and a trial subscription."""

    user_name: str = Field(..., min_length=2, max_length=100)
    user_email: EmailStr
    password: str = Field(..., min_length=8)
    tenant_name: str = Field(..., min_length=2, max_length=100, description="Agency name")
    subdomain: Optional[str] = Field(
        default=None,
        min_length=3,
        max_length=50,
        description="Derived from the agency name when omitted",
    )

    @field_validator("subdomain")
    @classmethod
    def validate_subdomain(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if not SUBDOMAIN_PATTERN.match(v):
            raise ValueError("Use lower-case letters, digits and inner hyphens only")
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "user_name": "Maria Souza",
                "user_email": "maria@imobsol.com.br",
                "password": "Senha-Forte-2026",
                "tenant_name": "Imobiliária Sol",
            }
        }


class OnboardingResponse(BaseModel):
    """Result of a completed onboarding."""

    success: bool = True
    tenant_id: str
    subdomain: str
    user_id: str
    subscription_id: str
    stages_created: int
    trial_ends_at: Optional[datetime]


class TenantUpdateRequest(BaseModel):
    """Request model for updating an existing tenant (platform admin)."""

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    primary_contact_email: Optional[EmailStr] = Field(default=None)
    primary_domain: Optional[str] = Field(default=None)
    status: Optional[TenantStatus] = Field(default=None)
    status_reason: Optional[str] = Field(default=None)


class TenantResponse(BaseModel):
    """Response model for tenant data."""

    tenant_id: str
    name: str
    config: TenantConfig
    database_name: str
    status: TenantStatus
    status_reason: Optional[str]
    owner_user_id: Optional[str]
    primary_contact_email: str
    created_at: datetime
    updated_at: datetime
    last_activity_at: Optional[datetime]


class TenantListResponse(BaseModel):
    """Response model for listing tenants."""

    tenants: list[TenantResponse]
    total: int
    page: int
    page_size: int
