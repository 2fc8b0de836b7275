"""
Tenant Data Models

An agency (tenant) as recorded in the platform database, and how it is reached:
a platform subdomain and, optionally, the agency's own domain.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

# Hosts of the platform itself, never an agency
RESERVED_SUBDOMAINS = frozenset({"www", "api", "app", "admin"})

SUBDOMAIN_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{1,48}[a-z0-9])$")


class TenantStatus(str, Enum):
    PROVISIONING = "provisioning"  # Onboarding in progress
    ACTIVE = "active"
    SUSPENDED = "suspended"  # Blocked by the platform admin, reversible
    DEACTIVATED = "deactivated"


class TenantDomainConfig(BaseModel):
    subdomain: str = Field(..., description="Platform subdomain (e.g., imobsol)")
    primary_domain: Optional[str] = Field(default=None, description="Custom domain (e.g., crm.imobsol.com.br)")

    @field_validator("subdomain")
    @classmethod
    def validate_subdomain(cls, v: str) -> str:
        """3 to 50 lower-case letters, digits or inner hyphens; platform hosts excluded."""
        v = v.strip().lower()
        if not SUBDOMAIN_PATTERN.match(v):
            raise ValueError("Subdomain must be 3-50 letters, digits or hyphens, not starting or ending with a hyphen")
        if v in RESERVED_SUBDOMAINS:
            raise ValueError(f"Subdomain '{v}' is reserved")
        return v

    @field_validator("primary_domain")
    @classmethod
    def validate_primary_domain(cls, v: Optional[str]) -> Optional[str]:
        return v.lower().strip() if v else None


class TenantConfig(BaseModel):
    domains: TenantDomainConfig

    # Free-form agency settings (branding, defaults)
    custom_config: dict[str, Any] = Field(default_factory=dict)


class Tenant(BaseModel):
    """
    A real-estate agency.

    Stored in the platform database; the agency's own data lives in ``database_name``.
    """

    tenant_id: str = Field(..., description="{subdomain}_{YYYYMMDD}")
    name: str = Field(..., description="Agency display name")
    config: TenantConfig
    database_name: str

    status: TenantStatus = Field(default=TenantStatus.PROVISIONING)
    status_reason: Optional[str] = Field(default=None, description="Shown to users while the agency is blocked")

    owner_user_id: Optional[str] = Field(default=None, description="User who onboarded the agency")
    primary_contact_email: str

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    last_activity_at: Optional[datetime] = Field(default=None, description="Last successful login")

    @property
    def subdomain(self) -> str:
        return self.config.domains.subdomain

    @property
    def primary_domain(self) -> Optional[str]:
        return self.config.domains.primary_domain

    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE

    def cache_keys(self) -> list[str]:
        """Every tenant lookup key the routing cache may hold for this agency."""
        keys = [f"tenant:id:{self.tenant_id.lower()}", f"tenant:subdomain:{self.subdomain}"]
        if self.primary_domain:
            keys.append(f"tenant:domain:{self.primary_domain}")
        return keys

    class Config:
        json_schema_extra = {
            "example": {
                "tenant_id": "imobsol_20260223",
                "name": "Imobiliária Sol",
                "config": {"domains": {"subdomain": "imobsol"}},
                "database_name": "imobcrm_tenant_imobsol_20260223",
                "status": "active",
                "primary_contact_email": "maria@imobsol.com.br",
            }
        }
