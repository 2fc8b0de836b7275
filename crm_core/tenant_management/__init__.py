"""
Tenant Management Module

Handles agency onboarding, tenant records, and lifecycle management.
"""

from .models import Tenant, TenantConfig, TenantStatus
from .schema import OnboardingRequest, OnboardingResponse, TenantResponse, TenantUpdateRequest

__all__ = [
    "Tenant",
    "TenantConfig",
    "TenantStatus",
    "OnboardingRequest",
    "OnboardingResponse",
    "TenantResponse",
    "TenantUpdateRequest",
]
