"""
Tenant Management API Router

Public onboarding and platform administration of agencies (tenants).
"""

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from structlog import get_logger

from ..config import get_config
from ..constants import (
    PROPERTY_STATUS_LABELS,
    PROPERTY_TYPE_LABELS,
    SUBSCRIPTION_STATUS_LABELS,
    TRANSACTION_TYPE_LABELS,
)
from ..shared_services.tenant_middleware import invalidate_tenant_cache
from .db_service import TenantDBService
from .models import RESERVED_SUBDOMAINS, SUBDOMAIN_PATTERN, TenantStatus
from .provisioning import TenantProvisioningService
from .schema import (
    OnboardingRequest,
    OnboardingResponse,
    TenantListResponse,
    TenantResponse,
    TenantUpdateRequest,
)

logger = get_logger()

router = APIRouter(prefix="/platform", tags=["Platform"])


async def get_tenant_db_service(request: Request) -> TenantDBService:
    return TenantDBService(request.app.state.platform_db)


async def get_provisioning_service(request: Request) -> TenantProvisioningService:
    return TenantProvisioningService(request.app.state.mongo_client, request.app.state.platform_db)


async def require_platform_admin(x_platform_admin_key: Optional[str] = Header(None)) -> None:
    """Guard for platform administration; refuses every call when no admin key is configured."""
    admin_key = get_config().platform_admin_api_key
    if not admin_key or not x_platform_admin_key or not secrets.compare_digest(admin_key, x_platform_admin_key):
        logger.warning("platform_admin_access_denied")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Platform admin access required")


@router.post(
    "/onboarding",
    response_model=OnboardingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Sign up a new agency",
    description="Create the agency, its owner user, the default pipeline and a trial subscription",
)
async def onboarding(
    request: OnboardingRequest,
    provisioning_service: TenantProvisioningService = Depends(get_provisioning_service),
) -> OnboardingResponse:
    logger.info("onboarding_requested", tenant_name=request.tenant_name, subdomain=request.subdomain)

    try:
        result = await provisioning_service.onboard(request)
    except ValueError as e:
        logger.warning("onboarding_rejected", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return OnboardingResponse(
        tenant_id=result.tenant.tenant_id,
        subdomain=result.tenant.subdomain,
        user_id=result.owner.user_id,
        subscription_id=result.subscription.subscription_id,
        stages_created=result.stages_created,
        trial_ends_at=result.subscription.trial_ends_at,
    )


@router.get(
    "/tenants/check/subdomain/{subdomain}",
    response_model=dict,
    summary="Check subdomain availability",
)
async def check_subdomain_availability(
    subdomain: str,
    tenant_service: TenantDBService = Depends(get_tenant_db_service),
) -> dict:
    subdomain = subdomain.strip().lower()
    if subdomain in RESERVED_SUBDOMAINS or not SUBDOMAIN_PATTERN.match(subdomain):
        return {"subdomain": subdomain, "available": False, "message": "Subdomain is not allowed"}

    available = await tenant_service.subdomain_available(subdomain)

    return {
        "subdomain": subdomain,
        "available": available,
        "message": "Subdomain is available" if available else "Subdomain is already taken",
    }


@router.get("/options", summary="Display labels for enumerations")
async def get_options() -> dict:
    return {
        "transaction_types": TRANSACTION_TYPE_LABELS,
        "property_types": PROPERTY_TYPE_LABELS,
        "property_statuses": PROPERTY_STATUS_LABELS,
        "subscription_statuses": SUBSCRIPTION_STATUS_LABELS,
    }


# Platform admin


@router.get(
    "/tenants",
    response_model=TenantListResponse,
    dependencies=[Depends(require_platform_admin)],
    summary="List tenants",
)
async def list_tenants(
    status_filter: Optional[TenantStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100, description="Matches agency name or subdomain"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    tenant_service: TenantDBService = Depends(get_tenant_db_service),
) -> TenantListResponse:
    tenants = await tenant_service.list_tenants(
        status=status_filter,
        search=search,
        skip=(page - 1) * page_size,
        limit=page_size,
    )
    total = await tenant_service.count_tenants(status=status_filter, search=search)

    return TenantListResponse(
        tenants=[TenantResponse(**t.model_dump()) for t in tenants],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/tenants/{tenant_id}",
    response_model=TenantResponse,
    dependencies=[Depends(require_platform_admin)],
    summary="Get tenant by ID",
)
async def get_tenant(
    tenant_id: str,
    tenant_service: TenantDBService = Depends(get_tenant_db_service),
) -> TenantResponse:
    tenant = await tenant_service.get_tenant_by_id(tenant_id)

    if not tenant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Tenant '{tenant_id}' not found")

    return TenantResponse(**tenant.model_dump())


@router.patch(
    "/tenants/{tenant_id}",
    response_model=TenantResponse,
    dependencies=[Depends(require_platform_admin)],
    summary="Update tenant",
)
async def update_tenant(
    tenant_id: str,
    update_request: TenantUpdateRequest,
    request: Request,
    tenant_service: TenantDBService = Depends(get_tenant_db_service),
) -> TenantResponse:
    update_data = {}
    for field, value in update_request.model_dump(exclude_unset=True, exclude_none=True).items():
        if field == "primary_domain":
            update_data["config.domains.primary_domain"] = value.lower().strip()
        else:
            update_data[field] = value

    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    previous = await tenant_service.get_tenant_by_id(tenant_id)
    if not previous:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Tenant '{tenant_id}' not found")

    updated_tenant = await tenant_service.update_tenant(tenant_id, update_data)
    if not updated_tenant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Tenant '{tenant_id}' not found")

    redis_client = getattr(request.app.state, "redis_client", None)
    await invalidate_tenant_cache(redis_client, previous)

    logger.info("tenant_updated", tenant_id=tenant_id, fields=list(update_data.keys()))

    return TenantResponse(**updated_tenant.model_dump())


@router.delete(
    "/tenants/{tenant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_platform_admin)],
    summary="Deactivate tenant",
)
async def deactivate_tenant(
    tenant_id: str,
    request: Request,
    tenant_service: TenantDBService = Depends(get_tenant_db_service),
    provisioning_service: TenantProvisioningService = Depends(get_provisioning_service),
) -> None:
    tenant = await tenant_service.get_tenant_by_id(tenant_id)
    if not tenant or not await provisioning_service.deprovision_tenant(tenant_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Tenant '{tenant_id}' not found")

    await invalidate_tenant_cache(getattr(request.app.state, "redis_client", None), tenant)

    logger.info("tenant_deactivated", tenant_id=tenant_id)
