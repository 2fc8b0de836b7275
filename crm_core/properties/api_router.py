"""
Properties API Router

REST API endpoints for the agency's property inventory.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from structlog import get_logger

from ..audit.service import AuditAction, AuditService
from ..auth.dependencies import get_current_user, require_tenant_context
from ..auth.models import User
from ..billing.dependencies import require_active_subscription
from ..clients.models import ClientResponse
from ..matching.service import MatchingService
from ..shared_services.pagination import PageParams, PaginatedResponse, get_page_params
from ..shared_services.tenant_context import TenantContext
from .db_service import PropertyDBService
from .models import PropertyCreate, PropertyResponse, PropertyStatus, PropertyType, PropertyUpdate, TransactionType

logger = get_logger()

router = APIRouter(prefix="/properties", tags=["Properties"])


async def get_property_service(
    tenant_context: TenantContext = Depends(require_tenant_context),
) -> PropertyDBService:
    return PropertyDBService(tenant_context.db)


def _parse_status_filter(value: Optional[str]) -> Optional[PropertyStatus]:
    """``all`` disables the filter; the default lists active properties only."""
    if value is None:
        return PropertyStatus.ACTIVE
    if value.lower() == "all":
        return None
    try:
        return PropertyStatus(value.upper())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status '{value}'")


@router.get("", response_model=PaginatedResponse[PropertyResponse], summary="List properties")
async def list_properties(
    property_type: Optional[PropertyType] = None,
    transaction_type: Optional[TransactionType] = None,
    status_filter: Optional[str] = Query(None, alias="status", description="ACTIVE (default), SOLD, RENTED, INACTIVE or all"),
    search: Optional[str] = Query(None, max_length=100),
    page: PageParams = Depends(get_page_params),
    current_user: User = Depends(get_current_user),
    property_service: PropertyDBService = Depends(get_property_service),
) -> PaginatedResponse[PropertyResponse]:
    filters = {
        "property_type": property_type,
        "transaction_type": transaction_type,
        "status": _parse_status_filter(status_filter),
        "search": search,
    }
    properties = await property_service.list_properties(
        current_user.tenant_id, skip=page.skip, limit=page.page_size, **filters
    )
    count = await property_service.count_properties(current_user.tenant_id, **filters)

    return PaginatedResponse[PropertyResponse].build(
        [PropertyResponse.from_property(p) for p in properties], count, page
    )


@router.post(
    "",
    response_model=PropertyResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_active_subscription)],
    summary="Create property",
)
async def create_property(
    property_create: PropertyCreate,
    current_user: User = Depends(get_current_user),
    tenant_context: TenantContext = Depends(require_tenant_context),
    property_service: PropertyDBService = Depends(get_property_service),
) -> PropertyResponse:
    prop = await property_service.create_property(
        current_user.tenant_id, property_create, created_by=current_user.user_id
    )

    await AuditService(tenant_context.db).record(
        tenant_id=current_user.tenant_id,
        action=AuditAction.CREATE,
        table_name="properties",
        record_id=prop.property_id,
        user_id=current_user.user_id,
        new_data=prop.model_dump(),
    )

    logger.info("property_created", property_id=prop.property_id, tenant_id=current_user.tenant_id)

    return PropertyResponse.from_property(prop)


@router.get("/{property_id}", response_model=PropertyResponse, summary="Get property")
async def get_property(
    property_id: str,
    current_user: User = Depends(get_current_user),
    property_service: PropertyDBService = Depends(get_property_service),
) -> PropertyResponse:
    prop = await property_service.get_property(property_id, current_user.tenant_id)
    if not prop:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return PropertyResponse.from_property(prop)


@router.patch(
    "/{property_id}",
    response_model=PropertyResponse,
    dependencies=[Depends(require_active_subscription)],
    summary="Update property",
)
async def update_property(
    property_id: str,
    update_data: PropertyUpdate,
    current_user: User = Depends(get_current_user),
    tenant_context: TenantContext = Depends(require_tenant_context),
    property_service: PropertyDBService = Depends(get_property_service),
) -> PropertyResponse:
    update_dict = update_data.model_dump(exclude_unset=True)
    if not update_dict:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    existing = await property_service.get_property(property_id, current_user.tenant_id)
    if not existing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")

    prop = await property_service.update_property(property_id, current_user.tenant_id, update_dict)
    if not prop:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")

    await AuditService(tenant_context.db).record(
        tenant_id=current_user.tenant_id,
        action=AuditAction.UPDATE,
        table_name="properties",
        record_id=property_id,
        user_id=current_user.user_id,
        old_data=existing.model_dump(),
        new_data=prop.model_dump(),
    )

    logger.info("property_updated", property_id=property_id, fields=list(update_dict.keys()))

    return PropertyResponse.from_property(prop)


@router.delete(
    "/{property_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_active_subscription)],
    summary="Delete property (soft)",
)
async def delete_property(
    property_id: str,
    current_user: User = Depends(get_current_user),
    tenant_context: TenantContext = Depends(require_tenant_context),
    property_service: PropertyDBService = Depends(get_property_service),
) -> None:
    if not await property_service.soft_delete(property_id, current_user.tenant_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")

    await AuditService(tenant_context.db).record(
        tenant_id=current_user.tenant_id,
        action=AuditAction.DELETE,
        table_name="properties",
        record_id=property_id,
        user_id=current_user.user_id,
    )

    logger.info("property_deleted", property_id=property_id, tenant_id=current_user.tenant_id)


@router.get(
    "/{property_id}/matches",
    response_model=list[ClientResponse],
    summary="Clients interested in this property",
)
async def property_matches(
    property_id: str,
    current_user: User = Depends(get_current_user),
    tenant_context: TenantContext = Depends(require_tenant_context),
    property_service: PropertyDBService = Depends(get_property_service),
) -> list[ClientResponse]:
    prop = await property_service.get_property(property_id, current_user.tenant_id)
    if not prop:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")

    clients = await MatchingService(tenant_context.db, current_user.tenant_id).clients_for_property(prop)
    return [ClientResponse.from_client(client) for client in clients]
