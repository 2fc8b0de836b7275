"""
Clients API Router

REST API endpoints for client records and their desired-property criteria.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from structlog import get_logger

from ..audit.service import AuditAction, AuditService
from ..auth.dependencies import get_current_user, require_tenant_context
from ..auth.models import User
from ..billing.dependencies import require_active_subscription
from ..matching.service import MatchingService
from ..pipeline.db_service import StageDBService
from ..pipeline.models import ClientStage
from ..properties.models import PropertyResponse
from ..shared_services.pagination import PageParams, PaginatedResponse, get_page_params
from ..shared_services.tenant_context import TenantContext
from .db_service import ClientDBService
from .models import (
    Client,
    ClientCreate,
    ClientResponse,
    ClientTransactionType,
    ClientUpdate,
    DuplicatePhoneError,
    StageNotFoundError,
    StageSummary,
)

logger = get_logger()

router = APIRouter(prefix="/clients", tags=["Clients"])


async def get_client_service(
    tenant_context: TenantContext = Depends(require_tenant_context),
) -> ClientDBService:
    return ClientDBService(tenant_context.db)


def _stage_summary(stage: Optional[ClientStage]) -> Optional[StageSummary]:
    if not stage:
        return None
    return StageSummary(**stage.model_dump(include={"stage_id", "name", "position", "is_final"}))


async def _with_stage(client: Client, tenant_context: TenantContext) -> ClientResponse:
    stage = None
    if client.stage_id:
        stage = await StageDBService(tenant_context.db).get_stage(client.stage_id, tenant_context.tenant_id)
    return ClientResponse.from_client(client, _stage_summary(stage))


@router.get("", response_model=PaginatedResponse[ClientResponse], summary="List clients")
async def list_clients(
    stage_id: Optional[str] = None,
    desired_transaction_type: Optional[ClientTransactionType] = None,
    search: Optional[str] = Query(None, max_length=100, description="Name, phone or email"),
    page: PageParams = Depends(get_page_params),
    current_user: User = Depends(get_current_user),
    tenant_context: TenantContext = Depends(require_tenant_context),
    client_service: ClientDBService = Depends(get_client_service),
) -> PaginatedResponse[ClientResponse]:
    filters = {"stage_id": stage_id, "desired_transaction_type": desired_transaction_type, "search": search}
    clients = await client_service.list_clients(
        current_user.tenant_id, skip=page.skip, limit=page.page_size, **filters
    )
    count = await client_service.count_clients(current_user.tenant_id, **filters)

    stages = {
        stage.stage_id: _stage_summary(stage)
        for stage in await StageDBService(tenant_context.db).list_stages(current_user.tenant_id)
    }

    return PaginatedResponse[ClientResponse].build(
        [ClientResponse.from_client(c, stages.get(c.stage_id)) for c in clients], count, page
    )


@router.post(
    "",
    response_model=ClientResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_active_subscription)],
    summary="Create client",
)
async def create_client(
    client_create: ClientCreate,
    current_user: User = Depends(get_current_user),
    tenant_context: TenantContext = Depends(require_tenant_context),
    client_service: ClientDBService = Depends(get_client_service),
) -> ClientResponse:
    try:
        client = await client_service.create_client(
            current_user.tenant_id, client_create, created_by=current_user.user_id
        )
    except DuplicatePhoneError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except StageNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await AuditService(tenant_context.db).record(
        tenant_id=current_user.tenant_id,
        action=AuditAction.CREATE,
        table_name="clients",
        record_id=client.client_id,
        user_id=current_user.user_id,
        new_data=client.model_dump(),
    )

    logger.info("client_created", client_id=client.client_id, tenant_id=current_user.tenant_id)

    return await _with_stage(client, tenant_context)


@router.get("/{client_id}", response_model=ClientResponse, summary="Get client")
async def get_client(
    client_id: str,
    current_user: User = Depends(get_current_user),
    tenant_context: TenantContext = Depends(require_tenant_context),
    client_service: ClientDBService = Depends(get_client_service),
) -> ClientResponse:
    client = await client_service.get_client(client_id, current_user.tenant_id)
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return await _with_stage(client, tenant_context)


@router.patch(
    "/{client_id}",
    response_model=ClientResponse,
    dependencies=[Depends(require_active_subscription)],
    summary="Update client",
)
async def update_client(
    client_id: str,
    update_data: ClientUpdate,
    current_user: User = Depends(get_current_user),
    tenant_context: TenantContext = Depends(require_tenant_context),
    client_service: ClientDBService = Depends(get_client_service),
) -> ClientResponse:
    update_dict = update_data.model_dump(exclude_unset=True)
    if not update_dict:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    existing = await client_service.get_client(client_id, current_user.tenant_id)
    if not existing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")

    try:
        client = await client_service.update_client(client_id, current_user.tenant_id, update_dict)
    except DuplicatePhoneError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")

    await AuditService(tenant_context.db).record(
        tenant_id=current_user.tenant_id,
        action=AuditAction.UPDATE,
        table_name="clients",
        record_id=client_id,
        user_id=current_user.user_id,
        old_data=existing.model_dump(),
        new_data=client.model_dump(),
    )

    logger.info("client_updated", client_id=client_id, fields=list(update_dict.keys()))

    return await _with_stage(client, tenant_context)


@router.delete(
    "/{client_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_active_subscription)],
    summary="Delete client (soft)",
)
async def delete_client(
    client_id: str,
    current_user: User = Depends(get_current_user),
    tenant_context: TenantContext = Depends(require_tenant_context),
    client_service: ClientDBService = Depends(get_client_service),
) -> None:
    if not await client_service.soft_delete(client_id, current_user.tenant_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")

    await AuditService(tenant_context.db).record(
        tenant_id=current_user.tenant_id,
        action=AuditAction.DELETE,
        table_name="clients",
        record_id=client_id,
        user_id=current_user.user_id,
    )

    logger.info("client_deleted", client_id=client_id, tenant_id=current_user.tenant_id)


@router.get(
    "/{client_id}/matches",
    response_model=list[PropertyResponse],
    summary="Properties matching this client",
)
async def client_matches(
    client_id: str,
    current_user: User = Depends(get_current_user),
    tenant_context: TenantContext = Depends(require_tenant_context),
    client_service: ClientDBService = Depends(get_client_service),
) -> list[PropertyResponse]:
    client = await client_service.get_client(client_id, current_user.tenant_id)
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")

    properties = await MatchingService(tenant_context.db, current_user.tenant_id).properties_for_client(client)
    return [PropertyResponse.from_property(p) for p in properties]
