"""
Pipeline API Router

Kanban board, client stage transitions and stage management.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from pymongo.errors import PyMongoError
from structlog import get_logger

from ..audit.service import AuditAction, AuditService
from ..auth.dependencies import get_current_user, require_role, require_tenant_context
from ..auth.models import User, UserRole
from ..billing.dependencies import require_active_subscription
from ..clients.models import ClientResponse, StageSummary
from ..shared_services.tenant_context import TenantContext
from .board import PipelineBoard
from .db_service import StageDBService
from .models import (
    ClientStage,
    MoveClientRequest,
    MoveClientResponse,
    PipelineBoardResponse,
    PipelineColumn,
    StageChangeRequest,
    StageCreate,
    StageOrderRequest,
    StageUpdate,
)
from .service import ClientNotOnBoardError, MoveResult, PipelineService

logger = get_logger()

router = APIRouter(prefix="/pipeline", tags=["Pipeline"])


async def get_pipeline_service(
    tenant_context: TenantContext = Depends(require_tenant_context),
) -> PipelineService:
    return PipelineService(tenant_context.db, tenant_context.tenant_id)


async def get_stage_service(
    tenant_context: TenantContext = Depends(require_tenant_context),
) -> StageDBService:
    return StageDBService(tenant_context.db)


def board_to_response(board: PipelineBoard) -> PipelineBoardResponse:
    columns = []
    for stage in board.stages:
        summary = StageSummary(**stage.model_dump(include={"stage_id", "name", "position", "is_final"}))
        columns.append(
            PipelineColumn(
                stage=stage,
                clients=[ClientResponse.from_client(c, summary) for c in board.columns[stage.stage_id]],
            )
        )
    return PipelineBoardResponse(columns=columns, total_clients=board.total_clients())


async def _run_move(
    service: PipelineService,
    current_user: User,
    tenant_context: TenantContext,
    client_id: str,
    over_id: str,
) -> MoveClientResponse:
    try:
        result: MoveResult = await service.move_client(client_id, over_id)
    except ClientNotOnBoardError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PyMongoError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not save the move; the board was reloaded",
        )

    if result.moved:
        await AuditService(tenant_context.db).record(
            tenant_id=current_user.tenant_id,
            action=AuditAction.UPDATE,
            table_name="clients",
            record_id=client_id,
            user_id=current_user.user_id,
            old_data={"stage_id": result.from_stage_id},
            new_data={"stage_id": result.to_stage_id},
        )

    return MoveClientResponse(
        moved=result.moved,
        client_id=client_id,
        from_stage_id=result.from_stage_id,
        to_stage_id=result.to_stage_id,
        board=board_to_response(result.board),
    )


@router.get("", response_model=PipelineBoardResponse, summary="Pipeline board")
async def get_board(
    current_user: User = Depends(get_current_user),
    service: PipelineService = Depends(get_pipeline_service),
) -> PipelineBoardResponse:
    return board_to_response(await service.load_board())


@router.post(
    "/moves",
    response_model=MoveClientResponse,
    dependencies=[Depends(require_active_subscription)],
    summary="Drop a client on a stage or on another client",
)
async def move_client(
    move_request: MoveClientRequest,
    current_user: User = Depends(get_current_user),
    tenant_context: TenantContext = Depends(require_tenant_context),
    service: PipelineService = Depends(get_pipeline_service),
) -> MoveClientResponse:
    return await _run_move(service, current_user, tenant_context, move_request.client_id, move_request.over_id)


@router.patch(
    "/clients/{client_id}/stage",
    response_model=MoveClientResponse,
    dependencies=[Depends(require_active_subscription)],
    summary="Set a client's stage",
)
async def change_client_stage(
    client_id: str,
    change_request: StageChangeRequest,
    current_user: User = Depends(get_current_user),
    tenant_context: TenantContext = Depends(require_tenant_context),
    service: PipelineService = Depends(get_pipeline_service),
    stage_service: StageDBService = Depends(get_stage_service),
) -> MoveClientResponse:
    if not await stage_service.get_stage(change_request.stage_id, current_user.tenant_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Stage not found")

    return await _run_move(service, current_user, tenant_context, client_id, change_request.stage_id)


# Stages


@router.get("/stages", response_model=list[ClientStage], summary="List stages")
async def list_stages(
    current_user: User = Depends(get_current_user),
    stage_service: StageDBService = Depends(get_stage_service),
) -> list[ClientStage]:
    return await stage_service.list_stages(current_user.tenant_id)


@router.post(
    "/stages",
    response_model=ClientStage,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_active_subscription)],
    summary="Create stage (Owner)",
)
async def create_stage(
    stage_create: StageCreate,
    current_user: User = Depends(require_role(UserRole.OWNER)),
    tenant_context: TenantContext = Depends(require_tenant_context),
    stage_service: StageDBService = Depends(get_stage_service),
) -> ClientStage:
    stage = await stage_service.create_stage(current_user.tenant_id, stage_create)

    await AuditService(tenant_context.db).record(
        tenant_id=current_user.tenant_id,
        action=AuditAction.CREATE,
        table_name="client_stages",
        record_id=stage.stage_id,
        user_id=current_user.user_id,
        new_data=stage.model_dump(),
    )

    logger.info("stage_created", stage_id=stage.stage_id, tenant_id=current_user.tenant_id)

    return stage


@router.put(
    "/stages/order",
    response_model=list[ClientStage],
    dependencies=[Depends(require_active_subscription)],
    summary="Reorder stages (Owner)",
)
async def reorder_stages(
    order_request: StageOrderRequest,
    current_user: User = Depends(require_role(UserRole.OWNER)),
    stage_service: StageDBService = Depends(get_stage_service),
) -> list[ClientStage]:
    try:
        stages = await stage_service.reorder_stages(current_user.tenant_id, order_request.stage_ids)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info("stages_reordered", tenant_id=current_user.tenant_id)

    return stages


@router.patch(
    "/stages/{stage_id}",
    response_model=ClientStage,
    dependencies=[Depends(require_active_subscription)],
    summary="Update stage (Owner)",
)
async def update_stage(
    stage_id: str,
    update_data: StageUpdate,
    current_user: User = Depends(require_role(UserRole.OWNER)),
    tenant_context: TenantContext = Depends(require_tenant_context),
    stage_service: StageDBService = Depends(get_stage_service),
) -> ClientStage:
    update_dict = update_data.model_dump(exclude_unset=True, exclude_none=True)
    if not update_dict:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    existing = await stage_service.get_stage(stage_id, current_user.tenant_id)
    if not existing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Stage not found")

    stage = await stage_service.update_stage(stage_id, current_user.tenant_id, update_dict)

    await AuditService(tenant_context.db).record(
        tenant_id=current_user.tenant_id,
        action=AuditAction.UPDATE,
        table_name="client_stages",
        record_id=stage_id,
        user_id=current_user.user_id,
        old_data=existing.model_dump(),
        new_data=stage.model_dump() if stage else None,
    )

    return stage


@router.delete(
    "/stages/{stage_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_active_subscription)],
    summary="Delete stage (Owner)",
)
async def delete_stage(
    stage_id: str,
    current_user: User = Depends(require_role(UserRole.OWNER)),
    tenant_context: TenantContext = Depends(require_tenant_context),
    stage_service: StageDBService = Depends(get_stage_service),
) -> None:
    try:
        deleted = await stage_service.delete_stage(stage_id, current_user.tenant_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Stage not found")

    await AuditService(tenant_context.db).record(
        tenant_id=current_user.tenant_id,
        action=AuditAction.DELETE,
        table_name="client_stages",
        record_id=stage_id,
        user_id=current_user.user_id,
    )

    logger.info("stage_deleted", stage_id=stage_id, tenant_id=current_user.tenant_id)
