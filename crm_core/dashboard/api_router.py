"""
Dashboard API Router
"""

from fastapi import APIRouter, Depends, Query

from ..auth.dependencies import get_current_user, require_tenant_context
from ..matching.service import RecentMatchResponse
from ..shared_services.tenant_context import TenantContext
from .service import DashboardService, DashboardStats, StageCount

router = APIRouter(prefix="/dashboard", tags=["Dashboard"], dependencies=[Depends(get_current_user)])


async def get_dashboard_service(
    tenant_context: TenantContext = Depends(require_tenant_context),
) -> DashboardService:
    return DashboardService(tenant_context.db, tenant_context.tenant_id)


@router.get("/stats", response_model=DashboardStats)
async def get_stats(service: DashboardService = Depends(get_dashboard_service)) -> DashboardStats:
    return await service.stats()


@router.get("/clients-by-stage", response_model=list[StageCount])
async def get_clients_by_stage(service: DashboardService = Depends(get_dashboard_service)) -> list[StageCount]:
    return await service.clients_by_stage()


@router.get("/recent-matches", response_model=list[RecentMatchResponse])
async def get_recent_matches(
    limit: int = Query(5, ge=1, le=50),
    service: DashboardService = Depends(get_dashboard_service),
) -> list[RecentMatchResponse]:
    return await service.recent_matches(limit)
