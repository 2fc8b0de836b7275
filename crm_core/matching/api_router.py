"""
Matching API Router
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth.dependencies import get_current_user, require_tenant_context
from ..shared_services.tenant_context import TenantContext
from .service import MatchingResponse, MatchingService, RecentMatchResponse

router = APIRouter(prefix="/matching", tags=["Matching"], dependencies=[Depends(get_current_user)])


async def get_matching_service(
    tenant_context: TenantContext = Depends(require_tenant_context),
) -> MatchingService:
    return MatchingService(tenant_context.db, tenant_context.tenant_id)


@router.get("", response_model=MatchingResponse, summary="Matches grouped by client")
async def list_matches(
    search: Optional[str] = Query(None, max_length=100, description="Client name, city or neighborhood"),
    service: MatchingService = Depends(get_matching_service),
) -> MatchingResponse:
    return await service.grouped_matches(search)


@router.get("/recent", response_model=list[RecentMatchResponse], summary="Matches on the newest listings")
async def recent_matches(
    limit: int = Query(5, ge=1, le=50),
    service: MatchingService = Depends(get_matching_service),
) -> list[RecentMatchResponse]:
    return await service.recent_matches(limit)
