"""
Audit Log API Router

Read access to the tenant's change trail (Owner only).
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..auth.dependencies import get_tenant_db, require_role
from ..auth.models import UserRole
from ..shared_services.pagination import PageParams, PaginatedResponse, get_page_params
from .service import AuditLog, AuditService

router = APIRouter(prefix="/audit", tags=["Audit"], dependencies=[Depends(require_role(UserRole.OWNER))])


@router.get("", response_model=PaginatedResponse[AuditLog], summary="List audit log entries")
async def list_audit_logs(
    table_name: Optional[str] = None,
    record_id: Optional[str] = None,
    user_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: PageParams = Depends(get_page_params),
    db: AsyncIOMotorDatabase = Depends(get_tenant_db),
) -> PaginatedResponse[AuditLog]:
    service = AuditService(db)
    filters = {
        "table_name": table_name,
        "record_id": record_id,
        "user_id": user_id,
        "start_date": start_date,
        "end_date": end_date,
    }
    logs = await service.list_logs(skip=page.skip, limit=page.page_size, **filters)
    count = await service.count_logs(**filters)
    return PaginatedResponse[AuditLog].build(logs, count, page)
