"""
Authentication Dependencies

FastAPI dependencies for resolving the tenant context, the current user, and enforcing RBAC.
"""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from motor.motor_asyncio import AsyncIOMotorDatabase
from structlog import get_logger

from ..shared_services.tenant_context import TenantContext, get_tenant_context
from .db_service import UserDBService
from .models import User, UserRole
from .security import decode_access_token

logger = get_logger()

security = HTTPBearer(auto_error=False)


async def require_tenant_context() -> TenantContext:
    """Tenant context set by the routing middleware; 500 when missing."""
    tenant_context = get_tenant_context()
    if not tenant_context:
        logger.error("no_tenant_context")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Tenant context not available",
        )
    return tenant_context


async def get_tenant_db(
    tenant_context: TenantContext = Depends(require_tenant_context),
) -> AsyncIOMotorDatabase:
    return tenant_context.db


async def get_user_service(db: AsyncIOMotorDatabase = Depends(get_tenant_db)) -> UserDBService:
    return UserDBService(db)


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    tenant_context: TenantContext = Depends(require_tenant_context),
) -> User:
    """
    Resolve the bearer token to an active member of the agency being served.

    A token issued by one agency is refused by every other one, even when the
    user id happens to exist there.
    """
    if credentials is None:
        raise _unauthorized()

    payload = decode_access_token(credentials.credentials) or {}
    user_id: Optional[str] = payload.get("user_id")
    token_tenant: Optional[str] = payload.get("tenant_id")

    if not user_id or not token_tenant:
        logger.warning("invalid_token_payload", user_id=user_id, token_tenant=token_tenant)
        raise _unauthorized()

    if token_tenant != tenant_context.tenant_id:
        logger.warning("tenant_mismatch", token_tenant=token_tenant)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token was issued for another agency",
        )

    user = await UserDBService(tenant_context.db).get_user_by_id(user_id)
    if user is None:
        logger.warning("user_not_found", user_id=user_id)
        raise _unauthorized()
    if not user.is_active:
        logger.warning("inactive_user_attempt", user_id=user_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")

    return user


def require_role(required_role: UserRole):
    """
    Dependency factory for requiring a minimum user role.

    Example:
        @router.post("/stages", dependencies=[Depends(require_role(UserRole.OWNER))])
    """

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if not current_user.has_role(required_role):
            logger.warning(
                "insufficient_permissions",
                user_id=current_user.user_id,
                user_role=current_user.role,
                required_role=required_role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: {required_role.value}",
            )

        return current_user

    return role_checker
