"""
Authentication API Router

REST API endpoints for user authentication and agency user management.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from structlog import get_logger

from ..audit.service import AuditAction, AuditService
from ..config import get_config
from ..shared_services.pagination import PageParams, PaginatedResponse, get_page_params
from ..shared_services.tenant_context import TenantContext
from ..tenant_management.db_service import TenantDBService
from .db_service import UserDBService
from .dependencies import get_current_user, get_user_service, require_role, require_tenant_context
from .models import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RefreshTokenRequest,
    User,
    UserCreate,
    UserResponse,
    UserRole,
    UserUpdate,
)
from .security import (
    create_access_token,
    create_refresh_token,
    validate_password_strength,
    verify_password,
    verify_refresh_token,
)

logger = get_logger()

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _issue_tokens(user: User) -> LoginResponse:
    token_data = {
        "user_id": user.user_id,
        "tenant_id": user.tenant_id,
        "role": user.role.value,
    }
    return LoginResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(user.user_id, user.tenant_id),
        token_type="bearer",
        expires_in=get_config().jwt_expiry_hours * 3600,
        user=UserResponse(**user.model_dump()),
    )


def _check_password_strength(password: str) -> None:
    is_valid, error_message = validate_password_strength(password)
    if not is_valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error_message)


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="User login",
    description="Authenticate user and return access and refresh tokens",
)
async def login(
    login_request: LoginRequest,
    tenant_context: TenantContext = Depends(require_tenant_context),
    user_service: UserDBService = Depends(get_user_service),
) -> LoginResponse:
    """Authenticate user and return JWT tokens."""
    user = await user_service.get_user_by_email(login_request.email, tenant_context.tenant_id)

    if not user or not verify_password(login_request.password, user.hashed_password):
        logger.warning("login_failed", email=login_request.email, tenant_id=tenant_context.tenant_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )

    if not user.is_active:
        logger.warning("login_failed_inactive_user", user_id=user.user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    await user_service.update_last_login(user.user_id)
    if tenant_context.platform_db is not None:
        await TenantDBService(tenant_context.platform_db).touch_activity(tenant_context.tenant_id)

    logger.info("login_successful", user_id=user.user_id, tenant_id=user.tenant_id)

    return _issue_tokens(user)


@router.post(
    "/refresh",
    response_model=LoginResponse,
    summary="Refresh access token",
)
async def refresh_token(
    refresh_request: RefreshTokenRequest,
    tenant_context: TenantContext = Depends(require_tenant_context),
    user_service: UserDBService = Depends(get_user_service),
) -> LoginResponse:
    """Exchange a refresh token for a new token pair."""
    payload = verify_refresh_token(refresh_request.refresh_token)

    if not payload or payload.get("tenant_id") != tenant_context.tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
        )

    user = await user_service.get_user_by_id(payload.get("user_id", ""))

    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    logger.info("token_refreshed", user_id=user.user_id)

    return _issue_tokens(user)


@router.get("/me", response_model=UserResponse, summary="Get current user")
async def get_me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse(**current_user.model_dump())


@router.patch("/me", response_model=UserResponse, summary="Update current user")
async def update_me(
    update_data: UserUpdate,
    current_user: User = Depends(get_current_user),
    user_service: UserDBService = Depends(get_user_service),
) -> UserResponse:
    """Update own profile. Role and activation can only be changed by an owner on another user."""
    update_dict = update_data.model_dump(exclude_unset=True, exclude_none=True)

    if "role" in update_dict or "is_active" in update_dict:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot change your own role or status",
        )

    if not update_dict:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    updated_user = await user_service.update_user(current_user.user_id, update_dict)
    if not updated_user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    logger.info("user_updated", user_id=current_user.user_id, fields=list(update_dict.keys()))

    return UserResponse(**updated_user.model_dump())


@router.post(
    "/change-password",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Change password",
)
async def change_password(
    request: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    user_service: UserDBService = Depends(get_user_service),
) -> None:
    if not verify_password(request.current_password, current_user.hashed_password):
        logger.warning("password_change_failed_invalid_current", user_id=current_user.user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Current password is incorrect",
        )

    _check_password_strength(request.new_password)

    await user_service.update_password(current_user.user_id, request.new_password)

    logger.info("password_changed", user_id=current_user.user_id)


# Owner endpoints


@router.get(
    "/users",
    response_model=PaginatedResponse[UserResponse],
    dependencies=[Depends(require_role(UserRole.OWNER))],
    summary="List agency users (Owner)",
)
async def list_users(
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    page: PageParams = Depends(get_page_params),
    tenant_context: TenantContext = Depends(require_tenant_context),
    user_service: UserDBService = Depends(get_user_service),
) -> PaginatedResponse[UserResponse]:
    users = await user_service.list_users(
        tenant_id=tenant_context.tenant_id,
        role=role,
        is_active=is_active,
        skip=page.skip,
        limit=page.page_size,
    )
    count = await user_service.count_users(tenant_context.tenant_id, role=role, is_active=is_active)
    data = [UserResponse(**user.model_dump()) for user in users]
    return PaginatedResponse[UserResponse].build(data, count, page)


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite collaborator (Owner)",
)
async def create_user(
    user_create: UserCreate,
    current_user: User = Depends(require_role(UserRole.OWNER)),
    tenant_context: TenantContext = Depends(require_tenant_context),
    user_service: UserDBService = Depends(get_user_service),
) -> UserResponse:
    _check_password_strength(user_create.password)

    try:
        user = await user_service.create_user(
            user_create=user_create,
            tenant_id=tenant_context.tenant_id,
            created_by=current_user.user_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    await AuditService(tenant_context.db).record(
        tenant_id=tenant_context.tenant_id,
        action=AuditAction.CREATE,
        table_name="users",
        record_id=user.user_id,
        user_id=current_user.user_id,
        new_data=user.model_dump(),
    )

    logger.info("user_created", user_id=user.user_id, role=user.role, created_by=current_user.user_id)

    return UserResponse(**user.model_dump())


@router.patch(
    "/users/{user_id}",
    response_model=UserResponse,
    summary="Update user (Owner)",
)
async def update_user(
    user_id: str,
    update_data: UserUpdate,
    current_user: User = Depends(require_role(UserRole.OWNER)),
    tenant_context: TenantContext = Depends(require_tenant_context),
    user_service: UserDBService = Depends(get_user_service),
) -> UserResponse:
    update_dict = update_data.model_dump(exclude_unset=True, exclude_none=True)
    if not update_dict:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    if user_id == current_user.user_id and ("role" in update_dict or "is_active" in update_dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot change your own role or status",
        )

    existing = await user_service.get_user_by_id(user_id)
    if not existing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    updated_user = await user_service.update_user(user_id, update_dict)

    await AuditService(tenant_context.db).record(
        tenant_id=tenant_context.tenant_id,
        action=AuditAction.UPDATE,
        table_name="users",
        record_id=user_id,
        user_id=current_user.user_id,
        old_data=existing.model_dump(),
        new_data=updated_user.model_dump() if updated_user else None,
    )

    logger.info("user_updated_by_owner", user_id=user_id, owner_id=current_user.user_id)

    return UserResponse(**updated_user.model_dump())


@router.delete(
    "/users/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Deactivate user (Owner)",
)
async def delete_user(
    user_id: str,
    current_user: User = Depends(require_role(UserRole.OWNER)),
    tenant_context: TenantContext = Depends(require_tenant_context),
    user_service: UserDBService = Depends(get_user_service),
) -> None:
    if user_id == current_user.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete your own account",
        )

    if not await user_service.deactivate_user(user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    await AuditService(tenant_context.db).record(
        tenant_id=tenant_context.tenant_id,
        action=AuditAction.DELETE,
        table_name="users",
        record_id=user_id,
        user_id=current_user.user_id,
    )

    logger.info("user_deactivated", user_id=user_id, owner_id=current_user.user_id)
