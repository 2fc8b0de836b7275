"""
Billing Dependencies

Feature gating: writes require an active subscription (paid, or trial not expired).
"""

from fastapi import Depends, HTTPException, status
from structlog import get_logger

from ..auth.dependencies import require_tenant_context
from ..shared_services.tenant_context import TenantContext
from .db_service import SubscriptionDBService
from .mercadopago_client import MercadoPagoClient
from .models import Subscription

logger = get_logger()


async def get_subscription_service(
    tenant_context: TenantContext = Depends(require_tenant_context),
) -> SubscriptionDBService:
    return SubscriptionDBService(tenant_context.platform_db)


async def get_mercadopago_client() -> MercadoPagoClient:
    return MercadoPagoClient()


async def require_active_subscription(
    tenant_context: TenantContext = Depends(require_tenant_context),
    subscription_service: SubscriptionDBService = Depends(get_subscription_service),
) -> Subscription:
    """
    Raises:
        HTTPException: 402 when the tenant's subscription is missing, past due, canceled, or an expired trial
    """
    subscription = await subscription_service.get_by_tenant(tenant_context.tenant_id)

    if not subscription or not subscription.is_active():
        logger.info(
            "subscription_inactive_write_blocked",
            tenant_id=tenant_context.tenant_id,
            status=subscription.status if subscription else None,
        )
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail="An active subscription is required for this action",
        )

    return subscription
