"""
Billing Service

Subscription checkout through Mercado Pago.
"""

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
from structlog import get_logger

from ..auth.models import User
from ..config import get_config
from ..constants import SUBSCRIPTION_STATUS_LABELS, label_for
from ..shared_services.utils import format_currency
from .db_service import SubscriptionDBService
from .mercadopago_client import MercadoPagoClient, MercadoPagoError
from .models import CheckoutResponse, Subscription, SubscriptionResponse, SubscriptionStatus

logger = get_logger()


class SubscriptionNotFoundError(ValueError):
    pass


class SubscriptionAlreadyActiveError(ValueError):
    pass


def build_subscription_response(subscription: Subscription) -> SubscriptionResponse:
    config = get_config()
    return SubscriptionResponse(
        subscription_id=subscription.subscription_id,
        status=subscription.status,
        status_label=label_for(SUBSCRIPTION_STATUS_LABELS, subscription.status),
        plan_type=subscription.plan_type,
        is_active=subscription.is_active(),
        trial_days_left=subscription.trial_days_left() if subscription.status == SubscriptionStatus.TRIAL else 0,
        trial_ends_at=subscription.trial_ends_at,
        current_period_ends_at=subscription.current_period_ends_at,
        canceled_at=subscription.canceled_at,
        price_cents=config.subscription_price_cents,
        price_formatted=format_currency(config.subscription_price_cents),
    )


class BillingService:
    def __init__(self, platform_db: AsyncIOMotorDatabase, mp_client: Optional[MercadoPagoClient] = None):
        self.subscription_service = SubscriptionDBService(platform_db)
        self.mp_client = mp_client or MercadoPagoClient()

    async def create_checkout(self, user: User) -> CheckoutResponse:
        """
        Start a Mercado Pago subscription for the user's tenant.

        Raises:
            SubscriptionNotFoundError: If the tenant has no subscription
            SubscriptionAlreadyActiveError: If it is already paid through Mercado Pago
            MercadoPagoError: If the provider rejects the preapproval
        """
        subscription = await self.subscription_service.get_by_tenant(user.tenant_id)
        if not subscription:
            raise SubscriptionNotFoundError("Subscription not found")

        if subscription.status == SubscriptionStatus.ACTIVE and subscription.mercado_pago_subscription_id:
            raise SubscriptionAlreadyActiveError("Subscription already active")

        preapproval = await self.mp_client.create_preapproval(payer_email=user.email, tenant_id=user.tenant_id)

        provider_id = preapproval.get("id")
        checkout_url = preapproval.get("init_point")
        if not provider_id or not checkout_url:
            raise MercadoPagoError("Mercado Pago returned an incomplete preapproval")

        payer_id = preapproval.get("payer_id")
        try:
            await self.subscription_service.attach_provider_ids(
                tenant_id=user.tenant_id,
                mercado_pago_subscription_id=str(provider_id),
                mercado_pago_customer_id=str(payer_id) if payer_id is not None else None,
            )
        except PyMongoError as e:
            logger.error("subscription_provider_attach_failed", tenant_id=user.tenant_id, error=str(e))

        logger.info(
            "subscription_checkout_created",
            tenant_id=user.tenant_id,
            user_id=user.user_id,
            mercado_pago_subscription_id=provider_id,
        )

        return CheckoutResponse(checkout_url=checkout_url, subscription_id=str(provider_id))
