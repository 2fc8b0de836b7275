"""
Mercado Pago Webhook Processing

Signature verification and translation of provider notifications into
subscription status changes.
"""

import hashlib
import hmac
from datetime import datetime, timezone
from typing import Any, Optional

from structlog import get_logger

from .db_service import SubscriptionDBService
from .mercadopago_client import MercadoPagoClient
from .models import Subscription, SubscriptionStatus, WebhookResult

logger = get_logger()

PREAPPROVAL_STATUS_MAP = {
    "authorized": SubscriptionStatus.ACTIVE,
    "pending": SubscriptionStatus.TRIAL,
    "paused": SubscriptionStatus.PAST_DUE,
    "cancelled": SubscriptionStatus.CANCELED,
}


def parse_signature_header(x_signature: str) -> tuple[Optional[str], Optional[str]]:
    """Split ``ts=<ts>,v1=<hash>`` into (ts, hash)."""
    ts = None
    signature = None
    for part in x_signature.split(","):
        key, _, value = part.partition("=")
        if key.strip() == "ts":
            ts = value.strip()
        elif key.strip() == "v1":
            signature = value.strip()
    return ts, signature


def build_manifest(data_id: Optional[str], request_id: Optional[str], ts: str) -> str:
    manifest = ""
    if data_id:
        manifest += f"id:{data_id};"
    if request_id:
        manifest += f"request-id:{request_id};"
    manifest += f"ts:{ts};"
    return manifest


def verify_signature(
    x_signature: Optional[str],
    request_id: Optional[str],
    data_id: Optional[str],
    secret: str,
) -> bool:
    """Check an ``x-signature`` header against the HMAC-SHA256 of the manifest."""
    if not x_signature:
        return False

    ts, signature = parse_signature_header(x_signature)
    if not ts or not signature:
        return False

    expected = hmac.new(
        secret.encode("utf-8"),
        build_manifest(data_id, request_id, ts).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

    return hmac.compare_digest(expected, signature)


def map_preapproval_status(provider_status: Optional[str]) -> SubscriptionStatus:
    return PREAPPROVAL_STATUS_MAP.get(provider_status or "", SubscriptionStatus.PAST_DUE)


def _parse_provider_date(value: Optional[str]) -> Optional[datetime]:
    """Provider dates are ISO 8601 with offset; stored as naive UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("mercadopago_unparseable_date", value=value)
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class WebhookProcessor:
    def __init__(self, subscription_service: SubscriptionDBService, mp_client: MercadoPagoClient):
        self.subscription_service = subscription_service
        self.mp_client = mp_client

    async def process(self, event_type: Optional[str], data_id: Optional[str]) -> WebhookResult:
        if event_type == "subscription_preapproval":
            return await self._handle_preapproval(data_id)
        if event_type == "subscription_authorized_payment":
            return await self._handle_authorized_payment(data_id)

        logger.info("mercadopago_webhook_event_not_handled", event_type=event_type)
        return WebhookResult(success=True, message="Event type not handled")

    async def _handle_preapproval(self, preapproval_id: Optional[str]) -> WebhookResult:
        preapproval = await self.mp_client.get_preapproval(preapproval_id) if preapproval_id else None
        if not preapproval:
            return WebhookResult(success=False, message="Could not fetch preapproval data")

        provider_status = preapproval.get("status")
        status = map_preapproval_status(provider_status)
        canceled_at = datetime.utcnow() if provider_status == "cancelled" else None

        return await self._apply(
            preapproval,
            status,
            current_period_ends_at=_parse_provider_date(preapproval.get("next_payment_date")),
            canceled_at=canceled_at,
            message="Subscription updated",
        )

    async def _handle_authorized_payment(self, payment_id: Optional[str]) -> WebhookResult:
        payment = await self.mp_client.get_payment(payment_id) if payment_id else None
        if not payment or not payment.get("preapproval_id"):
            return WebhookResult(success=False, message="Could not fetch payment data")

        preapproval = await self.mp_client.get_preapproval(payment["preapproval_id"])
        if not preapproval:
            return WebhookResult(success=False, message="Could not fetch preapproval data")

        if payment.get("status") == "approved":
            return await self._apply(
                preapproval,
                SubscriptionStatus.ACTIVE,
                current_period_ends_at=_parse_provider_date(preapproval.get("next_payment_date")),
                message="Payment approved, subscription activated",
            )

        if payment.get("status") == "rejected":
            return await self._apply(
                preapproval,
                SubscriptionStatus.PAST_DUE,
                message="Payment rejected, subscription marked as past due",
            )

        return WebhookResult(success=True, message="Payment status not actionable")

    async def _find_subscription(self, preapproval: dict[str, Any]) -> Optional[Subscription]:
        subscription = await self.subscription_service.get_by_provider_id(str(preapproval.get("id")))
        if subscription:
            return subscription

        tenant_id = preapproval.get("external_reference")
        if tenant_id:
            return await self.subscription_service.get_by_tenant(tenant_id)
        return None

    async def _apply(
        self,
        preapproval: dict[str, Any],
        status: SubscriptionStatus,
        message: str,
        current_period_ends_at: Optional[datetime] = None,
        canceled_at: Optional[datetime] = None,
    ) -> WebhookResult:
        subscription = await self._find_subscription(preapproval)
        if not subscription:
            logger.warning("mercadopago_webhook_subscription_not_found", preapproval_id=preapproval.get("id"))
            return WebhookResult(success=False, message="Subscription not found")

        updated = await self.subscription_service.update_from_webhook(
            tenant_id=subscription.tenant_id,
            status=status,
            current_period_ends_at=current_period_ends_at,
            canceled_at=canceled_at,
            mercado_pago_subscription_id=str(preapproval.get("id")),
        )
        if not updated:
            return WebhookResult(success=False, message="Subscription not found")

        logger.info(
            "subscription_status_updated",
            tenant_id=subscription.tenant_id,
            old_status=subscription.status,
            new_status=status,
        )

        return WebhookResult(success=True, message=message, tenant_id=subscription.tenant_id, status=status)
