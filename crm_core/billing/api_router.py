"""
Billing API Router

Subscription status, checkout, and the Mercado Pago webhook.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from structlog import get_logger

from ..auth.dependencies import get_current_user, require_role
from ..auth.models import User, UserRole
from ..config import get_config
from .db_service import SubscriptionDBService
from .dependencies import get_mercadopago_client, get_subscription_service
from .mercadopago_client import MercadoPagoClient, MercadoPagoError
from .models import CheckoutResponse, SubscriptionResponse, WebhookResult
from .service import (
    BillingService,
    SubscriptionAlreadyActiveError,
    SubscriptionNotFoundError,
    build_subscription_response,
)
from .webhooks import WebhookProcessor, verify_signature

logger = get_logger()

router = APIRouter(prefix="/billing", tags=["Billing"])

webhook_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.get("/subscription", response_model=SubscriptionResponse, summary="Current subscription")
async def get_subscription(
    current_user: User = Depends(get_current_user),
    subscription_service: SubscriptionDBService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    subscription = await subscription_service.get_by_tenant(current_user.tenant_id)
    if not subscription:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return build_subscription_response(subscription)


@router.post(
    "/subscribe",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start Mercado Pago checkout (Owner)",
)
async def subscribe(
    request: Request,
    current_user: User = Depends(require_role(UserRole.OWNER)),
    mp_client: MercadoPagoClient = Depends(get_mercadopago_client),
) -> CheckoutResponse:
    service = BillingService(request.app.state.platform_db, mp_client)

    try:
        return await service.create_checkout(current_user)
    except SubscriptionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except SubscriptionAlreadyActiveError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except MercadoPagoError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@webhook_router.post("/mercadopago", response_model=WebhookResult, summary="Mercado Pago notifications")
async def mercadopago_webhook(
    request: Request,
    data_id_param: Optional[str] = Query(None, alias="data.id"),
    x_signature: Optional[str] = Header(None),
    x_request_id: Optional[str] = Header(None),
    mp_client: MercadoPagoClient = Depends(get_mercadopago_client),
) -> WebhookResult:
    """
    Receive a provider notification.

    When a webhook secret is configured, the ``x-signature`` header is mandatory.
    Processing outcomes, including provider fetch failures, are reported with HTTP 200.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")

    data_id = data_id_param or str((payload.get("data") or {}).get("id") or "") or None
    event_type = payload.get("type")

    secret = get_config().mercado_pago_webhook_secret
    if secret and not verify_signature(x_signature, x_request_id, data_id, secret):
        logger.warning("mercadopago_webhook_invalid_signature", request_id=x_request_id, data_id=data_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    logger.info("mercadopago_webhook_received", event_type=event_type, data_id=data_id)

    processor = WebhookProcessor(SubscriptionDBService(request.app.state.platform_db), mp_client)
    return await processor.process(event_type, data_id)
