"""
Mercado Pago Client

Thin async wrapper over the preapproval (recurring subscription) and payments APIs.
"""

from typing import Any, Optional

import httpx
from structlog import get_logger

from ..config import get_config

logger = get_logger()


class MercadoPagoError(Exception):
    """The provider rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MercadoPagoClient:
    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = get_config()
        self.access_token = access_token or config.mercado_pago_access_token
        self.base_url = (base_url or config.mercado_pago_api_base_url).rstrip("/")
        self.timeout = timeout or config.mercado_pago_timeout_seconds
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
            },
        )

    async def create_preapproval(self, payer_email: str, tenant_id: str) -> dict[str, Any]:
        """
        Create a monthly recurring subscription.

        Returns:
            Provider preapproval, including ``id`` and the checkout ``init_point``

        Raises:
            MercadoPagoError: On a non-2xx response or a transport failure
        """
        config = get_config()
        if not self.access_token:
            raise MercadoPagoError("Mercado Pago access token not configured")

        payload = {
            "reason": config.subscription_plan_reason,
            "auto_recurring": {
                "frequency": 1,
                "frequency_type": "months",
                "transaction_amount": config.subscription_price,
                "currency_id": config.subscription_currency,
            },
            "payer_email": payer_email,
            "back_url": f"{config.app_url.rstrip('/')}/settings?subscription=success",
            "external_reference": tenant_id,
        }

        try:
            async with self._client() as client:
                response = await client.post("/preapproval", json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "mercadopago_preapproval_create_failed",
                tenant_id=tenant_id,
                status_code=e.response.status_code,
                response=e.response.text,
            )
            raise MercadoPagoError(
                "Failed to create subscription in Mercado Pago",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error("mercadopago_unreachable", tenant_id=tenant_id, error=str(e))
            raise MercadoPagoError("Mercado Pago unavailable") from e

    async def get_preapproval(self, preapproval_id: str) -> Optional[dict[str, Any]]:
        """Fetch a preapproval; None when it cannot be fetched."""
        return await self._get(f"/preapproval/{preapproval_id}", "preapproval", preapproval_id)

    async def get_payment(self, payment_id: str) -> Optional[dict[str, Any]]:
        """
        Fetch a payment.

        Returns:
            ``{"status", "preapproval_id"}``, or None when it cannot be fetched
        """
        data = await self._get(f"/v1/payments/{payment_id}", "payment", payment_id)
        if data is None:
            return None

        metadata = data.get("metadata") or {}
        point_of_interaction = data.get("point_of_interaction") or {}
        return {
            "status": data.get("status"),
            "preapproval_id": metadata.get("preapproval_id") or point_of_interaction.get("sub_type"),
        }

    async def _get(self, path: str, resource: str, resource_id: str) -> Optional[dict[str, Any]]:
        try:
            async with self._client() as client:
                response = await client.get(path)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "mercadopago_fetch_failed",
                resource=resource,
                resource_id=resource_id,
                status_code=e.response.status_code,
            )
            return None
        except httpx.HTTPError as e:
            logger.error("mercadopago_fetch_error", resource=resource, resource_id=resource_id, error=str(e))
            return None
