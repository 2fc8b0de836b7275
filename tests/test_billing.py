"""
Tests for subscriptions, the Mercado Pago client and webhook processing.
"""

import hashlib
import hmac
import json
from datetime import datetime, timedelta

import httpx
import pytest

from conftest import TENANT_ID
from crm_core.billing.db_service import SubscriptionDBService
from crm_core.billing.dependencies import get_mercadopago_client
from crm_core.billing.mercadopago_client import MercadoPagoClient, MercadoPagoError
from crm_core.billing.models import Subscription, SubscriptionStatus
from crm_core.billing.webhooks import (
    WebhookProcessor,
    _parse_provider_date,
    map_preapproval_status,
    verify_signature,
)

NOW = datetime(2026, 2, 23, 12, 0, 0)

WEBHOOK_SECRET = "whsec-test"


def sign(data_id, request_id, ts="1708700000", secret=WEBHOOK_SECRET):
    manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
    digest = hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()
    return f"ts={ts},v1={digest}"


def make_subscription(status=SubscriptionStatus.TRIAL, trial_ends_at=NOW + timedelta(days=7)):
    return Subscription(
        subscription_id="sub_1",
        tenant_id=TENANT_ID,
        status=status,
        trial_ends_at=trial_ends_at,
    )


class TestSubscriptionState:
    def test_trial_with_time_left_is_active(self):
        subscription = make_subscription()
        assert subscription.is_active(NOW)
        assert subscription.is_trial_active(NOW)
        assert subscription.trial_days_left(NOW) == 7

    def test_partial_days_round_up(self):
        subscription = make_subscription(trial_ends_at=NOW + timedelta(days=2, hours=1))
        assert subscription.trial_days_left(NOW) == 3

    def test_expired_trial_is_inactive(self):
        subscription = make_subscription(trial_ends_at=NOW - timedelta(seconds=1))
        assert not subscription.is_active(NOW)
        assert subscription.is_trial_expired(NOW)
        assert subscription.trial_days_left(NOW) == 0

    @pytest.mark.parametrize(
        "status, active",
        [
            (SubscriptionStatus.ACTIVE, True),
            (SubscriptionStatus.PAST_DUE, False),
            (SubscriptionStatus.CANCELED, False),
        ],
    )
    def test_paid_statuses(self, status, active):
        assert make_subscription(status=status, trial_ends_at=None).is_active(NOW) is active


class TestSignature:
    def test_valid_signature(self):
        assert verify_signature(sign("123", "req-1"), "req-1", "123", WEBHOOK_SECRET)

    def test_tampered_or_missing_signature(self):
        assert not verify_signature(sign("123", "req-1"), "req-1", "999", WEBHOOK_SECRET)
        assert not verify_signature(sign("123", "req-1", secret="other"), "req-1", "123", WEBHOOK_SECRET)
        assert not verify_signature(None, "req-1", "123", WEBHOOK_SECRET)
        assert not verify_signature("v1=abc", "req-1", "123", WEBHOOK_SECRET)


def test_status_mapping():
    assert map_preapproval_status("authorized") == SubscriptionStatus.ACTIVE
    assert map_preapproval_status("cancelled") == SubscriptionStatus.CANCELED
    assert map_preapproval_status("paused") == SubscriptionStatus.PAST_DUE
    assert map_preapproval_status("something-new") == SubscriptionStatus.PAST_DUE


def test_provider_dates_are_stored_as_naive_utc():
    assert _parse_provider_date("2026-03-23T10:00:00.000-03:00") == datetime(2026, 3, 23, 13, 0, 0)
    assert _parse_provider_date("not a date") is None
    assert _parse_provider_date(None) is None


class TestMercadoPagoClient:
    async def test_create_preapproval_sends_plan(self, configure):
        configure(mercado_pago_access_token="TEST-token", app_url="https://app.imobcrm.com.br/")
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "pre_1", "init_point": "https://mp/checkout"})

        client = MercadoPagoClient(transport=httpx.MockTransport(handler))
        preapproval = await client.create_preapproval("maria@imobsol.com.br", TENANT_ID)

        assert preapproval["init_point"] == "https://mp/checkout"
        assert captured["auth"] == "Bearer TEST-token"
        assert captured["body"]["external_reference"] == TENANT_ID
        assert captured["body"]["auto_recurring"]["transaction_amount"] == 49.0
        assert captured["body"]["back_url"] == "https://app.imobcrm.com.br/settings?subscription=success"

    async def test_provider_error_raises(self, configure):
        configure(mercado_pago_access_token="TEST-token")
        transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"message": "bad"}))

        with pytest.raises(MercadoPagoError) as exc_info:
            await MercadoPagoClient(transport=transport).create_preapproval("a@b.com", TENANT_ID)

        assert exc_info.value.status_code == 400

    async def test_missing_token_raises(self):
        with pytest.raises(MercadoPagoError):
            await MercadoPagoClient().create_preapproval("a@b.com", TENANT_ID)

    async def test_get_payment_extracts_preapproval(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(
                200, json={"status": "approved", "metadata": {"preapproval_id": "pre_1"}}
            )
        )
        payment = await MercadoPagoClient(access_token="t", transport=transport).get_payment("55")
        assert payment == {"status": "approved", "preapproval_id": "pre_1"}

    async def test_fetch_failure_returns_none(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        assert await MercadoPagoClient(access_token="t", transport=transport).get_preapproval("x") is None


class TestWebhookProcessor:
    @pytest.fixture
    async def subscriptions(self, platform_db):
        service = SubscriptionDBService(platform_db)
        await service.create_trial(TENANT_ID)
        return service

    @pytest.fixture
    def mp_client(self, mocker):
        client = mocker.Mock(spec=MercadoPagoClient)
        client.get_preapproval = mocker.AsyncMock(
            return_value={
                "id": "pre_1",
                "status": "authorized",
                "external_reference": TENANT_ID,
                "next_payment_date": "2026-03-23T10:00:00.000-03:00",
            }
        )
        client.get_payment = mocker.AsyncMock(return_value={"status": "approved", "preapproval_id": "pre_1"})
        return client

    async def test_authorized_preapproval_activates(self, subscriptions, mp_client):
        result = await WebhookProcessor(subscriptions, mp_client).process("subscription_preapproval", "pre_1")

        assert result.success
        assert result.status == SubscriptionStatus.ACTIVE
        stored = await subscriptions.get_by_tenant(TENANT_ID)
        assert stored.status == SubscriptionStatus.ACTIVE
        assert stored.mercado_pago_subscription_id == "pre_1"
        assert stored.current_period_ends_at == datetime(2026, 3, 23, 13, 0, 0)

    async def test_cancelled_preapproval_records_cancellation(self, subscriptions, mp_client):
        mp_client.get_preapproval.return_value = {"id": "pre_1", "status": "cancelled", "external_reference": TENANT_ID}

        result = await WebhookProcessor(subscriptions, mp_client).process("subscription_preapproval", "pre_1")

        assert result.status == SubscriptionStatus.CANCELED
        stored = await subscriptions.get_by_tenant(TENANT_ID)
        assert stored.canceled_at is not None

    async def test_rejected_payment_marks_past_due(self, subscriptions, mp_client):
        mp_client.get_payment.return_value = {"status": "rejected", "preapproval_id": "pre_1"}

        result = await WebhookProcessor(subscriptions, mp_client).process("subscription_authorized_payment", "55")

        assert result.status == SubscriptionStatus.PAST_DUE

    async def test_pending_payment_is_ignored(self, subscriptions, mp_client):
        mp_client.get_payment.return_value = {"status": "in_process", "preapproval_id": "pre_1"}

        result = await WebhookProcessor(subscriptions, mp_client).process("subscription_authorized_payment", "55")

        assert result.success
        assert result.message == "Payment status not actionable"
        assert (await subscriptions.get_by_tenant(TENANT_ID)).status == SubscriptionStatus.TRIAL

    async def test_unknown_subscription(self, subscriptions, mp_client):
        mp_client.get_preapproval.return_value = {"id": "pre_9", "status": "authorized", "external_reference": "outra"}

        result = await WebhookProcessor(subscriptions, mp_client).process("subscription_preapproval", "pre_9")

        assert not result.success
        assert result.message == "Subscription not found"

    async def test_unfetchable_preapproval(self, subscriptions, mp_client):
        mp_client.get_preapproval.return_value = None

        result = await WebhookProcessor(subscriptions, mp_client).process("subscription_preapproval", "pre_1")

        assert not result.success

    async def test_other_events_are_acknowledged(self, subscriptions, mp_client):
        result = await WebhookProcessor(subscriptions, mp_client).process("payment", "1")

        assert result.success
        assert result.message == "Event type not handled"
        mp_client.get_preapproval.assert_not_called()


class TestWebhookRoute:
    @pytest.fixture
    def fake_mp(self, app, mocker):
        client = mocker.Mock(spec=MercadoPagoClient)
        app.dependency_overrides[get_mercadopago_client] = lambda: client
        yield client
        app.dependency_overrides.clear()

    def test_rejects_missing_signature_when_secret_set(self, api, configure, fake_mp):
        configure(mercado_pago_webhook_secret=WEBHOOK_SECRET)

        response = api.post("/webhooks/mercadopago", json={"type": "subscription_preapproval", "data": {"id": "pre_1"}})

        assert response.status_code == 401

    def test_rejects_invalid_json(self, api, fake_mp):
        response = api.post(
            "/webhooks/mercadopago",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_signed_notification_activates_subscription(self, api, configure, onboarded, fake_mp, mocker):
        configure(mercado_pago_webhook_secret=WEBHOOK_SECRET)
        fake_mp.get_preapproval = mocker.AsyncMock(
            return_value={"id": "pre_1", "status": "authorized", "external_reference": onboarded["tenant_id"]}
        )

        response = api.post(
            "/webhooks/mercadopago",
            params={"data.id": "pre_1"},
            json={"type": "subscription_preapproval", "data": {"id": "pre_1"}},
            headers={"x-signature": sign("pre_1", "req-1"), "x-request-id": "req-1"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "ACTIVE"

        subscription = api.get("/billing/subscription", headers=onboarded["headers"])
        assert subscription.json()["status"] == "ACTIVE"
        assert subscription.json()["is_active"] is True


class TestSubscribeRoute:
    def test_checkout_url_returned(self, api, app, onboarded, mocker):
        client = mocker.Mock(spec=MercadoPagoClient)
        client.create_preapproval = mocker.AsyncMock(
            return_value={"id": "pre_1", "init_point": "https://mp/checkout/pre_1", "payer_id": 77}
        )
        app.dependency_overrides[get_mercadopago_client] = lambda: client

        response = api.post("/billing/subscribe", headers=onboarded["headers"])

        app.dependency_overrides.clear()
        assert response.status_code == 201
        assert response.json()["checkout_url"] == "https://mp/checkout/pre_1"
        client.create_preapproval.assert_awaited_once_with(
            payer_email="maria@imobsol.com.br", tenant_id=onboarded["tenant_id"]
        )

    def test_provider_failure_is_bad_gateway(self, api, app, onboarded, mocker):
        client = mocker.Mock(spec=MercadoPagoClient)
        client.create_preapproval = mocker.AsyncMock(side_effect=MercadoPagoError("Mercado Pago unavailable"))
        app.dependency_overrides[get_mercadopago_client] = lambda: client

        response = api.post("/billing/subscribe", headers=onboarded["headers"])

        app.dependency_overrides.clear()
        assert response.status_code == 502

    def test_already_paid_subscription_conflicts(self, api, app, onboarded, platform_db, run, mocker):
        run(
            platform_db.subscriptions.update_one(
                {"tenant_id": onboarded["tenant_id"]},
                {"$set": {"status": SubscriptionStatus.ACTIVE, "mercado_pago_subscription_id": "pre_1"}},
            )
        )
        client = mocker.Mock(spec=MercadoPagoClient)
        client.create_preapproval = mocker.AsyncMock()
        app.dependency_overrides[get_mercadopago_client] = lambda: client

        response = api.post("/billing/subscribe", headers=onboarded["headers"])

        app.dependency_overrides.clear()
        assert response.status_code == 409
        client.create_preapproval.assert_not_awaited()
