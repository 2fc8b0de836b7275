"""
pytest configuration and fixtures for ImobCRM tests.

MongoDB is replaced by mongomock-motor; API tests drive the real application
through FastAPI's TestClient with the mock client attached to ``app.state``.
"""

import asyncio
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from crm_core.api_gateway.main import create_app
from crm_core.clients.models import Client
from crm_core.config import get_config
from crm_core.pipeline.models import ClientStage
from crm_core.properties.models import Property, PropertyType, TransactionType

TENANT_ID = "imobsol_20260223"

OWNER_PASSWORD = "Senha-Forte-2026"


@pytest.fixture(autouse=True)
def reset_config():
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def configure(monkeypatch):
    """Override settings through the environment for one test."""

    def _configure(**values):
        for key, value in values.items():
            monkeypatch.setenv(key.upper(), str(value))
        get_config.cache_clear()

    return _configure


@pytest.fixture
def mongo_client():
    return AsyncMongoMockClient()


@pytest.fixture
def platform_db(mongo_client):
    return mongo_client[get_config().platform_mongo_db_name]


@pytest.fixture
def tenant_db(mongo_client):
    return mongo_client[get_config().get_tenant_db_name(TENANT_ID)]


@pytest.fixture
def app(mongo_client):
    application = create_app()
    application.state.mongo_client = mongo_client
    application.state.redis_client = None
    return application


@pytest.fixture
def api(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def run():
    """Run a coroutine from a synchronous test."""
    return asyncio.run


@pytest.fixture
def onboarded(api):
    """An onboarded agency with a logged-in owner."""
    response = api.post(
        "/platform/onboarding",
        json={
            "user_name": "Maria Souza",
            "user_email": "maria@imobsol.com.br",
            "password": OWNER_PASSWORD,
            "tenant_name": "Imobiliária Sol",
            "subdomain": "imobsol",
        },
    )
    assert response.status_code == 201, response.text
    tenant_id = response.json()["tenant_id"]

    login = api.post(
        "/auth/login",
        json={"email": "maria@imobsol.com.br", "password": OWNER_PASSWORD},
        headers={"X-Tenant-ID": tenant_id},
    )
    assert login.status_code == 200, login.text

    return {
        "tenant_id": tenant_id,
        "onboarding": response.json(),
        "headers": {
            "X-Tenant-ID": tenant_id,
            "Authorization": f"Bearer {login.json()['access_token']}",
        },
    }


# Domain object factories


def make_stage(stage_id: str, position: int, name: str = None, is_final: bool = False) -> ClientStage:
    return ClientStage(
        stage_id=stage_id,
        tenant_id=TENANT_ID,
        name=name or f"Etapa {position}",
        position=position,
        is_final=is_final,
    )


def make_client(client_id: str, stage_id: str = None, name: str = None, **criteria) -> Client:
    return Client(
        client_id=client_id,
        tenant_id=TENANT_ID,
        name=name or f"Cliente {client_id}",
        phone="(48) 99876-5432",
        phone_normalized="48998765432",
        stage_id=stage_id,
        **criteria,
    )


def make_property(property_id: str, price: int = 35_000_000, **fields) -> Property:
    defaults = {
        "title": f"Imóvel {property_id}",
        "transaction_type": TransactionType.SALE,
        "property_type": PropertyType.APARTMENT,
        "bedrooms": 2,
        "city": "Florianópolis",
        "city_normalized": "florianopolis",
        "neighborhood": "Centro",
        "neighborhood_normalized": "centro",
        "created_at": datetime(2026, 2, 1),
    }
    defaults.update(fields)
    return Property(property_id=property_id, tenant_id=TENANT_ID, price=price, **defaults)
