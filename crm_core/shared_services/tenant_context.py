"""
Tenant Context Management

Request-scoped agency context: which tenant is being served, its database, and
the platform database holding its subscription.

Setting the context also binds ``tenant_id`` into structlog's context
variables, so every log line emitted while serving the request carries it.
"""

from contextvars import ContextVar, Token
from typing import Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from ..tenant_management.models import Tenant, TenantConfig

_tenant_context: ContextVar[Optional["TenantContext"]] = ContextVar("tenant_context", default=None)


class TenantContext:
    def __init__(
        self,
        tenant: Tenant,
        db: AsyncIOMotorDatabase,
        mongo_client: AsyncIOMotorClient,
        platform_db: Optional[AsyncIOMotorDatabase] = None,
    ):
        """
        Args:
            tenant: Agency being served
            db: The agency's own database (users, stages, clients, properties, audit log)
            mongo_client: Shared MongoDB client
            platform_db: Platform database (tenants, subscriptions)
        """
        self.tenant = tenant
        self.db = db
        self.mongo_client = mongo_client
        self.platform_db = platform_db

    @property
    def tenant_id(self) -> str:
        return self.tenant.tenant_id

    @property
    def database_name(self) -> str:
        return self.tenant.database_name

    @property
    def config(self) -> TenantConfig:
        return self.tenant.config


def set_tenant_context(context: TenantContext) -> Token:
    """
    Make ``context`` current for this request.

    Returns:
        Token to hand back to ``clear_tenant_context``
    """
    structlog.contextvars.bind_contextvars(tenant_id=context.tenant_id)
    return _tenant_context.set(context)


def get_tenant_context() -> Optional[TenantContext]:
    return _tenant_context.get()


def clear_tenant_context(token: Optional[Token] = None) -> None:
    """Restore the previous context, or drop it when no token is given."""
    structlog.contextvars.unbind_contextvars("tenant_id")
    if token is not None:
        _tenant_context.reset(token)
    else:
        _tenant_context.set(None)
