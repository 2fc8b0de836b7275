"""
Tenant Routing Middleware

Every request outside the platform endpoints is served on behalf of exactly
one agency. The agency is picked from the ``X-Tenant-ID`` header, then the
subdomain of the Host, then a custom domain; its record is cached in Redis
when a client is configured on ``app.state``.
"""

import re
from typing import Callable, Optional

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import PyMongoError
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from structlog import get_logger

from ..config import get_config
from ..tenant_management.db_service import TenantDBService
from ..tenant_management.models import RESERVED_SUBDOMAINS, Tenant
from .tenant_context import TenantContext, clear_tenant_context, set_tenant_context

logger = get_logger()

PLATFORM_PREFIXES = (
    "/health",
    "/ping",
    "/platform/",
    "/webhooks/",
    "/docs",
    "/redoc",
    "/openapi.json",
)

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "testserver"})

# lookup kind -> TenantDBService method
LOOKUPS = {
    "id": "get_tenant_by_id",
    "subdomain": "get_tenant_by_subdomain",
    "domain": "get_tenant_by_domain",
}

HOST_WITH_SUBDOMAIN = re.compile(r"^([a-z0-9-]+)\..+\..+$", re.IGNORECASE)


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def is_platform_path(path: str) -> bool:
    return path == "/" or path.startswith(PLATFORM_PREFIXES)


def subdomain_from_host(host: str) -> Optional[str]:
    """``imobsol.imobcrm.com.br`` -> ``imobsol``; bare, local and reserved hosts give None."""
    if host in LOCAL_HOSTS or host.replace(".", "").isdigit():
        return None

    match = HOST_WITH_SUBDOMAIN.match(host)
    if not match:
        return None

    subdomain = match.group(1).lower()
    return None if subdomain in RESERVED_SUBDOMAINS else subdomain


class TenantRoutingMiddleware(BaseHTTPMiddleware):
    """Binds the agency context around each tenant request; clients come from ``app.state``."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if is_platform_path(request.url.path):
            return await call_next(request)

        host = request.headers.get("host")
        try:
            tenant = await self._resolve(request)
        except PyMongoError as e:
            logger.error("tenant_lookup_failed", error=str(e), host=host, path=request.url.path)
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Error processing request")

        if tenant is None:
            logger.warning("tenant_not_found", host=host, path=request.url.path)
            return _error(status.HTTP_404_NOT_FOUND, "Tenant not found. Please check your URL.")

        if not tenant.is_active():
            logger.warning("tenant_not_active", tenant_id=tenant.tenant_id, status=tenant.status)
            reason = tenant.status_reason or "Tenant is not active"
            return _error(status.HTTP_503_SERVICE_UNAVAILABLE, f"Service temporarily unavailable: {reason}")

        state = request.app.state
        tenant_db = state.mongo_client[tenant.database_name]
        token = set_tenant_context(
            TenantContext(tenant=tenant, db=tenant_db, mongo_client=state.mongo_client, platform_db=state.platform_db)
        )
        request.state.tenant = tenant
        request.state.tenant_db = tenant_db
        logger.debug("tenant_context_set", database=tenant.database_name, path=request.url.path)

        try:
            response = await call_next(request)
        finally:
            clear_tenant_context(token)

        response.headers["X-Tenant-ID"] = tenant.tenant_id
        return response

    async def _resolve(self, request: Request) -> Optional[Tenant]:
        header_id = request.headers.get("X-Tenant-ID")
        if header_id:
            return await self._lookup(request, "id", header_id)

        host = request.headers.get("host", "").split(":")[0]
        if not host:
            return None

        subdomain = subdomain_from_host(host)
        if subdomain:
            tenant = await self._lookup(request, "subdomain", subdomain)
            if tenant:
                return tenant

        return await self._lookup(request, "domain", host)

    async def _lookup(self, request: Request, kind: str, value: str) -> Optional[Tenant]:
        cache_key = f"tenant:{kind}:{value.lower()}"
        redis_client = getattr(request.app.state, "redis_client", None)

        if redis_client is not None:
            try:
                cached = await redis_client.get(cache_key)
                if cached:
                    return Tenant.model_validate_json(cached)
            except (RedisError, ValidationError) as e:
                logger.warning("cache_read_error", key=cache_key, error=str(e))

        service = TenantDBService(request.app.state.platform_db)
        tenant = await getattr(service, LOOKUPS[kind])(value)

        if tenant is not None and redis_client is not None:
            try:
                await redis_client.setex(cache_key, get_config().tenant_cache_ttl_seconds, tenant.model_dump_json())
            except RedisError as e:
                logger.warning("cache_write_error", key=cache_key, error=str(e))

        return tenant


async def invalidate_tenant_cache(redis_client, tenant: Tenant) -> None:
    """Drop every cached lookup of a tenant after it changes."""
    if redis_client is None:
        return

    try:
        await redis_client.delete(*tenant.cache_keys())
    except RedisError as e:
        logger.warning("cache_invalidate_error", tenant_id=tenant.tenant_id, error=str(e))
