"""
Tenant Provisioning Service

Handles the onboarding workflow for a new agency:
1. Create tenant record in platform database
2. Create tenant-specific database and indexes
3. Seed the default pipeline stages
4. Create the owner user
5. Start the trial subscription
6. Activate the tenant

Any failure after step 1 rolls back everything created so far.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from structlog import get_logger

from ..audit.service import AuditService
from ..auth.db_service import UserDBService
from ..auth.models import User, UserCreate, UserRole
from ..auth.security import validate_password_strength
from ..billing.db_service import SubscriptionDBService
from ..billing.models import Subscription
from ..clients.db_service import ClientDBService
from ..config import get_config
from ..pipeline.db_service import StageDBService
from ..properties.db_service import PropertyDBService
from ..shared_services.utils import slugify
from .db_service import TenantDBService
from .models import RESERVED_SUBDOMAINS, Tenant, TenantConfig, TenantDomainConfig, TenantStatus
from .schema import OnboardingRequest

logger = get_logger()


@dataclass
class OnboardingResult:
    tenant: Tenant
    owner: User
    subscription: Subscription
    stages_created: int


class TenantProvisioningService:
    """Service for onboarding new agencies."""

    def __init__(self, mongo_client: AsyncIOMotorClient, platform_db: AsyncIOMotorDatabase):
        self.mongo_client = mongo_client
        self.tenant_db_service = TenantDBService(platform_db)
        self.subscription_service = SubscriptionDBService(platform_db)

    def _generate_tenant_id(self, subdomain: str) -> str:
        timestamp = datetime.utcnow().strftime("%Y%m%d")
        return f"{subdomain.replace('-', '_')}_{timestamp}"

    async def _resolve_subdomain(self, request: OnboardingRequest) -> str:
        """
        Use the requested subdomain, or derive one from the agency name.

        Raises:
            ValueError: If the requested subdomain is taken or none can be derived
        """
        if request.subdomain:
            subdomain = request.subdomain.strip().lower()
            if subdomain in RESERVED_SUBDOMAINS:
                raise ValueError(f"Subdomain '{subdomain}' is reserved")
            if not await self.tenant_db_service.subdomain_available(subdomain):
                raise ValueError(f"Subdomain '{subdomain}' is already taken")
            return subdomain

        base = slugify(request.tenant_name)[:40].strip("-")
        if len(base) < 3:
            raise ValueError("Could not derive a subdomain from the agency name; provide one")

        subdomain = base
        while subdomain in RESERVED_SUBDOMAINS or not await self.tenant_db_service.subdomain_available(subdomain):
            subdomain = f"{base}-{uuid4().hex[:4]}"
        return subdomain

    async def onboard(self, request: OnboardingRequest) -> OnboardingResult:
        """
        Create an agency with its owner, default pipeline and trial subscription.

        Raises:
            ValueError: If the subdomain is taken or the password is weak
        """
        is_valid, error_message = validate_password_strength(request.password)
        if not is_valid:
            raise ValueError(error_message)

        subdomain = await self._resolve_subdomain(request)
        tenant_id = self._generate_tenant_id(subdomain)
        database_name = get_config().get_tenant_db_name(tenant_id)

        logger.info("starting_tenant_onboarding", tenant_id=tenant_id, subdomain=subdomain)

        tenant = Tenant(
            tenant_id=tenant_id,
            name=request.tenant_name.strip(),
            config=TenantConfig(domains=TenantDomainConfig(subdomain=subdomain)),
            database_name=database_name,
            status=TenantStatus.PROVISIONING,
            primary_contact_email=request.user_email.lower(),
        )

        await self.tenant_db_service.create_tenant(tenant)
        logger.info("created_tenant_record", tenant_id=tenant_id)

        try:
            tenant_db = self.mongo_client[database_name]
            await self._initialize_tenant_schema(tenant_db)

            stages = await StageDBService(tenant_db).seed_default_stages(tenant_id)

            owner = await UserDBService(tenant_db).create_user(
                UserCreate(
                    email=request.user_email,
                    password=request.password,
                    name=request.user_name,
                    role=UserRole.OWNER,
                ),
                tenant_id=tenant_id,
            )
            await self.tenant_db_service.set_owner(tenant_id, owner.user_id)

            subscription = await self.subscription_service.create_trial(tenant_id)

            await self.tenant_db_service.update_tenant_status(tenant_id, TenantStatus.ACTIVE)
        except Exception as e:
            logger.error("tenant_onboarding_failed", tenant_id=tenant_id, error=str(e))
            await self._rollback(tenant_id, database_name)
            raise

        logger.info(
            "tenant_onboarding_completed",
            tenant_id=tenant_id,
            owner_user_id=owner.user_id,
            trial_ends_at=subscription.trial_ends_at,
        )

        activated = await self.tenant_db_service.get_tenant_by_id(tenant_id)
        return OnboardingResult(
            tenant=activated or tenant,
            owner=owner,
            subscription=subscription,
            stages_created=len(stages),
        )

    async def _initialize_tenant_schema(self, tenant_db: AsyncIOMotorDatabase) -> None:
        """Create all collections' indexes for a tenant database."""
        services = (
            UserDBService(tenant_db),
            StageDBService(tenant_db),
            ClientDBService(tenant_db),
            PropertyDBService(tenant_db),
            AuditService(tenant_db),
        )
        for service in services:
            await service.ensure_indexes()

        logger.info("tenant_schema_initialized", database=tenant_db.name, collections=len(services))

    async def _rollback(self, tenant_id: str, database_name: str) -> None:
        await self.mongo_client.drop_database(database_name)
        await self.subscription_service.delete_by_tenant(tenant_id)
        await self.tenant_db_service.hard_delete_tenant(tenant_id)
        logger.warning("tenant_onboarding_rolled_back", tenant_id=tenant_id, database=database_name)

    async def deprovision_tenant(self, tenant_id: str) -> bool:
        """
        Deactivate a tenant. Data is kept.

        Returns:
            True if deprovisioned, False if the tenant does not exist
        """
        tenant = await self.tenant_db_service.get_tenant_by_id(tenant_id)
        if not tenant:
            logger.error("tenant_not_found", tenant_id=tenant_id)
            return False

        await self.tenant_db_service.deactivate_tenant(tenant_id)

        logger.info("tenant_deprovisioned", tenant_id=tenant_id)
        return True
