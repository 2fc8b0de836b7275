"""
Matching Service

Loads a tenant's active clients and inventory and runs the matching engine over them.
"""

from datetime import datetime
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from ..clients.db_service import ClientDBService
from ..clients.models import Client, ClientResponse
from ..properties.db_service import PropertyDBService
from ..properties.models import Property, PropertyResponse
from ..shared_services.utils import format_currency
from . import engine


class MatchGroupResponse(BaseModel):
    client: ClientResponse
    properties: list[PropertyResponse]


class MatchingResponse(BaseModel):
    groups: list[MatchGroupResponse]
    total_matches: int
    total_clients: int


class RecentMatchResponse(BaseModel):
    client_id: str
    client_name: str
    property_id: str
    property_title: str
    property_price: int
    property_price_formatted: str
    property_city: str
    property_created_at: datetime


class MatchingService:
    def __init__(self, db: AsyncIOMotorDatabase, tenant_id: str):
        self.tenant_id = tenant_id
        self.client_service = ClientDBService(db)
        self.property_service = PropertyDBService(db)

    async def all_matches(self, search: Optional[str] = None) -> list[engine.Match]:
        clients = await self.client_service.list_active(self.tenant_id)
        properties = await self.property_service.list_active(self.tenant_id)
        matches = engine.compute_matches(clients, properties)
        return engine.filter_matches(matches, search)

    async def grouped_matches(self, search: Optional[str] = None) -> MatchingResponse:
        matches = await self.all_matches(search)
        groups = engine.group_matches_by_client(matches)
        return MatchingResponse(
            groups=[
                MatchGroupResponse(
                    client=ClientResponse.from_client(group.client),
                    properties=[PropertyResponse.from_property(p) for p in group.properties],
                )
                for group in groups
            ],
            total_matches=len(matches),
            total_clients=len(groups),
        )

    async def recent_matches(self, limit: int = 5) -> list[RecentMatchResponse]:
        """Matches on the most recently listed properties."""
        matches = await self.all_matches()
        matches.sort(key=lambda m: m.property.created_at, reverse=True)
        return [
            RecentMatchResponse(
                client_id=m.client.client_id,
                client_name=m.client.name,
                property_id=m.property.property_id,
                property_title=m.property.title,
                property_price=m.property.price,
                property_price_formatted=format_currency(m.property.price),
                property_city=m.property.city,
                property_created_at=m.property.created_at,
            )
            for m in matches[:limit]
        ]

    async def count_matches(self) -> int:
        return len(await self.all_matches())

    async def properties_for_client(self, client: Client) -> list[Property]:
        properties = await self.property_service.list_active(self.tenant_id)
        return engine.matches_for_client(client, properties)

    async def clients_for_property(self, prop: Property) -> list[Client]:
        clients = await self.client_service.list_active(self.tenant_id)
        return engine.clients_for_property(prop, clients)
