"""
Client/Property Matching Engine

Rule-based equi-join of clients' desired criteria against the active
inventory. A property either satisfies every rule or does not match; there
is no scoring.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..clients.models import Client, ClientTransactionType
from ..properties.models import Property, PropertyStatus


@dataclass(frozen=True)
class Match:
    client: Client
    property: Property


@dataclass
class ClientMatches:
    client: Client
    properties: list[Property] = field(default_factory=list)


def property_matches_client(prop: Property, client: Client) -> bool:
    """Apply every matching rule to one client/property pair."""
    if prop.tenant_id != client.tenant_id:
        return False
    if prop.deleted_at is not None or client.deleted_at is not None:
        return False
    if prop.status != PropertyStatus.ACTIVE:
        return False

    if (
        client.desired_transaction_type != ClientTransactionType.BOTH
        and client.desired_transaction_type.value != prop.transaction_type.value
    ):
        return False

    if client.desired_property_type and client.desired_property_type != prop.property_type:
        return False

    if client.desired_bedrooms_min is not None and prop.bedrooms < client.desired_bedrooms_min:
        return False
    if client.desired_bedrooms_max is not None and prop.bedrooms > client.desired_bedrooms_max:
        return False

    if client.desired_price_min is not None and prop.price < client.desired_price_min:
        return False
    if client.desired_price_max is not None and prop.price > client.desired_price_max:
        return False

    if client.city_normalized and client.city_normalized != prop.city_normalized:
        return False
    if client.neighborhood_normalized and client.neighborhood_normalized != prop.neighborhood_normalized:
        return False

    return True


def compute_matches(clients: Iterable[Client], properties: Iterable[Property]) -> list[Match]:
    """All matching pairs, ordered by client name then property price."""
    candidates = list(properties)
    matches = [
        Match(client=client, property=prop)
        for client in clients
        for prop in candidates
        if property_matches_client(prop, client)
    ]
    matches.sort(key=lambda m: (m.client.name.lower(), m.client.client_id, m.property.price, m.property.property_id))
    return matches


def group_matches_by_client(matches: Iterable[Match]) -> list[ClientMatches]:
    """Group in first-seen order, so sorted input yields sorted groups."""
    groups: dict[str, ClientMatches] = {}
    for match in matches:
        group = groups.get(match.client.client_id)
        if group is None:
            group = groups[match.client.client_id] = ClientMatches(client=match.client)
        group.properties.append(match.property)
    return list(groups.values())


def filter_matches(matches: Iterable[Match], search: Optional[str]) -> list[Match]:
    """Case-insensitive substring search over client name, property city and neighborhood."""
    matches = list(matches)
    if not search or not search.strip():
        return matches

    term = search.strip().lower()
    return [
        m
        for m in matches
        if term in m.client.name.lower()
        or term in m.property.city.lower()
        or term in (m.property.neighborhood or "").lower()
    ]


def matches_for_client(client: Client, properties: Iterable[Property]) -> list[Property]:
    """Properties matching one client, cheapest first."""
    found = [prop for prop in properties if property_matches_client(prop, client)]
    return sorted(found, key=lambda prop: prop.price)


def clients_for_property(prop: Property, clients: Iterable[Client]) -> list[Client]:
    """Clients interested in one property, by name."""
    found = [client for client in clients if property_matches_client(prop, client)]
    return sorted(found, key=lambda client: client.name.lower())
