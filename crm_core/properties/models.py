"""
Property Models

Listings of the agency's inventory. Prices are stored in cents; requests carry reais.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ..constants import PROPERTY_STATUS_LABELS, PROPERTY_TYPE_LABELS, TRANSACTION_TYPE_LABELS, label_for
from ..shared_services.utils import format_currency, reject_explicit_nulls


class TransactionType(str, Enum):
    SALE = "SALE"
    RENT = "RENT"


class PropertyType(str, Enum):
    APARTMENT = "APARTMENT"
    HOUSE = "HOUSE"


class PropertyStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SOLD = "SOLD"
    RENTED = "RENTED"
    INACTIVE = "INACTIVE"


class Property(BaseModel):
    """
    Property listing.

    Stored in the tenant-specific database. ``city_normalized`` and
    ``neighborhood_normalized`` are recomputed on every write and used by matching.
    """

    property_id: str
    tenant_id: str
    created_by: Optional[str] = Field(default=None)

    title: str
    description: Optional[str] = Field(default=None)

    transaction_type: TransactionType
    property_type: PropertyType
    status: PropertyStatus = Field(default=PropertyStatus.ACTIVE)

    bedrooms: int = Field(default=0, ge=0)
    bathrooms: Optional[int] = Field(default=None, ge=0)
    area_m2: Optional[float] = Field(default=None)
    price: int = Field(..., description="Price in cents")

    city: str
    city_normalized: Optional[str] = Field(default=None)
    neighborhood: Optional[str] = Field(default=None)
    neighborhood_normalized: Optional[str] = Field(default=None)

    deleted_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    class Config:
        json_schema_extra = {
            "example": {
                "property_id": "prop_2b7e151628ae",
                "tenant_id": "imobsol_20260223",
                "title": "Apartamento 2 quartos no Centro",
                "transaction_type": "SALE",
                "property_type": "APARTMENT",
                "status": "ACTIVE",
                "bedrooms": 2,
                "price": 35000000,
                "city": "Florianópolis",
                "neighborhood": "Centro",
            }
        }


class PropertyCreate(BaseModel):
    """Create request. ``price`` is in reais."""

    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    transaction_type: TransactionType
    property_type: PropertyType
    status: PropertyStatus = Field(default=PropertyStatus.ACTIVE)
    bedrooms: int = Field(default=0, ge=0, le=50)
    bathrooms: Optional[int] = Field(default=None, ge=0, le=50)
    area_m2: Optional[float] = Field(default=None, ge=1)
    price: Decimal = Field(..., ge=1, description="Price in reais")
    city: str = Field(..., min_length=2, max_length=100)
    neighborhood: Optional[str] = Field(default=None, max_length=100)


class PropertyUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    transaction_type: Optional[TransactionType] = Field(default=None)
    property_type: Optional[PropertyType] = Field(default=None)
    status: Optional[PropertyStatus] = Field(default=None)
    bedrooms: Optional[int] = Field(default=None, ge=0, le=50)
    bathrooms: Optional[int] = Field(default=None, ge=0, le=50)
    area_m2: Optional[float] = Field(default=None, ge=1)
    price: Optional[Decimal] = Field(default=None, ge=1, description="Price in reais")
    city: Optional[str] = Field(default=None, min_length=2, max_length=100)
    neighborhood: Optional[str] = Field(default=None, max_length=100)

    @model_validator(mode="after")
    def required_fields_stay_set(self) -> "PropertyUpdate":
        reject_explicit_nulls(
            self, ("title", "transaction_type", "property_type", "status", "bedrooms", "price", "city")
        )
        return self


class PropertyResponse(BaseModel):
    property_id: str
    title: str
    description: Optional[str]
    transaction_type: TransactionType
    transaction_type_label: str
    property_type: PropertyType
    property_type_label: str
    status: PropertyStatus
    status_label: str
    bedrooms: int
    bathrooms: Optional[int]
    area_m2: Optional[float]
    price: int
    price_formatted: str
    city: str
    neighborhood: Optional[str]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_property(cls, prop: Property) -> "PropertyResponse":
        return cls(
            **prop.model_dump(exclude={"tenant_id", "city_normalized", "neighborhood_normalized", "deleted_at"}),
            transaction_type_label=label_for(TRANSACTION_TYPE_LABELS, prop.transaction_type),
            property_type_label=label_for(PROPERTY_TYPE_LABELS, prop.property_type),
            status_label=label_for(PROPERTY_STATUS_LABELS, prop.status),
            price_formatted=format_currency(prop.price),
        )
