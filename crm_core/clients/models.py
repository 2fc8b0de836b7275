"""
Client Models

Buyers and renters tracked by the agency, with the property criteria used by matching.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from ..constants import PROPERTY_TYPE_LABELS, TRANSACTION_TYPE_LABELS, label_for
from ..properties.models import PropertyType
from ..shared_services.utils import format_phone, is_valid_phone, reject_explicit_nulls


class ClientTransactionType(str, Enum):
    SALE = "SALE"
    RENT = "RENT"
    BOTH = "BOTH"


class DuplicatePhoneError(ValueError):
    """Another non-deleted client of the tenant already uses the phone number."""


class StageNotFoundError(ValueError):
    """The referenced pipeline stage does not exist for the tenant."""


class Client(BaseModel):
    """
    Client record.

    Stored in the tenant-specific database. ``stage_id`` places the client on the pipeline board.
    """

    client_id: str
    tenant_id: str
    created_by: Optional[str] = Field(default=None)

    name: str
    phone: str
    phone_normalized: str
    email: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)

    # Desired property
    desired_transaction_type: ClientTransactionType = Field(default=ClientTransactionType.BOTH)
    desired_property_type: Optional[PropertyType] = Field(default=None)
    desired_bedrooms_min: Optional[int] = Field(default=None, ge=0)
    desired_bedrooms_max: Optional[int] = Field(default=None, ge=0)
    desired_price_min: Optional[int] = Field(default=None, description="Cents")
    desired_price_max: Optional[int] = Field(default=None, description="Cents")
    city: Optional[str] = Field(default=None)
    city_normalized: Optional[str] = Field(default=None)
    neighborhood: Optional[str] = Field(default=None)
    neighborhood_normalized: Optional[str] = Field(default=None)

    stage_id: Optional[str] = Field(default=None)

    deleted_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "client_id": "cli_7a3f09c1d2e4",
                "tenant_id": "imobsol_20260223",
                "name": "João Pereira",
                "phone": "(48) 99876-5432",
                "phone_normalized": "48998765432",
                "desired_transaction_type": "SALE",
                "desired_bedrooms_min": 2,
                "desired_price_max": 40000000,
                "city": "Florianópolis",
            }
        }


def _validate_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not is_valid_phone(value):
        raise ValueError("Invalid phone number. Use (11) 98765-4321")
    return value


def _blank_to_none(value):
    if isinstance(value, str):
        return value.strip() or None
    return value


def _check_range(low, high, label: str) -> None:
    if low is not None and high is not None and low > high:
        raise ValueError(f"Minimum {label} cannot be greater than maximum {label}")


class ClientCreate(BaseModel):
    """Create request. Desired prices are in reais."""

    name: str = Field(..., min_length=2, max_length=100)
    phone: str
    email: Optional[EmailStr] = Field(default=None)
    notes: Optional[str] = Field(default=None, max_length=5000)
    desired_transaction_type: ClientTransactionType = Field(default=ClientTransactionType.BOTH)
    desired_property_type: Optional[PropertyType] = Field(default=None)
    desired_bedrooms_min: Optional[int] = Field(default=None, ge=0, le=50)
    desired_bedrooms_max: Optional[int] = Field(default=None, ge=0, le=50)
    desired_price_min: Optional[Decimal] = Field(default=None, ge=0)
    desired_price_max: Optional[Decimal] = Field(default=None, ge=0)
    city: Optional[str] = Field(default=None, max_length=100)
    neighborhood: Optional[str] = Field(default=None, max_length=100)
    stage_id: Optional[str] = Field(default=None, description="First stage when omitted")

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return _validate_phone(v)

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_null(cls, v):
        return _blank_to_none(v)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v

    @model_validator(mode="after")
    def check_ranges(self) -> "ClientCreate":
        _check_range(self.desired_bedrooms_min, self.desired_bedrooms_max, "bedrooms")
        _check_range(self.desired_price_min, self.desired_price_max, "price")
        return self


class ClientUpdate(BaseModel):
    """
    Partial update.

    Range checks apply to the values sent; the service re-checks them against the stored record.
    """

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    phone: Optional[str] = Field(default=None)
    email: Optional[EmailStr] = Field(default=None)
    notes: Optional[str] = Field(default=None, max_length=5000)
    desired_transaction_type: Optional[ClientTransactionType] = Field(default=None)
    desired_property_type: Optional[PropertyType] = Field(default=None)
    desired_bedrooms_min: Optional[int] = Field(default=None, ge=0, le=50)
    desired_bedrooms_max: Optional[int] = Field(default=None, ge=0, le=50)
    desired_price_min: Optional[Decimal] = Field(default=None, ge=0)
    desired_price_max: Optional[Decimal] = Field(default=None, ge=0)
    city: Optional[str] = Field(default=None, max_length=100)
    neighborhood: Optional[str] = Field(default=None, max_length=100)
    stage_id: Optional[str] = Field(default=None)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return _validate_phone(v)

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_null(cls, v):
        return _blank_to_none(v)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v

    @model_validator(mode="after")
    def check_ranges(self) -> "ClientUpdate":
        reject_explicit_nulls(self, ("name", "phone", "desired_transaction_type", "stage_id"))
        _check_range(self.desired_bedrooms_min, self.desired_bedrooms_max, "bedrooms")
        _check_range(self.desired_price_min, self.desired_price_max, "price")
        return self


class StageSummary(BaseModel):
    stage_id: str
    name: str
    position: int
    is_final: bool


class ClientResponse(BaseModel):
    client_id: str
    name: str
    phone: str
    phone_formatted: str
    email: Optional[str]
    notes: Optional[str]
    desired_transaction_type: ClientTransactionType
    desired_transaction_type_label: str
    desired_property_type: Optional[PropertyType]
    desired_property_type_label: Optional[str]
    desired_bedrooms_min: Optional[int]
    desired_bedrooms_max: Optional[int]
    desired_price_min: Optional[int]
    desired_price_max: Optional[int]
    city: Optional[str]
    neighborhood: Optional[str]
    stage_id: Optional[str]
    stage: Optional[StageSummary] = None
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_client(cls, client: Client, stage: Optional[StageSummary] = None) -> "ClientResponse":
        return cls(
            **client.model_dump(
                exclude={"tenant_id", "phone_normalized", "city_normalized", "neighborhood_normalized", "deleted_at"}
            ),
            phone_formatted=format_phone(client.phone),
            desired_transaction_type_label=label_for(TRANSACTION_TYPE_LABELS, client.desired_transaction_type),
            desired_property_type_label=(
                label_for(PROPERTY_TYPE_LABELS, client.desired_property_type)
                if client.desired_property_type
                else None
            ),
            stage=stage,
        )
