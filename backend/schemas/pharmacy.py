from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, field_validator, model_validator


PharmacyCategory = Literal["Medicine", "Supply", "Equipment", "Lab Supplies"]
StockStatus = Literal["in_stock", "low_stock", "out_of_stock"]

CATEGORIES: tuple[str, ...] = ("Medicine", "Supply", "Equipment", "Lab Supplies")

# Range of the INTEGER quantity columns
MAX_QUANTITY = 2**31 - 1


def _check_unit_price(v: Decimal) -> Decimal:
    if v <= 0:
        raise ValueError("unit_price must be > 0")
    if v != v.quantize(Decimal("0.01")):
        raise ValueError("unit_price must have at most 2 decimal places")
    return v.quantize(Decimal("0.01"))


class PharmacyItemCreate(BaseModel):
    name: str
    category: PharmacyCategory
    quantity: int = Field(ge=0, le=MAX_QUANTITY)
    min_required: int = Field(ge=1, le=MAX_QUANTITY)
    unit_price: Decimal
    expiry_date: Optional[date] = None
    manufacturer: Optional[str] = None
    description: Optional[str] = None
    supplier_id: Optional[UUID] = None

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("unit_price")
    @classmethod
    def _unit_price(cls, v: Decimal) -> Decimal:
        return _check_unit_price(v)

    @field_validator("manufacturer", "description")
    @classmethod
    def _strip_nullable(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class PharmacyItemUpdate(BaseModel):
    """Catalog fields only; quantity changes go through dispense/replenish."""

    name: Optional[str] = None
    min_required: Optional[int] = Field(default=None, ge=1, le=MAX_QUANTITY)
    unit_price: Optional[Decimal] = None
    expiry_date: Optional[date] = None
    manufacturer: Optional[str] = None
    description: Optional[str] = None
    supplier_id: Optional[UUID] = None

    @field_validator("name")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = (v or "").strip()
        if not v:
            raise ValueError("cannot be empty")
        return v

    @field_validator("unit_price")
    @classmethod
    def _unit_price_optional(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is None:
            return None
        return _check_unit_price(v)


class PharmacyItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    item_code: str
    name: str
    category: PharmacyCategory
    quantity: int = Field(ge=0)
    min_required: int = Field(ge=1, le=MAX_QUANTITY)
    unit_price: Decimal
    expiry_date: Optional[date] = None
    manufacturer: Optional[str] = None
    description: Optional[str] = None
    supplier_id: Optional[UUID] = None
    status: StockStatus
    version: int

    @model_validator(mode="after")
    def _status_matches_quantity(self):
        from services.stock_ledger import get_status

        expected = get_status(self.quantity, self.min_required)
        if self.status != expected:
            raise ValueError(f"status {self.status!r} does not match quantity (expected {expected!r})")
        return self


class DispenseRequest(BaseModel):
    # No coercion: "3" is rejected here, 2.5 is rejected as INVALID_QUANTITY by the processor
    quantity: Union[StrictInt, StrictFloat]
    reason: Optional[str] = None


class ReplenishRequest(BaseModel):
    quantity: Union[StrictInt, StrictFloat]


class DispenseRecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    item_id: UUID
    item_code: Optional[str] = None
    item_name: str
    category: PharmacyCategory
    quantity: int = Field(gt=0)
    reason: Optional[str] = None
    dispensed_at: datetime
    unit_price_at_dispense: Decimal

    @field_validator("dispensed_at")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        # storage keeps naive UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def value(self) -> Decimal:
        return self.unit_price_at_dispense * self.quantity


class DispenseResult(BaseModel):
    item: PharmacyItemRead
    record: DispenseRecordRead
