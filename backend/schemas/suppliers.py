from pydantic import BaseModel, field_validator
from typing import Optional
from uuid import UUID


class SupplierRead(BaseModel):
    id: UUID
    supplier_code: str
    name: str
    contact_info: Optional[str] = None
    notes: Optional[str] = None


class SupplierCreate(BaseModel):
    name: str
    contact_info: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("name is required")
        return v
