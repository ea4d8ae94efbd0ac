"""
Item catalog and supplier registry administration.

These are the administrative writes around the ledger: creating and deleting
items, editing their thresholds and prices, and registering suppliers. Stock
quantity is never edited here after creation; it moves only through the
ledger (dispense / replenish).
"""

import re
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import Clock, SystemClock
from core.exceptions import ConcurrencyConflictError, NotFoundError, ValidationError
from core.logging_config import get_logger
from core.reporting_calendar import to_utc_naive
from db.pharmacy.item import PharmacyItem
from db.supplier import Supplier
from schemas.pharmacy import PharmacyItemCreate, PharmacyItemRead, PharmacyItemUpdate
from schemas.suppliers import SupplierCreate, SupplierRead
from services.stock_ledger import get_status
from services.unit_of_work import run_write

logger = get_logger("catalog")

CATEGORY_PREFIXES = {
    "Medicine": "MED",
    "Supply": "SUP",
    "Equipment": "EQP",
    "Lab Supplies": "LAB",
}
FIRST_ITEM_NUMBER = 1001

_TRAILING_DIGITS = re.compile(r"(\d+)$")


def next_code(prefix: str, existing: List[str], first: int, width: int) -> str:
    """Highest numeric suffix among ``existing`` codes plus one."""
    highest = first - 1
    for code in existing:
        m = _TRAILING_DIGITS.search(code or "")
        if m:
            highest = max(highest, int(m.group(1)))
    return f"{prefix}{highest + 1:0{width}d}"


class ItemCatalog:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession], clock: Optional[Clock] = None):
        self.session_maker = session_maker
        self.clock = clock or SystemClock()

    async def _ensure_supplier(self, session: AsyncSession, supplier_id: Optional[UUID]) -> None:
        if supplier_id is not None and await session.get(Supplier, supplier_id) is None:
            raise NotFoundError("Supplier", supplier_id)

    async def create_item(self, payload: PharmacyItemCreate) -> PharmacyItemRead:
        prefix = CATEGORY_PREFIXES[payload.category]

        async def _work(session: AsyncSession) -> PharmacyItemRead:
            await self._ensure_supplier(session, payload.supplier_id)
            res = await session.execute(
                select(PharmacyItem.item_code).where(PharmacyItem.item_code.like(f"{prefix}%"))
            )
            code = next_code(prefix, list(res.scalars().all()), FIRST_ITEM_NUMBER, 4)
            now = to_utc_naive(self.clock.now())
            model = PharmacyItem(
                item_code=code,
                name=payload.name,
                category=payload.category,
                quantity=payload.quantity,
                min_required=payload.min_required,
                unit_price=payload.unit_price,
                expiry_date=payload.expiry_date,
                manufacturer=payload.manufacturer,
                description=payload.description,
                supplier_id=payload.supplier_id,
                status=get_status(payload.quantity, payload.min_required),
                version=1,
                created_at=now,
                updated_at=now,
            )
            session.add(model)
            await session.flush()
            return PharmacyItemRead.model_validate(model)

        try:
            item = await run_write(self.session_maker, _work, operation="create_item")
        except IntegrityError as e:
            # Two creates raced for the same code
            logger.warning("item_code_conflict", extra={"prefix": prefix})
            raise ConcurrencyConflictError("Another item took the same code; retry the request") from e
        logger.info("item_created", extra={"item_id": item.id, "item_code": item.item_code})
        return item

    async def update_item(self, item_id: UUID, payload: PharmacyItemUpdate) -> PharmacyItemRead:
        data = payload.model_dump(exclude_unset=True)

        async def _work(session: AsyncSession) -> PharmacyItemRead:
            # Row lock: status depends on min_required and quantity together
            model = (
                await session.execute(select(PharmacyItem).where(PharmacyItem.id == item_id).with_for_update())
            ).scalar_one_or_none()
            if model is None:
                raise NotFoundError("PharmacyItem", item_id)
            if "supplier_id" in data:
                await self._ensure_supplier(session, data["supplier_id"])

            for field in ("name", "min_required", "unit_price"):
                if data.get(field) is not None:
                    setattr(model, field, data[field])
            for field in ("expiry_date", "manufacturer", "description", "supplier_id"):
                if field in data:
                    setattr(model, field, data[field])

            model.status = get_status(model.quantity, model.min_required)
            model.version = model.version + 1
            model.updated_at = to_utc_naive(self.clock.now())
            await session.flush()
            return PharmacyItemRead.model_validate(model)

        item = await run_write(self.session_maker, _work, operation="update_item")
        logger.info("item_updated", extra={"item_id": item.id, "fields": sorted(data)})
        return item

    async def delete_item(self, item_id: UUID) -> None:
        """Remove the item; its dispense history keeps the snapshot taken at dispense time."""

        async def _work(session: AsyncSession) -> None:
            model = await session.get(PharmacyItem, item_id)
            if model is None:
                raise NotFoundError("PharmacyItem", item_id)
            await session.delete(model)

        await run_write(self.session_maker, _work, operation="delete_item")
        logger.info("item_deleted", extra={"item_id": item_id})


class SupplierRegistry:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def _name_taken(self, name: str) -> bool:
        async with self.session_maker() as session:
            res = await session.execute(select(Supplier.id).where(func.lower(Supplier.name) == name.lower()))
            return res.first() is not None

    async def list_suppliers(self) -> List[SupplierRead]:
        async with self.session_maker() as session:
            res = await session.execute(select(Supplier).order_by(func.lower(Supplier.name).asc()))
            return [SupplierRead(**s.to_schema) for s in res.scalars().all()]

    async def create_supplier(self, payload: SupplierCreate) -> SupplierRead:
        async def _work(session: AsyncSession) -> SupplierRead:
            existing = await session.execute(
                select(Supplier).where(func.lower(Supplier.name) == payload.name.lower())
            )
            if existing.scalar_one_or_none():
                raise ValidationError("Supplier already exists", field="name")
            codes = (await session.execute(select(Supplier.supplier_code))).scalars().all()
            m = Supplier(
                supplier_code=next_code("S", list(codes), 1, 4),
                name=payload.name,
                contact_info=payload.contact_info,
                notes=payload.notes,
            )
            session.add(m)
            await session.flush()
            return SupplierRead(**m.to_schema)

        try:
            supplier = await run_write(self.session_maker, _work, operation="create_supplier")
        except IntegrityError as e:
            if await self._name_taken(payload.name):
                raise ValidationError("Supplier already exists", field="name") from e
            logger.warning("supplier_code_conflict", extra={"name": payload.name})
            raise ConcurrencyConflictError("Another supplier took the same code; retry the request") from e
        logger.info("supplier_created", extra={"supplier_id": supplier.id, "supplier_code": supplier.supplier_code})
        return supplier
