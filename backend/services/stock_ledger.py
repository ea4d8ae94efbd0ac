"""
StockLedger: the single authoritative store of per-item quantity.

Quantity only ever changes through ``apply_delta``, which is one conditional
UPDATE ... RETURNING statement. The row is locked by the UPDATE itself, so
concurrent deltas on the same item serialize and a delta that would take the
quantity below zero matches no row instead of being applied. The derived
status is recomputed by the same statement.
"""

from datetime import date, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import BigInteger, case, cast, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import Clock, SystemClock
from core.config import settings
from core.exceptions import InsufficientStockError, InvalidQuantityError, NotFoundError, ValidationError
from core.logging_config import get_logger
from core.reporting_calendar import local_date, reporting_tz, to_utc_naive
from db.database import snapshot_session
from db.pharmacy.item import PharmacyItem
from schemas.pharmacy import MAX_QUANTITY, PharmacyItemRead
from services.unit_of_work import run_write

logger = get_logger("stock_ledger")

IN_STOCK = "in_stock"
LOW_STOCK = "low_stock"
OUT_OF_STOCK = "out_of_stock"

# out_of_stock before low_stock before in_stock
STATUS_RANK = {OUT_OF_STOCK: 0, LOW_STOCK: 1, IN_STOCK: 2}


def get_status(quantity: int, min_required: int) -> str:
    if quantity <= 0:
        return OUT_OF_STOCK
    if quantity < min_required:
        return LOW_STOCK
    return IN_STOCK


def status_expression(quantity, min_required):
    """SQL form of get_status, evaluated in the same statement that writes quantity."""
    return case(
        (quantity <= 0, OUT_OF_STOCK),
        (quantity < min_required, LOW_STOCK),
        else_=IN_STOCK,
    )


def is_positive_int(value) -> bool:
    # bool is an int subclass; True is not a quantity
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return value.is_integer() and value > 0
    return isinstance(value, int) and value > 0


class StockLedger:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
        timezone: Optional[str] = None,
        expiry_window_days: Optional[int] = None,
    ):
        self.session_maker = session_maker
        self.clock = clock or SystemClock()
        self.tz = reporting_tz(timezone)
        self.expiry_window_days = (
            settings.expiry_window_days if expiry_window_days is None else expiry_window_days
        )

    async def _current_quantity(self, session: AsyncSession, item_id: UUID) -> int:
        tbl = PharmacyItem.__table__
        current = (
            await session.execute(select(tbl.c.quantity).where(tbl.c.id == item_id))
        ).scalar_one_or_none()
        if current is None:
            raise NotFoundError("PharmacyItem", item_id)
        return int(current)

    async def apply_delta_in(self, session: AsyncSession, item_id: UUID, delta: int) -> PharmacyItemRead:
        """Apply ``delta`` inside the caller's transaction."""
        if abs(delta) > MAX_QUANTITY:
            # Outside the column range, so never bound into SQL
            current = await self._current_quantity(session, item_id)
            if delta < 0:
                raise InsufficientStockError(item_id, requested=-delta, available=current)
            raise InvalidQuantityError(delta, f"Quantity must be at most {MAX_QUANTITY}, got {delta}")

        tbl = PharmacyItem.__table__
        # BIGINT so the sum cannot overflow before the range check
        new_quantity = cast(tbl.c.quantity, BigInteger) + delta
        stmt = (
            update(tbl)
            .where(tbl.c.id == item_id)
            .where(new_quantity >= 0)
            .where(new_quantity <= MAX_QUANTITY)
            .values(
                quantity=new_quantity,
                status=status_expression(new_quantity, tbl.c.min_required),
                version=tbl.c.version + 1,
                updated_at=to_utc_naive(self.clock.now()),
            )
            .returning(*tbl.c)
        )
        row = (await session.execute(stmt)).mappings().first()
        if row is None:
            current = await self._current_quantity(session, item_id)
            if delta < 0:
                raise InsufficientStockError(item_id, requested=-delta, available=current)
            raise InvalidQuantityError(
                delta, f"Stock of {current} plus {delta} would exceed the maximum of {MAX_QUANTITY}"
            )
        return PharmacyItemRead.model_validate(dict(row))

    async def apply_delta(self, item_id: UUID, delta: int, timeout: Optional[float] = None) -> PharmacyItemRead:
        """Adjust quantity by ``delta`` in its own transaction."""
        item = await run_write(
            self.session_maker,
            lambda session: self.apply_delta_in(session, item_id, delta),
            timeout=timeout,
            operation="apply_delta",
        )
        logger.info(
            "stock_adjusted",
            extra={"item_id": item_id, "delta": delta, "quantity": item.quantity, "status": item.status},
        )
        return item

    async def replenish(self, item_id: UUID, quantity, timeout: Optional[float] = None) -> PharmacyItemRead:
        if not is_positive_int(quantity):
            async with self.session_maker() as session:
                if await session.get(PharmacyItem, item_id) is None:
                    raise NotFoundError("PharmacyItem", item_id)
            raise InvalidQuantityError(quantity)
        return await self.apply_delta(item_id, int(quantity), timeout=timeout)

    async def get_item(self, item_id: UUID, session: Optional[AsyncSession] = None) -> PharmacyItemRead:
        if session is None:
            async with self.session_maker() as own:
                return await self.get_item(item_id, session=own)
        it = await session.get(PharmacyItem, item_id)
        if it is None:
            raise NotFoundError("PharmacyItem", item_id)
        return PharmacyItemRead.model_validate(it)

    async def list_items(
        self, category: Optional[str] = None, session: Optional[AsyncSession] = None
    ) -> List[PharmacyItemRead]:
        if session is None:
            async with snapshot_session(self.session_maker) as own:
                return await self.list_items(category, session=own)
        stmt = select(PharmacyItem)
        if category:
            stmt = stmt.where(PharmacyItem.category == category)
        res = await session.execute(stmt.order_by(func.lower(PharmacyItem.name).asc(), PharmacyItem.item_code.asc()))
        return [PharmacyItemRead.model_validate(it) for it in res.scalars().all()]

    async def list_low_stock(self) -> List[PharmacyItemRead]:
        """Items below their minimum (out of stock included), most severe first."""
        async with snapshot_session(self.session_maker) as session:
            res = await session.execute(
                select(PharmacyItem).where(PharmacyItem.quantity < PharmacyItem.min_required)
            )
            items = [PharmacyItemRead.model_validate(it) for it in res.scalars().all()]
        items.sort(key=lambda it: (STATUS_RANK[it.status], it.name.lower(), it.item_code))
        return items

    async def list_expiring(self, within_days: Optional[int] = None) -> List[PharmacyItemRead]:
        """Items whose expiry date falls in [today, today + within_days]."""
        days = self.expiry_window_days if within_days is None else within_days
        if isinstance(days, bool) or not isinstance(days, int) or days < 0:
            raise ValidationError("within_days must be a non-negative integer", field="within_days")

        today = local_date(self.clock.now(), self.tz)
        if days > (date.max - today).days:
            raise ValidationError("within_days reaches past the last representable date", field="within_days")
        horizon = today + timedelta(days=days)
        async with snapshot_session(self.session_maker) as session:
            res = await session.execute(
                select(PharmacyItem)
                .where(PharmacyItem.expiry_date.is_not(None))
                .where(PharmacyItem.expiry_date >= today)
                .where(PharmacyItem.expiry_date <= horizon)
                .order_by(PharmacyItem.expiry_date.asc(), func.lower(PharmacyItem.name).asc())
            )
            return [PharmacyItemRead.model_validate(it) for it in res.scalars().all()]
