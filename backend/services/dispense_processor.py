"""
DispenseProcessor: validates one dispense request and applies it atomically.

The stock decrement and the DispenseRecord insert share one transaction, so
either both are committed or neither is. The operation is not idempotent:
every accepted call dispenses again.
"""

import time
import uuid
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import Clock, SystemClock
from core.config import settings
from core.exceptions import (
    InvalidQuantityError,
    NotFoundError,
    OutcomeUnknownError,
    PharmacyEngineError,
    ValidationError,
)
from core.logging_config import get_logger
from core.reporting_calendar import to_utc_naive
from db.pharmacy.dispense import PharmacyDispense
from db.pharmacy.item import PharmacyItem
from schemas.pharmacy import DispenseRecordRead, DispenseResult
from services.dispense_history import DispenseHistoryStore
from services.stock_ledger import StockLedger, is_positive_int
from services.unit_of_work import run_write

logger = get_logger("dispense")

_UNSET = object()


class DispenseProcessor:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        ledger: Optional[StockLedger] = None,
        history: Optional[DispenseHistoryStore] = None,
        clock: Optional[Clock] = None,
        reason_max_length: Optional[int] = None,
        timeout=_UNSET,
    ):
        self.session_maker = session_maker
        self.clock = clock or (ledger.clock if ledger else SystemClock())
        self.ledger = ledger or StockLedger(session_maker, clock=self.clock)
        self.history = history or DispenseHistoryStore(session_maker)
        self.reason_max_length = reason_max_length or settings.reason_max_length
        self.timeout = settings.dispense_timeout_seconds if timeout is _UNSET else timeout

    def _normalize_reason(self, reason: Optional[str]) -> Optional[str]:
        if reason is None:
            return None
        if not isinstance(reason, str):
            raise ValidationError("reason must be text", field="reason")
        reason = reason.strip()
        if len(reason) > self.reason_max_length:
            # Rejected rather than truncated so the audit trail never holds an edited reason
            raise ValidationError(
                f"reason must be at most {self.reason_max_length} characters (got {len(reason)})",
                field="reason",
            )
        return reason or None

    async def _dispense_in(
        self, session: AsyncSession, item_id: UUID, quantity, reason: Optional[str]
    ) -> DispenseResult:
        if not is_positive_int(quantity):
            # Unknown item wins over a bad quantity
            if await session.get(PharmacyItem, item_id) is None:
                raise NotFoundError("PharmacyItem", item_id)
            raise InvalidQuantityError(quantity)
        quantity = int(quantity)

        item = await self.ledger.apply_delta_in(session, item_id, -quantity)

        record = await self.history.append(
            session,
            PharmacyDispense(
                id=uuid.uuid4(),
                item_id=item.id,
                item_code=item.item_code,
                item_name=item.name,
                category=item.category,
                unit_price_at_dispense=item.unit_price,
                quantity=quantity,
                reason=reason,
                dispensed_at=to_utc_naive(self.clock.now()),
            ),
        )
        return DispenseResult(item=item, record=DispenseRecordRead.model_validate(record))

    async def dispense(
        self,
        item_id: UUID,
        quantity,
        reason: Optional[str] = None,
        timeout=_UNSET,
    ) -> DispenseResult:
        started = time.perf_counter()
        try:
            # Malformed reason is checked after item/quantity so the documented
            # NotFound -> InvalidQuantity -> InsufficientStock order is kept.
            try:
                clean_reason = self._normalize_reason(reason)
                reason_error = None
            except ValidationError as e:
                clean_reason, reason_error = None, e

            async def _work(session: AsyncSession) -> DispenseResult:
                if reason_error is not None:
                    if await session.get(PharmacyItem, item_id) is None:
                        raise NotFoundError("PharmacyItem", item_id)
                    if not is_positive_int(quantity):
                        raise InvalidQuantityError(quantity)
                    raise reason_error
                return await self._dispense_in(session, item_id, quantity, clean_reason)

            result = await run_write(
                self.session_maker,
                _work,
                timeout=self.timeout if timeout is _UNSET else timeout,
                operation="dispense",
            )
        except OutcomeUnknownError as e:
            logger.error("dispense_outcome_unknown", extra={"item_id": item_id, "requested": quantity, "error_code": e.code})
            raise
        except PharmacyEngineError as e:
            logger.warning(
                "dispense_rejected",
                extra={"item_id": item_id, "requested": quantity, "error_code": e.code, **_payload_extra(e)},
            )
            raise

        logger.info(
            "dispense_completed",
            extra={
                "item_id": item_id,
                "record_id": result.record.id,
                "quantity": result.record.quantity,
                "remaining": result.item.quantity,
                "status": result.item.status,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return result


def _payload_extra(e: PharmacyEngineError) -> dict:
    available = getattr(e, "available", None)
    return {"available": available} if available is not None else {}
