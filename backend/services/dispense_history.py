"""
DispenseHistoryStore: append-only, time-indexed log of dispense records.

Every analytics window is computed by replaying ``query_range`` over this log;
there are no rollup tables.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import ValidationError
from core.reporting_calendar import to_utc_naive
from db.database import snapshot_session
from db.pharmacy.dispense import PharmacyDispense
from schemas.pharmacy import DispenseRecordRead


def _check_range(start: datetime, end: datetime) -> None:
    if start.tzinfo is None or end.tzinfo is None:
        raise ValidationError("range bounds must be timezone-aware", field="start" if start.tzinfo is None else "end")
    if end < start:
        raise ValidationError("range end must not be before start", field="end")


class DispenseHistoryStore:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def append(self, session: AsyncSession, record: PharmacyDispense) -> PharmacyDispense:
        """Stage a new record in the caller's transaction."""
        session.add(record)
        await session.flush()
        return record

    async def query_range(
        self, start: datetime, end: datetime, session: Optional[AsyncSession] = None
    ) -> List[DispenseRecordRead]:
        """Records with start <= dispensed_at < end, oldest first."""
        _check_range(start, end)
        if session is None:
            async with snapshot_session(self.session_maker) as own:
                return await self.query_range(start, end, session=own)

        res = await session.execute(
            select(PharmacyDispense)
            .where(PharmacyDispense.dispensed_at >= to_utc_naive(start))
            .where(PharmacyDispense.dispensed_at < to_utc_naive(end))
            .order_by(PharmacyDispense.dispensed_at.asc(), PharmacyDispense.id.asc())
        )
        return [DispenseRecordRead.model_validate(r) for r in res.scalars().all()]

    async def recent(
        self, start: datetime, end: datetime, limit: int, session: Optional[AsyncSession] = None
    ) -> List[DispenseRecordRead]:
        """The ``limit`` newest records in [start, end), newest first."""
        _check_range(start, end)
        if session is None:
            async with snapshot_session(self.session_maker) as own:
                return await self.recent(start, end, limit, session=own)

        res = await session.execute(
            select(PharmacyDispense)
            .where(PharmacyDispense.dispensed_at >= to_utc_naive(start))
            .where(PharmacyDispense.dispensed_at < to_utc_naive(end))
            .order_by(PharmacyDispense.dispensed_at.desc(), PharmacyDispense.id.desc())
            .limit(limit)
        )
        return [DispenseRecordRead.model_validate(r) for r in res.scalars().all()]
