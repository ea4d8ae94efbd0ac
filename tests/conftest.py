"""Shared fixtures: a throwaway SQLite database per test and the services wired on it."""

from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_BACKEND_PATH = _PROJECT_ROOT / "backend"

# Prepend so tests import the backend packages (e.g. `services.stock_ledger`).
if str(_BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(_BACKEND_PATH))

from core.clock import FixedClock  # noqa: E402
from db.database import build_engine, build_session_maker, create_db_and_tables  # noqa: E402
from schemas.pharmacy import PharmacyItemCreate  # noqa: E402
from schemas.suppliers import SupplierCreate  # noqa: E402
from services.analytics import AnalyticsAggregator  # noqa: E402
from services.catalog import ItemCatalog, SupplierRegistry  # noqa: E402
from services.dispense_history import DispenseHistoryStore  # noqa: E402
from services.dispense_processor import DispenseProcessor  # noqa: E402
from services.stock_ledger import StockLedger  # noqa: E402
from services.supplier_distribution import SupplierDistributionAnalyzer  # noqa: E402

DEFAULT_NOW = datetime(2026, 10, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'pharmacy.db'}"


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(DEFAULT_NOW)


@pytest.fixture
def pharmacy(db_url, clock):
    """
    Factory for a fully wired engine on the test database.

    Must be entered inside the event loop that uses it (each test drives its
    own loop with ``asyncio.run``)::

        async with pharmacy() as env:
            item = await env.add_item("Paracetamol", quantity=10)
    """

    @asynccontextmanager
    async def _make(tz: str = "UTC", **processor_kwargs):
        engine = build_engine(db_url)
        session_maker = build_session_maker(engine)
        await create_db_and_tables(engine)

        ledger = StockLedger(session_maker, clock=clock, timezone=tz)
        history = DispenseHistoryStore(session_maker)
        catalog = ItemCatalog(session_maker, clock=clock)
        suppliers = SupplierRegistry(session_maker)

        async def add_item(name, category="Medicine", quantity=10, min_required=5, unit_price="1.00", **extra):
            return await catalog.create_item(
                PharmacyItemCreate(
                    name=name,
                    category=category,
                    quantity=quantity,
                    min_required=min_required,
                    unit_price=Decimal(unit_price),
                    **extra,
                )
            )

        async def add_supplier(name):
            return await suppliers.create_supplier(SupplierCreate(name=name))

        env = SimpleNamespace(
            engine=engine,
            session_maker=session_maker,
            clock=clock,
            ledger=ledger,
            history=history,
            processor=DispenseProcessor(session_maker, ledger=ledger, history=history, clock=clock, **processor_kwargs),
            analytics=AnalyticsAggregator(session_maker, ledger=ledger, history=history, clock=clock, timezone=tz),
            distribution=SupplierDistributionAnalyzer(session_maker, ledger),
            catalog=catalog,
            suppliers=suppliers,
            add_item=add_item,
            add_supplier=add_supplier,
        )
        try:
            yield env
        finally:
            await engine.dispose()

    return _make
