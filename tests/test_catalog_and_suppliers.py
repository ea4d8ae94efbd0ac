from __future__ import annotations

import asyncio
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from core.exceptions import ConcurrencyConflictError, NotFoundError, ValidationError
from db.pharmacy.item import PharmacyItem
from schemas.pharmacy import PharmacyItemUpdate
from services import catalog


def test_item_codes_are_prefixed_per_category(pharmacy) -> None:
    async def scenario():
        async with pharmacy() as env:
            a = await env.add_item("Paracetamol")
            b = await env.add_item("Amoxicillin")
            c = await env.add_item("Gauze", category="Supply")
            d = await env.add_item("Thermometer", category="Equipment")
            e = await env.add_item("Strips", category="Lab Supplies")
            assert [x.item_code for x in (a, b, c, d, e)] == ["MED1001", "MED1002", "SUP1001", "EQP1001", "LAB1001"]

            await env.catalog.delete_item(b.id)
            f = await env.add_item("Ibuprofen")
            assert f.item_code == "MED1002"

    asyncio.run(scenario())


def test_item_code_collision_is_a_concurrency_conflict(pharmacy, monkeypatch) -> None:
    async def scenario():
        async with pharmacy() as env:
            await env.add_item("Paracetamol")
            # a second writer computed the same next code
            monkeypatch.setattr(catalog, "next_code", lambda *args: "MED1001")
            with pytest.raises(ConcurrencyConflictError):
                await env.add_item("Ibuprofen")

            monkeypatch.undo()
            retried = await env.add_item("Ibuprofen")
            assert retried.item_code == "MED1002"
            assert len(await env.ledger.list_items()) == 2

    asyncio.run(scenario())


def test_new_item_status_is_derived(pharmacy) -> None:
    async def scenario():
        async with pharmacy() as env:
            assert (await env.add_item("A", quantity=0, min_required=3)).status == "out_of_stock"
            assert (await env.add_item("B", quantity=2, min_required=3)).status == "low_stock"
            assert (await env.add_item("C", quantity=3, min_required=3)).status == "in_stock"

    asyncio.run(scenario())


def test_threshold_update_recomputes_status(pharmacy) -> None:
    async def scenario():
        async with pharmacy() as env:
            item = await env.add_item("Insulin", quantity=8, min_required=5)
            raised = await env.catalog.update_item(item.id, PharmacyItemUpdate(min_required=10))
            assert (raised.status, raised.version) == ("low_stock", item.version + 1)

            priced = await env.catalog.update_item(item.id, PharmacyItemUpdate(unit_price=Decimal("3.75")))
            assert priced.unit_price == Decimal("3.75")
            assert priced.min_required == 10
            assert (await env.ledger.get_item(item.id)).status == "low_stock"

            with pytest.raises(NotFoundError):
                await env.catalog.update_item(uuid.uuid4(), PharmacyItemUpdate(min_required=2))
            with pytest.raises(NotFoundError):
                await env.catalog.update_item(item.id, PharmacyItemUpdate(supplier_id=uuid.uuid4()))
            with pytest.raises(NotFoundError):
                await env.catalog.delete_item(uuid.uuid4())

    asyncio.run(scenario())


def test_price_snapshot_is_kept_after_price_change(pharmacy) -> None:
    async def scenario():
        async with pharmacy() as env:
            item = await env.add_item("Gauze", category="Supply", quantity=10, unit_price="1.00")
            first = await env.processor.dispense(item.id, 1)
            await env.catalog.update_item(item.id, PharmacyItemUpdate(unit_price=Decimal("2.00")))
            env.clock.advance(minutes=5)
            second = await env.processor.dispense(item.id, 1)
            assert (first.record.value, second.record.value) == (Decimal("1.00"), Decimal("2.00"))

    asyncio.run(scenario())


def test_low_stock_listing_orders_by_severity_then_name(pharmacy) -> None:
    async def scenario():
        async with pharmacy() as env:
            await env.add_item("Zinc", quantity=1, min_required=5)
            await env.add_item("aspirin", quantity=2, min_required=5)
            await env.add_item("Morphine", quantity=0, min_required=1)
            await env.add_item("Healthy", quantity=5, min_required=5)

            low = await env.ledger.list_low_stock()
            assert [(i.name, i.status) for i in low] == [
                ("Morphine", "out_of_stock"),
                ("aspirin", "low_stock"),
                ("Zinc", "low_stock"),
            ]

    asyncio.run(scenario())


def test_expiring_items_window(pharmacy) -> None:
    async def scenario():
        async with pharmacy() as env:
            # clock is 2026-10-15
            await env.add_item("Expired", expiry_date=date(2026, 10, 14))
            await env.add_item("Today", expiry_date=date(2026, 10, 15))
            await env.add_item("Day 30", expiry_date=date(2026, 11, 14))
            await env.add_item("Day 31", expiry_date=date(2026, 11, 15))
            await env.add_item("No expiry")

            assert [i.name for i in await env.ledger.list_expiring()] == ["Today", "Day 30"]
            assert [i.name for i in await env.ledger.list_expiring(0)] == ["Today"]
            assert [i.name for i in await env.ledger.list_expiring(31)] == ["Today", "Day 30", "Day 31"]
            with pytest.raises(ValidationError):
                await env.ledger.list_expiring(-1)
            with pytest.raises(ValidationError):
                await env.ledger.list_expiring(10**7)
            assert [i.name for i in await env.ledger.list_expiring((date.max - date(2026, 10, 15)).days)] == [
                "Today",
                "Day 30",
                "Day 31",
            ]

    asyncio.run(scenario())


def test_list_items_filters_by_category(pharmacy) -> None:
    async def scenario():
        async with pharmacy() as env:
            await env.add_item("Paracetamol")
            await env.add_item("Gauze", category="Supply")
            await env.add_item("Bandage", category="Supply")

            assert [i.name for i in await env.ledger.list_items("Supply")] == ["Bandage", "Gauze"]
            assert len(await env.ledger.list_items()) == 3

    asyncio.run(scenario())


def test_supplier_codes_and_duplicates(pharmacy) -> None:
    async def scenario():
        async with pharmacy() as env:
            a = await env.add_supplier("MediCorp")
            b = await env.add_supplier("Acme Labs")
            assert (a.supplier_code, b.supplier_code) == ("S0001", "S0002")

            with pytest.raises(ValidationError):
                await env.add_supplier("medicorp")

            assert [s.name for s in await env.suppliers.list_suppliers()] == ["Acme Labs", "MediCorp"]

    asyncio.run(scenario())


def test_supplier_code_collision_is_a_concurrency_conflict(pharmacy, monkeypatch) -> None:
    async def scenario():
        async with pharmacy() as env:
            await env.add_supplier("MediCorp")
            monkeypatch.setattr(catalog, "next_code", lambda *args: "S0001")
            with pytest.raises(ConcurrencyConflictError):
                await env.add_supplier("Acme Labs")

            monkeypatch.undo()
            assert (await env.add_supplier("Acme Labs")).supplier_code == "S0002"

    asyncio.run(scenario())


def test_supplier_distribution_counts_distinct_suppliers(pharmacy) -> None:
    async def scenario():
        async with pharmacy() as env:
            s1 = await env.add_supplier("MediCorp")
            s2 = await env.add_supplier("Acme Labs")
            await env.add_supplier("Unused Supplies Ltd")

            await env.add_item("Paracetamol", quantity=10, unit_price="0.50", supplier_id=s1.id)
            await env.add_item("Amoxicillin", quantity=4, unit_price="2.00", supplier_id=s1.id)
            await env.add_item("Insulin", quantity=2, unit_price="20.00", supplier_id=s2.id)
            await env.add_item("Aspirin", quantity=100, unit_price="0.10")
            await env.add_item("Gauze", category="Supply", quantity=30, unit_price="0.25", supplier_id=s2.id)
            await env.add_item("Thermometer", category="Equipment", quantity=3, unit_price="9.00")

            dist = await env.distribution.distribution()

            by_cat = {c.category: c for c in dist.categories}
            assert list(by_cat) == ["Medicine", "Supply"]
            assert (by_cat["Medicine"].supplier_count, by_cat["Medicine"].item_count) == (2, 3)
            assert by_cat["Medicine"].total_quantity == 16
            assert by_cat["Medicine"].total_value == Decimal("53.00")
            assert (by_cat["Supply"].supplier_count, by_cat["Supply"].total_value) == (1, Decimal("7.50"))
            assert dist.total_suppliers_in_system == 3
            assert dist.total_linked_suppliers == 2

    asyncio.run(scenario())


def test_distribution_with_no_suppliers(pharmacy) -> None:
    async def scenario():
        async with pharmacy() as env:
            await env.add_item("Paracetamol")
            dist = await env.distribution.distribution()
            assert dist.categories == []
            assert (dist.total_suppliers_in_system, dist.total_linked_suppliers) == (0, 0)

    asyncio.run(scenario())


def test_item_timestamps_come_from_the_clock(pharmacy) -> None:
    async def scenario():
        async with pharmacy() as env:
            env.clock.set(datetime(2026, 1, 2, 3, 4, tzinfo=timezone.utc))
            item = await env.add_item("Paracetamol")
            async with env.session_maker() as session:
                stored = await session.get(PharmacyItem, item.id)
                assert stored.created_at == datetime(2026, 1, 2, 3, 4)

    asyncio.run(scenario())
