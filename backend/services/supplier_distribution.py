"""Sourcing concentration per category: how many distinct suppliers feed it."""

from collections import defaultdict
from decimal import Decimal
from typing import Dict, Sequence, Set
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.database import snapshot_session
from db.supplier import Supplier
from schemas.pharmacy import CATEGORIES, PharmacyItemRead
from schemas.reports import CategoryDistribution, SupplierDistribution
from services.stock_ledger import StockLedger


def build_supplier_distribution(items: Sequence[PharmacyItemRead], total_suppliers: int) -> SupplierDistribution:
    suppliers: Dict[str, Set[UUID]] = defaultdict(set)
    item_count: Dict[str, int] = defaultdict(int)
    quantity: Dict[str, int] = defaultdict(int)
    value: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))

    for it in items:
        if it.supplier_id is None:
            continue
        suppliers[it.category].add(it.supplier_id)
        item_count[it.category] += 1
        quantity[it.category] += it.quantity
        value[it.category] += it.unit_price * it.quantity

    linked: Set[UUID] = set()
    rows = []
    for category in CATEGORIES:
        if not suppliers[category]:
            continue
        linked |= suppliers[category]
        rows.append(
            CategoryDistribution(
                category=category,
                supplier_count=len(suppliers[category]),
                item_count=item_count[category],
                total_quantity=quantity[category],
                total_value=value[category],
            )
        )

    return SupplierDistribution(
        categories=rows,
        total_suppliers_in_system=total_suppliers,
        total_linked_suppliers=len(linked),
    )


class SupplierDistributionAnalyzer:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession], ledger: StockLedger):
        self.session_maker = session_maker
        self.ledger = ledger

    async def distribution(self) -> SupplierDistribution:
        async with snapshot_session(self.session_maker) as session:
            items = await self.ledger.list_items(session=session)
            total_suppliers = (await session.execute(select(func.count()).select_from(Supplier))).scalar_one()
        return build_supplier_distribution(items, int(total_suppliers or 0))
