import argparse
import asyncio
import random
import sys
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path

"""
Seed demo pharmacy items and back-filled dispense history.

- Creates a small catalog (a few items per category) when the catalog is empty.
- Inserts historical dispense records for each month in the window, skipping
  months that already have records. History is back-filled only: stock
  quantities are not touched.

Run locally:
  python backend/scripts/seed_pharmacy_dispenses.py --months 12
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import func, select  # noqa: E402

from core.config import settings  # noqa: E402
from core.logging_config import configure_logging, get_logger  # noqa: E402
from core.reporting_calendar import month_bounds, month_label, reporting_tz, shift_month, to_utc_naive  # noqa: E402
from db.database import async_session_maker, create_db_and_tables  # noqa: E402
from db.pharmacy.dispense import PharmacyDispense  # noqa: E402
from db.pharmacy.item import PharmacyItem  # noqa: E402
from schemas.pharmacy import CATEGORIES, PharmacyItemCreate  # noqa: E402
from services.catalog import ItemCatalog  # noqa: E402

logger = get_logger("seed")

MAX_ITEMS_PER_CATEGORY = 5
MAX_RECORDS_PER_ITEM = 3

REASONS = [
    "Monthly dispensing - inpatient needs",
    "Outpatient prescriptions fulfillment",
    "Emergency stock usage",
    "Routine ward distribution",
    "Special clinic allocation",
]

DEMO_ITEMS = [
    PharmacyItemCreate(name="Paracetamol 500mg", category="Medicine", quantity=400, min_required=100, unit_price=Decimal("0.15")),
    PharmacyItemCreate(name="Amoxicillin 250mg", category="Medicine", quantity=120, min_required=80, unit_price=Decimal("0.40")),
    PharmacyItemCreate(name="Insulin Glargine", category="Medicine", quantity=12, min_required=20, unit_price=Decimal("24.90")),
    PharmacyItemCreate(name="Sterile Gauze Pads", category="Supply", quantity=600, min_required=200, unit_price=Decimal("0.25")),
    PharmacyItemCreate(name="Disposable Syringes 5ml", category="Supply", quantity=150, min_required=300, unit_price=Decimal("0.12")),
    PharmacyItemCreate(name="Digital Thermometer", category="Equipment", quantity=25, min_required=10, unit_price=Decimal("8.50")),
    PharmacyItemCreate(name="Pulse Oximeter", category="Equipment", quantity=0, min_required=5, unit_price=Decimal("19.99")),
    PharmacyItemCreate(name="Blood Collection Tubes", category="Lab Supplies", quantity=800, min_required=250, unit_price=Decimal("0.30")),
    PharmacyItemCreate(name="Glucose Test Strips", category="Lab Supplies", quantity=90, min_required=100, unit_price=Decimal("0.55")),
]


def _build_record(rng: random.Random, item: PharmacyItem, year: int, month: int, last_day: int, tz) -> PharmacyDispense:
    local = datetime(year, month, rng.randint(1, last_day), rng.randint(8, 20), rng.randint(0, 59), tzinfo=tz)
    low = max(1, -(-item.min_required // 2))
    high = max(low, item.min_required, item.quantity)
    return PharmacyDispense(
        id=uuid.uuid4(),
        item_id=item.id,
        item_code=item.item_code,
        item_name=item.name,
        category=item.category,
        unit_price_at_dispense=item.unit_price,
        quantity=rng.randint(low, high),
        reason=rng.choice(REASONS),
        dispensed_at=to_utc_naive(local),
    )


async def seed(months: int, rng: random.Random, dry_run: bool) -> None:
    await create_db_and_tables()
    tz = reporting_tz()

    async with async_session_maker() as db:
        count = (await db.execute(select(func.count()).select_from(PharmacyItem))).scalar_one()
    if not count:
        catalog = ItemCatalog(async_session_maker)
        for payload in DEMO_ITEMS:
            await catalog.create_item(payload)
        print(f"Created {len(DEMO_ITEMS)} demo items.")

    async with async_session_maker() as db:
        res = await db.execute(select(PharmacyItem).order_by(PharmacyItem.category.asc(), PharmacyItem.name.asc()))
        items = res.scalars().all()
        by_category = {c: [it for it in items if it.category == c][:MAX_ITEMS_PER_CATEGORY] for c in CATEGORIES}

        today = datetime.now(timezone.utc).astimezone(tz).date()
        total = 0
        for offset in range(months - 1, -1, -1):
            year, month = shift_month(today.year, today.month, -offset)
            start, end = month_bounds(year, month, tz)
            existing = (
                await db.execute(
                    select(func.count())
                    .select_from(PharmacyDispense)
                    .where(PharmacyDispense.dispensed_at >= to_utc_naive(start))
                    .where(PharmacyDispense.dispensed_at < to_utc_naive(end))
                )
            ).scalar_one()
            if existing:
                print(f"Skipping {month_label(year, month)} (already has {existing} records)")
                continue

            ny, nm = shift_month(year, month, 1)
            last_day = today.day if (year, month) == (today.year, today.month) else (date(ny, nm, 1) - date(year, month, 1)).days
            records = [
                _build_record(rng, item, year, month, last_day, tz)
                for cat_items in by_category.values()
                for item in cat_items
                for _ in range(rng.randint(1, MAX_RECORDS_PER_ITEM))
            ]
            db.add_all(records)
            total += len(records)
            print(f"{month_label(year, month)}: {len(records)} dispense records")

        if dry_run:
            await db.rollback()
            print(f"Dry run: {total} records not committed.")
            return
        await db.commit()

    logger.info("dispenses_seeded", extra={"records": total, "months": months})
    print(f"Done. Inserted {total} dispense records into {settings.database_url.split('@')[-1]}.")


if __name__ == "__main__":
    p = argparse.ArgumentParser()
    p.add_argument("--months", type=int, default=12, help="How many months back to fill, current month included")
    p.add_argument("--seed", type=int, default=None, help="Random seed for reproducible data")
    p.add_argument("--dry-run", action="store_true", help="Do not commit, just print what would be inserted")
    args = p.parse_args()

    configure_logging()
    asyncio.run(seed(args.months, random.Random(args.seed), args.dry_run))
