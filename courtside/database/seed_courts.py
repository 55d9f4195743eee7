"""
Seed the court directory from CSV on startup.

Idempotent: a court is identified by (name, city); existing rows are left
untouched so edits made after seeding survive restarts.
"""

import csv
import logging
from pathlib import Path

from sqlalchemy import select

from courtside.database import db
from courtside.database.models import Court

logger = logging.getLogger(__name__)

SEED_DIR = Path(__file__).resolve().parent.parent / "seed"


def _bool(val: str) -> bool:
    return (val or "").strip().lower() == "true"


async def _seed_courts_from_csv(session, csv_filename: str) -> int:
    """Seed courts from a CSV file. Returns count of new rows."""
    csv_path = SEED_DIR / csv_filename
    if not csv_path.exists():
        logger.warning("Courts CSV not found: %s", csv_path)
        return 0

    created = 0
    with open(csv_path, "r", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            result = await session.execute(
                select(Court.id).where(Court.name == row["name"], Court.city == row["city"])
            )
            if result.scalar_one_or_none():
                continue
            session.add(
                Court(
                    name=row["name"],
                    city=row["city"],
                    address=row.get("address") or None,
                    is_indoor=_bool(row.get("is_indoor")),
                    has_ac=_bool(row.get("has_ac")),
                )
            )
            created += 1

    await session.flush()
    return created


async def seed_courts():
    """Seed default courts. Called during app startup."""
    async with db.AsyncSessionLocal() as session:
        created = await _seed_courts_from_csv(session, "courts.csv")
        if created:
            logger.info("Seeded %d new courts", created)
        await session.commit()
