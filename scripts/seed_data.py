"""Seed script to populate the database with sample data."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from meterbook.core.database import Base, SessionLocal, engine
from meterbook.models.flat import Flat
from meterbook.schemas.flat import FlatCreate
from meterbook.schemas.settings import SettingsUpdate
from meterbook.services.flats import create_flat
from meterbook.services.readings import approve_reading, submit_reading
from meterbook.services.settings import update_settings

SAMPLE_FLATS = [
    ("A1", "Asha Rao", Decimal("1000.000")),
    ("B1", "Vikram Shah", Decimal("2400.500")),
    ("Guest House", None, None),
]


def seed_database() -> None:
    """Seed the database with sample data."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        # Check if data already exists
        if db.query(Flat).first():
            print("Database already has data. Skipping seed.")
            return

        print("Seeding database...")

        update_settings(
            db,
            SettingsUpdate(
                tariff_per_unit=Decimal("7.5"),
                minimum_price=Decimal("25"),
                unit_factor=Decimal("2.3"),
            ),
        )
        print("Saved pricing: 7.5 per kg, minimum 25, 2.3 kg per unit")

        for flat_id, tenant_name, initial_reading in SAMPLE_FLATS:
            create_flat(
                db,
                FlatCreate(
                    flat_id=flat_id,
                    tenant_name=tenant_name,
                    initial_reading=initial_reading,
                ),
            )
        print(f"Created {len(SAMPLE_FLATS)} flats")

        # Two months of approved readings for every flat with a baseline
        start = datetime.now(UTC) - timedelta(days=45)
        created = 0
        for flat_id, _, initial_reading in SAMPLE_FLATS:
            value = initial_reading or Decimal("0")
            for month in range(2):
                value += Decimal("42.125") + month * 3
                reading = submit_reading(
                    db,
                    flat_id,
                    image_ref=f"seed/{flat_id}/{month}.jpg",
                    ocr_value=value,
                    ocr_confidence=90.0,
                    submitted_at=start + timedelta(days=30 * month),
                )
                approve_reading(db, reading.id, value)
                created += 1

        print(f"Created {created} approved readings")
        print("\nSeed data created successfully!")
    finally:
        db.close()


if __name__ == "__main__":
    seed_database()
