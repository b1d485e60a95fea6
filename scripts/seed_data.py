"""Seed script to populate the database with a sample site."""

from datetime import date, datetime, timedelta
from decimal import Decimal

from app.core.database import Base, SessionLocal, engine
from app.models import document_tariff_calculation, reconciliation  # noqa: F401
from app.models.document import DocumentExtraction, SiteDocument
from app.models.enums import ChargeType, ExtractionStatus, MeterType
from app.models.meter import Meter, MeterConnection
from app.models.meter_reading import MeterReading
from app.models.site import Site, SupplyAuthority
from app.models.tariff import TariffBlock, TariffCharge, TariffStructure


def seed_database() -> None:
    """Seed the database with a supply authority, a metered site and one month of readings."""
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as db:
        # Check if data already exists
        if db.query(Site).first():
            print("Database already has data. Skipping seed.")
            return

        print("Seeding database...")

        authority = SupplyAuthority(name="City Power", region="Gauteng")
        db.add(authority)
        db.flush()

        tariff = TariffStructure(
            supply_authority_id=authority.id,
            name="Business Block",
            tariff_type="commercial",
            effective_from=date(2024, 1, 1),
            blocks=[
                TariffBlock(block_number=1, kwh_from=0, kwh_to=600, energy_charge_cents=185),
                TariffBlock(block_number=2, kwh_from=600, kwh_to=None, energy_charge_cents=230),
            ],
            charges=[
                TariffCharge(
                    charge_type=ChargeType.BASIC_MONTHLY, charge_amount=350, unit="R/month"
                ),
                TariffCharge(
                    charge_type=ChargeType.DEMAND_HIGH_SEASON,
                    charge_amount=Decimal("310.50"),
                    unit="R/kVA",
                ),
                TariffCharge(
                    charge_type=ChargeType.DEMAND_LOW_SEASON,
                    charge_amount=Decimal("150.20"),
                    unit="R/kVA",
                ),
            ],
        )
        db.add(tariff)
        db.flush()

        print(f"Created tariff: {tariff.name} (ID: {tariff.id})")

        site = Site(
            name="Riverside Centre",
            address="12 River Road, Johannesburg",
            supply_authority_id=authority.id,
        )
        db.add(site)
        db.flush()

        print(f"Created site: {site.name} (ID: {site.id})")

        # GRID -> BULK -> DB-01, DB-02, DB-03; PV feeds in under GRID
        grid = Meter(site_id=site.id, meter_number="GRID", meter_type=MeterType.COUNCIL_METER)
        bulk = Meter(site_id=site.id, meter_number="BULK", meter_type=MeterType.BULK_METER)
        solar = Meter(site_id=site.id, meter_number="PV", meter_type=MeterType.SOLAR_METER)
        tenants = [
            Meter(
                site_id=site.id,
                meter_number=f"DB-0{n}",
                meter_type=MeterType.TENANT_METER,
                name=f"Shop {n}",
                tariff_structure_id=tariff.id,
                assigned_tariff_name=tariff.name,
            )
            for n in (1, 2, 3)
        ]
        db.add_all([grid, bulk, solar, *tenants])
        db.flush()

        links = [(grid, bulk), (grid, solar)] + [(bulk, t) for t in tenants]
        db.add_all(
            MeterConnection(parent_meter_id=parent.id, child_meter_id=child.id)
            for parent, child in links
        )

        print(f"Created {3 + len(tenants)} meters and {len(links)} connections")

        # January, one reading every 30 minutes
        start = datetime(2024, 1, 1, 0, 30)
        intervals = 31 * 48
        for index in range(intervals):
            timestamp = start + timedelta(minutes=30 * index)
            hour = timestamp.hour
            daytime = 8 <= hour < 18

            tenant_loads = [
                Decimal("1.20") + Decimal(index % 3) / 10,
                Decimal("0.80") + Decimal(index % 2) / 10,
                Decimal("2.10") if daytime else Decimal("0.40"),
            ]
            solar_output = Decimal("1.50") if 9 <= hour < 16 else Decimal("0")
            bulk_load = sum(tenant_loads, Decimal("0")) + Decimal("0.15")

            db.add_all(
                MeterReading(meter_id=meter.id, reading_timestamp=timestamp, kwh_value=load)
                for meter, load in zip(tenants, tenant_loads)
            )
            db.add(
                MeterReading(
                    meter_id=bulk.id,
                    reading_timestamp=timestamp,
                    kwh_value=bulk_load,
                    kva_value=bulk_load * 2,
                    reading_metadata={
                        "imported_fields": {
                            "P1 (kWh)": float(bulk_load),
                            "S (kVA)": float(bulk_load * 2),
                        }
                    },
                )
            )
            db.add(
                MeterReading(meter_id=solar.id, reading_timestamp=timestamp, kwh_value=solar_output)
            )
            db.add(
                MeterReading(
                    meter_id=grid.id,
                    reading_timestamp=timestamp,
                    kwh_value=max(bulk_load - solar_output, Decimal("0")),
                )
            )

        print(f"Created {intervals * 6} readings ({intervals} intervals x 6 meters)")

        bill = SiteDocument(
            site_id=site.id,
            file_name="db-01-january-2024.pdf",
            extraction_status=ExtractionStatus.COMPLETED,
            extractions=[
                DocumentExtraction(
                    period_start=date(2024, 1, 1),
                    period_end=date(2024, 1, 31),
                    total_amount=Decimal("2150.00"),
                    currency="ZAR",
                    extracted_data={
                        "shop_number": "01",
                        "tenant_name": "Corner Cafe",
                        "line_items": [
                            {
                                "description": "Basic charge",
                                "unit": "Monthly",
                                "rate": "350",
                                "amount": "350",
                            },
                            {
                                "description": "Conventional kWh",
                                "unit": "kWh",
                                "supply": "Normal",
                                "previous_reading": "10450",
                                "current_reading": "11420",
                                "consumption": "970",
                                "rate": "1.85",
                                "amount": "1800",
                            },
                        ],
                    },
                )
            ],
        )
        db.add(bill)
        db.commit()

        print("Created 1 tenant bill for DB-01")
        print("\nSeed data created successfully!")
        print(f"\nSite ID: {site.id}")
        print(f"Grid Meter ID: {grid.id}")
        print(f"Tenant Meter IDs: {', '.join(str(t.id) for t in tenants)}")
        print("\nYou can now run a reconciliation for January 2024.")


if __name__ == "__main__":
    seed_database()
