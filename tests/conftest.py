"""Shared fixtures: an in-memory database and a client bound to it."""

from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.main import app
from app.models.enums import ChargeType, MeterType
from app.models.meter import Meter, MeterConnection
from app.models.site import Site, SupplyAuthority
from app.models.tariff import TariffBlock, TariffCharge, TariffStructure


@pytest.fixture
def test_db():
    """Create an in-memory test database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(test_db):
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def authority(test_db) -> SupplyAuthority:
    authority = SupplyAuthority(name="City Power", region="Gauteng")
    test_db.add(authority)
    test_db.commit()
    return authority


@pytest.fixture
def site(test_db, authority) -> Site:
    site = Site(name="Mall One", address="1 Main Road", supply_authority_id=authority.id)
    test_db.add(site)
    test_db.commit()
    return site


@pytest.fixture
def block_tariff(test_db, authority) -> TariffStructure:
    """Two blocks: 0-100 kWh at 100 c/kWh, above 100 kWh at 200 c/kWh, R50 basic."""
    tariff = TariffStructure(
        supply_authority_id=authority.id,
        name="Business Block",
        effective_from=date(2024, 1, 1),
        uses_tou=False,
        active=True,
        blocks=[
            TariffBlock(
                block_number=1, kwh_from=0, kwh_to=100, energy_charge_cents=100
            ),
            TariffBlock(
                block_number=2, kwh_from=100, kwh_to=None, energy_charge_cents=200
            ),
        ],
        charges=[
            TariffCharge(
                charge_type=ChargeType.BASIC_MONTHLY, charge_amount=50, unit="R/month"
            ),
        ],
    )
    test_db.add(tariff)
    test_db.commit()
    return tariff


def add_meter(
    db,
    site: Site,
    meter_number: str,
    meter_type: MeterType,
    tariff: TariffStructure | None = None,
    name: str | None = None,
) -> Meter:
    """Helper: persist a meter on a site."""
    meter = Meter(
        site_id=site.id,
        meter_number=meter_number,
        meter_type=meter_type,
        name=name,
        tariff_structure_id=tariff.id if tariff else None,
        assigned_tariff_name=tariff.name if tariff else None,
    )
    db.add(meter)
    db.commit()
    return meter


def connect(db, parent: Meter, child: Meter) -> None:
    """Helper: link child under parent."""
    db.add(MeterConnection(parent_meter_id=parent.id, child_meter_id=child.id))
    db.commit()
