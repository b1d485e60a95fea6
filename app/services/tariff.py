"""Tariff structure service."""

from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.models.enums import ChargeType
from app.models.tariff import TariffBlock, TariffCharge, TariffStructure, TariffTimePeriod
from app.schemas.analysis import RateSet
from app.schemas.tariff import TariffStructureCreate, TariffStructureUpdate
from app.services.site import get_supply_authority
from app.services.tariff_cost import BASIC_CHARGE_TYPES, load_tariff

_FLAT_ENERGY_TYPES = (
    ChargeType.ENERGY_BOTH_SEASONS,
    ChargeType.ENERGY_LOW_SEASON,
    ChargeType.ENERGY_HIGH_SEASON,
)


def create_tariff(db: Session, data: TariffStructureCreate) -> TariffStructure:
    """Create a tariff with its blocks, time periods and charges."""
    get_supply_authority(db, data.supply_authority_id)

    tariff = TariffStructure(
        **data.model_dump(exclude={"blocks", "time_periods", "charges"}),
    )
    tariff.blocks = [TariffBlock(**b.model_dump()) for b in data.blocks]
    tariff.time_periods = [TariffTimePeriod(**p.model_dump()) for p in data.time_periods]
    tariff.charges = [TariffCharge(**c.model_dump()) for c in data.charges]

    db.add(tariff)
    db.commit()
    db.refresh(tariff)
    return tariff


def get_tariff(db: Session, tariff_id: int) -> TariffStructure:
    """Get a tariff with its pricing components."""
    tariff = load_tariff(db, tariff_id)
    if not tariff:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tariff structure not found",
        )
    return tariff


def list_tariffs(
    db: Session,
    supply_authority_id: int | None = None,
    active_only: bool = True,
) -> list[TariffStructure]:
    """List tariffs by name, newest effective date first."""
    query = db.query(TariffStructure)
    if supply_authority_id is not None:
        query = query.filter(TariffStructure.supply_authority_id == supply_authority_id)
    if active_only:
        query = query.filter(TariffStructure.active.is_(True))
    return query.order_by(TariffStructure.name, TariffStructure.effective_from.desc()).all()


def update_tariff(db: Session, tariff_id: int, data: TariffStructureUpdate) -> TariffStructure:
    """Update tariff header fields."""
    tariff = get_tariff(db, tariff_id)

    update_data = data.model_dump(exclude_unset=True)
    effective_to = update_data.get("effective_to")
    if effective_to is not None and effective_to < tariff.effective_from:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="effective_to must not precede effective_from",
        )

    for field, value in update_data.items():
        setattr(tariff, field, value)

    db.commit()
    db.refresh(tariff)
    return tariff


def deactivate_tariff(db: Session, tariff_id: int) -> None:
    """Soft delete a tariff so historical calculations keep their reference."""
    tariff = get_tariff(db, tariff_id)
    tariff.active = False
    db.commit()


def tariff_rates(tariff: TariffStructure) -> RateSet:
    """Basic charge (R/month) and headline energy rate (c/kWh) of a tariff.

    The energy rate is the first block's rate, else the first flat energy
    charge.
    """
    basic = sum(
        (Decimal(c.charge_amount) for c in tariff.charges if c.charge_type in BASIC_CHARGE_TYPES),
        Decimal("0"),
    )

    energy: Decimal | None = None
    if tariff.blocks:
        first = min(tariff.blocks, key=lambda b: b.block_number)
        energy = Decimal(first.energy_charge_cents)
    else:
        for charge_type in _FLAT_ENERGY_TYPES:
            charge = next((c for c in tariff.charges if c.charge_type == charge_type), None)
            if charge is not None:
                energy = Decimal(charge.charge_amount)
                break

    return RateSet(basic_charge=basic or None, energy_charge=energy)
