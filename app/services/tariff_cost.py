"""Tariff cost calculation for a meter over a billing period."""

import calendar
import logging
from collections.abc import Sequence
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.models.enums import ChargeType, DayType, TouSeason
from app.models.meter import Meter
from app.models.meter_reading import MeterReading
from app.models.site import Site
from app.models.tariff import TariffBlock, TariffCharge, TariffStructure, TariffTimePeriod
from app.schemas.cost import CostCalculationResult
from app.services.analysis import is_winter_month

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENTS = Decimal("100")

NO_PRICING_ERROR = (
    "Tariff has no pricing structure defined (no blocks, TOU periods, or seasonal charges)"
)
NO_TOU_MATCH_ERROR = "No time-of-use period matches the readings"

BASIC_CHARGE_TYPES = (ChargeType.BASIC_MONTHLY, ChargeType.BASIC_CHARGE)


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def _charge(charges: Sequence[TariffCharge], charge_type: ChargeType) -> TariffCharge | None:
    return next((c for c in charges if c.charge_type == charge_type), None)


def calculate_block_energy_cost(blocks: Sequence[TariffBlock], total_kwh: Decimal) -> Decimal:
    """Fill blocks in order; each block holds ``kwh_to - kwh_from`` kWh at its rate."""
    cost = ZERO
    remaining = total_kwh
    for block in sorted(blocks, key=lambda b: b.block_number):
        if remaining <= 0:
            break
        if block.kwh_to is None:
            in_block = remaining
        else:
            in_block = min(remaining, Decimal(block.kwh_to) - Decimal(block.kwh_from))
        cost += in_block * Decimal(block.energy_charge_cents) / CENTS
        remaining -= in_block
    return cost


def _season_matches(period: TariffTimePeriod, month: int) -> bool:
    if period.season == TouSeason.ALL_YEAR:
        return True
    expected = TouSeason.HIGH_DEMAND if is_winter_month(month) else TouSeason.LOW_DEMAND
    return period.season == expected


def _day_matches(period: TariffTimePeriod, weekday: int) -> bool:
    day_type = period.day_type
    if day_type == DayType.ALL_DAYS:
        return True
    if day_type == DayType.WEEKDAY:
        return weekday < 5
    if day_type == DayType.SATURDAY:
        return weekday == 5
    if day_type == DayType.SUNDAY:
        return weekday == 6
    if day_type == DayType.WEEKEND:
        return weekday >= 5
    return False


def match_time_period(
    periods: Sequence[TariffTimePeriod],
    timestamp: datetime,
) -> TariffTimePeriod | None:
    """Find the TOU period covering a reading timestamp."""
    for period in periods:
        if (
            _season_matches(period, timestamp.month)
            and _day_matches(period, timestamp.weekday())
            and period.start_hour <= timestamp.hour < period.end_hour
        ):
            return period
    return None


def calculate_tou_energy_cost(
    periods: Sequence[TariffTimePeriod],
    readings: Sequence[MeterReading],
) -> tuple[Decimal, Decimal, int]:
    """Price each reading at its TOU rate.

    Returns (energy_cost, total_kwh, unmatched_count). Every reading counts
    toward total kWh; only matched readings are priced.
    """
    cost = ZERO
    total_kwh = ZERO
    unmatched = 0
    for reading in readings:
        kwh = Decimal(reading.kwh_value or 0)
        total_kwh += kwh
        period = match_time_period(periods, reading.reading_timestamp)
        if period is None:
            unmatched += 1
            continue
        cost += kwh * Decimal(period.energy_charge_cents) / CENTS
    return cost, total_kwh, unmatched


def select_seasonal_energy_charge(
    charges: Sequence[TariffCharge],
    date_from: date,
    date_to: date,
) -> TariffCharge | None:
    """Pick the flat energy charge for a period.

    A both-seasons charge always wins. The high-season rate applies only when
    the whole period sits in winter months.
    """
    both = _charge(charges, ChargeType.ENERGY_BOTH_SEASONS)
    if both is not None:
        return both

    high = _charge(charges, ChargeType.ENERGY_HIGH_SEASON)
    low = _charge(charges, ChargeType.ENERGY_LOW_SEASON)
    if high is not None and is_winter_month(date_from.month) and is_winter_month(date_to.month):
        return high
    return low or high


def month_fractions(date_from: date, date_to: date) -> list[Decimal]:
    """Fraction of each calendar month covered by the closed range [date_from, date_to]."""
    fractions: list[Decimal] = []
    current = date_from
    while current <= date_to:
        days_in_month = calendar.monthrange(current.year, current.month)[1]
        month_end = current.replace(day=days_in_month)
        segment_end = min(month_end, date_to)
        covered = (segment_end - current).days + 1
        fractions.append(Decimal(covered) / Decimal(days_in_month))
        current = month_end + timedelta(days=1)
    return fractions


def calculate_prorated_basic_charges(
    charges: Sequence[TariffCharge],
    date_from: date,
    date_to: date,
) -> Decimal:
    """Monthly basic charges scaled by the share of each month in the period."""
    monthly = sum(
        (Decimal(c.charge_amount) for c in charges if c.charge_type in BASIC_CHARGE_TYPES),
        ZERO,
    )
    if monthly == 0:
        return ZERO
    return monthly * sum(month_fractions(date_from, date_to), ZERO)


def _demand_charge(charges: Sequence[TariffCharge], high_season: bool) -> TariffCharge | None:
    seasonal = _charge(
        charges,
        ChargeType.DEMAND_HIGH_SEASON if high_season else ChargeType.DEMAND_LOW_SEASON,
    )
    if seasonal is not None:
        return seasonal

    generic = [c for c in charges if c.charge_type == ChargeType.DEMAND_CHARGE]
    keyword = "high" if high_season else "low"
    for charge in generic:
        if keyword in (charge.description or "").lower():
            return charge
    return generic[0] if generic else None


def calculate_demand_charges(
    charges: Sequence[TariffCharge],
    max_kva: Decimal,
    date_from: date,
    date_to: date,
) -> Decimal:
    """Demand charge for the peak kVA; high season if either end of the period is in winter."""
    if max_kva <= 0:
        return ZERO
    high_season = is_winter_month(date_from.month) or is_winter_month(date_to.month)
    charge = _demand_charge(charges, high_season)
    if charge is None:
        return ZERO
    return Decimal(charge.charge_amount) * max_kva


def calculate_tariff_cost(
    tariff: TariffStructure,
    total_kwh: Decimal,
    date_from: date | datetime,
    date_to: date | datetime,
    readings: Sequence[MeterReading] | None = None,
    max_kva: Decimal = ZERO,
) -> CostCalculationResult:
    """Price consumption under a loaded tariff structure.

    ``readings`` are only needed for time-of-use tariffs. Pricing falls
    through TOU periods, then blocks, then flat energy charges.
    """
    start = _as_date(date_from)
    end = _as_date(date_to)

    if tariff.uses_tou and tariff.time_periods:
        energy_cost, total_kwh, unmatched = calculate_tou_energy_cost(
            tariff.time_periods, readings or []
        )
        if readings and unmatched == len(readings):
            return CostCalculationResult.failure(NO_TOU_MATCH_ERROR, tariff.name)
        if unmatched:
            logger.warning(
                "%d of %d readings matched no TOU period on tariff %s",
                unmatched,
                len(readings or []),
                tariff.name,
            )
    elif tariff.blocks:
        energy_cost = calculate_block_energy_cost(tariff.blocks, total_kwh)
    else:
        # Basic or demand charges alone do not price energy
        charge = select_seasonal_energy_charge(tariff.charges, start, end)
        if charge is None:
            return CostCalculationResult.failure(NO_PRICING_ERROR, tariff.name)
        energy_cost = total_kwh * Decimal(charge.charge_amount) / CENTS

    fixed_charges = calculate_prorated_basic_charges(tariff.charges, start, end)
    demand_charges = calculate_demand_charges(tariff.charges, max_kva, start, end)
    total_cost = energy_cost + fixed_charges + demand_charges

    return CostCalculationResult(
        energy_cost=energy_cost,
        fixed_charges=fixed_charges,
        demand_charges=demand_charges,
        total_cost=total_cost,
        avg_cost_per_kwh=total_cost / total_kwh if total_kwh else ZERO,
        total_kwh=total_kwh,
        tariff_name=tariff.name,
    )


def get_readings_in_period(
    db: Session, meter_id: int, date_from: datetime, date_to: datetime
) -> list[MeterReading]:
    """A meter's readings in the closed period, oldest first."""
    return (
        db.query(MeterReading)
        .filter(
            MeterReading.meter_id == meter_id,
            MeterReading.reading_timestamp >= date_from,
            MeterReading.reading_timestamp <= date_to,
        )
        .order_by(MeterReading.reading_timestamp)
        .all()
    )


def sum_readings_kwh(readings: Sequence[MeterReading]) -> Decimal:
    return sum((Decimal(r.kwh_value or 0) for r in readings), ZERO)


def load_tariff(db: Session, tariff_id: int) -> TariffStructure | None:
    """Load a tariff with its blocks, charges and time periods."""
    return (
        db.query(TariffStructure)
        .options(
            selectinload(TariffStructure.blocks),
            selectinload(TariffStructure.charges),
            selectinload(TariffStructure.time_periods),
        )
        .filter(TariffStructure.id == tariff_id)
        .first()
    )


def calculate_meter_cost(
    db: Session,
    meter_id: int,
    tariff_id: int,
    date_from: datetime,
    date_to: datetime,
    total_kwh: Decimal | None = None,
    max_kva: Decimal = ZERO,
) -> CostCalculationResult:
    """Calculate what a meter should cost under a tariff for a period.

    Never raises for calculation problems: a missing tariff, a tariff with
    nothing to price by, or a database/arithmetic failure all come back as a
    result with ``has_error`` set.
    """
    try:
        tariff = load_tariff(db, tariff_id)
        if tariff is None:
            return CostCalculationResult.failure("Tariff structure not found")

        readings: list[MeterReading] | None = None
        if (tariff.uses_tou and tariff.time_periods) or total_kwh is None:
            readings = get_readings_in_period(db, meter_id, date_from, date_to)
        if total_kwh is None:
            total_kwh = sum_readings_kwh(readings or [])

        return calculate_tariff_cost(tariff, total_kwh, date_from, date_to, readings, max_kva)
    except (SQLAlchemyError, ArithmeticError, ValueError) as exc:
        logger.exception("Cost calculation failed for meter %s, tariff %s", meter_id, tariff_id)
        return CostCalculationResult.failure(str(exc))


def find_tariff_for_meter(
    db: Session,
    meter: Meter,
    date_from: date | datetime,
    date_to: date | datetime,
) -> TariffStructure | None:
    """Resolve the tariff to price a meter with for a period.

    An explicitly linked structure wins. Otherwise the meter's tariff name is
    looked up among the site supply authority's active tariffs whose
    effective window overlaps the period, newest first.
    """
    if meter.tariff_structure_id is not None:
        return db.get(TariffStructure, meter.tariff_structure_id)
    if not meter.assigned_tariff_name:
        return None

    site = db.get(Site, meter.site_id)
    if site is None or site.supply_authority_id is None:
        return None

    start = _as_date(date_from)
    end = _as_date(date_to)
    return (
        db.query(TariffStructure)
        .filter(
            TariffStructure.supply_authority_id == site.supply_authority_id,
            TariffStructure.name == meter.assigned_tariff_name,
            TariffStructure.active.is_(True),
            TariffStructure.effective_from <= end,
            or_(TariffStructure.effective_to.is_(None), TariffStructure.effective_to >= start),
        )
        .order_by(TariffStructure.effective_from.desc())
        .first()
    )
