"""Reconciliation of metered supply against tenant consumption.

A pass folds each meter's readings over the period into direct totals, rolls
leaf totals up the distribution tree into hierarchical totals, groups meters
by their role and compares supply with what tenant meters recovered.
Optionally every meter with a tariff is also priced.
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload

from app.models.enums import MeterAssignment, MeterType
from app.models.meter import Meter
from app.models.reconciliation import ReconciliationMeterResult, ReconciliationRun
from app.schemas.meter_reading import CorrectedReading
from app.schemas.reconciliation import (
    MeterReconciliationResult,
    ReconciliationRequest,
    ReconciliationResult,
    ReconciliationSummary,
)
from app.services import hierarchy
from app.services.data_validation import get_max_kva, process_readings
from app.services.meter import get_connections_map, get_meters_for_site
from app.services.site import get_site
from app.services.tariff_cost import (
    calculate_meter_cost,
    find_tariff_for_meter,
    get_readings_in_period,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
RECOVERY_RATE_LIMIT = Decimal("1000")

DEFAULT_ASSIGNMENTS = {
    MeterType.COUNCIL_METER: MeterAssignment.GRID_SUPPLY,
    MeterType.BULK_METER: MeterAssignment.BULK,
    MeterType.SOLAR_METER: MeterAssignment.SOLAR_ENERGY,
    MeterType.CHECK_METER: MeterAssignment.CHECK,
    MeterType.TENANT_METER: MeterAssignment.TENANT,
    MeterType.OTHER: MeterAssignment.UNASSIGNED,
}

CATEGORY_NAMES = {
    MeterAssignment.GRID_SUPPLY: "grid_supply",
    MeterAssignment.BULK: "bulk",
    MeterAssignment.SOLAR_ENERGY: "solar",
    MeterAssignment.CHECK: "check",
    MeterAssignment.TENANT: "tenant",
    MeterAssignment.DISTRIBUTION: "distribution",
    MeterAssignment.OTHER: "other",
    MeterAssignment.UNASSIGNED: "unassigned",
}


def resolve_assignments(
    meters: list[Meter],
    explicit: Mapping[int, MeterAssignment],
) -> dict[int, MeterAssignment]:
    """Role per meter: explicit assignment, else by meter type.

    When nothing ends up as grid supply or solar, bulk meters are treated as
    the grid supply.
    """
    assignments = {
        m.id: explicit.get(m.id, DEFAULT_ASSIGNMENTS[MeterType(m.meter_type)]) for m in meters
    }
    supply_roles = {MeterAssignment.GRID_SUPPLY, MeterAssignment.SOLAR_ENERGY}
    if not supply_roles & set(assignments.values()):
        for meter_id, assignment in assignments.items():
            if assignment == MeterAssignment.BULK:
                assignments[meter_id] = MeterAssignment.GRID_SUPPLY
    return assignments


def categorize_meters(results: list[MeterReconciliationResult]) -> dict[str, list[int]]:
    """Group meter ids by category name."""
    categories: dict[str, list[int]] = {name: [] for name in CATEGORY_NAMES.values()}
    for result in results:
        categories[CATEGORY_NAMES[result.assignment]].append(result.meter_id)
    return categories


def calculate_recovery_rate(tenant_total: Decimal, total_supply: Decimal) -> Decimal:
    """Tenant share of supply as a percentage, clamped to +/-1000."""
    if total_supply == 0:
        return ZERO
    rate = tenant_total / total_supply * Decimal("100")
    return max(-RECOVERY_RATE_LIMIT, min(RECOVERY_RATE_LIMIT, rate))


def summarize(
    results: list[MeterReconciliationResult],
    revenue_enabled: bool = False,
) -> ReconciliationSummary:
    """Supply, consumption and (optionally) revenue totals across meters."""

    def kwh(assignment: MeterAssignment) -> list[Decimal]:
        return [r.total_kwh for r in results if r.assignment == assignment]

    def cost(assignment: MeterAssignment) -> Decimal:
        return sum((r.total_cost for r in results if r.assignment == assignment), ZERO)

    grid_splits = [r.kwh_split for r in results if r.assignment == MeterAssignment.GRID_SUPPLY]
    grid_total = sum((positive for positive, _ in grid_splits), ZERO)
    grid_negative = sum((negative for _, negative in grid_splits), ZERO)
    solar_total = sum((abs(v) for v in kwh(MeterAssignment.SOLAR_ENERGY)), ZERO)
    tenant_total = sum(kwh(MeterAssignment.TENANT), ZERO)
    # Grid export nets against solar generation
    other_total = solar_total + grid_negative
    total_supply = grid_total + max(ZERO, other_total)

    summary = ReconciliationSummary(
        grid_supply_total=grid_total,
        bulk_total=sum(kwh(MeterAssignment.BULK), ZERO),
        solar_total=solar_total,
        tenant_total=tenant_total,
        check_total=sum(kwh(MeterAssignment.CHECK), ZERO),
        distribution_total=sum(kwh(MeterAssignment.DISTRIBUTION), ZERO),
        total_supply=total_supply,
        discrepancy=total_supply - tenant_total,
        recovery_rate=calculate_recovery_rate(tenant_total, total_supply),
        grid_negative_total=grid_negative,
        other_total=other_total,
        categories=categorize_meters(results),
    )

    if revenue_enabled:
        summary.grid_supply_cost = cost(MeterAssignment.GRID_SUPPLY)
        summary.solar_cost = cost(MeterAssignment.SOLAR_ENERGY)
        summary.tenant_cost = cost(MeterAssignment.TENANT)
        summary.total_revenue = summary.tenant_cost
        summary.avg_cost_per_kwh = (
            summary.tenant_cost / tenant_total if tenant_total else ZERO
        )
    return summary


def _price_meter(
    db: Session,
    meter: Meter,
    result: MeterReconciliationResult,
    date_from: datetime,
    date_to: datetime,
) -> None:
    tariff = find_tariff_for_meter(db, meter, date_from, date_to)
    if tariff is None:
        return
    result.tariff_structure_id = tariff.id
    result.tariff_name = tariff.name

    direct = calculate_meter_cost(
        db,
        meter.id,
        tariff.id,
        date_from,
        date_to,
        total_kwh=result.direct_total_kwh,
        max_kva=get_max_kva(result.direct_column_max_values),
    )
    result.direct_energy_cost = direct.energy_cost
    result.direct_fixed_charges = direct.fixed_charges
    result.direct_demand_charges = direct.demand_charges
    result.direct_total_cost = direct.total_cost
    errors = [direct.error_message] if direct.has_error else []

    if result.has_children:
        rolled_up = calculate_meter_cost(
            db,
            meter.id,
            tariff.id,
            date_from,
            date_to,
            total_kwh=result.hierarchical_total_kwh,
            max_kva=get_max_kva(result.hierarchical_column_max_values),
        )
        result.hierarchical_energy_cost = rolled_up.energy_cost
        result.hierarchical_fixed_charges = rolled_up.fixed_charges
        result.hierarchical_demand_charges = rolled_up.demand_charges
        result.hierarchical_total_cost = rolled_up.total_cost
        if rolled_up.has_error and rolled_up.error_message not in errors:
            errors.append(rolled_up.error_message)

    if errors:
        result.cost_calculation_error = "; ".join(e for e in errors if e)


def run_reconciliation(
    db: Session,
    site_id: int,
    request: ReconciliationRequest,
) -> ReconciliationResult:
    """Reconcile a site's meters over the requested period without saving."""
    get_site(db, site_id)
    meters = get_meters_for_site(db, site_id)
    if not meters:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No meters found for this site",
        )

    connections_map = get_connections_map(db, site_id)
    assignments = resolve_assignments(meters, request.meter_assignments)
    corrections: list[CorrectedReading] = []
    results: dict[int, MeterReconciliationResult] = {}

    for meter in meters:
        readings = get_readings_in_period(db, meter.id, request.date_from, request.date_to)
        processed = process_readings(
            readings, meter.id, meter.meter_number, request.column_settings, corrections
        )
        results[meter.id] = MeterReconciliationResult(
            meter_id=meter.id,
            meter_number=meter.meter_number,
            meter_type=meter.meter_type,
            name=meter.name,
            assignment=assignments[meter.id],
            direct_total_kwh=processed.total_kwh,
            direct_kwh_positive=processed.total_kwh_positive,
            direct_kwh_negative=processed.total_kwh_negative,
            direct_column_totals=processed.column_totals,
            direct_column_max_values=processed.column_max_values,
            direct_readings_count=processed.readings_count,
        )

    solar_ids = {
        meter_id
        for meter_id, assignment in assignments.items()
        if assignment == MeterAssignment.SOLAR_ENERGY
    }
    direct_totals = {m: r.direct_total_kwh for m, r in results.items()}
    direct_columns = {m: r.direct_column_totals for m, r in results.items()}
    direct_max = {m: r.direct_column_max_values for m, r in results.items()}

    parents = [m for m in meters if connections_map.get(m.id)]
    for meter in hierarchy.sort_parent_meters_by_depth(parents, connections_map):
        result = results[meter.id]
        result.has_children = True
        result.hierarchical_total_kwh = hierarchy.get_leaf_meter_sum(
            meter.id, direct_totals, connections_map, solar_ids
        )
        result.hierarchical_column_totals = hierarchy.get_leaf_column_totals(
            meter.id, direct_columns, connections_map
        )
        result.hierarchical_column_max_values = hierarchy.get_leaf_column_max_values(
            meter.id, direct_max, connections_map
        )

    if request.enable_revenue:
        for meter in meters:
            _price_meter(db, meter, results[meter.id], request.date_from, request.date_to)

    ordered = [results[m.id] for m in meters]
    summary = summarize(ordered, request.enable_revenue)

    logger.info(
        "Reconciled site %s: supply=%s tenant=%s recovery=%s%% (%d corrections)",
        site_id,
        summary.total_supply,
        summary.tenant_total,
        summary.recovery_rate.quantize(Decimal("0.01")),
        len(corrections),
    )
    return ReconciliationResult(
        site_id=site_id,
        date_from=request.date_from,
        date_to=request.date_to,
        revenue_enabled=request.enable_revenue,
        summary=summary,
        meters=ordered,
        corrections=corrections,
    )


def _to_json_numbers(values: Mapping[str, Decimal]) -> dict[str, float]:
    return {key: float(value) for key, value in values.items()}


def save_reconciliation(
    db: Session,
    site_id: int,
    request: ReconciliationRequest,
) -> ReconciliationRun:
    """Run a reconciliation and store the run with its per-meter results."""
    outcome = run_reconciliation(db, site_id, request)
    summary = outcome.summary

    run = ReconciliationRun(
        site_id=site_id,
        run_name=request.run_name,
        date_from=request.date_from,
        date_to=request.date_to,
        notes=request.notes,
        bulk_total=summary.grid_supply_total,
        solar_total=summary.solar_total,
        tenant_total=summary.tenant_total,
        total_supply=summary.total_supply,
        recovery_rate=summary.recovery_rate,
        discrepancy=summary.discrepancy,
        revenue_enabled=outcome.revenue_enabled,
        grid_supply_cost=summary.grid_supply_cost,
        solar_cost=summary.solar_cost,
        tenant_cost=summary.tenant_cost,
        total_revenue=summary.total_revenue,
        avg_cost_per_kwh=summary.avg_cost_per_kwh,
        corrections_count=len(outcome.corrections),
    )
    for result in outcome.meters:
        run.meter_results.append(
            ReconciliationMeterResult(
                meter_id=result.meter_id,
                meter_number=result.meter_number,
                meter_type=result.meter_type.value,
                meter_name=result.name,
                assignment=result.assignment.value,
                tariff_structure_id=result.tariff_structure_id,
                tariff_name=result.tariff_name,
                total_kwh=result.total_kwh,
                readings_count=result.direct_readings_count,
                direct_total_kwh=result.direct_total_kwh,
                direct_readings_count=result.direct_readings_count,
                direct_column_totals=_to_json_numbers(result.direct_column_totals),
                direct_column_max_values=_to_json_numbers(result.direct_column_max_values),
                hierarchical_total=result.hierarchical_total_kwh,
                hierarchical_column_totals=_to_json_numbers(result.hierarchical_column_totals),
                hierarchical_column_max_values=_to_json_numbers(
                    result.hierarchical_column_max_values
                ),
                direct_energy_cost=result.direct_energy_cost,
                direct_fixed_charges=result.direct_fixed_charges,
                direct_demand_charges=result.direct_demand_charges,
                direct_total_cost=result.direct_total_cost,
                hierarchical_energy_cost=result.hierarchical_energy_cost,
                hierarchical_fixed_charges=result.hierarchical_fixed_charges,
                hierarchical_demand_charges=result.hierarchical_demand_charges,
                hierarchical_total_cost=result.hierarchical_total_cost,
                cost_calculation_error=result.cost_calculation_error,
            )
        )

    db.add(run)
    db.commit()
    db.refresh(run)
    logger.info("Saved reconciliation run %s for site %s", run.id, site_id)
    return run


def list_runs(db: Session, site_id: int) -> list[ReconciliationRun]:
    """A site's saved runs, most recent first."""
    get_site(db, site_id)
    return (
        db.query(ReconciliationRun)
        .filter(ReconciliationRun.site_id == site_id)
        .order_by(ReconciliationRun.run_date.desc())
        .all()
    )


def get_run(db: Session, run_id: int) -> ReconciliationRun:
    """Get a saved run with its meter results."""
    run = (
        db.query(ReconciliationRun)
        .options(selectinload(ReconciliationRun.meter_results))
        .filter(ReconciliationRun.id == run_id)
        .first()
    )
    if not run:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Reconciliation run not found",
        )
    return run


def delete_run(db: Session, run_id: int) -> None:
    run = get_run(db, run_id)
    db.delete(run)
    db.commit()