"""Calculated cost vs billed amount per document, and bill analysis per meter."""

import logging
from collections.abc import Callable
from datetime import date, datetime, time
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.document_tariff_calculation import DocumentTariffCalculation
from app.models.enums import VarianceStatus
from app.models.meter_reading import MeterReading
from app.schemas.analysis import (
    ChartMetric,
    Discontinuity,
    DocumentRateComparison,
    MeterChartResponse,
    RateComparisonResponse,
)
from app.schemas.cost import CostCalculationResult
from app.schemas.document import (
    BulkCalculationOutcome,
    BulkDocumentCalculationRequest,
    DocumentTariffCalculationResponse,
    LineItem,
)
from app.services import analysis
from app.services.document import (
    extraction_data,
    get_document,
    get_document_periods_for_meter,
    latest_extraction,
)
from app.services.meter import get_meter
from app.services.tariff import tariff_rates
from app.services.tariff_cost import (
    calculate_meter_cost,
    find_tariff_for_meter,
    get_readings_in_period,
    sum_readings_kwh,
)

logger = logging.getLogger(__name__)

NO_TARIFF_ERROR = "No tariff assigned to meter for this period"


def period_bounds(period_start: date, period_end: date) -> tuple[datetime, datetime]:
    """Whole-day datetime bounds for a billing period."""
    return datetime.combine(period_start, time.min), datetime.combine(period_end, time.max)


def _line_item_quantity(items: list[LineItem], unit: str) -> Decimal | None:
    for item in items:
        if item.unit == unit and item.supply in (None, "Normal") and item.consumption:
            return item.consumption
    return None


def _max_kva(readings: list[MeterReading]) -> Decimal:
    values = [Decimal(r.kva_value) for r in readings if r.kva_value is not None]
    return max(values, default=Decimal("0"))


def upsert_calculation(
    db: Session,
    document_id: int,
    meter_id: int,
    tariff_structure_id: int | None,
    values: dict,
) -> DocumentTariffCalculation:
    """Insert or update the row keyed by (document, meter, tariff)."""
    query = db.query(DocumentTariffCalculation).filter(
        DocumentTariffCalculation.document_id == document_id,
        DocumentTariffCalculation.meter_id == meter_id,
    )
    if tariff_structure_id is None:
        query = query.filter(DocumentTariffCalculation.tariff_structure_id.is_(None))
    else:
        query = query.filter(DocumentTariffCalculation.tariff_structure_id == tariff_structure_id)

    calculation = query.first()
    if calculation is None:
        calculation = DocumentTariffCalculation(
            document_id=document_id,
            meter_id=meter_id,
            tariff_structure_id=tariff_structure_id,
        )
        db.add(calculation)

    for field, value in values.items():
        setattr(calculation, field, value)

    db.commit()
    db.refresh(calculation)
    return calculation


def calculate_document(db: Session, document_id: int, meter_id: int) -> DocumentTariffCalculation:
    """Price a meter over a document's billing period and compare with the billed amount.

    kWh comes from the meter's readings in the period, falling back to the
    bill's kWh consumption line when there are none. Calculation failures are
    stored on the row rather than raised.
    """
    document = get_document(db, document_id)
    meter = get_meter(db, meter_id)
    extraction = latest_extraction(document)
    if extraction is None or extraction.period_start is None or extraction.period_end is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Document has no extracted billing period",
        )

    line_items = extraction_data(extraction).line_items
    date_from, date_to = period_bounds(extraction.period_start, extraction.period_end)
    readings = get_readings_in_period(db, meter.id, date_from, date_to)

    total_kwh = sum_readings_kwh(readings)
    if not readings:
        total_kwh = _line_item_quantity(line_items, "kWh") or Decimal("0")
    max_kva = _max_kva(readings) or _line_item_quantity(line_items, "kVA") or Decimal("0")

    tariff = find_tariff_for_meter(db, meter, extraction.period_start, extraction.period_end)
    if tariff is None:
        result = CostCalculationResult.failure(NO_TARIFF_ERROR)
        result.total_kwh = total_kwh
    else:
        result = calculate_meter_cost(
            db, meter.id, tariff.id, date_from, date_to, total_kwh=total_kwh, max_kva=max_kva
        )

    billed = extraction.total_amount
    if result.has_error:
        variance_amount, variance_percentage = None, None
        logger.warning(
            "Document %s / meter %s: %s", document.id, meter.meter_number, result.error_message
        )
    else:
        variance_amount, variance_percentage = analysis.calculate_variance(
            result.total_cost, Decimal(billed) if billed is not None else None
        )

    return upsert_calculation(
        db,
        document.id,
        meter.id,
        tariff.id if tariff else None,
        {
            "period_start": extraction.period_start,
            "period_end": extraction.period_end,
            "total_kwh": result.total_kwh,
            "energy_cost": result.energy_cost,
            "fixed_charges": result.fixed_charges,
            "demand_charges": result.demand_charges,
            "total_cost": result.total_cost,
            "avg_cost_per_kwh": result.avg_cost_per_kwh,
            "document_billed_amount": billed,
            "variance_amount": variance_amount,
            "variance_percentage": variance_percentage,
            "tariff_name": result.tariff_name if tariff else None,
            "calculation_error": result.error_message if result.has_error else None,
        },
    )


def to_calculation_response(
    calculation: DocumentTariffCalculation,
) -> DocumentTariffCalculationResponse:
    response = DocumentTariffCalculationResponse.model_validate(calculation)
    response.variance_status = analysis.classify_variance(calculation.variance_percentage)
    return response


def bulk_calculate(
    db: Session,
    request: BulkDocumentCalculationRequest,
    should_cancel: Callable[[], bool] | None = None,
) -> BulkCalculationOutcome:
    """Calculate documents one at a time against one meter.

    ``should_cancel`` is polled before each document; completed calculations
    are kept when the run is cancelled. ``processed`` counts stored rows;
    ``failed`` counts documents that were rejected or stored an error.
    """
    get_meter(db, request.meter_id)

    calculations: list[DocumentTariffCalculationResponse] = []
    errors: list[str] = []
    cancelled = False

    for document_id in request.document_ids:
        if should_cancel is not None and should_cancel():
            cancelled = True
            logger.info("Bulk calculation cancelled after %d documents", len(calculations))
            break
        try:
            calculation = calculate_document(db, document_id, request.meter_id)
        except HTTPException as exc:
            errors.append(f"Document {document_id}: {exc.detail}")
            continue
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Calculation failed for document %s", document_id)
            errors.append(f"Document {document_id}: {exc}")
            continue

        calculations.append(to_calculation_response(calculation))
        if calculation.calculation_error:
            errors.append(f"Document {document_id}: {calculation.calculation_error}")

    failed = len(errors)
    logger.info(
        "Bulk calculation for meter %s: %d processed, %d failed",
        request.meter_id,
        len(calculations),
        failed,
    )
    return BulkCalculationOutcome(
        processed=len(calculations),
        failed=failed,
        cancelled=cancelled,
        calculations=calculations,
        errors=errors,
    )


def list_calculations(
    db: Session,
    meter_id: int | None = None,
    document_id: int | None = None,
) -> list[DocumentTariffCalculation]:
    """Stored calculations, newest period first."""
    query = db.query(DocumentTariffCalculation)
    if meter_id is not None:
        query = query.filter(DocumentTariffCalculation.meter_id == meter_id)
    if document_id is not None:
        query = query.filter(DocumentTariffCalculation.document_id == document_id)
    return query.order_by(DocumentTariffCalculation.period_end.desc()).all()


def delete_calculation(db: Session, calculation_id: int) -> None:
    calculation = (
        db.query(DocumentTariffCalculation)
        .filter(DocumentTariffCalculation.id == calculation_id)
        .first()
    )
    if not calculation:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Calculation not found",
        )
    db.delete(calculation)
    db.commit()


def get_meter_chart(db: Session, meter_id: int, metric: ChartMetric) -> MeterChartResponse:
    """Seasonal series of a bill metric across a meter's documents."""
    meter = get_meter(db, meter_id)
    periods = get_document_periods_for_meter(db, meter)
    averages, points = analysis.prepare_chart_series(periods, metric)
    return MeterChartResponse(meter_id=meter.id, metric=metric, averages=averages, points=points)


def get_meter_discontinuities(db: Session, meter_id: int) -> list[Discontinuity]:
    """Bills for a meter whose opening reading breaks from the previous bill."""
    meter = get_meter(db, meter_id)
    periods = get_document_periods_for_meter(db, meter)
    return analysis.detect_discontinuities(analysis.reading_periods_from_documents(periods))


def compare_meter_rates(db: Session, meter_id: int) -> RateComparisonResponse:
    """Compare the rates quoted on each of a meter's bills with its tariff."""
    meter = get_meter(db, meter_id)
    periods = get_document_periods_for_meter(db, meter)

    tariff = None
    if periods:
        latest = periods[0]
        tariff = find_tariff_for_meter(db, meter, latest.period_start, latest.period_end)
    elif meter.tariff_structure_id is not None:
        tariff = find_tariff_for_meter(db, meter, date.today(), date.today())
    if tariff is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=NO_TARIFF_ERROR,
        )

    expected = tariff_rates(tariff)
    comparisons: list[DocumentRateComparison] = []
    for period in periods:
        quoted = analysis.extract_rates_from_line_items(period.line_items)
        comparisons.append(
            DocumentRateComparison(
                document_id=period.document_id,
                period_start=period.period_start,
                period_end=period.period_end,
                document_rates=quoted,
                status=analysis.compare_rates(quoted, expected),
            )
        )

    return RateComparisonResponse(
        meter_id=meter.id,
        tariff_structure_id=tariff.id,
        overall_status=(
            analysis.worst_status(c.status for c in comparisons)
            if comparisons
            else VarianceStatus.UNKNOWN
        ),
        tariff_rates=expected,
        documents=comparisons,
    )

