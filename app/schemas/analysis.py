"""Schemas for seasonal, discontinuity and rate comparison analysis."""

from datetime import date
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel

from app.models.enums import Season, VarianceStatus


class ChartMetric(str, Enum):
    """Bill metrics tracked across periods."""

    TOTAL = "total"
    BASIC = "basic"
    KVA_CHARGE = "kva-charge"
    KWH_CHARGE = "kwh-charge"
    KVA_CONSUMPTION = "kva-consumption"
    KWH_CONSUMPTION = "kwh-consumption"


class SeasonalAverages(BaseModel):
    """Mean metric value per season; None when a season has no data."""

    winter_avg: Decimal | None
    summer_avg: Decimal | None


class ChartPoint(BaseModel):
    """One period on a metric series with its season's average."""

    document_id: int
    period_end: date
    season: Season
    value: Decimal
    winter_avg: Decimal | None = None
    summer_avg: Decimal | None = None
    is_discontinuous: bool = False


class ReadingPeriod(BaseModel):
    """Meter register readings quoted on one bill."""

    document_id: int
    period_end: date
    previous_reading: Decimal | None
    current_reading: Decimal | None


class Discontinuity(BaseModel):
    """A bill whose opening reading does not continue the prior bill's closing reading."""

    document_id: int
    previous_document_id: int
    period_end: date
    expected_previous_reading: Decimal
    actual_previous_reading: Decimal
    difference: Decimal


class RateSet(BaseModel):
    """Basic charge (R/month) and energy charge (c/kWh)."""

    basic_charge: Decimal | None = None
    energy_charge: Decimal | None = None


class DocumentRateComparison(BaseModel):
    """Rates quoted on one bill vs the assigned tariff."""

    document_id: int
    period_start: date
    period_end: date
    document_rates: RateSet
    status: VarianceStatus


class RateComparisonResponse(BaseModel):
    """All bills for a meter compared against its tariff; worst status wins."""

    meter_id: int
    tariff_structure_id: int
    overall_status: VarianceStatus
    tariff_rates: RateSet
    documents: list[DocumentRateComparison]


class MeterChartResponse(BaseModel):
    """Seasonal chart series for one meter and metric."""

    meter_id: int
    metric: ChartMetric
    averages: SeasonalAverages
    points: list[ChartPoint]
