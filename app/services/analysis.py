"""Seasonal, variance, discontinuity and rate derivations over billed periods."""

from collections.abc import Iterable, Sequence
from decimal import Decimal

from app.core.config import settings
from app.models.enums import Season, VarianceStatus
from app.schemas.analysis import (
    ChartMetric,
    ChartPoint,
    Discontinuity,
    RateSet,
    ReadingPeriod,
    SeasonalAverages,
)
from app.schemas.document import DocumentPeriod, LineItem

RATE_TOLERANCE = Decimal("0.01")

_STATUS_SEVERITY = {
    VarianceStatus.MATCH: 0,
    VarianceStatus.UNKNOWN: 1,
    VarianceStatus.PARTIAL: 2,
    VarianceStatus.MISMATCH: 3,
}


def is_winter_month(month: int) -> bool:
    """June to August by default (southern hemisphere)."""
    return month in settings.WINTER_MONTHS


def classify_season(month: int) -> Season:
    """Classify a calendar month (1-12) as winter or summer."""
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    return Season.WINTER if is_winter_month(month) else Season.SUMMER


def calculate_variance(
    calculated_total: Decimal,
    billed_amount: Decimal | None,
) -> tuple[Decimal | None, Decimal | None]:
    """Return (variance_amount, variance_percentage) relative to the billed amount.

    variance = calculated - billed; the percentage is None when nothing was
    billed, since it would be undefined.
    """
    if billed_amount is None:
        return None, None
    variance = calculated_total - billed_amount
    if billed_amount == 0:
        return variance, None
    return variance, (variance / billed_amount * Decimal("100")).quantize(Decimal("0.0001"))


def classify_variance(variance_percentage: Decimal | float | None) -> VarianceStatus:
    """Band a variance percentage: <=5 match, <=10 partial, otherwise mismatch."""
    if variance_percentage is None:
        return VarianceStatus.UNKNOWN
    magnitude = abs(Decimal(str(variance_percentage)))
    if magnitude <= Decimal(str(settings.VARIANCE_MATCH_PERCENT)):
        return VarianceStatus.MATCH
    if magnitude <= Decimal(str(settings.VARIANCE_PARTIAL_PERCENT)):
        return VarianceStatus.PARTIAL
    return VarianceStatus.MISMATCH


def _find_item(items: Iterable[LineItem], unit: str, supply: str | None = None) -> LineItem | None:
    for item in items:
        if item.unit == unit and (supply is None or item.supply == supply):
            return item
    return None


def extract_metric_value(period: DocumentPeriod, metric: ChartMetric) -> Decimal | None:
    """Pull one metric out of a bill's line items.

    Zero is treated as missing so empty lines do not drag seasonal averages down.
    """
    items = period.line_items

    if metric == ChartMetric.TOTAL:
        normal_total = sum(
            (item.amount for item in items if item.supply != "Emergency"), Decimal("0")
        )
        return normal_total or period.total_amount or None

    value: Decimal | None = None
    if metric == ChartMetric.BASIC:
        item = _find_item(items, "Monthly")
        value = item.amount if item else None
    elif metric == ChartMetric.KVA_CHARGE:
        item = _find_item(items, "kVA")
        value = item.amount if item else None
    elif metric == ChartMetric.KVA_CONSUMPTION:
        item = _find_item(items, "kVA")
        value = item.consumption if item else None
    elif metric == ChartMetric.KWH_CHARGE:
        item = _find_item(items, "kWh", "Normal")
        value = item.amount if item else None
    elif metric == ChartMetric.KWH_CONSUMPTION:
        item = _find_item(items, "kWh", "Normal")
        value = item.consumption if item else None

    return value or None


def _mean(values: list[Decimal]) -> Decimal | None:
    if not values:
        return None
    return sum(values, Decimal("0")) / len(values)


def calculate_seasonal_averages(
    periods: Sequence[DocumentPeriod],
    metric: ChartMetric,
) -> SeasonalAverages:
    """Average a metric per season, keyed on each bill's period start month."""
    winter: list[Decimal] = []
    summer: list[Decimal] = []
    for period in periods:
        value = extract_metric_value(period, metric)
        if value is None or value <= 0:
            continue
        if is_winter_month(period.period_start.month):
            winter.append(value)
        else:
            summer.append(value)
    return SeasonalAverages(winter_avg=_mean(winter), summer_avg=_mean(summer))


def prepare_chart_series(
    periods: Sequence[DocumentPeriod],
    metric: ChartMetric,
) -> tuple[SeasonalAverages, list[ChartPoint]]:
    """Build a metric series sorted by period end, each point carrying its season's average."""
    averages = calculate_seasonal_averages(periods, metric)
    flagged = {d.document_id for d in detect_discontinuities(reading_periods_from_documents(periods))}

    points: list[ChartPoint] = []
    for period in sorted(periods, key=lambda p: p.period_end):
        season = classify_season(period.period_end.month)
        points.append(
            ChartPoint(
                document_id=period.document_id,
                period_end=period.period_end,
                season=season,
                value=extract_metric_value(period, metric) or Decimal("0"),
                winter_avg=averages.winter_avg if season == Season.WINTER else None,
                summer_avg=averages.summer_avg if season == Season.SUMMER else None,
                is_discontinuous=period.document_id in flagged,
            )
        )
    return averages, points


def reading_periods_from_documents(periods: Sequence[DocumentPeriod]) -> list[ReadingPeriod]:
    """Take the register readings quoted on each bill.

    The normal-supply kWh line is preferred; otherwise the first line that
    carries any register reading is used.
    """
    result: list[ReadingPeriod] = []
    for period in periods:
        with_readings = [
            item
            for item in period.line_items
            if item.previous_reading is not None or item.current_reading is not None
        ]
        if not with_readings:
            continue
        chosen = next(
            (i for i in with_readings if i.unit == "kWh" and i.supply in (None, "Normal")),
            with_readings[0],
        )
        result.append(
            ReadingPeriod(
                document_id=period.document_id,
                period_end=period.period_end,
                previous_reading=chosen.previous_reading,
                current_reading=chosen.current_reading,
            )
        )
    return result


def detect_discontinuities(periods: Sequence[ReadingPeriod]) -> list[Discontinuity]:
    """Flag bills whose previous reading does not equal the prior bill's current reading.

    Periods are ordered by period end; difference = previous(B) - current(A).
    Pairs with either reading missing are skipped.
    """
    ordered = sorted(periods, key=lambda p: p.period_end)
    found: list[Discontinuity] = []
    for earlier, later in zip(ordered, ordered[1:]):
        if earlier.current_reading is None or later.previous_reading is None:
            continue
        if earlier.current_reading == later.previous_reading:
            continue
        found.append(
            Discontinuity(
                document_id=later.document_id,
                previous_document_id=earlier.document_id,
                period_end=later.period_end,
                expected_previous_reading=earlier.current_reading,
                actual_previous_reading=later.previous_reading,
                difference=later.previous_reading - earlier.current_reading,
            )
        )
    return found


def extract_rates_from_line_items(items: Iterable[LineItem]) -> RateSet:
    """Read the basic charge (R/month) and conventional energy rate (R/kWh -> c/kWh)."""
    rates = RateSet()
    for item in items:
        desc = item.description.lower()
        if "basic" in desc and "kwh" not in desc and "kva" not in desc:
            rates.basic_charge = item.rate or item.amount
        if (
            ("kwh" in desc or "kva" in desc)
            and "basic" not in desc
            and "generator" not in desc
            and ("conv" in desc or "electrical" in desc or "electricity" in desc)
        ):
            rates.energy_charge = item.rate * 100 if item.rate else None
    return rates


def _within_tolerance(quoted: Decimal, expected: Decimal) -> bool:
    return abs(quoted - expected) <= expected * RATE_TOLERANCE


def compare_rates(document_rates: RateSet, tariff_rates: RateSet) -> VarianceStatus:
    """Compare quoted rates to tariff rates within 1%.

    All compared rates within tolerance is a match, none is a mismatch, some
    is partial. Nothing comparable is unknown.
    """
    if not document_rates.basic_charge and not document_rates.energy_charge:
        return VarianceStatus.UNKNOWN
    if not tariff_rates.basic_charge and not tariff_rates.energy_charge:
        return VarianceStatus.UNKNOWN

    compared = 0
    matched = 0
    for quoted, expected in (
        (document_rates.basic_charge, tariff_rates.basic_charge),
        (document_rates.energy_charge, tariff_rates.energy_charge),
    ):
        if quoted and expected:
            compared += 1
            if _within_tolerance(quoted, expected):
                matched += 1

    if compared == 0:
        return VarianceStatus.UNKNOWN
    if matched == compared:
        return VarianceStatus.MATCH
    if matched == 0:
        return VarianceStatus.MISMATCH
    return VarianceStatus.PARTIAL


def worst_status(statuses: Iterable[VarianceStatus]) -> VarianceStatus:
    """Most severe status of a set; an empty set is a match."""
    worst = VarianceStatus.MATCH
    for status in statuses:
        if _STATUS_SEVERITY[status] > _STATUS_SEVERITY[worst]:
            worst = status
    return worst
