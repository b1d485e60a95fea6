"""Corruption detection and correction for interval meter readings."""

import logging
import re
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from app.core.config import settings
from app.models.meter_reading import MeterReading
from app.schemas.meter_reading import ColumnSettings, CorrectedReading, ProcessedReadings

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

_REGISTER_COLUMN = re.compile(r"^p\d+$", re.IGNORECASE)


class CorruptionThresholds(BaseModel):
    """Upper bounds for a single 30-minute interval value."""

    max_kwh: Decimal = Decimal(str(settings.MAX_KWH_PER_30_MIN))
    max_kva: Decimal = Decimal(str(settings.MAX_KVA_PER_30_MIN))
    max_metadata: Decimal = Decimal(str(settings.MAX_METADATA_VALUE))


DEFAULT_THRESHOLDS = CorruptionThresholds()


def is_kva_column(field_name: str) -> bool:
    """kVA and apparent-power ("S") columns are demand, not energy."""
    lower = field_name.lower()
    return "kva" in lower or lower == "s" or lower.startswith("s (")


def _limit_for(field_name: str, thresholds: CorruptionThresholds) -> tuple[str, Decimal]:
    lower = field_name.lower()
    if lower == "kwh_value" or "kwh" in lower or _REGISTER_COLUMN.match(lower):
        return "kWh", thresholds.max_kwh
    if is_kva_column(field_name):
        return "kVA", thresholds.max_kva
    return "metadata", thresholds.max_metadata


def corruption_reason(
    value: Decimal,
    field_name: str,
    thresholds: CorruptionThresholds = DEFAULT_THRESHOLDS,
) -> str | None:
    """Return why a value is corrupt, or None when it is within bounds."""
    kind, limit = _limit_for(field_name, thresholds)
    if abs(value) > limit:
        return f"Value {value:,} exceeds max {kind} threshold {limit:,}"
    return None


def is_value_corrupt(
    value: Decimal,
    field_name: str,
    thresholds: CorruptionThresholds = DEFAULT_THRESHOLDS,
) -> bool:
    """Check a value against the threshold for its field type."""
    return corruption_reason(value, field_name, thresholds) is not None


def validate_and_correct_value(
    value: Decimal,
    field_name: str,
    meter_id: int,
    meter_number: str,
    timestamp: datetime | None,
    prev_value: Decimal | None,
    next_value: Decimal | None,
    corrections: list[CorrectedReading],
    thresholds: CorruptionThresholds = DEFAULT_THRESHOLDS,
) -> Decimal:
    """Return the value, or a replacement when it is corrupt.

    Replacement order: mean of both valid neighbours, the valid previous
    value, the valid next value, then zero. Each replacement is appended to
    ``corrections``.
    """
    if not is_value_corrupt(value, field_name, thresholds):
        return value

    prev_ok = prev_value is not None and not is_value_corrupt(prev_value, field_name, thresholds)
    next_ok = next_value is not None and not is_value_corrupt(next_value, field_name, thresholds)

    if prev_ok and next_ok:
        corrected = (prev_value + next_value) / 2
        reason = f"Interpolated from neighbors ({prev_value:.2f}, {next_value:.2f})"
    elif prev_ok:
        corrected = prev_value
        reason = f"Used previous value ({prev_value:.2f})"
    elif next_ok:
        corrected = next_value
        reason = f"Used next value ({next_value:.2f})"
    else:
        corrected = ZERO
        reason = "Zeroed out (no valid neighbors)"

    logger.warning(
        "Corrupt value on meter %s at %s: %s=%s -> %s (%s)",
        meter_number,
        timestamp,
        field_name,
        value,
        corrected,
        reason,
    )
    corrections.append(
        CorrectedReading(
            meter_id=meter_id,
            meter_number=meter_number,
            timestamp=timestamp,
            field_name=field_name,
            original_value=value,
            corrected_value=corrected,
            reason=reason,
        )
    )
    return corrected


def _field(reading: MeterReading | None, key: str) -> Decimal | None:
    if reading is None:
        return None
    raw = reading.get_imported_fields().get(key)
    return Decimal(str(raw)) if raw is not None else None


class _ColumnStats:
    """Running sum, count and extremes of one imported column."""

    def __init__(self) -> None:
        self.total = ZERO
        self.count = 0
        self.maximum: Decimal | None = None
        self.minimum: Decimal | None = None

    def add(self, value: Decimal) -> None:
        self.total += value
        self.count += 1
        self.maximum = value if self.maximum is None else max(self.maximum, value)
        self.minimum = value if self.minimum is None else min(self.minimum, value)

    def result(self, operation: str) -> Decimal:
        if operation == "average":
            return self.total / self.count if self.count else ZERO
        if operation == "max":
            return self.maximum if self.maximum is not None else ZERO
        if operation == "min":
            return self.minimum if self.minimum is not None else ZERO
        return self.total


def process_readings(
    readings: Sequence[MeterReading],
    meter_id: int,
    meter_number: str,
    column_settings: ColumnSettings,
    corrections: list[CorrectedReading],
    thresholds: CorruptionThresholds = DEFAULT_THRESHOLDS,
) -> ProcessedReadings:
    """Fold a meter's readings into kWh, per-column totals and per-column maxima.

    Readings must be in timestamp order so neighbours are meaningful. Each
    imported column is reduced by its configured operation (``sum``,
    ``average``, ``max`` or ``min``) and then scaled by its factor. kVA
    columns and ``max`` columns land in the maxima; the rest in the totals.

    When any non-kVA column is selected, the energy total is the sum of
    those columns and the positive/negative split is taken per column.
    Otherwise the energy total is the corrected ``kwh_value`` sum.
    """
    total_kwh = ZERO
    stats: dict[str, _ColumnStats] = {}

    for index, reading in enumerate(readings):
        prev_reading = readings[index - 1] if index > 0 else None
        next_reading = readings[index + 1] if index < len(readings) - 1 else None

        total_kwh += validate_and_correct_value(
            Decimal(str(reading.kwh_value or 0)),
            "kwh_value",
            meter_id,
            meter_number,
            reading.reading_timestamp,
            Decimal(str(prev_reading.kwh_value)) if prev_reading else None,
            Decimal(str(next_reading.kwh_value)) if next_reading else None,
            corrections,
            thresholds,
        )

        for key, raw in reading.get_imported_fields().items():
            try:
                value = Decimal(str(raw))
            except ArithmeticError:
                logger.debug("Skipping non-numeric %s=%r on meter %s", key, raw, meter_number)
                continue

            validated = validate_and_correct_value(
                value,
                key,
                meter_id,
                meter_number,
                reading.reading_timestamp,
                _field(prev_reading, key),
                _field(next_reading, key),
                corrections,
                thresholds,
            )
            stats.setdefault(key, _ColumnStats()).add(validated)

    column_totals: dict[str, Decimal] = {}
    column_max_values: dict[str, Decimal] = {}
    for key, column in stats.items():
        operation = column_settings.column_operations.get(key, "sum")
        if is_kva_column(key):
            operation = "max"
        value = column.result(operation) * column_settings.column_factors.get(key, Decimal("1"))
        if operation == "max":
            column_max_values[key] = value
        else:
            column_totals[key] = value

    energy_columns = [
        col
        for col in column_settings.selected_columns
        if not is_kva_column(col) and col in column_totals
    ]
    if energy_columns:
        values = [column_totals[col] for col in energy_columns]
        positive = sum((v for v in values if v > 0), ZERO)
        negative = sum((v for v in values if v < 0), ZERO)
        total_kwh = positive + negative
    else:
        positive = max(total_kwh, ZERO)
        negative = min(total_kwh, ZERO)

    return ProcessedReadings(
        total_kwh=total_kwh,
        total_kwh_positive=positive,
        total_kwh_negative=negative,
        column_totals=column_totals,
        column_max_values=column_max_values,
        readings_count=len(readings),
    )


def get_max_kva(column_max_values: dict[str, Decimal]) -> Decimal:
    """Peak apparent power from the kVA / S column maxima."""
    return max(
        (value for key, value in column_max_values.items() if is_kva_column(key)),
        default=ZERO,
    )
