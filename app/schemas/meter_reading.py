"""MeterReading schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, field_validator


class IntervalReading(BaseModel):
    """One 30-minute interval as uploaded."""

    reading_timestamp: datetime
    kwh_value: Decimal
    kva_value: Decimal | None = None
    imported_fields: dict[str, Decimal] | None = None


class ReadingCreate(IntervalReading):
    """Schema for recording a single reading against a meter."""

    meter_id: int


class BulkReadingCreate(BaseModel):
    """Schema for ingesting a batch of readings for one meter."""

    meter_id: int
    readings: list[IntervalReading]

    @field_validator("readings")
    @classmethod
    def validate_not_empty(cls, v: list[IntervalReading]) -> list[IntervalReading]:
        """Reject empty uploads."""
        if not v:
            raise ValueError("At least one reading is required")
        return v


class ReadingResponse(BaseModel):
    """Schema for meter reading response."""

    id: int
    meter_id: int
    reading_timestamp: datetime
    kwh_value: Decimal
    kva_value: Decimal | None
    reading_metadata: dict[str, Any] | None
    created_at: datetime

    model_config = {"from_attributes": True}


class MeterReadingHistory(BaseModel):
    """Schema for paginated meter reading history."""

    meter_id: int
    readings: list[ReadingResponse]
    total: int
    limit: int
    offset: int


class ReadingDateRange(BaseModel):
    """Earliest and latest reading for a meter."""

    meter_id: int
    earliest: datetime | None
    latest: datetime | None
    readings_count: int


class CorrectedReading(BaseModel):
    """A reading value replaced because it exceeded the corruption thresholds."""

    meter_id: int
    meter_number: str
    timestamp: datetime | None
    field_name: str
    original_value: Decimal
    corrected_value: Decimal
    reason: str


class ColumnSettings(BaseModel):
    """Which imported columns count towards energy, and how they aggregate."""

    selected_columns: list[str] = []
    column_operations: dict[str, str] = {}  # sum / average / max / min
    column_factors: dict[str, Decimal] = {}


class ProcessedReadings(BaseModel):
    """Folded totals for one meter's readings over a period."""

    total_kwh: Decimal
    total_kwh_positive: Decimal = Decimal("0")
    total_kwh_negative: Decimal = Decimal("0")
    column_totals: dict[str, Decimal]
    column_max_values: dict[str, Decimal]
    readings_count: int
