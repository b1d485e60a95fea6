"""MeterReading service for interval data ingestion and history."""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.meter_reading import MeterReading
from app.schemas.meter_reading import (
    BulkReadingCreate,
    IntervalReading,
    MeterReadingHistory,
    ReadingCreate,
    ReadingDateRange,
    ReadingResponse,
)
from app.services.meter import get_meter

logger = logging.getLogger(__name__)


def _metadata(imported_fields: dict[str, Decimal] | None) -> dict | None:
    # JSON columns hold plain floats
    if not imported_fields:
        return None
    return {"imported_fields": {k: float(v) for k, v in imported_fields.items()}}


def _build_reading(meter_id: int, data: IntervalReading) -> MeterReading:
    return MeterReading(
        meter_id=meter_id,
        reading_timestamp=data.reading_timestamp,
        kwh_value=data.kwh_value,
        kva_value=data.kva_value,
        reading_metadata=_metadata(data.imported_fields),
    )


def create_reading(db: Session, reading_data: ReadingCreate) -> MeterReading:
    """Create a single meter reading."""
    get_meter(db, reading_data.meter_id)

    db_reading = _build_reading(reading_data.meter_id, reading_data)
    db.add(db_reading)
    db.commit()
    db.refresh(db_reading)
    return db_reading


def create_bulk_readings(db: Session, bulk_data: BulkReadingCreate) -> int:
    """Store a batch of interval readings for one meter in a single transaction.

    Returns the number of readings stored.
    """
    meter = get_meter(db, bulk_data.meter_id)

    db.add_all(_build_reading(meter.id, r) for r in bulk_data.readings)
    db.commit()

    logger.info("Stored %d readings for meter %s", len(bulk_data.readings), meter.meter_number)
    return len(bulk_data.readings)


def get_meter_history(
    db: Session,
    meter_id: int,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> MeterReadingHistory:
    """Get paginated reading history for a meter, newest first."""
    get_meter(db, meter_id)

    query = db.query(MeterReading).filter(MeterReading.meter_id == meter_id)
    if date_from is not None:
        query = query.filter(MeterReading.reading_timestamp >= date_from)
    if date_to is not None:
        query = query.filter(MeterReading.reading_timestamp <= date_to)

    total = query.count()
    readings = (
        query.order_by(MeterReading.reading_timestamp.desc()).offset(offset).limit(limit).all()
    )

    return MeterReadingHistory(
        meter_id=meter_id,
        readings=[ReadingResponse.model_validate(r) for r in readings],
        total=total,
        limit=limit,
        offset=offset,
    )


def get_reading_date_range(db: Session, meter_id: int) -> ReadingDateRange:
    """Earliest and latest reading timestamps for a meter."""
    get_meter(db, meter_id)

    earliest, latest, count = (
        db.query(
            func.min(MeterReading.reading_timestamp),
            func.max(MeterReading.reading_timestamp),
            func.count(MeterReading.id),
        )
        .filter(MeterReading.meter_id == meter_id)
        .one()
    )
    return ReadingDateRange(
        meter_id=meter_id, earliest=earliest, latest=latest, readings_count=count
    )


def delete_readings(
    db: Session,
    meter_id: int,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> int:
    """Delete a meter's readings, optionally limited to a period."""
    get_meter(db, meter_id)

    query = db.query(MeterReading).filter(MeterReading.meter_id == meter_id)
    if date_from is not None:
        query = query.filter(MeterReading.reading_timestamp >= date_from)
    if date_to is not None:
        query = query.filter(MeterReading.reading_timestamp <= date_to)

    deleted = query.delete(synchronize_session=False)
    db.commit()
    logger.info("Deleted %d readings for meter %s", deleted, meter_id)
    return deleted
