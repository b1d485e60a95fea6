"""MeterReading routes for interval data."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.meter_reading import (
    BulkReadingCreate,
    MeterReadingHistory,
    ReadingCreate,
    ReadingDateRange,
    ReadingResponse,
)
from app.services import meter_reading as reading_service

router = APIRouter(prefix="/readings", tags=["meter-readings"])


@router.post(
    "/",
    response_model=ReadingResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_reading(
    reading_data: ReadingCreate,
    db: Session = Depends(get_db),
):
    """Record a single interval reading."""
    return reading_service.create_reading(db, reading_data)


@router.post("/bulk", status_code=status.HTTP_201_CREATED)
def create_bulk_readings(
    bulk_data: BulkReadingCreate,
    db: Session = Depends(get_db),
) -> dict[str, int]:
    """Upload a batch of interval readings for one meter."""
    return {"created": reading_service.create_bulk_readings(db, bulk_data)}


@router.get("/meter/{meter_id}/history", response_model=MeterReadingHistory)
def get_meter_history(
    meter_id: int,
    date_from: datetime | None = Query(None, description="Start of period"),
    date_to: datetime | None = Query(None, description="End of period"),
    limit: int = Query(100, ge=1, le=10000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Paginated reading history for a meter, newest first."""
    return reading_service.get_meter_history(db, meter_id, date_from, date_to, limit, offset)


@router.get("/meter/{meter_id}/range", response_model=ReadingDateRange)
def get_reading_date_range(
    meter_id: int,
    db: Session = Depends(get_db),
):
    """Earliest and latest reading for a meter."""
    return reading_service.get_reading_date_range(db, meter_id)


@router.delete("/meter/{meter_id}")
def delete_readings(
    meter_id: int,
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, int]:
    """Delete a meter's readings, optionally within a period."""
    return {"deleted": reading_service.delete_readings(db, meter_id, date_from, date_to)}
