"""Meter, connection and tariff assignment routes."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.meter import (
    BatchOutcome,
    HierarchyLayout,
    HierarchyNode,
    MeterConnectionCreate,
    MeterConnectionResponse,
    MeterCreate,
    MeterResponse,
    MeterUpdate,
    TariffAssignmentBatch,
)
from app.services import meter as meter_service

router = APIRouter(tags=["meters"])


@router.post("/meters", response_model=MeterResponse, status_code=status.HTTP_201_CREATED)
def create_meter(
    meter_data: MeterCreate,
    db: Session = Depends(get_db),
):
    """Create a meter on a site."""
    return meter_service.create_meter(db, meter_data)


@router.get("/sites/{site_id}/meters", response_model=list[MeterResponse])
def list_meters(
    site_id: int,
    active_only: bool = True,
    db: Session = Depends(get_db),
):
    """List a site's meters."""
    return meter_service.get_meters_for_site(db, site_id, active_only)


@router.get("/meters/{meter_id}", response_model=MeterResponse)
def get_meter(
    meter_id: int,
    db: Session = Depends(get_db),
):
    """Get a meter by ID."""
    return meter_service.get_meter(db, meter_id)


@router.patch("/meters/{meter_id}", response_model=MeterResponse)
def update_meter(
    meter_id: int,
    meter_data: MeterUpdate,
    db: Session = Depends(get_db),
):
    """Update a meter."""
    return meter_service.update_meter(db, meter_id, meter_data)


@router.delete("/meters/{meter_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_meter(
    meter_id: int,
    db: Session = Depends(get_db),
) -> None:
    """Deactivate a meter."""
    meter_service.deactivate_meter(db, meter_id)


@router.post(
    "/meter-connections",
    response_model=MeterConnectionResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_connection(
    data: MeterConnectionCreate,
    db: Session = Depends(get_db),
):
    """Link a child meter under a parent meter."""
    return meter_service.create_connection(db, data)


@router.delete("/meter-connections/{connection_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_connection(
    connection_id: int,
    db: Session = Depends(get_db),
) -> None:
    """Remove a parent/child link."""
    meter_service.delete_connection(db, connection_id)


@router.get("/sites/{site_id}/connections", response_model=list[MeterConnectionResponse])
def list_connections(
    site_id: int,
    db: Session = Depends(get_db),
):
    """List a site's meter connections."""
    return meter_service.get_site_connections(db, site_id)


@router.get("/sites/{site_id}/hierarchy", response_model=list[HierarchyNode])
def get_hierarchy(
    site_id: int,
    db: Session = Depends(get_db),
):
    """Site meters in tree order with indent levels."""
    return meter_service.get_hierarchy(db, site_id)


@router.put("/sites/{site_id}/hierarchy", response_model=list[MeterConnectionResponse])
def replace_hierarchy(
    site_id: int,
    layout: HierarchyLayout,
    db: Session = Depends(get_db),
):
    """Replace a site's connections from an ordered, indented meter list."""
    return meter_service.replace_connections_from_layout(db, site_id, layout)


@router.post("/meters/tariff-assignments", response_model=BatchOutcome)
def save_tariff_assignments(
    batch: TariffAssignmentBatch,
    db: Session = Depends(get_db),
):
    """Assign tariffs to many meters; failures are counted, not fatal."""
    return meter_service.save_tariff_assignments(db, batch)


@router.delete("/sites/{site_id}/tariff-assignments")
def clear_tariff_assignments(
    site_id: int,
    db: Session = Depends(get_db),
) -> dict[str, int]:
    """Clear every tariff assignment on a site."""
    return {"cleared": meter_service.clear_tariff_assignments(db, site_id)}
