"""Tariff structure and cost calculation routes."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.cost import CostCalculationRequest, CostCalculationResult
from app.schemas.tariff import (
    TariffStructureCreate,
    TariffStructureResponse,
    TariffStructureUpdate,
)
from app.services import tariff as tariff_service
from app.services.meter import get_meter
from app.services.tariff_cost import calculate_meter_cost

router = APIRouter(prefix="/tariffs", tags=["tariffs"])


@router.post(
    "/",
    response_model=TariffStructureResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_tariff(
    data: TariffStructureCreate,
    db: Session = Depends(get_db),
):
    """Create a tariff with its blocks, time-of-use periods and charges."""
    return tariff_service.create_tariff(db, data)


@router.get("/", response_model=list[TariffStructureResponse])
def list_tariffs(
    supply_authority_id: int | None = None,
    active_only: bool = Query(True, description="Only return active tariffs"),
    db: Session = Depends(get_db),
):
    """List tariffs."""
    return tariff_service.list_tariffs(db, supply_authority_id, active_only)


@router.post("/calculate-cost", response_model=CostCalculationResult)
def calculate_cost(
    request: CostCalculationRequest,
    db: Session = Depends(get_db),
):
    """
    Calculate a meter's cost under a tariff for a period.

    kWh is summed from the meter's readings unless given. Calculation
    problems come back as ``has_error`` / ``error_message`` with status 200.
    """
    get_meter(db, request.meter_id)
    return calculate_meter_cost(
        db,
        request.meter_id,
        request.tariff_structure_id,
        request.date_from,
        request.date_to,
        total_kwh=request.total_kwh,
        max_kva=request.max_kva,
    )


@router.get("/{tariff_id}", response_model=TariffStructureResponse)
def get_tariff(
    tariff_id: int,
    db: Session = Depends(get_db),
):
    """Get a tariff by ID."""
    return tariff_service.get_tariff(db, tariff_id)


@router.patch("/{tariff_id}", response_model=TariffStructureResponse)
def update_tariff(
    tariff_id: int,
    data: TariffStructureUpdate,
    db: Session = Depends(get_db),
):
    """Update tariff header fields."""
    return tariff_service.update_tariff(db, tariff_id, data)


@router.delete("/{tariff_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tariff(
    tariff_id: int,
    db: Session = Depends(get_db),
) -> None:
    """Deactivate a tariff."""
    tariff_service.deactivate_tariff(db, tariff_id)
