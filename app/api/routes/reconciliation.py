"""Reconciliation routes."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.reconciliation import (
    ReconciliationRequest,
    ReconciliationResult,
    ReconciliationRunResponse,
)
from app.services import reconciliation as reconciliation_service

router = APIRouter(tags=["reconciliation"])


@router.post("/sites/{site_id}/reconciliation/preview", response_model=ReconciliationResult)
def preview_reconciliation(
    site_id: int,
    request: ReconciliationRequest,
    db: Session = Depends(get_db),
):
    """Run a reconciliation without saving it."""
    return reconciliation_service.run_reconciliation(db, site_id, request)


@router.post(
    "/sites/{site_id}/reconciliation/runs",
    response_model=ReconciliationRunResponse,
    status_code=status.HTTP_201_CREATED,
)
def save_reconciliation(
    site_id: int,
    request: ReconciliationRequest,
    db: Session = Depends(get_db),
):
    """Run a reconciliation and save it with its per-meter results."""
    return reconciliation_service.save_reconciliation(db, site_id, request)


@router.get(
    "/sites/{site_id}/reconciliation/runs",
    response_model=list[ReconciliationRunResponse],
)
def list_runs(
    site_id: int,
    db: Session = Depends(get_db),
):
    """List a site's saved runs."""
    return reconciliation_service.list_runs(db, site_id)


@router.get("/reconciliation/runs/{run_id}", response_model=ReconciliationRunResponse)
def get_run(
    run_id: int,
    db: Session = Depends(get_db),
):
    """Get a saved run with its meter results."""
    return reconciliation_service.get_run(db, run_id)


@router.delete("/reconciliation/runs/{run_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_run(
    run_id: int,
    db: Session = Depends(get_db),
) -> None:
    """Delete a saved run."""
    reconciliation_service.delete_run(db, run_id)
