"""Site and supply authority routes."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.site import (
    SiteCreate,
    SiteResponse,
    SiteUpdate,
    SupplyAuthorityCreate,
    SupplyAuthorityResponse,
)
from app.services import site as site_service

router = APIRouter(tags=["sites"])


@router.post(
    "/supply-authorities",
    response_model=SupplyAuthorityResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_supply_authority(
    data: SupplyAuthorityCreate,
    db: Session = Depends(get_db),
):
    """Register a supply authority."""
    return site_service.create_supply_authority(db, data)


@router.get("/supply-authorities", response_model=list[SupplyAuthorityResponse])
def list_supply_authorities(db: Session = Depends(get_db)):
    """List active supply authorities."""
    return site_service.list_supply_authorities(db)


@router.post("/sites", response_model=SiteResponse, status_code=status.HTTP_201_CREATED)
def create_site(
    data: SiteCreate,
    db: Session = Depends(get_db),
):
    """Create a site."""
    return site_service.create_site(db, data)


@router.get("/sites", response_model=list[SiteResponse])
def list_sites(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """List active sites."""
    return site_service.list_sites(db, skip, limit)


@router.get("/sites/{site_id}", response_model=SiteResponse)
def get_site(
    site_id: int,
    db: Session = Depends(get_db),
):
    """Get a site by ID."""
    return site_service.get_site(db, site_id)


@router.patch("/sites/{site_id}", response_model=SiteResponse)
def update_site(
    site_id: int,
    data: SiteUpdate,
    db: Session = Depends(get_db),
):
    """Update a site."""
    return site_service.update_site(db, site_id, data)


@router.delete("/sites/{site_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_site(
    site_id: int,
    db: Session = Depends(get_db),
) -> None:
    """Deactivate a site."""
    site_service.delete_site(db, site_id)
