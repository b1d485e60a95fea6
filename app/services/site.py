"""Site and supply authority service."""

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.models.site import Site, SupplyAuthority
from app.schemas.site import SiteCreate, SiteUpdate, SupplyAuthorityCreate


def create_supply_authority(db: Session, data: SupplyAuthorityCreate) -> SupplyAuthority:
    """Register a supply authority."""
    existing = db.query(SupplyAuthority).filter(SupplyAuthority.name == data.name).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Supply authority '{data.name}' already exists",
        )

    authority = SupplyAuthority(name=data.name, region=data.region)
    db.add(authority)
    db.commit()
    db.refresh(authority)
    return authority


def get_supply_authority(db: Session, authority_id: int) -> SupplyAuthority:
    """Get a supply authority by ID."""
    authority = db.query(SupplyAuthority).filter(SupplyAuthority.id == authority_id).first()
    if not authority:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Supply authority not found",
        )
    return authority


def list_supply_authorities(db: Session) -> list[SupplyAuthority]:
    """List active supply authorities."""
    return (
        db.query(SupplyAuthority)
        .filter(SupplyAuthority.active.is_(True))
        .order_by(SupplyAuthority.name)
        .all()
    )


def create_site(db: Session, data: SiteCreate) -> Site:
    """Create a site."""
    if data.supply_authority_id is not None:
        get_supply_authority(db, data.supply_authority_id)

    site = Site(
        name=data.name,
        address=data.address,
        supply_authority_id=data.supply_authority_id,
    )
    db.add(site)
    db.commit()
    db.refresh(site)
    return site


def get_site(db: Session, site_id: int) -> Site:
    """Get a site by ID."""
    site = db.query(Site).filter(Site.id == site_id).first()
    if not site:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Site not found",
        )
    return site


def list_sites(db: Session, skip: int = 0, limit: int = 100) -> list[Site]:
    """List active sites."""
    return (
        db.query(Site)
        .filter(Site.is_active.is_(True))
        .order_by(Site.name)
        .offset(skip)
        .limit(limit)
        .all()
    )


def update_site(db: Session, site_id: int, data: SiteUpdate) -> Site:
    """Update site fields that were provided."""
    site = get_site(db, site_id)
    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("supply_authority_id") is not None:
        get_supply_authority(db, update_data["supply_authority_id"])

    for field, value in update_data.items():
        setattr(site, field, value)

    db.commit()
    db.refresh(site)
    return site


def delete_site(db: Session, site_id: int) -> None:
    """Soft delete a site."""
    site = get_site(db, site_id)
    site.is_active = False
    db.commit()
