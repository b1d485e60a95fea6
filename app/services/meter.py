"""Meter service for business logic."""

import logging
import re

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.meter import Meter, MeterConnection
from app.models.tariff import TariffStructure
from app.schemas.meter import (
    BatchOutcome,
    HierarchyLayout,
    HierarchyNode,
    MeterConnectionCreate,
    MeterCreate,
    MeterUpdate,
    TariffAssignmentBatch,
)
from app.services import hierarchy
from app.services.site import get_site

logger = logging.getLogger(__name__)

_TRAILING_NUMBER = re.compile(r"\d+[A-Z]?$", re.IGNORECASE)


def create_meter(db: Session, meter_data: MeterCreate) -> Meter:
    """Create a meter on a site."""
    get_site(db, meter_data.site_id)

    # Check for duplicate meter number on same site
    existing = (
        db.query(Meter)
        .filter(
            Meter.site_id == meter_data.site_id,
            Meter.meter_number == meter_data.meter_number,
        )
        .first()
    )
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Meter '{meter_data.meter_number}' already exists for this site",
        )

    if meter_data.tariff_structure_id is not None:
        get_tariff_or_404(db, meter_data.tariff_structure_id)

    db_meter = Meter(**meter_data.model_dump())
    db.add(db_meter)
    db.commit()
    db.refresh(db_meter)
    return db_meter


def get_meter(db: Session, meter_id: int) -> Meter:
    """Get a meter by ID."""
    meter = db.query(Meter).filter(Meter.id == meter_id).first()
    if not meter:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Meter not found",
        )
    return meter


def get_meters_for_site(db: Session, site_id: int, active_only: bool = True) -> list[Meter]:
    """Get a site's meters ordered by meter number."""
    query = db.query(Meter).filter(Meter.site_id == site_id)
    if active_only:
        query = query.filter(Meter.is_active.is_(True))
    return query.order_by(Meter.meter_number).all()


def update_meter(db: Session, meter_id: int, meter_data: MeterUpdate) -> Meter:
    """Update a meter."""
    meter = get_meter(db, meter_id)

    update_data = meter_data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(meter, field, value)

    db.commit()
    db.refresh(meter)
    return meter


def deactivate_meter(db: Session, meter_id: int) -> None:
    """Soft delete a meter; its readings and history are kept."""
    meter = get_meter(db, meter_id)
    meter.is_active = False
    db.commit()


def get_tariff_or_404(db: Session, tariff_id: int) -> TariffStructure:
    tariff = db.query(TariffStructure).filter(TariffStructure.id == tariff_id).first()
    if not tariff:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tariff structure not found",
        )
    return tariff


# --- Connections ---------------------------------------------------------


def get_site_connections(db: Session, site_id: int) -> list[MeterConnection]:
    """All parent/child links between a site's meters."""
    meter_ids = db.query(Meter.id).filter(Meter.site_id == site_id)
    return (
        db.query(MeterConnection)
        .filter(
            MeterConnection.parent_meter_id.in_(meter_ids),
            MeterConnection.child_meter_id.in_(meter_ids),
        )
        .all()
    )


def get_connections_map(db: Session, site_id: int) -> hierarchy.ConnectionsMap:
    return hierarchy.build_connections_map(get_site_connections(db, site_id))


def create_connection(db: Session, data: MeterConnectionCreate) -> MeterConnection:
    """Link a child meter under a parent on the same site."""
    parent = get_meter(db, data.parent_meter_id)
    child = get_meter(db, data.child_meter_id)
    if parent.site_id != child.site_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Meters belong to different sites",
        )

    existing = (
        db.query(MeterConnection)
        .filter(
            MeterConnection.parent_meter_id == parent.id,
            MeterConnection.child_meter_id == child.id,
        )
        .first()
    )
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Connection already exists",
        )

    connections_map = get_connections_map(db, parent.site_id)
    if parent.id in hierarchy.get_all_descendants(child.id, connections_map):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Connection would create a cycle",
        )

    connection = MeterConnection(parent_meter_id=parent.id, child_meter_id=child.id)
    db.add(connection)
    db.commit()
    db.refresh(connection)
    return connection


def delete_connection(db: Session, connection_id: int) -> None:
    """Remove a parent/child link."""
    connection = db.query(MeterConnection).filter(MeterConnection.id == connection_id).first()
    if not connection:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Connection not found",
        )
    db.delete(connection)
    db.commit()


def replace_connections_from_layout(
    db: Session, site_id: int, layout: HierarchyLayout
) -> list[MeterConnection]:
    """Replace a site's connections with those implied by an indented listing."""
    site_meter_ids = {m.id for m in get_meters_for_site(db, site_id, active_only=False)}
    unknown = [e.meter_id for e in layout.entries if e.meter_id not in site_meter_ids]
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Meters not on this site: {unknown}",
        )

    pairs = hierarchy.derive_connections_from_indents(
        [e.meter_id for e in layout.entries],
        {e.meter_id: e.indent_level for e in layout.entries},
    )

    for connection in get_site_connections(db, site_id):
        db.delete(connection)
    db.flush()

    created = [MeterConnection(parent_meter_id=p, child_meter_id=c) for p, c in pairs]
    db.add_all(created)
    db.commit()
    logger.info("Rebuilt %d connections for site %s", len(created), site_id)
    return created


def get_hierarchy(db: Session, site_id: int) -> list[HierarchyNode]:
    """Site meters in tree order, each with its indent level and parent."""
    get_site(db, site_id)
    meters = get_meters_for_site(db, site_id)
    by_id = {m.id: m for m in meters}
    connections_map = get_connections_map(db, site_id)
    parent_info = hierarchy.build_parent_info_map(connections_map, meters)

    ordered: list[int] = []
    for meter in meters:
        if hierarchy.find_parent(meter.id, connections_map) is None:
            ordered.append(meter.id)
            ordered.extend(hierarchy.get_all_descendants(meter.id, connections_map))

    nodes: list[HierarchyNode] = []
    for meter_id in ordered:
        meter = by_id.get(meter_id)
        if meter is None:
            continue
        nodes.append(
            HierarchyNode(
                meter_id=meter.id,
                meter_number=meter.meter_number,
                meter_type=meter.meter_type,
                indent_level=hierarchy.calculate_indent_level(meter.id, connections_map),
                parent_meter_number=parent_info.get(meter.id),
                children=connections_map.get(meter.id, []),
            )
        )
    return nodes


# --- Tariff assignment ---------------------------------------------------


def save_tariff_assignments(db: Session, batch: TariffAssignmentBatch) -> BatchOutcome:
    """Apply tariff assignments one meter at a time, counting failures."""
    succeeded = 0
    errors: list[str] = []

    for item in batch.assignments:
        try:
            meter = get_meter(db, item.meter_id)
            if item.tariff_structure_id is None:
                meter.tariff_structure_id = None
                meter.assigned_tariff_name = None
            else:
                tariff = get_tariff_or_404(db, item.tariff_structure_id)
                meter.tariff_structure_id = tariff.id
                meter.assigned_tariff_name = tariff.name
            db.commit()
            succeeded += 1
        except HTTPException as exc:
            db.rollback()
            errors.append(f"Meter {item.meter_id}: {exc.detail}")
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Tariff assignment failed for meter %s", item.meter_id)
            errors.append(f"Meter {item.meter_id}: {exc}")

    if errors:
        logger.warning(
            "Tariff assignments: %d succeeded, %d failed", succeeded, len(errors)
        )
    return BatchOutcome(succeeded=succeeded, failed=len(errors), errors=errors)


def clear_tariff_assignments(db: Session, site_id: int) -> int:
    """Remove tariff assignments from every meter on a site."""
    get_site(db, site_id)
    meters = get_meters_for_site(db, site_id, active_only=False)
    cleared = 0
    for meter in meters:
        if meter.tariff_structure_id is not None or meter.assigned_tariff_name is not None:
            meter.tariff_structure_id = None
            meter.assigned_tariff_name = None
            cleared += 1
    db.commit()
    return cleared


def shop_number_matches(shop_number: str | None, meter: Meter) -> bool:
    """Whether a shop number extracted from a bill refers to this meter.

    Matches the full meter number, its trailing number part (``DB-03`` ->
    ``03``), or the meter name, case-insensitively.
    """
    if not shop_number:
        return False
    candidate = shop_number.strip().lower()
    if candidate == meter.meter_number.lower():
        return True
    trailing = _TRAILING_NUMBER.search(meter.meter_number)
    if trailing and candidate == trailing.group(0).lower():
        return True
    return bool(meter.name) and candidate == meter.name.strip().lower()
