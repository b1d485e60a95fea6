"""Meter and meter connection database models."""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.enums import MeterType

if TYPE_CHECKING:
    from app.models.meter_reading import MeterReading
    from app.models.site import Site
    from app.models.tariff import TariffStructure


class Meter(Base):
    """A physical meter somewhere in a site's distribution hierarchy."""

    __tablename__ = "meters"
    __table_args__ = (UniqueConstraint("site_id", "meter_number", name="uq_site_meter_number"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id"), index=True)
    meter_number: Mapped[str] = mapped_column(String(50), index=True)
    meter_type: Mapped[MeterType] = mapped_column(String(20), index=True)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rating: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Tariff assignment: an explicit structure, or a name resolved per period
    tariff_structure_id: Mapped[int | None] = mapped_column(
        ForeignKey("tariff_structures.id", ondelete="SET NULL"), nullable=True
    )
    assigned_tariff_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))
    is_active: Mapped[bool] = mapped_column(default=True)

    site: Mapped["Site"] = relationship(back_populates="meters")
    tariff_structure: Mapped["TariffStructure | None"] = relationship()
    readings: Mapped[list["MeterReading"]] = relationship(
        back_populates="meter", cascade="all, delete-orphan"
    )


class MeterConnection(Base):
    """Directed parent -> child edge of the distribution tree."""

    __tablename__ = "meter_connections"
    __table_args__ = (
        UniqueConstraint("parent_meter_id", "child_meter_id", name="uq_meter_connection"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    parent_meter_id: Mapped[int] = mapped_column(
        ForeignKey("meters.id", ondelete="CASCADE"), index=True
    )
    child_meter_id: Mapped[int] = mapped_column(
        ForeignKey("meters.id", ondelete="CASCADE"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))
