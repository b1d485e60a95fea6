"""Site and supply authority database models."""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.models.document import SiteDocument
    from app.models.meter import Meter
    from app.models.reconciliation import ReconciliationRun
    from app.models.tariff import TariffStructure


class SupplyAuthority(Base):
    """Municipality or utility that publishes tariff structures."""

    __tablename__ = "supply_authorities"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), index=True)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)
    active: Mapped[bool] = mapped_column(default=True)
    created_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))

    tariff_structures: Mapped[list["TariffStructure"]] = relationship(
        back_populates="supply_authority"
    )
    sites: Mapped[list["Site"]] = relationship(back_populates="supply_authority")


class Site(Base):
    """A property whose meters are reconciled against its bills."""

    __tablename__ = "sites"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), index=True)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supply_authority_id: Mapped[int | None] = mapped_column(
        ForeignKey("supply_authorities.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))
    is_active: Mapped[bool] = mapped_column(default=True)

    supply_authority: Mapped["SupplyAuthority | None"] = relationship(back_populates="sites")
    meters: Mapped[list["Meter"]] = relationship(
        back_populates="site", cascade="all, delete-orphan"
    )
    documents: Mapped[list["SiteDocument"]] = relationship(
        back_populates="site", cascade="all, delete-orphan"
    )
    reconciliation_runs: Mapped[list["ReconciliationRun"]] = relationship(
        back_populates="site", cascade="all, delete-orphan"
    )
