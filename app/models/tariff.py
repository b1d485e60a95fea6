"""Tariff structure database models.

A tariff structure is a named rate plan for a supply authority. Its pricing is
described by one of three mechanisms, checked in this order by the cost
calculator:

    - time-of-use periods (when ``uses_tou`` is set)
    - consumption blocks
    - flat energy charges (single rate or per season)

Fixed (basic) and demand charges live alongside the flat energy charges in
``tariff_charges``.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.enums import ChargeType, DayType, TouSeason

if TYPE_CHECKING:
    from app.models.site import SupplyAuthority


class TariffStructure(Base):
    """Named electricity rate plan."""

    __tablename__ = "tariff_structures"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    supply_authority_id: Mapped[int] = mapped_column(
        ForeignKey("supply_authorities.id"), index=True
    )
    name: Mapped[str] = mapped_column(String(100), index=True)
    tariff_type: Mapped[str] = mapped_column(String(50), default="domestic")
    voltage_level: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    effective_from: Mapped[date]
    effective_to: Mapped[date | None] = mapped_column(nullable=True)
    uses_tou: Mapped[bool] = mapped_column(default=False)
    active: Mapped[bool] = mapped_column(default=True)
    created_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))

    supply_authority: Mapped["SupplyAuthority"] = relationship(
        back_populates="tariff_structures"
    )
    blocks: Mapped[list["TariffBlock"]] = relationship(
        back_populates="tariff_structure",
        cascade="all, delete-orphan",
        order_by="TariffBlock.block_number",
    )
    time_periods: Mapped[list["TariffTimePeriod"]] = relationship(
        back_populates="tariff_structure", cascade="all, delete-orphan"
    )
    charges: Mapped[list["TariffCharge"]] = relationship(
        back_populates="tariff_structure", cascade="all, delete-orphan"
    )


class TariffBlock(Base):
    """Inclining block: kWh between ``kwh_from`` and ``kwh_to`` at one rate."""

    __tablename__ = "tariff_blocks"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    tariff_structure_id: Mapped[int] = mapped_column(
        ForeignKey("tariff_structures.id", ondelete="CASCADE"), index=True
    )
    block_number: Mapped[int]
    kwh_from: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=4))
    kwh_to: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=14, scale=4), nullable=True
    )  # None = open-ended
    energy_charge_cents: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=4))

    tariff_structure: Mapped["TariffStructure"] = relationship(back_populates="blocks")


class TariffTimePeriod(Base):
    """Time-of-use rate for one season / day type / hour range."""

    __tablename__ = "tariff_time_periods"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    tariff_structure_id: Mapped[int] = mapped_column(
        ForeignKey("tariff_structures.id", ondelete="CASCADE"), index=True
    )
    period_type: Mapped[str] = mapped_column(String(20))  # peak / standard / off_peak
    season: Mapped[TouSeason] = mapped_column(String(20))
    day_type: Mapped[DayType] = mapped_column(String(20))
    start_hour: Mapped[int]
    end_hour: Mapped[int]  # exclusive
    energy_charge_cents: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=4))

    tariff_structure: Mapped["TariffStructure"] = relationship(back_populates="time_periods")


class TariffCharge(Base):
    """Flat charge: basic (R/month), energy (c/kWh) or demand (R/kVA)."""

    __tablename__ = "tariff_charges"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    tariff_structure_id: Mapped[int] = mapped_column(
        ForeignKey("tariff_structures.id", ondelete="CASCADE"), index=True
    )
    charge_type: Mapped[ChargeType] = mapped_column(String(30))
    charge_amount: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=4))
    unit: Mapped[str] = mapped_column(String(20))
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    tariff_structure: Mapped["TariffStructure"] = relationship(back_populates="charges")
