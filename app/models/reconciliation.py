"""Reconciliation run database models."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import JSON, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.models.site import Site

_KWH = Numeric(precision=16, scale=4)
_MONEY = Numeric(precision=16, scale=4)


class ReconciliationRun(Base):
    """A saved metered vs billed comparison pass over a date range."""

    __tablename__ = "reconciliation_runs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id"), index=True)
    run_name: Mapped[str] = mapped_column(String(200))
    run_date: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))
    date_from: Mapped[datetime]
    date_to: Mapped[datetime]
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    bulk_total: Mapped[Decimal] = mapped_column(_KWH, default=0)
    solar_total: Mapped[Decimal] = mapped_column(_KWH, default=0)
    tenant_total: Mapped[Decimal] = mapped_column(_KWH, default=0)
    total_supply: Mapped[Decimal] = mapped_column(_KWH, default=0)
    recovery_rate: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=4), default=0)
    discrepancy: Mapped[Decimal] = mapped_column(_KWH, default=0)

    revenue_enabled: Mapped[bool] = mapped_column(default=False)
    grid_supply_cost: Mapped[Decimal] = mapped_column(_MONEY, default=0)
    solar_cost: Mapped[Decimal] = mapped_column(_MONEY, default=0)
    tenant_cost: Mapped[Decimal] = mapped_column(_MONEY, default=0)
    total_revenue: Mapped[Decimal] = mapped_column(_MONEY, default=0)
    avg_cost_per_kwh: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=6), default=0)

    corrections_count: Mapped[int] = mapped_column(default=0)

    site: Mapped["Site"] = relationship(back_populates="reconciliation_runs")
    meter_results: Mapped[list["ReconciliationMeterResult"]] = relationship(
        back_populates="run", cascade="all, delete-orphan"
    )


class ReconciliationMeterResult(Base):
    """Per-meter direct and hierarchical energy and cost for one run."""

    __tablename__ = "reconciliation_meter_results"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    reconciliation_run_id: Mapped[int] = mapped_column(
        ForeignKey("reconciliation_runs.id", ondelete="CASCADE"), index=True
    )
    meter_id: Mapped[int] = mapped_column(ForeignKey("meters.id", ondelete="CASCADE"), index=True)
    meter_number: Mapped[str] = mapped_column(String(50))
    meter_type: Mapped[str] = mapped_column(String(20))
    meter_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    assignment: Mapped[str] = mapped_column(String(20))
    tariff_structure_id: Mapped[int | None] = mapped_column(nullable=True)
    tariff_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    total_kwh: Mapped[Decimal] = mapped_column(_KWH, default=0)
    readings_count: Mapped[int] = mapped_column(default=0)

    direct_total_kwh: Mapped[Decimal] = mapped_column(_KWH, default=0)
    direct_readings_count: Mapped[int] = mapped_column(default=0)
    direct_column_totals: Mapped[dict[str, float] | None] = mapped_column(JSON, nullable=True)
    direct_column_max_values: Mapped[dict[str, float] | None] = mapped_column(
        JSON, nullable=True
    )

    hierarchical_total: Mapped[Decimal] = mapped_column(_KWH, default=0)
    hierarchical_column_totals: Mapped[dict[str, float] | None] = mapped_column(
        JSON, nullable=True
    )
    hierarchical_column_max_values: Mapped[dict[str, float] | None] = mapped_column(
        JSON, nullable=True
    )

    direct_energy_cost: Mapped[Decimal] = mapped_column(_MONEY, default=0)
    direct_fixed_charges: Mapped[Decimal] = mapped_column(_MONEY, default=0)
    direct_demand_charges: Mapped[Decimal] = mapped_column(_MONEY, default=0)
    direct_total_cost: Mapped[Decimal] = mapped_column(_MONEY, default=0)

    hierarchical_energy_cost: Mapped[Decimal] = mapped_column(_MONEY, default=0)
    hierarchical_fixed_charges: Mapped[Decimal] = mapped_column(_MONEY, default=0)
    hierarchical_demand_charges: Mapped[Decimal] = mapped_column(_MONEY, default=0)
    hierarchical_total_cost: Mapped[Decimal] = mapped_column(_MONEY, default=0)

    cost_calculation_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    run: Mapped["ReconciliationRun"] = relationship(back_populates="meter_results")
