"""Reconciliation request, working and response schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, model_validator

from app.models.enums import MeterAssignment, MeterType
from app.schemas.meter_reading import ColumnSettings, CorrectedReading


class ReconciliationRequest(BaseModel):
    """Schema for running a reconciliation over a date range."""

    run_name: str = "Reconciliation"
    notes: str | None = None
    date_from: datetime
    date_to: datetime
    enable_revenue: bool = False
    meter_assignments: dict[int, MeterAssignment] = {}
    column_settings: ColumnSettings = ColumnSettings()

    @model_validator(mode="after")
    def check_period(self) -> "ReconciliationRequest":
        """Period must not be inverted."""
        if self.date_to < self.date_from:
            raise ValueError("date_to must not precede date_from")
        return self


class MeterReconciliationResult(BaseModel):
    """Direct and hierarchical energy and cost for one meter."""

    meter_id: int
    meter_number: str
    meter_type: MeterType
    name: str | None = None
    assignment: MeterAssignment = MeterAssignment.UNASSIGNED
    tariff_structure_id: int | None = None
    tariff_name: str | None = None

    direct_total_kwh: Decimal = Decimal("0")
    direct_kwh_positive: Decimal = Decimal("0")
    direct_kwh_negative: Decimal = Decimal("0")
    direct_column_totals: dict[str, Decimal] = {}
    direct_column_max_values: dict[str, Decimal] = {}
    direct_readings_count: int = 0

    has_children: bool = False
    hierarchical_total_kwh: Decimal = Decimal("0")
    hierarchical_column_totals: dict[str, Decimal] = {}
    hierarchical_column_max_values: dict[str, Decimal] = {}

    direct_energy_cost: Decimal = Decimal("0")
    direct_fixed_charges: Decimal = Decimal("0")
    direct_demand_charges: Decimal = Decimal("0")
    direct_total_cost: Decimal = Decimal("0")

    hierarchical_energy_cost: Decimal = Decimal("0")
    hierarchical_fixed_charges: Decimal = Decimal("0")
    hierarchical_demand_charges: Decimal = Decimal("0")
    hierarchical_total_cost: Decimal = Decimal("0")

    cost_calculation_error: str | None = None

    @property
    def total_kwh(self) -> Decimal:
        """Hierarchical total for parents, direct total for leaves."""
        return self.hierarchical_total_kwh if self.has_children else self.direct_total_kwh

    @property
    def total_cost(self) -> Decimal:
        """Hierarchical cost for parents, direct cost for leaves."""
        return self.hierarchical_total_cost if self.has_children else self.direct_total_cost

    @property
    def kwh_split(self) -> tuple[Decimal, Decimal]:
        """(positive, negative) energy behind ``total_kwh``.

        Leaves keep the per-column split of their readings; a parent only has
        its rolled-up net total, which is split by sign.
        """
        if self.has_children:
            total = self.hierarchical_total_kwh
            return max(total, Decimal("0")), min(total, Decimal("0"))
        return self.direct_kwh_positive, self.direct_kwh_negative


class ReconciliationSummary(BaseModel):
    """Supply vs consumption totals for a reconciliation pass."""

    grid_supply_total: Decimal
    bulk_total: Decimal
    solar_total: Decimal
    tenant_total: Decimal
    check_total: Decimal
    distribution_total: Decimal
    total_supply: Decimal
    discrepancy: Decimal
    recovery_rate: Decimal
    grid_negative_total: Decimal = Decimal("0")
    other_total: Decimal = Decimal("0")

    grid_supply_cost: Decimal = Decimal("0")
    solar_cost: Decimal = Decimal("0")
    tenant_cost: Decimal = Decimal("0")
    total_revenue: Decimal = Decimal("0")
    avg_cost_per_kwh: Decimal = Decimal("0")

    categories: dict[str, list[int]] = {}


class ReconciliationResult(BaseModel):
    """Full outcome of a reconciliation pass (before or after saving)."""

    site_id: int
    date_from: datetime
    date_to: datetime
    revenue_enabled: bool
    summary: ReconciliationSummary
    meters: list[MeterReconciliationResult]
    corrections: list[CorrectedReading]


class ReconciliationMeterResultResponse(BaseModel):
    """Schema for a stored per-meter result."""

    meter_id: int
    meter_number: str
    meter_type: str
    meter_name: str | None
    assignment: str
    tariff_name: str | None
    total_kwh: Decimal
    direct_total_kwh: Decimal
    hierarchical_total: Decimal
    direct_total_cost: Decimal
    hierarchical_total_cost: Decimal
    cost_calculation_error: str | None

    model_config = {"from_attributes": True}


class ReconciliationRunResponse(BaseModel):
    """Schema for a stored reconciliation run."""

    id: int
    site_id: int
    run_name: str
    run_date: datetime
    date_from: datetime
    date_to: datetime
    notes: str | None
    bulk_total: Decimal
    solar_total: Decimal
    tenant_total: Decimal
    total_supply: Decimal
    recovery_rate: Decimal
    discrepancy: Decimal
    revenue_enabled: bool
    grid_supply_cost: Decimal
    solar_cost: Decimal
    tenant_cost: Decimal
    total_revenue: Decimal
    avg_cost_per_kwh: Decimal
    corrections_count: int
    meter_results: list[ReconciliationMeterResultResponse] = []

    model_config = {"from_attributes": True}
