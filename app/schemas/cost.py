"""Cost calculation schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, model_validator


class CostCalculationRequest(BaseModel):
    """Schema for calculating a meter's cost under a tariff."""

    meter_id: int
    tariff_structure_id: int
    date_from: datetime
    date_to: datetime
    total_kwh: Decimal | None = None  # Summed from readings when omitted
    max_kva: Decimal = Decimal("0")

    @model_validator(mode="after")
    def check_period(self) -> "CostCalculationRequest":
        """Period must not be inverted."""
        if self.date_to < self.date_from:
            raise ValueError("date_to must not precede date_from")
        return self


class CostCalculationResult(BaseModel):
    """Outcome of a tariff cost calculation.

    Failures are reported through ``has_error`` / ``error_message`` with all
    amounts left at zero.
    """

    energy_cost: Decimal = Decimal("0")
    fixed_charges: Decimal = Decimal("0")
    demand_charges: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    avg_cost_per_kwh: Decimal = Decimal("0")
    total_kwh: Decimal = Decimal("0")
    tariff_name: str = "Unknown"
    has_error: bool = False
    error_message: str | None = None

    @classmethod
    def failure(cls, message: str, tariff_name: str = "Unknown") -> "CostCalculationResult":
        """Build an error result with zeroed amounts."""
        return cls(tariff_name=tariff_name, has_error=True, error_message=message)
