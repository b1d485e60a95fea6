"""Tariff structure schemas."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, field_validator, model_validator

from app.models.enums import ChargeType, DayType, TouSeason


class TariffBlockSchema(BaseModel):
    """Consumption block; ``kwh_to`` of None means open-ended."""

    block_number: int
    kwh_from: Decimal
    kwh_to: Decimal | None = None
    energy_charge_cents: Decimal

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def check_range(self) -> "TariffBlockSchema":
        """Block upper bound must lie above its lower bound."""
        if self.kwh_to is not None and self.kwh_to <= self.kwh_from:
            raise ValueError("kwh_to must be greater than kwh_from")
        return self


class TariffTimePeriodSchema(BaseModel):
    """Time-of-use rate window."""

    period_type: str
    season: TouSeason = TouSeason.ALL_YEAR
    day_type: DayType = DayType.ALL_DAYS
    start_hour: int
    end_hour: int
    energy_charge_cents: Decimal

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def check_hours(self) -> "TariffTimePeriodSchema":
        """Hours are [start, end) within a single day."""
        if not (0 <= self.start_hour < self.end_hour <= 24):
            raise ValueError("Hours must satisfy 0 <= start_hour < end_hour <= 24")
        return self


class TariffChargeSchema(BaseModel):
    """Flat charge attached to a tariff."""

    charge_type: ChargeType
    charge_amount: Decimal
    unit: str
    description: str | None = None

    model_config = {"from_attributes": True}


class TariffStructureCreate(BaseModel):
    """Schema for creating a tariff with its pricing components."""

    supply_authority_id: int
    name: str
    tariff_type: str = "domestic"
    voltage_level: str | None = None
    description: str | None = None
    effective_from: date
    effective_to: date | None = None
    uses_tou: bool = False
    blocks: list[TariffBlockSchema] = []
    time_periods: list[TariffTimePeriodSchema] = []
    charges: list[TariffChargeSchema] = []

    @field_validator("blocks")
    @classmethod
    def validate_block_numbers(cls, v: list[TariffBlockSchema]) -> list[TariffBlockSchema]:
        """Block numbers must be unique within a tariff."""
        numbers = [b.block_number for b in v]
        if len(numbers) != len(set(numbers)):
            raise ValueError("Block numbers must be unique")
        return v

    @model_validator(mode="after")
    def check_effective_window(self) -> "TariffStructureCreate":
        """Effective window must not be inverted."""
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError("effective_to must not precede effective_from")
        return self


class TariffStructureUpdate(BaseModel):
    """Schema for updating tariff header fields."""

    name: str | None = None
    description: str | None = None
    effective_to: date | None = None
    uses_tou: bool | None = None
    active: bool | None = None


class TariffStructureResponse(BaseModel):
    """Schema for tariff structure response."""

    id: int
    supply_authority_id: int
    name: str
    tariff_type: str
    voltage_level: str | None
    description: str | None
    effective_from: date
    effective_to: date | None
    uses_tou: bool
    active: bool
    created_at: datetime
    blocks: list[TariffBlockSchema]
    time_periods: list[TariffTimePeriodSchema]
    charges: list[TariffChargeSchema]

    model_config = {"from_attributes": True}
