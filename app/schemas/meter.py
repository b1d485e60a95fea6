"""Meter and hierarchy schemas."""

from datetime import datetime

from pydantic import BaseModel, model_validator

from app.models.enums import MeterType


class MeterCreate(BaseModel):
    """Schema for creating a meter on a site."""

    site_id: int
    meter_number: str
    meter_type: MeterType = MeterType.TENANT_METER
    name: str | None = None
    location: str | None = None
    rating: str | None = None
    tariff_structure_id: int | None = None
    assigned_tariff_name: str | None = None


class MeterUpdate(BaseModel):
    """Schema for updating a meter."""

    name: str | None = None
    location: str | None = None
    rating: str | None = None
    meter_type: MeterType | None = None
    is_active: bool | None = None

    @model_validator(mode="after")
    def check_at_least_one_field(self) -> "MeterUpdate":
        """Ensure at least one field is provided for update."""
        if all(
            v is None
            for v in [self.name, self.location, self.rating, self.meter_type, self.is_active]
        ):
            raise ValueError("At least one field must be provided for update")
        return self


class MeterResponse(BaseModel):
    """Schema for meter response."""

    id: int
    site_id: int
    meter_number: str
    meter_type: MeterType
    name: str | None
    location: str | None
    rating: str | None
    tariff_structure_id: int | None
    assigned_tariff_name: str | None
    created_at: datetime
    is_active: bool

    model_config = {"from_attributes": True}


class MeterConnectionCreate(BaseModel):
    """Schema for linking a child meter under a parent."""

    parent_meter_id: int
    child_meter_id: int

    @model_validator(mode="after")
    def check_not_self(self) -> "MeterConnectionCreate":
        """A meter cannot feed itself."""
        if self.parent_meter_id == self.child_meter_id:
            raise ValueError("A meter cannot be connected to itself")
        return self


class MeterConnectionResponse(BaseModel):
    """Schema for meter connection response."""

    id: int
    parent_meter_id: int
    child_meter_id: int

    model_config = {"from_attributes": True}


class HierarchyNode(BaseModel):
    """One meter in the rendered distribution tree."""

    meter_id: int
    meter_number: str
    meter_type: MeterType
    indent_level: int
    parent_meter_number: str | None
    children: list[int]


class TariffAssignmentItem(BaseModel):
    """Desired tariff for one meter; None clears the assignment."""

    meter_id: int
    tariff_structure_id: int | None = None


class TariffAssignmentBatch(BaseModel):
    """Schema for saving tariff assignments for many meters."""

    assignments: list[TariffAssignmentItem]


class BatchOutcome(BaseModel):
    """Success/failure counts for a batch operation."""

    succeeded: int
    failed: int
    errors: list[str] = []


class HierarchyLayoutEntry(BaseModel):
    """A meter's position in an indented hierarchy listing."""

    meter_id: int
    indent_level: int = 0


class HierarchyLayout(BaseModel):
    """Ordered, indented listing that replaces a site's connections."""

    entries: list[HierarchyLayoutEntry]
