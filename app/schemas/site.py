"""Site and supply authority schemas."""

from datetime import datetime

from pydantic import BaseModel


class SupplyAuthorityCreate(BaseModel):
    """Schema for registering a supply authority."""

    name: str
    region: str | None = None


class SupplyAuthorityResponse(BaseModel):
    """Schema for supply authority response."""

    id: int
    name: str
    region: str | None
    active: bool

    model_config = {"from_attributes": True}


class SiteCreate(BaseModel):
    """Schema for creating a site."""

    name: str
    address: str | None = None
    supply_authority_id: int | None = None


class SiteUpdate(BaseModel):
    """Schema for updating a site."""

    name: str | None = None
    address: str | None = None
    supply_authority_id: int | None = None
    is_active: bool | None = None


class SiteResponse(BaseModel):
    """Schema for site response."""

    id: int
    name: str
    address: str | None
    supply_authority_id: int | None
    created_at: datetime
    is_active: bool

    model_config = {"from_attributes": True}
