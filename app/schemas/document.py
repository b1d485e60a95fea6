"""Site document, extraction and document calculation schemas."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, model_validator

from app.models.enums import ExtractionStatus, VarianceStatus


class LineItem(BaseModel):
    """One extracted bill line."""

    description: str = ""
    meter_number: str | None = None
    unit: str | None = None  # kWh / kVA / Monthly
    supply: str | None = None  # Normal / Emergency
    previous_reading: Decimal | None = None
    current_reading: Decimal | None = None
    consumption: Decimal | None = None
    rate: Decimal | None = None
    amount: Decimal = Decimal("0")


class ExtractionData(BaseModel):
    """Structured fields pulled from a bill."""

    period_start: date | None = None
    period_end: date | None = None
    total_amount: Decimal | None = None
    currency: str | None = "ZAR"
    shop_number: str | None = None
    tenant_name: str | None = None
    account_reference: str | None = None
    line_items: list[LineItem] = []

    @model_validator(mode="after")
    def check_period(self) -> "ExtractionData":
        """Billing period must not be inverted."""
        if self.period_start and self.period_end and self.period_end < self.period_start:
            raise ValueError("period_end must not precede period_start")
        return self


class SiteDocumentCreate(BaseModel):
    """Schema for registering a document, optionally with its extraction."""

    site_id: int
    file_name: str
    document_type: str = "tenant_bill"
    extraction: ExtractionData | None = None


class SiteDocumentResponse(BaseModel):
    """Schema for site document response."""

    id: int
    site_id: int
    file_name: str
    document_type: str
    extraction_status: ExtractionStatus
    upload_date: datetime
    extraction: ExtractionData | None = None


class DocumentPeriod(BaseModel):
    """A document flattened to its billing period and line items."""

    document_id: int
    file_name: str = ""
    shop_number: str | None = None
    period_start: date
    period_end: date
    total_amount: Decimal = Decimal("0")
    line_items: list[LineItem] = []


class DocumentCalculationRequest(BaseModel):
    """Schema for calculating one document against one meter."""

    document_id: int
    meter_id: int


class BulkDocumentCalculationRequest(BaseModel):
    """Schema for calculating many documents against one meter."""

    meter_id: int
    document_ids: list[int]


class DocumentTariffCalculationResponse(BaseModel):
    """Schema for a stored document calculation."""

    id: int
    document_id: int
    meter_id: int
    tariff_structure_id: int | None
    period_start: date
    period_end: date
    total_kwh: Decimal
    energy_cost: Decimal
    fixed_charges: Decimal
    demand_charges: Decimal
    total_cost: Decimal
    avg_cost_per_kwh: Decimal
    document_billed_amount: Decimal | None
    variance_amount: Decimal | None
    variance_percentage: Decimal | None
    variance_status: VarianceStatus = VarianceStatus.UNKNOWN
    tariff_name: str | None
    calculation_error: str | None
    updated_at: datetime

    model_config = {"from_attributes": True}


class BulkCalculationOutcome(BaseModel):
    """Counts reported by a bulk document calculation."""

    processed: int
    failed: int
    cancelled: bool
    calculations: list[DocumentTariffCalculationResponse]
    errors: list[str] = []
