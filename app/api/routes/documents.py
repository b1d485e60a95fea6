"""Site document, document calculation and bill analysis routes."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.analysis import (
    ChartMetric,
    Discontinuity,
    MeterChartResponse,
    RateComparisonResponse,
)
from app.schemas.document import (
    BulkCalculationOutcome,
    BulkDocumentCalculationRequest,
    DocumentCalculationRequest,
    DocumentPeriod,
    DocumentTariffCalculationResponse,
    ExtractionData,
    SiteDocumentCreate,
    SiteDocumentResponse,
)
from app.services import document as document_service
from app.services import document_calculations as calculation_service
from app.services.meter import get_meter

router = APIRouter(tags=["documents"])


@router.post(
    "/documents",
    response_model=SiteDocumentResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_document(
    data: SiteDocumentCreate,
    db: Session = Depends(get_db),
) -> SiteDocumentResponse:
    """Register a document, optionally with its extracted fields."""
    document = document_service.create_document(db, data)
    return document_service.to_response(document)


@router.get("/sites/{site_id}/documents", response_model=list[SiteDocumentResponse])
def list_documents(
    site_id: int,
    db: Session = Depends(get_db),
) -> list[SiteDocumentResponse]:
    """List a site's documents."""
    return [document_service.to_response(d) for d in document_service.list_documents(db, site_id)]


@router.get("/documents/{document_id}", response_model=SiteDocumentResponse)
def get_document(
    document_id: int,
    db: Session = Depends(get_db),
) -> SiteDocumentResponse:
    """Get a document with its latest extraction."""
    return document_service.to_response(document_service.get_document(db, document_id))


@router.put("/documents/{document_id}/extraction", response_model=SiteDocumentResponse)
def save_extraction(
    document_id: int,
    data: ExtractionData,
    db: Session = Depends(get_db),
) -> SiteDocumentResponse:
    """Store (reviewed) extracted fields for a document."""
    document = document_service.save_extraction(db, document_id, data)
    return document_service.to_response(document)


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: int,
    db: Session = Depends(get_db),
) -> None:
    """Delete a document and its extractions."""
    document_service.delete_document(db, document_id)


@router.get("/meters/{meter_id}/documents", response_model=list[DocumentPeriod])
def list_meter_documents(
    meter_id: int,
    db: Session = Depends(get_db),
) -> list[DocumentPeriod]:
    """Billing periods of documents matched to a meter by shop number."""
    meter = get_meter(db, meter_id)
    return document_service.get_document_periods_for_meter(db, meter)


@router.post("/document-calculations", response_model=DocumentTariffCalculationResponse)
def calculate_document(
    request: DocumentCalculationRequest,
    db: Session = Depends(get_db),
) -> DocumentTariffCalculationResponse:
    """Calculate one document against one meter and store the result."""
    calculation = calculation_service.calculate_document(db, request.document_id, request.meter_id)
    return calculation_service.to_calculation_response(calculation)


@router.post("/document-calculations/bulk", response_model=BulkCalculationOutcome)
def bulk_calculate(
    request: BulkDocumentCalculationRequest,
    db: Session = Depends(get_db),
) -> BulkCalculationOutcome:
    """Calculate many documents against one meter."""
    return calculation_service.bulk_calculate(db, request)


@router.get("/document-calculations", response_model=list[DocumentTariffCalculationResponse])
def list_calculations(
    meter_id: int | None = Query(None),
    document_id: int | None = Query(None),
    db: Session = Depends(get_db),
) -> list[DocumentTariffCalculationResponse]:
    """List stored calculations with their variance status."""
    calculations = calculation_service.list_calculations(db, meter_id, document_id)
    return [calculation_service.to_calculation_response(c) for c in calculations]


@router.delete(
    "/document-calculations/{calculation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_calculation(
    calculation_id: int,
    db: Session = Depends(get_db),
) -> None:
    """Delete a stored calculation."""
    calculation_service.delete_calculation(db, calculation_id)


@router.get("/meters/{meter_id}/charts/{metric}", response_model=MeterChartResponse)
def get_meter_chart(
    meter_id: int,
    metric: ChartMetric,
    db: Session = Depends(get_db),
) -> MeterChartResponse:
    """Seasonal series of a bill metric for a meter."""
    return calculation_service.get_meter_chart(db, meter_id, metric)


@router.get("/meters/{meter_id}/discontinuities", response_model=list[Discontinuity])
def get_discontinuities(
    meter_id: int,
    db: Session = Depends(get_db),
) -> list[Discontinuity]:
    """Bills whose opening reading does not follow the previous bill."""
    return calculation_service.get_meter_discontinuities(db, meter_id)


@router.get("/meters/{meter_id}/rate-comparison", response_model=RateComparisonResponse)
def compare_rates(
    meter_id: int,
    db: Session = Depends(get_db),
) -> RateComparisonResponse:
    """Compare rates quoted on a meter's bills with its tariff."""
    return calculation_service.compare_meter_rates(db, meter_id)
