"""Site document and extraction service."""

from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload

from app.models.document import DocumentExtraction, SiteDocument
from app.models.enums import ExtractionStatus
from app.models.meter import Meter
from app.schemas.document import (
    DocumentPeriod,
    ExtractionData,
    LineItem,
    SiteDocumentCreate,
    SiteDocumentResponse,
)
from app.services.meter import shop_number_matches
from app.services.site import get_site

_EXTRA_FIELDS = {"shop_number", "tenant_name", "account_reference", "line_items"}


def _build_extraction(data: ExtractionData) -> DocumentExtraction:
    return DocumentExtraction(
        period_start=data.period_start,
        period_end=data.period_end,
        total_amount=data.total_amount,
        currency=data.currency,
        extracted_data=data.model_dump(mode="json", include=_EXTRA_FIELDS),
    )


def create_document(db: Session, data: SiteDocumentCreate) -> SiteDocument:
    """Register a document, with its extraction when one is supplied."""
    get_site(db, data.site_id)

    document = SiteDocument(
        site_id=data.site_id,
        file_name=data.file_name,
        document_type=data.document_type,
    )
    if data.extraction is not None:
        document.extractions.append(_build_extraction(data.extraction))
        document.extraction_status = ExtractionStatus.COMPLETED

    db.add(document)
    db.commit()
    db.refresh(document)
    return document


def save_extraction(db: Session, document_id: int, data: ExtractionData) -> SiteDocument:
    """Attach a new extraction to a document and mark it completed."""
    document = get_document(db, document_id)
    document.extractions.append(_build_extraction(data))
    document.extraction_status = ExtractionStatus.COMPLETED
    db.commit()
    db.refresh(document)
    return document


def get_document(db: Session, document_id: int) -> SiteDocument:
    """Get a document by ID."""
    document = (
        db.query(SiteDocument)
        .options(selectinload(SiteDocument.extractions))
        .filter(SiteDocument.id == document_id)
        .first()
    )
    if not document:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document not found",
        )
    return document


def list_documents(db: Session, site_id: int) -> list[SiteDocument]:
    """List a site's documents, most recent upload first."""
    return (
        db.query(SiteDocument)
        .options(selectinload(SiteDocument.extractions))
        .filter(SiteDocument.site_id == site_id)
        .order_by(SiteDocument.upload_date.desc())
        .all()
    )


def delete_document(db: Session, document_id: int) -> None:
    document = get_document(db, document_id)
    db.delete(document)
    db.commit()


def latest_extraction(document: SiteDocument) -> DocumentExtraction | None:
    """The most recent extraction of a document, if any."""
    if not document.extractions:
        return None
    return max(document.extractions, key=lambda e: (e.extracted_at, e.id))


def extraction_data(extraction: DocumentExtraction) -> ExtractionData:
    """Rebuild the structured extraction from its stored columns."""
    extra = extraction.extracted_data or {}
    return ExtractionData(
        period_start=extraction.period_start,
        period_end=extraction.period_end,
        total_amount=extraction.total_amount,
        currency=extraction.currency,
        shop_number=extra.get("shop_number"),
        tenant_name=extra.get("tenant_name"),
        account_reference=extra.get("account_reference"),
        line_items=[LineItem.model_validate(item) for item in extraction.get_line_items()],
    )


def to_response(document: SiteDocument) -> SiteDocumentResponse:
    extraction = latest_extraction(document)
    return SiteDocumentResponse(
        id=document.id,
        site_id=document.site_id,
        file_name=document.file_name,
        document_type=document.document_type,
        extraction_status=document.extraction_status,
        upload_date=document.upload_date,
        extraction=extraction_data(extraction) if extraction else None,
    )


def to_document_period(document: SiteDocument) -> DocumentPeriod | None:
    """Flatten a document to its billing period; None without a complete period."""
    extraction = latest_extraction(document)
    if extraction is None or extraction.period_start is None or extraction.period_end is None:
        return None
    data = extraction_data(extraction)
    return DocumentPeriod(
        document_id=document.id,
        file_name=document.file_name,
        shop_number=data.shop_number,
        period_start=extraction.period_start,
        period_end=extraction.period_end,
        total_amount=extraction.total_amount or 0,
        line_items=data.line_items,
    )


def get_document_periods_for_meter(db: Session, meter: Meter) -> list[DocumentPeriod]:
    """Billing periods of the site documents whose shop number matches a meter.

    Newest period first.
    """
    periods = []
    for document in list_documents(db, meter.site_id):
        period = to_document_period(document)
        if period is not None and shop_number_matches(period.shop_number, meter):
            periods.append(period)
    return sorted(periods, key=lambda p: p.period_end, reverse=True)
