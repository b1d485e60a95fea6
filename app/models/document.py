"""Site document and extraction database models."""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.enums import ExtractionStatus

if TYPE_CHECKING:
    from app.models.site import Site


class SiteDocument(Base):
    """An uploaded bill or invoice belonging to a site."""

    __tablename__ = "site_documents"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id"), index=True)
    file_name: Mapped[str] = mapped_column(String(255))
    document_type: Mapped[str] = mapped_column(String(50), default="tenant_bill")
    extraction_status: Mapped[ExtractionStatus] = mapped_column(
        String(20), default=ExtractionStatus.PENDING
    )
    upload_date: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))

    site: Mapped["Site"] = relationship(back_populates="documents")
    extractions: Mapped[list["DocumentExtraction"]] = relationship(
        back_populates="document", cascade="all, delete-orphan"
    )


class DocumentExtraction(Base):
    """Structured fields extracted from a site document."""

    __tablename__ = "document_extractions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    document_id: Mapped[int] = mapped_column(
        ForeignKey("site_documents.id", ondelete="CASCADE"), index=True
    )
    period_start: Mapped[date | None] = mapped_column(nullable=True)
    period_end: Mapped[date | None] = mapped_column(nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=14, scale=2), nullable=True
    )
    currency: Mapped[str | None] = mapped_column(String(10), nullable=True)
    # shop_number, tenant_name, account_reference, line_items[...]
    extracted_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    extracted_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))

    document: Mapped["SiteDocument"] = relationship(back_populates="extractions")

    def get_line_items(self) -> list[dict[str, Any]]:
        """Return extracted line items, or an empty list."""
        if not self.extracted_data:
            return []
        return list(self.extracted_data.get("line_items") or [])
