"""DocumentTariffCalculation database model."""

from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class DocumentTariffCalculation(Base):
    """Calculated cost for a (document, meter, tariff) triple vs the billed amount."""

    __tablename__ = "document_tariff_calculations"
    __table_args__ = (
        UniqueConstraint(
            "document_id",
            "meter_id",
            "tariff_structure_id",
            name="uq_document_meter_tariff",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    document_id: Mapped[int] = mapped_column(
        ForeignKey("site_documents.id", ondelete="CASCADE"), index=True
    )
    meter_id: Mapped[int] = mapped_column(ForeignKey("meters.id", ondelete="CASCADE"), index=True)
    tariff_structure_id: Mapped[int | None] = mapped_column(
        ForeignKey("tariff_structures.id", ondelete="SET NULL"), nullable=True
    )
    period_start: Mapped[date]
    period_end: Mapped[date]

    total_kwh: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=4), default=0)
    energy_cost: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=4), default=0)
    fixed_charges: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=4), default=0)
    demand_charges: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=4), default=0)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=4), default=0)
    avg_cost_per_kwh: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=6), default=0)

    document_billed_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=14, scale=2), nullable=True
    )
    variance_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=14, scale=4), nullable=True
    )
    variance_percentage: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=10, scale=4), nullable=True
    )

    tariff_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    calculation_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
