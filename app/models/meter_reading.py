"""MeterReading database model."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, ForeignKey, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.models.meter import Meter


class MeterReading(Base):
    """Interval reading ingested from an uploaded data file."""

    __tablename__ = "meter_readings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    meter_id: Mapped[int] = mapped_column(ForeignKey("meters.id"), index=True)

    reading_timestamp: Mapped[datetime] = mapped_column(index=True)  # End of the interval
    kwh_value: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=4))
    kva_value: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=14, scale=4), nullable=True
    )

    # {"imported_fields": {"P1 (kWh)": 1.2, "S (kVA)": 3.4, ...}}
    reading_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))

    meter: Mapped["Meter"] = relationship(back_populates="readings")

    def get_imported_fields(self) -> dict[str, Any]:
        """Return the imported column values, or an empty dict."""
        if not self.reading_metadata:
            return {}
        return self.reading_metadata.get("imported_fields") or {}
