"""Premium report model."""

import enum

from sqlalchemy import Column, Integer, DateTime, ForeignKey, JSON, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
from app.core.database import Base


class ReportStatus(str, enum.Enum):
    FREE = "free"
    PREMIUM = "premium"
    GENERATING = "generating"


class Report(Base):
    """Detailed report for an address."""

    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    address_id = Column(Integer, ForeignKey("addresses.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    status = Column(
        Enum(ReportStatus, name="report_status", values_callable=lambda e: [m.value for m in e]),
        default=ReportStatus.FREE,
        nullable=False,
    )

    detailed_data = Column(JSON)  # Full breakdown of all metrics
    purchased_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    address = relationship("Address", back_populates="reports")
    user = relationship("User", back_populates="reports")
