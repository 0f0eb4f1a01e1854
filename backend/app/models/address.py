"""Address and livability score models."""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from app.core.database import Base


class Address(Base):
    """A geocoded address, keyed by the exact text the user searched for."""

    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True)
    address = Column(Text, nullable=False, index=True)
    city = Column(String(100))
    district = Column(String(100))
    latitude = Column(Numeric(10, 7))
    longitude = Column(Numeric(10, 7))

    # Metadata
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    scores = relationship("LivabilityScore", back_populates="address", cascade="all, delete-orphan")
    reports = relationship("Report", back_populates="address", cascade="all, delete-orphan")


class LivabilityScore(Base):
    """Calculated livability scores for an address."""

    __tablename__ = "livability_scores"

    id = Column(Integer, primary_key=True, index=True)
    address_id = Column(Integer, ForeignKey("addresses.id"), nullable=False, index=True)

    # Sub-scores, all 0-100
    overall_score = Column(Numeric(5, 2))
    noise_score = Column(Numeric(5, 2))  # higher = quieter
    air_quality_score = Column(Numeric(5, 2))  # higher = better
    safety_score = Column(Numeric(5, 2))  # higher = safer
    convenience_score = Column(Numeric(5, 2))  # higher = more convenient
    zoning_risk_score = Column(Numeric(5, 2))  # higher = lower risk

    # Raw metrics behind the scores, for detailed reports
    raw_data = Column(JSON)

    # Metadata
    calculated_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    address = relationship("Address", back_populates="scores")
