"""User model."""

from sqlalchemy import Column, Integer, String, Text
from sqlalchemy.orm import relationship
from app.core.database import Base


class User(Base):
    """Purchaser of premium reports."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(Text)
    phone = Column(String(256))

    # Relationships
    reports = relationship("Report", back_populates="user")
