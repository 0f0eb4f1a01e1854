"""Database models."""

from app.models.user import User
from app.models.address import Address, LivabilityScore
from app.models.report import Report, ReportStatus

__all__ = ["User", "Address", "LivabilityScore", "Report", "ReportStatus"]
