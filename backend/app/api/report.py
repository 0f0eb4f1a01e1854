"""Premium report API routes."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.score import ReportResponse
from app.services.livability_service import LivabilityService, get_livability_service

router = APIRouter()


@router.get("", response_model=ReportResponse)
async def get_report(
    address: str = Query(None),
    db: Session = Depends(get_db),
    service: LivabilityService = Depends(get_livability_service),
):
    """
    Get the premium detailed report for an address.

    The address must have been scored first. Payment is not checked.
    """
    if not address or not address.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Address parameter is required")

    return service.get_report(db, address.strip())
