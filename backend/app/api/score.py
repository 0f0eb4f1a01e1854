"""Livability score API routes."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.score import ProgressRequest, RecalculateRequest, ScoreResponse
from app.services.livability_service import LivabilityService, get_livability_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _first_error(exc: ValidationError) -> str:
    message = exc.errors()[0].get("msg", "Invalid request body")
    return message.removeprefix("Value error, ")


@router.get("", response_model=ScoreResponse)
async def get_score(
    address: str = Query(None, description="Taiwan address, in Chinese or English"),
    db: Session = Depends(get_db),
    service: LivabilityService = Depends(get_livability_service),
):
    """
    Get the livability score for an address.

    A stored score younger than SCORE_MAX_AGE_HOURS is returned as is;
    otherwise every data source is fetched and a new score is stored.
    """
    if not address or not address.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Address parameter is required")

    return await service.get_or_create_score(db, address.strip())


@router.post("/recalculate", response_model=ScoreResponse)
async def recalculate_score(
    payload: Dict[str, Any] = Body(...),
    service: LivabilityService = Depends(get_livability_service),
):
    """Score arbitrary coordinates, e.g. after the user moves the map pin. Nothing is stored."""
    try:
        request = RecalculateRequest.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_first_error(e))

    return await service.recalculate(request.latitude, request.longitude)


@router.post("/progress")
async def score_progress(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    service: LivabilityService = Depends(get_livability_service),
):
    """Calculate a score while streaming progress as server-sent events."""
    try:
        request = ProgressRequest.model_validate(payload)
    except ValidationError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Address parameter is required")

    return StreamingResponse(
        service.stream_score_progress(db, request.address.strip()),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
