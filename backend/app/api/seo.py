"""Sharing metadata and sitemap routes."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.seo import SEOMeta
from app.services.livability_service import LivabilityService, get_livability_service
from app.services.seo import build_share_metadata, render_sitemap

router = APIRouter()


@router.get("/api/share", response_model=SEOMeta)
async def get_share_metadata(
    address: str = Query(None),
    url: str = Query(None, description="Page URL being shared"),
    db: Session = Depends(get_db),
    service: LivabilityService = Depends(get_livability_service),
):
    """Open Graph, Twitter and LINE tags for a scored address."""
    if not address or not address.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Address parameter is required")

    score = service.get_stored_score(db, address.strip())
    return build_share_metadata(score.address, score.scores.overall, url)


@router.get("/sitemap.xml")
async def sitemap(request: Request):
    """XML sitemap of the static pages."""
    base_url = str(request.base_url)
    return Response(
        content=render_sitemap(base_url),
        media_type="application/xml",
        headers={"Cache-Control": "public, max-age=3600"},
    )
