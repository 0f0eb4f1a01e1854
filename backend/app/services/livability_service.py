"""
Livability scoring workflow: geocode, fetch, score and persist.
"""

import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import LivabilityError, NotFoundError, OutsideTaiwanError
from app.models.address import Address, LivabilityScore
from app.models.report import Report, ReportStatus
from app.schemas.score import (
    Coordinates,
    ReportResponse,
    ScoreBreakdown,
    ScoreResponse,
    Scores,
)
from app.services.address_normalizer import parse_taiwan_address
from app.services.data_fetchers import LivabilityDataFetcher, get_data_fetcher
from app.services.geo import is_within_taiwan
from app.services.score_calculator import calculate_all_scores

logger = logging.getLogger(__name__)

PROGRESS_STEPS = ("noise", "airQuality", "safety", "convenience", "zoning")


def _to_float(value: Optional[Decimal]) -> float:
    return float(value) if value is not None else 0.0


def format_sse(event: str, data: Dict[str, Any]) -> str:
    """Format one server-sent event."""
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def _coordinates(address: Address) -> Coordinates:
    return Coordinates(latitude=_to_float(address.latitude), longitude=_to_float(address.longitude))


def _scores(score: LivabilityScore) -> Scores:
    return Scores(
        overall=_to_float(score.overall_score),
        noise=_to_float(score.noise_score),
        air_quality=_to_float(score.air_quality_score),
        safety=_to_float(score.safety_score),
        convenience=_to_float(score.convenience_score),
        zoning_risk=_to_float(score.zoning_risk_score),
    )


def _is_approximate(score: Optional[LivabilityScore]) -> bool:
    if score is None or not score.raw_data:
        return False
    return bool(score.raw_data.get("isApproximate", False))


def _score_response(address: Address, score: LivabilityScore) -> ScoreResponse:
    is_approximate = _is_approximate(score)
    detailed_data = dict(score.raw_data or {})
    detailed_data["isApproximate"] = is_approximate
    return ScoreResponse(
        address=address.address,
        coordinates=_coordinates(address),
        is_approximate=is_approximate,
        scores=_scores(score),
        detailed_data=detailed_data,
    )


class LivabilityService:
    """Calculate, reuse and report livability scores for addresses."""

    def __init__(self, fetcher: Optional[LivabilityDataFetcher] = None):
        self.fetcher = fetcher or get_data_fetcher()

    @staticmethod
    def latest_score(db: Session, address: Address) -> Optional[LivabilityScore]:
        return (
            db.query(LivabilityScore)
            .filter(LivabilityScore.address_id == address.id)
            .order_by(LivabilityScore.calculated_at.desc(), LivabilityScore.id.desc())
            .first()
        )

    @staticmethod
    def is_fresh(score: Optional[LivabilityScore], now: Optional[datetime] = None) -> bool:
        """Whether a stored score is recent enough to serve again."""
        if score is None or score.calculated_at is None:
            return False
        now = now or datetime.utcnow()
        return now - score.calculated_at < timedelta(hours=settings.SCORE_MAX_AGE_HOURS)

    async def _resolve_address(self, db: Session, address: str) -> Tuple[Address, bool]:
        """
        Find the stored address or geocode and insert it.

        Returns:
            The address row and whether its coordinates are approximate
        """
        record = db.query(Address).filter(Address.address == address).first()
        if record is not None:
            return record, _is_approximate(self.latest_score(db, record))

        geocoded = await self.fetcher.geocode_address(address)
        parsed = parse_taiwan_address(address)
        record = Address(
            address=address,
            city=parsed.city,
            district=parsed.district,
            latitude=Decimal(str(round(geocoded.coordinates.latitude, 7))),
            longitude=Decimal(str(round(geocoded.coordinates.longitude, 7))),
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        logger.info(f"Stored new address {record.id}: {address}")
        return record, geocoded.is_approximate

    def _store_score(
        self, db: Session, address: Address, breakdown: ScoreBreakdown, is_approximate: bool
    ) -> LivabilityScore:
        raw_data = breakdown.raw_data.model_dump(by_alias=True)
        raw_data["isApproximate"] = is_approximate

        score = LivabilityScore(
            address_id=address.id,
            overall_score=Decimal(str(breakdown.overall)),
            noise_score=Decimal(str(breakdown.noise)),
            air_quality_score=Decimal(str(breakdown.air_quality)),
            safety_score=Decimal(str(breakdown.safety)),
            convenience_score=Decimal(str(breakdown.convenience)),
            zoning_risk_score=Decimal(str(breakdown.zoning_risk)),
            raw_data=raw_data,
            calculated_at=datetime.utcnow(),
        )
        db.add(score)
        db.commit()
        db.refresh(score)
        logger.info(f"Stored score {score.id} for address {address.id}: overall={breakdown.overall}")
        return score

    async def get_or_create_score(self, db: Session, address: str) -> ScoreResponse:
        """
        Return the score for an address, calculating it when there is no
        score younger than SCORE_MAX_AGE_HOURS.

        Raises:
            GeocodingError: the address could not be located
            UpstreamServiceError: a data provider failed
        """
        record, is_approximate = await self._resolve_address(db, address)

        existing = self.latest_score(db, record)
        if self.is_fresh(existing):
            logger.debug(f"Reusing score {existing.id} for address {record.id}")
            return _score_response(record, existing)

        coords = _coordinates(record)
        noise, air_quality, safety, convenience, zoning = await self.fetcher.fetch_all(coords)
        breakdown = calculate_all_scores(noise, air_quality, safety, convenience, zoning)

        score = self._store_score(db, record, breakdown, is_approximate)
        return _score_response(record, score)

    async def recalculate(self, latitude: float, longitude: float) -> ScoreResponse:
        """Score arbitrary coordinates without persisting anything."""
        if not is_within_taiwan(latitude, longitude):
            raise OutsideTaiwanError(latitude, longitude)

        coords = Coordinates(latitude=latitude, longitude=longitude)
        noise, air_quality, safety, convenience, zoning = await self.fetcher.fetch_all(coords)
        breakdown = calculate_all_scores(noise, air_quality, safety, convenience, zoning)

        detailed_data = breakdown.raw_data.model_dump(by_alias=True)
        detailed_data["isApproximate"] = False
        return ScoreResponse(
            coordinates=coords,
            is_approximate=False,
            scores=breakdown.scores(),
            detailed_data=detailed_data,
        )

    async def stream_score_progress(self, db: Session, address: str) -> AsyncIterator[str]:
        """
        Calculate a score step by step, yielding server-sent events.

        Emits one event per step (geocoding, then each data source) and a
        final `complete` event carrying the score response. Any failure ends
        the stream with a single `error` event.
        """
        total = len(PROGRESS_STEPS) + 1
        try:
            record, is_approximate = await self._resolve_address(db, address)
            yield format_sse("geocoding", {"step": "geocoding", "progress": 1, "total": total})

            existing = self.latest_score(db, record)
            if self.is_fresh(existing):
                response = _score_response(record, existing)
            else:
                coords = _coordinates(record)
                fetchers = {
                    "noise": self.fetcher.fetch_noise_data,
                    "airQuality": self.fetcher.fetch_air_quality_data,
                    "safety": self.fetcher.fetch_safety_data,
                    "convenience": self.fetcher.fetch_convenience_data,
                    "zoning": self.fetcher.fetch_zoning_data,
                }
                results = {}
                for index, step in enumerate(PROGRESS_STEPS, start=2):
                    results[step] = await fetchers[step](coords)
                    yield format_sse(step, {"step": step, "progress": index, "total": total})

                breakdown = calculate_all_scores(
                    results["noise"],
                    results["airQuality"],
                    results["safety"],
                    results["convenience"],
                    results["zoning"],
                )
                score = self._store_score(db, record, breakdown, is_approximate)
                response = _score_response(record, score)

            yield format_sse("complete", response.model_dump(by_alias=True))
        except LivabilityError as e:
            logger.warning(f"Score progress failed for {address!r}: {e}")
            yield format_sse("error", {"message": str(e)})
        except Exception as e:
            # The response has already started streaming, so no handler can turn this into a 500
            logger.error(f"Unexpected error streaming score for {address!r}: {e}", exc_info=True)
            db.rollback()
            yield format_sse("error", {"message": "Failed to calculate score"})

    def _find_scored_address(self, db: Session, address: str) -> Tuple[Address, LivabilityScore]:
        record = db.query(Address).filter(Address.address == address).first()
        if record is None:
            raise NotFoundError("Address not found. Please calculate score first.")

        score = self.latest_score(db, record)
        if score is None:
            raise NotFoundError("Score not found. Please calculate score first.")
        return record, score

    def get_stored_score(self, db: Session, address: str) -> ScoreResponse:
        """Latest stored score for an address, without calculating anything."""
        record, score = self._find_scored_address(db, address)
        return _score_response(record, score)

    def get_report(self, db: Session, address: str) -> ReportResponse:
        """
        Premium report for an already scored address.

        The first request creates the report from the latest raw data.

        Raises:
            NotFoundError: the address or its score does not exist
        """
        record, score = self._find_scored_address(db, address)

        report = (
            db.query(Report)
            .filter(Report.address_id == record.id, Report.status == ReportStatus.PREMIUM)
            .first()
        )
        if report is None:
            report = Report(
                address_id=record.id,
                status=ReportStatus.PREMIUM,
                detailed_data=score.raw_data,
                purchased_at=datetime.utcnow(),
            )
            db.add(report)
            db.commit()
            db.refresh(report)
            logger.info(f"Created premium report {report.id} for address {record.id}")

        return ReportResponse(
            address=record.address,
            coordinates=_coordinates(record),
            is_approximate=_is_approximate(score),
            scores=_scores(score),
            detailed_data=report.detailed_data or {},
            premium=True,
            report_id=report.id,
        )


def get_livability_service() -> LivabilityService:
    """FastAPI dependency for the livability service."""
    return LivabilityService(get_data_fetcher())
