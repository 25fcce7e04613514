from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
import logging
from typing import Protocol

from geo_engine.distance import haversine_distance_km
from geo_engine.geofence import is_point_inside_radius
from geo_engine.models import Coordinate

from api.errors import DiscoveryUnavailable, SourceUnavailable
from api.models import Facility

logger = logging.getLogger(__name__)

PRIMARY_RADIUS_KM = 10.0
SECONDARY_RADIUS_KM = 50.0
PRIMARY_RESULT_CAP = 20


class FacilitySource(Protocol):
    source_name: str

    async def fetch(self, center: Coordinate, radius_km: float) -> list[Facility]: ...


@dataclass(frozen=True)
class DiscoveryResult:
    facilities: list[Facility]
    source: str
    radius_km: float


def rank_candidates(
    center: Coordinate,
    candidates: Iterable[Facility],
    radius_km: float,
    limit: int | None = None,
) -> list[Facility]:
    """Distance-filter, de-duplicate by id and sort ascending by distance.

    Candidates with an out-of-range coordinate are dropped before any distance
    is computed.

    The first occurrence of an id wins and ``sorted`` is stable, so equal
    distances keep the order the source returned them in.
    """
    seen: set[str] = set()
    ranked: list[Facility] = []
    for candidate in candidates:
        if not candidate.coordinate.is_valid():
            continue
        if not is_point_inside_radius(center, candidate.coordinate, radius_km):
            continue
        if candidate.id in seen:
            continue
        seen.add(candidate.id)
        ranked.append(candidate.with_distance(haversine_distance_km(center, candidate.coordinate)))
    ranked = sorted(ranked, key=lambda facility: facility.distance_km)
    return ranked[:limit] if limit is not None else ranked


class ClinicDiscoveryService:
    """Finds facilities near a point, falling back from the primary source to the secondary one.

    Read-only and free of shared state, so concurrent calls need no
    coordination.
    """

    def __init__(self, primary: FacilitySource, secondary: FacilitySource) -> None:
        self._primary = primary
        self._secondary = secondary

    async def find_nearby(self, center: Coordinate) -> DiscoveryResult:
        if not center.is_valid():
            raise DiscoveryUnavailable("center coordinate is out of range")

        primary_error: SourceUnavailable | None = None
        try:
            candidates = await self._primary.fetch(center, PRIMARY_RADIUS_KM)
        except SourceUnavailable as exc:
            primary_error = exc
            logger.warning(
                "clinic_discovery_primary_failed",
                extra={"component": "clinic_discovery", "error": str(exc)},
            )
        else:
            ranked = rank_candidates(center, candidates, PRIMARY_RADIUS_KM, limit=PRIMARY_RESULT_CAP)
            if ranked:
                return DiscoveryResult(ranked, source=self._primary.source_name, radius_km=PRIMARY_RADIUS_KM)
            logger.info("clinic_discovery_primary_empty", extra={"component": "clinic_discovery"})

        try:
            candidates = await self._secondary.fetch(center, SECONDARY_RADIUS_KM)
        except SourceUnavailable as exc:
            logger.error(
                "clinic_discovery_unavailable",
                extra={
                    "component": "clinic_discovery",
                    "primary_error": str(primary_error) if primary_error else None,
                    "secondary_error": str(exc),
                },
            )
            raise DiscoveryUnavailable("no facility source could be queried") from exc

        ranked = rank_candidates(center, candidates, SECONDARY_RADIUS_KM)
        logger.info(
            "clinic_discovery_fallback",
            extra={"component": "clinic_discovery", "count": len(ranked)},
        )
        return DiscoveryResult(ranked, source=self._secondary.source_name, radius_km=SECONDARY_RADIUS_KM)
