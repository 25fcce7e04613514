from __future__ import annotations

import asyncio
import logging
from typing import Any

from geo_engine.models import Coordinate

from api.circuit_breaker import CircuitBreaker, CircuitOpenError
from api.clients.geodata_client import GeodataClient
from api.errors import SourceUnavailable
from api.models import Facility

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "Medical Facility"
PLACEHOLDER_ADDRESS = "Address not available"


def _element_coordinate(element: dict[str, Any]) -> Coordinate | None:
    lat = element.get("lat")
    lon = element.get("lon")
    if lat is None or lon is None:
        center = element.get("center")
        if not isinstance(center, dict):
            return None
        lat = center.get("lat")
        lon = center.get("lon")
    if lat is None or lon is None:
        return None
    try:
        return Coordinate(latitude=float(lat), longitude=float(lon))
    except (TypeError, ValueError):
        return None


def _element_address(tags: dict[str, Any]) -> str:
    full = str(tags.get("addr:full") or "").strip()
    if full:
        return full
    street_city = f"{tags.get('addr:street') or ''} {tags.get('addr:city') or ''}".strip()
    return street_city or PLACEHOLDER_ADDRESS


def element_to_facility(element: dict[str, Any]) -> Facility | None:
    if element.get("id") is None:
        return None
    coordinate = _element_coordinate(element)
    if coordinate is None:
        return None
    tags = element.get("tags")
    if not isinstance(tags, dict):
        tags = {}
    phone = tags.get("phone") or tags.get("contact:phone")
    return Facility(
        id=f"osm_{element['id']}",
        name=str(tags.get("name") or tags.get("healthcare:speciality") or PLACEHOLDER_NAME),
        address=_element_address(tags),
        coordinate=coordinate,
        phone=str(phone) if phone else None,
    )


class GeodataFacilityRepository:
    """Primary facility source backed by the public geodata service."""

    source_name = "primary"

    def __init__(
        self,
        client: GeodataClient,
        circuit_breaker: CircuitBreaker | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._client = client
        self._circuit_breaker = circuit_breaker
        self._timeout_seconds = timeout_seconds

    async def fetch(self, center: Coordinate, radius_km: float) -> list[Facility]:
        self._client.ensure_configured()
        try:
            if self._circuit_breaker is None:
                elements = await self._fetch_bounded(center, radius_km)
            else:
                elements = await self._circuit_breaker.call(lambda: self._fetch_bounded(center, radius_km))
        except CircuitOpenError as exc:
            raise SourceUnavailable(self.source_name, "circuit open") from exc
        except asyncio.TimeoutError as exc:
            raise SourceUnavailable(self.source_name, f"no answer within {self._timeout_seconds}s") from exc

        facilities = [facility for facility in map(element_to_facility, elements) if facility is not None]
        skipped = len(elements) - len(facilities)
        if skipped:
            logger.info(
                "geodata_elements_skipped",
                extra={"component": "api", "skipped": skipped, "received": len(elements)},
            )
        return facilities

    async def _fetch_bounded(self, center: Coordinate, radius_km: float) -> list[dict[str, Any]]:
        return await asyncio.wait_for(
            self._client.fetch_elements(center, radius_km),
            timeout=self._timeout_seconds,
        )
