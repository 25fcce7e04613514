from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from devkit.config import ConfigurationError
from geo_engine.models import Coordinate

from api.errors import SourceUnavailable

MEDICAL_FACILITY_SELECTORS = (
    'node["amenity"="hospital"]',
    'node["amenity"="clinic"]',
    'node["healthcare"="hospital"]',
    'node["healthcare"="clinic"]',
    'way["amenity"="hospital"]',
    'way["amenity"="clinic"]',
)


def build_overpass_query(center: Coordinate, radius_km: float, server_timeout_seconds: int = 30) -> str:
    around = f"(around:{int(round(radius_km * 1000))},{center.latitude},{center.longitude})"
    selectors = "\n".join(f"  {selector}{around};" for selector in MEDICAL_FACILITY_SELECTORS)
    return f"[out:json][timeout:{server_timeout_seconds}];\n(\n{selectors}\n);\nout center;"


class GeodataClient:
    """Client for an Overpass-compatible interpreter endpoint."""

    source_name = "geodata"

    def __init__(
        self,
        base_url: str | None,
        timeout_seconds: float = 10.0,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/") if base_url else None
        self._timeout_seconds = timeout_seconds
        self._client_factory = client_factory

    def ensure_configured(self) -> str:
        if not self._base_url:
            raise ConfigurationError("GEODATA_BASE_URL")
        return self._base_url

    async def fetch_elements(self, center: Coordinate, radius_km: float) -> list[dict[str, Any]]:
        base_url = self.ensure_configured()
        query = build_overpass_query(center, radius_km)
        try:
            factory = self._client_factory or (lambda: httpx.AsyncClient(timeout=self._timeout_seconds))
            async with factory() as client:
                response = await client.post(
                    base_url,
                    data={"data": query},
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise SourceUnavailable(self.source_name, "upstream timeout") from exc
        except httpx.HTTPStatusError as exc:
            raise SourceUnavailable(
                self.source_name,
                f"upstream returned {exc.response.status_code}",
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceUnavailable(self.source_name, "upstream request failed") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceUnavailable(self.source_name, "upstream response is not json") from exc
        elements = payload.get("elements") if isinstance(payload, dict) else None
        if not isinstance(elements, list):
            raise SourceUnavailable(self.source_name, "upstream response has no elements array")
        return [element for element in elements if isinstance(element, dict)]
