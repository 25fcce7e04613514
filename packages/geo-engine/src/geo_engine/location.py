from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
import ipaddress
import logging
import time
from typing import Any, Protocol

import httpx

from geo_engine.models import Coordinate

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 15_000
DEFAULT_MAX_CACHE_AGE_MS = 300_000
DEFAULT_SUBJECT = "self"
DEFAULT_MAX_CACHE_ENTRIES = 1024


class LocationUnavailable(Exception):
    """Base class for location acquisition failures.

    The concrete subclass tells the caller which remedy to show.
    """

    reason = "unavailable"


class LocationPermissionDenied(LocationUnavailable):
    reason = "permission_denied"


class LocationPositionUnavailable(LocationUnavailable):
    reason = "unavailable"


class LocationTimeout(LocationUnavailable):
    reason = "timeout"


class LocationPlatform(Protocol):
    async def current_position(self, subject: str) -> Coordinate: ...


@dataclass(frozen=True)
class _CachedFix:
    coordinate: Coordinate
    acquired_at_ms: float


class LocationProvider:
    """Acquires a position per subject and keeps recent fixes.

    Fixes older than ``cache_ttl_ms`` are evicted on the next insert, and the
    cache never holds more than ``max_cache_entries`` subjects.
    """

    def __init__(
        self,
        platform: LocationPlatform,
        clock_ms: Callable[[], float] | None = None,
        cache_ttl_ms: int = DEFAULT_MAX_CACHE_AGE_MS,
        max_cache_entries: int = DEFAULT_MAX_CACHE_ENTRIES,
    ) -> None:
        if max_cache_entries < 1:
            raise ValueError("max_cache_entries must be positive")
        self._platform = platform
        self._clock_ms = clock_ms or (lambda: time.monotonic() * 1000.0)
        self._cache_ttl_ms = cache_ttl_ms
        self._max_cache_entries = max_cache_entries
        self._cache: OrderedDict[str, _CachedFix] = OrderedDict()

    @property
    def cached_subjects(self) -> int:
        return len(self._cache)

    async def acquire_location(
        self,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_cache_age_ms: int = DEFAULT_MAX_CACHE_AGE_MS,
        subject: str = DEFAULT_SUBJECT,
    ) -> Coordinate:
        now = self._clock_ms()
        cached = self._cache.get(subject)
        if cached is not None and now - cached.acquired_at_ms <= max_cache_age_ms:
            return cached.coordinate

        try:
            coordinate = await asyncio.wait_for(
                self._platform.current_position(subject),
                timeout=timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("location_timeout", extra={"component": "geo_engine", "timeout_ms": timeout_ms})
            raise LocationTimeout(f"location not acquired within {timeout_ms} ms") from exc

        if not coordinate.is_valid():
            raise LocationPositionUnavailable("platform returned an out-of-range position")
        self._remember(subject, coordinate)
        return coordinate

    def _remember(self, subject: str, coordinate: Coordinate) -> None:
        now = self._clock_ms()
        self._cache.pop(subject, None)
        while self._cache:
            oldest = next(iter(self._cache.values()))
            if now - oldest.acquired_at_ms <= self._cache_ttl_ms and len(self._cache) < self._max_cache_entries:
                break
            self._cache.popitem(last=False)
        self._cache[subject] = _CachedFix(coordinate=coordinate, acquired_at_ms=now)


class StaticLocationPlatform:
    def __init__(self, coordinate: Coordinate) -> None:
        self._coordinate = coordinate

    async def current_position(self, subject: str) -> Coordinate:
        del subject
        return self._coordinate


class HttpGeolocationPlatform:
    """Resolves a client address through an ip-api compatible endpoint."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._client_factory = client_factory

    async def current_position(self, subject: str) -> Coordinate:
        try:
            address = ipaddress.ip_address(subject)
        except ValueError as exc:
            raise LocationPositionUnavailable("subject is not an ip address") from exc
        try:
            factory = self._client_factory or (lambda: httpx.AsyncClient(timeout=self._timeout_seconds))
            async with factory() as client:
                response = await client.get(
                    f"{self._base_url}/json/{address}",
                    params={"fields": "status,message,lat,lon"},
                )
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise LocationTimeout("geolocation lookup timed out") from exc
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code in (401, 403):
                raise LocationPermissionDenied("geolocation lookup refused") from exc
            raise LocationPositionUnavailable("geolocation lookup failed") from exc
        except httpx.HTTPError as exc:
            raise LocationPositionUnavailable("geolocation lookup failed") from exc

        try:
            payload: dict[str, Any] = response.json()
        except ValueError as exc:
            raise LocationPositionUnavailable("geolocation response is not json") from exc
        if payload.get("status") != "success":
            raise LocationPositionUnavailable(str(payload.get("message") or "position not determined"))
        try:
            return Coordinate(latitude=float(payload["lat"]), longitude=float(payload["lon"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise LocationPositionUnavailable("geolocation response missing coordinates") from exc
