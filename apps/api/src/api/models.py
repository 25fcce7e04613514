from __future__ import annotations

from dataclasses import dataclass, replace

from geo_engine.models import Coordinate


@dataclass(frozen=True)
class Facility:
    id: str
    name: str
    address: str
    coordinate: Coordinate
    phone: str | None = None
    distance_km: float | None = None

    def with_distance(self, distance_km: float) -> Facility:
        return replace(self, distance_km=distance_km)
