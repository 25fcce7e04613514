from __future__ import annotations

from dataclasses import dataclass
import math


@dataclass(frozen=True)
class Coordinate:
    """WGS84 point in degrees."""

    latitude: float
    longitude: float

    def is_valid(self) -> bool:
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            return False
        return -90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0
