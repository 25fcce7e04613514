import math

from geo_engine.distance import haversine_distance_km
from geo_engine.models import Coordinate


def is_point_inside_radius(center: Coordinate, point: Coordinate, radius_km: float) -> bool:
    if radius_km < 0:
        raise ValueError("radius_km must be >= 0")
    distance = haversine_distance_km(center, point)
    return math.isfinite(distance) and distance <= radius_km
