import math

from geo_engine.models import Coordinate

EARTH_RADIUS_KM = 6371.0


def haversine_distance_km(start: Coordinate, end: Coordinate) -> float:
    """Great-circle distance in kilometres.

    Malformed input yields NaN rather than raising; callers decide what a
    non-finite distance means for them.
    """
    start_lat = math.radians(start.latitude)
    end_lat = math.radians(end.latitude)
    delta_lat = math.radians(end.latitude - start.latitude)
    delta_lng = math.radians(end.longitude - start.longitude)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(start_lat) * math.cos(end_lat) * math.sin(delta_lng / 2) ** 2
    )
    if not 0.0 <= a <= 1.0:
        # float error can push a just past 1 for antipodal points
        a = min(max(a, 0.0), 1.0) if math.isfinite(a) else math.nan
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c
