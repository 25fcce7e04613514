"""Geo engine core package."""

from geo_engine.distance import EARTH_RADIUS_KM, haversine_distance_km
from geo_engine.geofence import is_point_inside_radius
from geo_engine.location import (
    HttpGeolocationPlatform,
    LocationPermissionDenied,
    LocationPlatform,
    LocationPositionUnavailable,
    LocationProvider,
    LocationTimeout,
    LocationUnavailable,
    StaticLocationPlatform,
)
from geo_engine.models import Coordinate

__all__ = [
    "Coordinate",
    "EARTH_RADIUS_KM",
    "HttpGeolocationPlatform",
    "LocationPermissionDenied",
    "LocationPlatform",
    "LocationPositionUnavailable",
    "LocationProvider",
    "LocationTimeout",
    "LocationUnavailable",
    "StaticLocationPlatform",
    "haversine_distance_km",
    "is_point_inside_radius",
]
