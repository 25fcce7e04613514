from __future__ import annotations

import math

from fastapi import APIRouter, Query

from geo_engine.distance import haversine_distance_km
from geo_engine.models import Coordinate

from api.errors import ApiError
from api.response import success_response
from api.schemas.geo import GeoDistanceResult

router = APIRouter(prefix="/v1/geo", tags=["geo"])


@router.get("/distance")
async def distance(
    origin_lat: float = Query(..., ge=-90, le=90),
    origin_lng: float = Query(..., ge=-180, le=180),
    target_lat: float = Query(..., ge=-90, le=90),
    target_lng: float = Query(..., ge=-180, le=180),
) -> dict:
    distance_km = haversine_distance_km(
        Coordinate(latitude=origin_lat, longitude=origin_lng),
        Coordinate(latitude=target_lat, longitude=target_lng),
    )
    if not math.isfinite(distance_km):
        raise ApiError("VALIDATION_ERROR", "coordinates are not finite", 422)
    return success_response(GeoDistanceResult(distance_km=round(distance_km, 3)).model_dump(), meta={})
