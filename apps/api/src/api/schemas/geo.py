from pydantic import BaseModel


class GeoDistanceResult(BaseModel):
    distance_km: float
