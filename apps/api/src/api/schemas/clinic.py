from __future__ import annotations

from pydantic import BaseModel, Field

from api.models import Facility


class FacilityItem(BaseModel):
    id: str
    name: str
    address: str
    latitude: float
    longitude: float
    phone: str | None = None
    distance_km: float

    @classmethod
    def from_facility(cls, facility: Facility) -> FacilityItem:
        return cls(
            id=facility.id,
            name=facility.name,
            address=facility.address,
            latitude=facility.coordinate.latitude,
            longitude=facility.coordinate.longitude,
            phone=facility.phone,
            distance_km=round(facility.distance_km or 0.0, 3),
        )


class ClinicUpsertRequest(BaseModel):
    id: str
    name: str
    address: str = "Address not available"
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    phone: str | None = None
