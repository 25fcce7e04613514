from __future__ import annotations

import ipaddress
import logging

from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import ValidationError

from devkit.config import ServiceSettings
from geo_engine.location import LocationPositionUnavailable, LocationProvider
from geo_engine.models import Coordinate

from api.dependencies import get_discovery_service, get_local_facilities, get_location_provider, get_settings
from api.errors import ApiError
from api.models import Facility
from api.repositories.facility_repository import LocalFacilityRepository
from api.response import success_response
from api.schemas.clinic import ClinicUpsertRequest, FacilityItem
from api.services.clinic_discovery import ClinicDiscoveryService
from shared.security import SignatureValidationError, authenticate_webhook

logger = logging.getLogger(__name__)

router = APIRouter(tags=["clinics"])


def _resolve_client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        candidate = forwarded.split(",", 1)[0].strip()
    elif request.client:
        candidate = request.client.host
    else:
        candidate = ""
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError as exc:
        raise LocationPositionUnavailable("caller address is not an ip address") from exc


def _verify_internal_signature(settings: ServiceSettings, raw_body: bytes, signature: str | None) -> bytes:
    secret = settings.INTERNAL_API_HMAC_SECRET
    if not secret:
        raise ApiError("INTERNAL_AUTH_NOT_CONFIGURED", "Internal api auth is not configured", 503)
    try:
        return authenticate_webhook(raw_body, signature, secret).raw_body
    except SignatureValidationError as exc:
        logger.warning("internal_signature_rejected", extra={"component": "api"})
        raise ApiError("UNAUTHORIZED", str(exc), 401) from exc


@router.get("/v1/clinics/nearby")
async def nearby_clinics(
    request: Request,
    lat: float | None = Query(default=None, ge=-90, le=90),
    lng: float | None = Query(default=None, ge=-180, le=180),
    service: ClinicDiscoveryService = Depends(get_discovery_service),
    location_provider: LocationProvider = Depends(get_location_provider),
) -> dict:
    if (lat is None) != (lng is None):
        raise ApiError("VALIDATION_ERROR", "lat and lng must be sent together", 422)
    if lat is not None and lng is not None:
        center = Coordinate(latitude=lat, longitude=lng)
    else:
        center = await location_provider.acquire_location(subject=_resolve_client_key(request))

    result = await service.find_nearby(center)
    data = [FacilityItem.from_facility(item).model_dump() for item in result.facilities]
    return success_response(
        data,
        meta={
            "count": len(data),
            "source": result.source,
            "radius_km": result.radius_km,
            "center": {"latitude": center.latitude, "longitude": center.longitude},
        },
    )


@router.post("/internal/clinics/upsert")
async def upsert_clinic(
    request: Request,
    repository: LocalFacilityRepository = Depends(get_local_facilities),
    settings: ServiceSettings = Depends(get_settings),
    x_internal_signature: str | None = Header(default=None),
) -> dict:
    raw_body = _verify_internal_signature(settings, await request.body(), x_internal_signature)
    try:
        body = ClinicUpsertRequest.model_validate_json(raw_body)
    except ValidationError as exc:
        message = "; ".join(err["msg"] for err in exc.errors())
        raise ApiError("VALIDATION_ERROR", message, 422) from exc
    saved = await repository.upsert(
        Facility(
            id=body.id,
            name=body.name,
            address=body.address,
            coordinate=Coordinate(latitude=body.latitude, longitude=body.longitude),
            phone=body.phone,
        )
    )
    return success_response({"id": saved.id}, meta={})
