from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from devkit.config import ConfigurationError, ServiceSettings
from geo_engine.location import HttpGeolocationPlatform, LocationPlatform, LocationProvider

from api.circuit_breaker import CircuitBreaker
from api.clients.geodata_client import GeodataClient
from api.repositories.facility_repository import LocalFacilityRepository
from api.repositories.geodata_facility_repository import GeodataFacilityRepository
from api.services.clinic_discovery import ClinicDiscoveryService


class _UnconfiguredLocationPlatform:
    async def current_position(self, subject: str):
        del subject
        raise ConfigurationError("GEOLOCATION_BASE_URL")


@dataclass
class ApiComponents:
    discovery_service: ClinicDiscoveryService
    location_provider: LocationProvider
    local_facilities: LocalFacilityRepository

    async def close(self) -> None:
        await self.local_facilities.close()


def build_components(settings: ServiceSettings) -> ApiComponents:
    primary = GeodataFacilityRepository(
        GeodataClient(
            base_url=settings.GEODATA_BASE_URL,
            timeout_seconds=settings.GEODATA_TIMEOUT_SECONDS,
        ),
        circuit_breaker=CircuitBreaker("geodata", failure_threshold=3, recovery_timeout_seconds=30),
        timeout_seconds=settings.GEODATA_TIMEOUT_SECONDS,
    )
    secondary = LocalFacilityRepository(database_url=settings.DATABASE_URL)
    platform: LocationPlatform
    if settings.GEOLOCATION_BASE_URL:
        platform = HttpGeolocationPlatform(base_url=settings.GEOLOCATION_BASE_URL)
    else:
        platform = _UnconfiguredLocationPlatform()
    return ApiComponents(
        discovery_service=ClinicDiscoveryService(primary=primary, secondary=secondary),
        location_provider=LocationProvider(platform),
        local_facilities=secondary,
    )


def get_settings(request: Request) -> ServiceSettings:
    return request.app.state.settings


def get_components(request: Request) -> ApiComponents:
    return request.app.state.components


def get_discovery_service(request: Request) -> ClinicDiscoveryService:
    return get_components(request).discovery_service


def get_location_provider(request: Request) -> LocationProvider:
    return get_components(request).location_provider


def get_local_facilities(request: Request) -> LocalFacilityRepository:
    return get_components(request).local_facilities
