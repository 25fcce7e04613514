from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from devkit.config import ConfigurationError
from geo_engine.models import Coordinate

from api.clients.geodata_client import GeodataClient, build_overpass_query
from api.errors import SourceUnavailable

CENTER = Coordinate(latitude=-1.2921, longitude=36.8219)


def build_client(handler) -> GeodataClient:
    transport = httpx.MockTransport(handler)
    return GeodataClient(
        base_url="https://overpass.example.com/api/interpreter",
        timeout_seconds=5.0,
        client_factory=lambda: httpx.AsyncClient(transport=transport, timeout=5.0),
    )


def test_overpass_query_targets_hospitals_and_clinics_in_meters() -> None:
    query = build_overpass_query(CENTER, radius_km=10)

    assert query.startswith("[out:json][timeout:30];")
    assert query.count("(around:10000,-1.2921,36.8219)") == 6
    assert 'node["healthcare"="clinic"]' in query
    assert 'way["amenity"="hospital"]' in query
    assert query.endswith("out center;")


@pytest.mark.asyncio
async def test_geodata_client_posts_query_and_returns_elements() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/api/interpreter"
        form = parse_qs(request.content.decode())
        assert "around:10000" in form["data"][0]
        return httpx.Response(200, json={"elements": [{"id": 1, "lat": -1.29, "lon": 36.82}, "junk"]})

    elements = await build_client(handler).fetch_elements(CENTER, radius_km=10)

    assert elements == [{"id": 1, "lat": -1.29, "lon": 36.82}]


@pytest.mark.asyncio
async def test_geodata_client_maps_http_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=504, json={"remark": "busy"})

    with pytest.raises(SourceUnavailable):
        await build_client(handler).fetch_elements(CENTER, radius_km=10)


@pytest.mark.asyncio
async def test_geodata_client_maps_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("slow", request=request)

    with pytest.raises(SourceUnavailable):
        await build_client(handler).fetch_elements(CENTER, radius_km=10)


@pytest.mark.asyncio
async def test_geodata_client_rejects_non_json_payload() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>rate limited</html>")

    with pytest.raises(SourceUnavailable):
        await build_client(handler).fetch_elements(CENTER, radius_km=10)


@pytest.mark.asyncio
async def test_geodata_client_requires_base_url() -> None:
    client = GeodataClient(base_url=None)

    with pytest.raises(ConfigurationError):
        await client.fetch_elements(CENTER, radius_km=10)
