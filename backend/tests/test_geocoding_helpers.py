from __future__ import annotations

from types import SimpleNamespace

import pytest
from geopy.exc import GeocoderTimedOut

from geofill.domain.location import LocationInput
from geofill.services import geocoding
from geofill.services.geocoding import (
    compose_location_query,
    extract_location_details,
    geocode_location,
)


@pytest.fixture(autouse=True)
def _clear_geocode_cache():
    geocoding.clear_cache()
    yield
    geocoding.clear_cache()


def _nominatim_location():
    return SimpleNamespace(
        latitude=29.4627,
        longitude=-95.3577,
        address="Manvel, Brazoria County, Texas, United States",
        raw={
            "address": {
                "town": "Manvel",
                "county": "Brazoria County",
                "state": "Texas",
                "ISO3166-2-lvl4": "US-TX",
                "country": "United States",
                "country_code": "us",
            }
        },
    )


def test_compose_location_query_prefers_formatted_address():
    location = LocationInput(formatted_address="Manvel, Texas", city="Alvin")

    assert compose_location_query(location) == "Manvel, Texas"


def test_compose_location_query_joins_components():
    assert compose_location_query(LocationInput(city="Austin", state="TX")) == (
        "Austin, TX"
    )
    assert compose_location_query(LocationInput(latitude=1.0, longitude=2.0)) is None


def test_extract_nominatim_details():
    result = extract_location_details("nominatim", _nominatim_location().raw)

    assert result.city == "Manvel"
    assert result.state == "Texas"
    assert result.state_code == "TX"
    assert result.country == "United States"
    assert result.iso == "US"


def test_extract_google_details():
    raw = {
        "address_components": [
            {"long_name": "Los Angeles", "short_name": "LA", "types": ["locality"]},
            {
                "long_name": "California",
                "short_name": "CA",
                "types": ["administrative_area_level_1", "political"],
            },
            {
                "long_name": "United States",
                "short_name": "US",
                "types": ["country", "political"],
            },
        ]
    }

    result = extract_location_details("google", raw)

    assert result.city == "Los Angeles"
    assert result.state == "California"
    assert result.state_code == "CA"
    assert result.iso == "US"


def test_extract_details_without_address_block_is_empty():
    assert extract_location_details("nominatim", {}).is_empty
    assert extract_location_details("google", {"address_components": None}).is_empty


@pytest.mark.asyncio
async def test_geocode_location_maps_and_caches_result(monkeypatch):
    calls: list[str] = []

    async def _fake_geocode(query):
        calls.append(query)
        return _nominatim_location()

    monkeypatch.setattr(geocoding, "_geocode", _fake_geocode)

    first = await geocode_location("Manvel,  Texas")
    second = await geocode_location("manvel, texas")

    assert calls == ["Manvel, Texas"]
    assert first is second
    assert first.city == "Manvel"
    assert first.latitude == pytest.approx(29.4627)
    assert first.resolved_label.startswith("Manvel")


@pytest.mark.asyncio
async def test_geocode_location_converts_timeouts_to_empty_result(monkeypatch):
    async def _timeout(_query):
        raise GeocoderTimedOut("slow")

    monkeypatch.setattr(geocoding, "_geocode", _timeout)

    result = await geocode_location("Manvel, Texas")

    assert result.is_empty
    assert result.message == "Geocoding timed out"


@pytest.mark.asyncio
async def test_geocode_location_handles_missing_candidates(monkeypatch):
    async def _nothing(_query):
        return None

    monkeypatch.setattr(geocoding, "_geocode", _nothing)

    result = await geocode_location("Atlantis")

    assert result.is_empty
    assert result.message == "No geocoding candidates"


@pytest.mark.asyncio
async def test_reverse_geocode_location_uses_reverse_lookup(monkeypatch):
    seen = []

    async def _fake_reverse(coordinates):
        seen.append(coordinates)
        return _nominatim_location()

    monkeypatch.setattr(geocoding, "_reverse", _fake_reverse)

    result = await geocoding.reverse_geocode_location(29.4627, -95.3577)

    assert seen == [(29.4627, -95.3577)]
    assert result.state_code == "TX"
