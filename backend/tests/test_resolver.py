from __future__ import annotations

import sqlite3

import pytest
import structlog
from structlog.testing import CapturingLogger

from geofill.domain.location import GeocodeResult, LocationInput
from geofill.services.resolver import LocationResolver


_GEOCODES = {
    "Manvel, Texas": GeocodeResult(
        city="Manvel",
        state="Texas",
        state_code="TX",
        latitude=29.4627,
        longitude=-95.3577,
        country="United States",
        iso="US",
    ),
    "Los Angeles, California": GeocodeResult(
        city="Los Angeles",
        state="California",
        state_code="CA",
        latitude=34.0537,
        longitude=-118.2428,
        country="United States",
        iso="US",
    ),
}


async def _stub_geocoder(query):
    return _GEOCODES.get(query, GeocodeResult.empty("No geocoding candidates"))


async def _unexpected_geocoder(*_args):
    raise AssertionError("geocoder should not be called")


async def _failing_geocoder(_query):
    raise ConnectionError("geocoder unreachable")


class _UnusedRepository:
    def best_match(self, *_args):
        raise AssertionError("zip dataset should not be queried")


class _BrokenRepository:
    def best_match(self, *_args):
        raise sqlite3.OperationalError("no such table: zip_codes")


def _capturing_logger():
    capture = CapturingLogger()
    logger = structlog.wrap_logger(
        capture, processors=[structlog.processors.add_log_level]
    )
    return capture, logger


@pytest.mark.asyncio
async def test_resolver_fills_manvel_from_geocoder_and_dataset(zip_repository):
    resolver = LocationResolver(zip_repository, geocoder=_stub_geocoder)

    merged = await resolver.resolve(LocationInput(formatted_address="Manvel, Texas"))

    assert merged.city == "Manvel"
    assert merged.state == "Texas"
    assert merged.iso == "US"
    assert merged.zip == "77578"
    record = zip_repository.get(merged.zip)
    assert (record.city, record.state_code, record.iso) == ("Manvel", "TX", "US")
    assert merged.is_complete


@pytest.mark.asyncio
async def test_resolver_falls_back_to_state_when_city_is_unknown(zip_repository):
    resolver = LocationResolver(zip_repository, geocoder=_stub_geocoder)

    merged = await resolver.resolve(
        LocationInput(formatted_address="Los Angeles, California")
    )

    assert merged.city == "Los Angeles"
    assert merged.zip == "90077"
    record = zip_repository.get(merged.zip)
    assert (record.state_code, record.iso) == ("CA", "US")


@pytest.mark.asyncio
async def test_resolver_logs_one_event_per_filled_field(zip_repository):
    capture, logger = _capturing_logger()
    resolver = LocationResolver(zip_repository, geocoder=_stub_geocoder, logger=logger)
    location = LocationInput(formatted_address="Manvel, Texas")

    merged = await resolver.resolve(location)

    filled = [
        call.kwargs
        for call in capture.calls
        if call.kwargs.get("event") == "Location field auto-filled"
    ]
    summaries = [entry["summary"] for entry in filled]
    assert summaries == [
        "(geocodeApi) city=>Manvel",
        "(geocodeApi) state=>Texas",
        "(geocodeApi) latitude=>29.4627",
        "(geocodeApi) longitude=>-95.3577",
        "(geocodeApi) country=>United States",
        "(geocodeApi) iso=>US",
        "(Database) zip=>77578",
    ]
    newly_set = [
        name
        for name in ("city", "state", "zip", "latitude", "longitude", "country", "iso")
        if getattr(location, name) is None and getattr(merged, name) is not None
    ]
    assert len(merged.events) == len(newly_set) == len(filled)


@pytest.mark.asyncio
async def test_resolver_never_overwrites_caller_fields(zip_repository):
    resolver = LocationResolver(zip_repository, geocoder=_stub_geocoder)
    location = LocationInput(
        formatted_address="Manvel, Texas",
        state="TX",
        latitude=29.5,
        zip="77511",
    )

    merged = await resolver.resolve(location)

    assert merged.state == "TX"
    assert merged.latitude == 29.5
    assert merged.zip == "77511"
    assert merged.city == "Manvel"
    assert {event.field for event in merged.events} == {
        "city",
        "longitude",
        "country",
        "iso",
    }


@pytest.mark.asyncio
async def test_fully_specified_input_is_a_no_op():
    resolver = LocationResolver(
        _UnusedRepository(),
        geocoder=_unexpected_geocoder,
        reverse_geocoder=_unexpected_geocoder,
    )
    location = LocationInput(
        city="Manvel",
        state="TX",
        zip="77578",
        latitude=29.4627,
        longitude=-95.3577,
        country="United States",
        iso="US",
    )

    first = await resolver.resolve(location)
    second = await resolver.resolve(location)

    assert first == second
    assert first.as_dict() == second.as_dict()
    assert first.events == []
    assert first.zip == location.zip


@pytest.mark.asyncio
async def test_geocoder_failure_still_uses_caller_city_and_state(zip_repository):
    resolver = LocationResolver(zip_repository, geocoder=_failing_geocoder)

    merged = await resolver.resolve(LocationInput(city="Manvel", state="Texas"))

    assert merged.zip == "77578"
    assert merged.iso is None
    assert [str(event) for event in merged.events] == ["(Database) zip=>77578"]


@pytest.mark.asyncio
async def test_unresolvable_address_leaves_fields_empty(zip_repository):
    resolver = LocationResolver(zip_repository, geocoder=_stub_geocoder)

    merged = await resolver.resolve(LocationInput(formatted_address="Atlantis"))

    assert merged.events == []
    assert merged.missing_required == ["zip", "city", "state"]
    assert merged.formatted_address == "Atlantis"


@pytest.mark.asyncio
async def test_no_dataset_match_keeps_zip_empty(zip_repository):
    async def _wyoming(_query):
        return GeocodeResult(city="Cheyenne", state="Wyoming", iso="US")

    resolver = LocationResolver(zip_repository, geocoder=_wyoming)

    merged = await resolver.resolve(LocationInput(formatted_address="Cheyenne, WY"))

    assert merged.state == "Wyoming"
    assert merged.zip is None
    assert merged.missing_required == ["zip"]


@pytest.mark.asyncio
async def test_dataset_errors_are_treated_as_no_match():
    resolver = LocationResolver(_BrokenRepository(), geocoder=_stub_geocoder)

    merged = await resolver.resolve(LocationInput(formatted_address="Manvel, Texas"))

    assert merged.city == "Manvel"
    assert merged.zip is None


@pytest.mark.asyncio
async def test_coordinates_only_input_uses_reverse_geocoder(zip_repository):
    seen = []

    async def _reverse(latitude, longitude):
        seen.append((latitude, longitude))
        return _GEOCODES["Manvel, Texas"]

    resolver = LocationResolver(
        zip_repository, geocoder=_unexpected_geocoder, reverse_geocoder=_reverse
    )

    merged = await resolver.resolve(LocationInput(latitude=29.48, longitude=-95.36))

    assert seen == [(29.48, -95.36)]
    assert merged.latitude == 29.48
    assert merged.city == "Manvel"
    assert merged.zip == "77578"


@pytest.mark.asyncio
async def test_empty_input_is_returned_unchanged():
    resolver = LocationResolver(
        _UnusedRepository(),
        geocoder=_unexpected_geocoder,
        reverse_geocoder=_unexpected_geocoder,
    )

    merged = await resolver.resolve(LocationInput())

    assert merged.events == []
    assert all(value is None for value in merged.as_dict().values())
