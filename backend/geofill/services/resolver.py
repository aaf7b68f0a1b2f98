from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from threading import Lock
from typing import Any, Awaitable, Callable

from geofill.core.config import get_settings
from geofill.core.logging import get_logger
from geofill.domain.location import (
    DATABASE_SOURCE,
    GEOCODE_SOURCE,
    GEOCODED_FIELDS,
    GeocodeResult,
    LocationInput,
    MergeEvent,
    MergedLocation,
)
from geofill.domain.states import normalize_state_code
from geofill.services.geocoding import (
    compose_location_query,
    geocode_location,
    reverse_geocode_location,
)
from geofill.services.zip_repository import ZipRepository, get_zip_repository


GeocoderCallable = Callable[[str], Awaitable[GeocodeResult]]
ReverseGeocoderCallable = Callable[[float, float], Awaitable[GeocodeResult]]


_logger = get_logger(__name__)


class LocationResolver:
    """Fill missing location fields from the geocoder and the zip dataset.

    Caller-supplied values are never overwritten. Every field that gets
    filled produces one :class:`MergeEvent` and one log entry tagged with
    its source.
    """

    def __init__(
        self,
        repository: ZipRepository,
        *,
        geocoder: GeocoderCallable = geocode_location,
        reverse_geocoder: ReverseGeocoderCallable = reverse_geocode_location,
        default_iso: str = "US",
        logger: Any = None,
    ) -> None:
        self._repository = repository
        self._geocoder = geocoder
        self._reverse_geocoder = reverse_geocoder
        self._default_iso = default_iso.strip().upper() or "US"
        self._logger = logger if logger is not None else _logger

    async def resolve(self, location: LocationInput) -> MergedLocation:
        merged = MergedLocation.from_input(location)

        if location.is_fully_specified:
            return merged

        if location.missing(GEOCODED_FIELDS):
            geocoded = await self._geocode(location)
            state_code = geocoded.state_code
            for name in GEOCODED_FIELDS:
                event = merged.fill(name, getattr(geocoded, name), GEOCODE_SOURCE)
                self._record(event)
        else:
            state_code = None

        if merged.zip is None:
            await self._fill_zip(merged, state_code)

        self._logger.info(
            "Location resolved",
            merged=len(merged.events),
            missing_required=merged.missing_required,
        )
        return merged

    async def _geocode(self, location: LocationInput) -> GeocodeResult:
        query = compose_location_query(location)
        try:
            if query is not None:
                result = await self._geocoder(query)
            elif location.has_coordinates:
                result = await self._reverse_geocoder(
                    location.latitude, location.longitude  # type: ignore[arg-type]
                )
            else:
                self._logger.info("Geocoding skipped", reason="no descriptive fields")
                return GeocodeResult.empty()
        except Exception as exc:
            self._logger.warning("Geocoding failed", query=query, error=str(exc))
            return GeocodeResult.empty(str(exc))

        if result.is_empty:
            self._logger.info(
                "Geocoding returned no data", query=query, message=result.message
            )
        return result

    async def _fill_zip(self, merged: MergedLocation, state_code: str | None) -> None:
        state_code = normalize_state_code(merged.state) or state_code
        if state_code is None:
            self._logger.info(
                "Zip lookup skipped", reason="state unresolved", state=merged.state
            )
            return

        iso = (merged.iso or self._default_iso).upper()
        try:
            record = await asyncio.to_thread(
                self._repository.best_match,
                merged.city,
                state_code,
                iso,
                merged.latitude,
                merged.longitude,
            )
        except sqlite3.Error as exc:
            self._logger.warning(
                "Zip lookup failed", state_code=state_code, iso=iso, error=str(exc)
            )
            return

        if record is None:
            self._logger.info(
                "No zip match", city=merged.city, state_code=state_code, iso=iso
            )
            return

        self._record(merged.fill("zip", record.zip, DATABASE_SOURCE))

    def _record(self, event: MergeEvent | None) -> None:
        if event is None:
            return
        self._logger.info(
            "Location field auto-filled",
            source=event.source,
            field=event.field,
            value=event.value,
            summary=str(event),
        )


_resolvers: dict[Path, LocationResolver] = {}
_resolvers_lock = Lock()


def get_location_resolver(db_path: Path | None = None) -> LocationResolver:
    settings = get_settings()
    repository = get_zip_repository(
        db_path or settings.resolved_zip_db_path,
        seed_csv=settings.zip_seed_csv,
        default_iso=settings.default_iso,
    )
    key = repository.db_path
    with _resolvers_lock:
        resolver = _resolvers.get(key)
        if resolver is None:
            resolver = LocationResolver(repository, default_iso=settings.default_iso)
            _resolvers[key] = resolver
        return resolver
