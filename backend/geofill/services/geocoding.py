from __future__ import annotations

import asyncio
from typing import Any, Mapping, TYPE_CHECKING, cast

from cachetools import TTLCache
from geopy.exc import (
    GeocoderQuotaExceeded,
    GeocoderServiceError,
    GeocoderTimedOut,
    GeocoderUnavailable,
    GeopyError,
)
from geopy.geocoders import get_geocoder_for_service
from geopy.geocoders.base import Geocoder

from geofill.core.config import get_settings
from geofill.core.logging import get_logger
from geofill.domain.location import GeocodeResult, LocationInput
from geofill.domain.states import normalize_state_code

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from geofill.core.config import Settings
    from geopy.location import Location

_logger = get_logger(__name__)
_cache: TTLCache[str, GeocodeResult] = TTLCache(maxsize=512, ttl=60 * 60 * 24)
_cache_lock = asyncio.Lock()
_geocoder_lock = asyncio.Lock()
_geocode_call_lock = asyncio.Lock()
_geocoder: Geocoder | None = None

_NOMINATIM_CITY_KEYS = ("city", "town", "village", "hamlet", "municipality")


class GeocodeConfigurationError(RuntimeError):
    """Raised when the geocoder cannot be configured with provided settings."""


def compose_location_query(location: LocationInput) -> str | None:
    """Return the free-text query used to geocode ``location``."""

    if location.formatted_address:
        return location.formatted_address

    parts = [
        value
        for value in (location.city, location.state, location.zip, location.country)
        if value
    ]
    if not parts:
        return None
    return ", ".join(dict.fromkeys(parts))


async def geocode_location(query: str) -> GeocodeResult:
    """Resolve free text into structured location attributes."""

    normalized = " ".join(query.split())
    if not normalized:
        return GeocodeResult.empty("Empty geocoding query")

    return await _cached_lookup(normalized.lower(), normalized, _geocode)


async def reverse_geocode_location(latitude: float, longitude: float) -> GeocodeResult:
    """Resolve a coordinate pair into structured location attributes."""

    key = f"reverse:{latitude:.6f},{longitude:.6f}"
    return await _cached_lookup(key, (latitude, longitude), _reverse)


async def _cached_lookup(key: str, query: Any, lookup) -> GeocodeResult:
    async with _cache_lock:
        cached = _cache.get(key)
    if cached is not None:
        _logger.info("Geocoding cache hit", query=key)
        return cached

    _logger.info("Geocoding lookup", query=key)
    result = await _fetch(query, lookup)

    if result.message is None:
        async with _cache_lock:
            _cache[key] = result

    _logger.info(
        "Geocoding finished",
        query=key,
        city=result.city,
        state=result.state,
        iso=result.iso,
        latitude=result.latitude,
        longitude=result.longitude,
        message=result.message,
    )
    return result


async def _fetch(query: Any, lookup) -> GeocodeResult:
    settings = get_settings()
    try:
        location = await lookup(query)
    except GeocodeConfigurationError as exc:
        _logger.error("Geocoding misconfiguration", error=str(exc))
        return GeocodeResult.empty(str(exc))
    except (GeocoderQuotaExceeded, GeocoderTimedOut) as exc:
        retry_message = (
            "Geocoding quota exceeded"
            if isinstance(exc, GeocoderQuotaExceeded)
            else "Geocoding timed out"
        )
        _logger.warning("Geocoding unavailable", error=retry_message)
        return GeocodeResult.empty(retry_message)
    except (GeocoderServiceError, GeocoderUnavailable, GeopyError) as exc:
        _logger.warning("Geocoding failed", error=str(exc))
        return GeocodeResult.empty(str(exc))

    if location is None:
        return GeocodeResult.empty("No geocoding candidates")

    raw_obj = getattr(location, "raw", {}) or {}
    if isinstance(raw_obj, Mapping):
        raw: Mapping[str, object] = cast(Mapping[str, object], raw_obj)
    else:
        raw = {}

    result = extract_location_details(settings.geocoder_provider, raw)

    latitude = getattr(location, "latitude", None)
    longitude = getattr(location, "longitude", None)
    if latitude is not None and longitude is not None:
        result.latitude = float(latitude)
        result.longitude = float(longitude)

    result.resolved_label = getattr(location, "address", None) or _display_name(raw)
    return result


async def _geocode(query: str) -> "Location | None":
    geocoder = await _get_geocoder()
    settings = get_settings()
    kwargs: dict[str, object] = {"exactly_one": True}
    if settings.geocoder_provider == "nominatim":
        kwargs["addressdetails"] = True

    async with _geocode_call_lock:
        return await asyncio.to_thread(geocoder.geocode, query, **kwargs)


async def _reverse(coordinates: tuple[float, float]) -> "Location | None":
    geocoder = await _get_geocoder()
    settings = get_settings()
    kwargs: dict[str, object] = {"exactly_one": True}
    if settings.geocoder_provider == "nominatim":
        kwargs["addressdetails"] = True

    async with _geocode_call_lock:
        return await asyncio.to_thread(geocoder.reverse, coordinates, **kwargs)


async def _get_geocoder() -> Geocoder:
    global _geocoder
    async with _geocoder_lock:
        if _geocoder is None:
            _geocoder = _create_geocoder(get_settings())
        return _geocoder


def _create_geocoder(settings: "Settings") -> Geocoder:
    provider = settings.geocoder_provider
    timeout = settings.geocoder_timeout
    user_agent = settings.geocoder_user_agent or "geofill-geocoder"

    if provider == "google":
        api_key = _require_api_key(provider, settings.geocoder_api_key)
        geocoder_cls = get_geocoder_for_service("googlev3")
        kwargs: dict[str, object] = {
            "api_key": api_key,
            "timeout": timeout,
            "user_agent": user_agent,
        }
        if settings.geocoder_domain:
            kwargs["domain"] = settings.geocoder_domain
        return geocoder_cls(**kwargs)

    if provider == "nominatim":
        geocoder_cls = get_geocoder_for_service("nominatim")
        kwargs = {"user_agent": user_agent, "timeout": timeout}
        if settings.geocoder_domain:
            kwargs["domain"] = settings.geocoder_domain
        return geocoder_cls(**kwargs)

    raise GeocodeConfigurationError(f"Unsupported geocoder provider '{provider}'")


def _require_api_key(provider: str, value: str | None) -> str:
    if value and value.strip():
        return value.strip()
    raise GeocodeConfigurationError(
        f"Geocoder provider '{provider}' requires GEOFILL_GEOCODER_API_KEY to be set"
    )


def extract_location_details(
    provider: str, raw: Mapping[str, object]
) -> GeocodeResult:
    """Pull city, state and country attributes out of a provider payload."""

    if provider == "google":
        return _extract_google(raw)
    return _extract_nominatim(raw)


def _extract_nominatim(raw: Mapping[str, object]) -> GeocodeResult:
    address = raw.get("address")
    if not isinstance(address, Mapping):
        return GeocodeResult()

    city = next(
        (
            str(address[key])
            for key in _NOMINATIM_CITY_KEYS
            if isinstance(address.get(key), str) and address[key]
        ),
        None,
    )
    state = _as_text(address.get("state"))
    subdivision = _as_text(address.get("ISO3166-2-lvl4"))
    country_code = _as_text(address.get("country_code"))

    return GeocodeResult(
        city=city,
        state=state,
        state_code=normalize_state_code(subdivision) or normalize_state_code(state),
        country=_as_text(address.get("country")),
        iso=country_code.upper() if country_code else None,
    )


def _extract_google(raw: Mapping[str, object]) -> GeocodeResult:
    components = raw.get("address_components")
    if not isinstance(components, list):
        return GeocodeResult()

    result = GeocodeResult()
    for component in components:
        if not isinstance(component, Mapping):
            continue
        types = component.get("types") or []
        long_name = _as_text(component.get("long_name"))
        short_name = _as_text(component.get("short_name"))

        if "locality" in types and result.city is None:
            result.city = long_name
        elif "postal_town" in types and result.city is None:
            result.city = long_name
        elif "administrative_area_level_1" in types:
            result.state = long_name
            result.state_code = normalize_state_code(
                short_name
            ) or normalize_state_code(long_name)
        elif "country" in types:
            result.country = long_name
            result.iso = short_name.upper() if short_name else None

    return result


def _display_name(raw: Mapping[str, object]) -> str | None:
    for key in ("display_name", "formatted_address"):
        value = raw.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _as_text(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def clear_cache() -> None:
    _cache.clear()
