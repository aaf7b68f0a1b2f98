from __future__ import annotations

import re
from dataclasses import dataclass, field

from geofill.domain.geometry import is_valid_coordinate
from geofill.domain.location import MergedLocation


@dataclass(slots=True)
class LocationValidationResult:
    is_valid: bool
    reason: str | None = None
    errors: dict[str, str] = field(default_factory=dict)


_US_ZIP_PATTERN = re.compile(r"\d{5}(?:-\d{4})?")

_MISSING_MESSAGES = {
    "zip": "Could not find a zip code",
    "city": "Could not determine the city",
    "state": "Could not determine the state",
}


def validate_location(location: MergedLocation) -> LocationValidationResult:
    """Check that a resolved location is complete enough to accept."""

    errors: dict[str, str] = {}

    for name in location.missing_required:
        errors[name] = _MISSING_MESSAGES[name]

    iso = (location.iso or "US").upper()
    if location.zip is not None and iso == "US":
        if not _US_ZIP_PATTERN.fullmatch(location.zip):
            errors["zip"] = "Zip code must look like 12345 or 12345-6789"

    has_latitude = location.latitude is not None
    has_longitude = location.longitude is not None
    if has_latitude != has_longitude:
        errors["coordinates"] = "Latitude and longitude must be supplied together"
    elif has_latitude and not is_valid_coordinate(
        location.latitude, location.longitude
    ):
        errors["coordinates"] = "Coordinates are out of range"

    if not errors:
        return LocationValidationResult(True)

    reason = next(iter(errors.values()))
    return LocationValidationResult(False, reason=reason, errors=errors)
