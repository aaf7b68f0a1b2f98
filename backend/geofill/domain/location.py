from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Literal

MergeSource = Literal["geocodeApi", "Database"]

GEOCODE_SOURCE: MergeSource = "geocodeApi"
DATABASE_SOURCE: MergeSource = "Database"

LOCATION_FIELDS = (
    "city",
    "state",
    "zip",
    "latitude",
    "longitude",
    "country",
    "iso",
)
GEOCODED_FIELDS = ("city", "state", "latitude", "longitude", "country", "iso")
REQUIRED_FIELDS = ("zip", "city", "state")


def _clean_text(value: object) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _clean_coordinate(value: object) -> float | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


@dataclass(slots=True)
class LocationInput:
    """Partial location supplied by the caller; every field is optional."""

    formatted_address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    country: str | None = None
    iso: str | None = None

    def __post_init__(self) -> None:
        self.formatted_address = _clean_text(self.formatted_address)
        self.city = _clean_text(self.city)
        self.state = _clean_text(self.state)
        self.zip = _clean_text(self.zip)
        self.country = _clean_text(self.country)
        self.iso = _clean_text(self.iso)
        self.latitude = _clean_coordinate(self.latitude)
        self.longitude = _clean_coordinate(self.longitude)

    def missing(self, names: tuple[str, ...] = LOCATION_FIELDS) -> list[str]:
        return [name for name in names if getattr(self, name) is None]

    @property
    def is_fully_specified(self) -> bool:
        return not self.missing()

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(slots=True)
class GeocodeResult:
    """Structured attributes returned by the geocoding capability."""

    city: str | None = None
    state: str | None = None
    state_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    country: str | None = None
    iso: str | None = None
    message: str | None = None
    resolved_label: str | None = None

    @classmethod
    def empty(cls, message: str | None = None) -> "GeocodeResult":
        return cls(message=message)

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in GEOCODED_FIELDS)


@dataclass(frozen=True, slots=True)
class ZipRecord:
    zip: str
    city: str
    state_code: str
    iso: str = "US"
    latitude: float | None = None
    longitude: float | None = None

    def __post_init__(self) -> None:
        if not self.zip or not str(self.zip).strip():
            raise ValueError("ZipRecord requires a zip code")


@dataclass(frozen=True, slots=True)
class MergeEvent:
    """One field filled in from a named source."""

    source: MergeSource
    field: str
    value: str

    def __str__(self) -> str:
        return f"({self.source}) {self.field}=>{self.value}"

    def as_dict(self) -> dict[str, str]:
        return {"source": self.source, "field": self.field, "value": self.value}


@dataclass(slots=True)
class MergedLocation:
    """Caller input plus every field discovered during resolution."""

    formatted_address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    country: str | None = None
    iso: str | None = None
    events: list[MergeEvent] = field(default_factory=list)

    @classmethod
    def from_input(cls, location: LocationInput) -> "MergedLocation":
        return cls(
            **{item.name: getattr(location, item.name) for item in fields(location)}
        )

    def fill(self, name: str, value: object, source: MergeSource) -> MergeEvent | None:
        """Set ``name`` only when it is still missing; return the merge event."""

        if name not in LOCATION_FIELDS:
            raise ValueError(f"Unknown location field '{name}'")
        if getattr(self, name) is not None:
            return None

        if name in ("latitude", "longitude"):
            cleaned: object = _clean_coordinate(value)
        else:
            cleaned = _clean_text(value)
        if cleaned is None:
            return None

        setattr(self, name, cleaned)
        event = MergeEvent(source=source, field=name, value=str(cleaned))
        self.events.append(event)
        return event

    @property
    def missing_required(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if getattr(self, name) is None]

    @property
    def is_complete(self) -> bool:
        return not self.missing_required

    def as_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"formatted_address": self.formatted_address}
        payload.update({name: getattr(self, name) for name in LOCATION_FIELDS})
        return payload
