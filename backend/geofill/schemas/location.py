from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from geofill.domain.location import LocationInput, MergedLocation, ZipRecord


class LocationRequest(BaseModel):
    formatted_address: str | None = Field(default=None, max_length=1000)
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    country: str | None = None
    iso: str | None = Field(default=None, max_length=2)

    @field_validator(
        "formatted_address", "city", "state", "zip", "country", "iso", mode="before"
    )
    def _normalize_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @model_validator(mode="after")
    def _require_coordinate_pair(self) -> "LocationRequest":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be supplied together")
        return self

    def to_input(self) -> LocationInput:
        return LocationInput(**self.model_dump())


class LocationPayload(BaseModel):
    formatted_address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    country: str | None = None
    iso: str | None = None


class MergeEventPayload(BaseModel):
    source: Literal["geocodeApi", "Database"]
    field: str
    value: str


class LocationResponse(BaseModel):
    location: LocationPayload
    events: list[MergeEventPayload] = Field(default_factory=list)
    missing_required: list[str] = Field(default_factory=list)
    is_valid: bool
    reason: str | None = None
    errors: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_merged(
        cls,
        merged: MergedLocation,
        *,
        is_valid: bool,
        reason: str | None = None,
        errors: dict[str, str] | None = None,
    ) -> "LocationResponse":
        return cls(
            location=LocationPayload(**merged.as_dict()),
            events=[MergeEventPayload(**event.as_dict()) for event in merged.events],
            missing_required=merged.missing_required,
            is_valid=is_valid,
            reason=reason,
            errors=errors or {},
        )


class ZipRecordResponse(BaseModel):
    zip: str
    city: str
    state_code: str
    iso: str
    latitude: float | None = None
    longitude: float | None = None

    @classmethod
    def from_record(cls, record: ZipRecord) -> "ZipRecordResponse":
        return cls(
            zip=record.zip,
            city=record.city,
            state_code=record.state_code,
            iso=record.iso,
            latitude=record.latitude,
            longitude=record.longitude,
        )
