from __future__ import annotations

from fastapi import APIRouter, Depends, status

from geofill.core.config import get_settings
from geofill.schemas.location import LocationRequest, LocationResponse
from geofill.services.resolver import LocationResolver, get_location_resolver
from geofill.services.validation import validate_location


router = APIRouter()


def get_resolver() -> LocationResolver:
    settings = get_settings()
    return get_location_resolver(settings.resolved_zip_db_path)


@router.post(
    "/resolve",
    response_model=LocationResponse,
    status_code=status.HTTP_200_OK,
)
async def resolve_location(
    payload: LocationRequest,
    resolver: LocationResolver = Depends(get_resolver),
) -> LocationResponse:
    merged = await resolver.resolve(payload.to_input())
    validation = validate_location(merged)
    return LocationResponse.from_merged(
        merged,
        is_valid=validation.is_valid,
        reason=validation.reason,
        errors=validation.errors,
    )
