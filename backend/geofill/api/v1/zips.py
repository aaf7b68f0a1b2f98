from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, status

from geofill.core.config import get_settings
from geofill.schemas.location import ZipRecordResponse
from geofill.services import zip_repository as zip_store
from geofill.services.zip_repository import ZipRepository


router = APIRouter()


def get_zip_repository() -> ZipRepository:
    settings = get_settings()
    return zip_store.get_zip_repository(
        settings.resolved_zip_db_path,
        seed_csv=settings.zip_seed_csv,
        default_iso=settings.default_iso,
    )


@router.get(
    "/{zip_code}",
    response_model=ZipRecordResponse,
    status_code=status.HTTP_200_OK,
)
async def get_zip(
    zip_code: str,
    repository: ZipRepository = Depends(get_zip_repository),
) -> ZipRecordResponse:
    record = await asyncio.to_thread(repository.get, zip_code)
    if record is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Unknown zip code")
    return ZipRecordResponse.from_record(record)
