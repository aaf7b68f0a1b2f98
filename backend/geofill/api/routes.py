from __future__ import annotations

from fastapi import APIRouter

from geofill.api.v1 import locations, zips

router = APIRouter()
router.include_router(locations.router, prefix="/v1/locations", tags=["locations"])
router.include_router(zips.router, prefix="/v1/zips", tags=["zips"])
