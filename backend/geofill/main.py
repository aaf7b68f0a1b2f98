from __future__ import annotations

from fastapi import FastAPI

from geofill.api.routes import router
from geofill.core.config import get_settings
from geofill.core.logging import configure_logging


settings = get_settings()
configure_logging(settings.debug)

app = FastAPI(title="Geofill API", version="0.1.0", debug=settings.debug)

app.include_router(router)


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Return basic service health."""

    return {"status": "ok"}
