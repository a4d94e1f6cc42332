from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from listing_pipeline.app.core.settings import settings
from listing_pipeline.app.db.session import Database

from .routes import listings


def create_app(database: Optional[Database] = None) -> FastAPI:
    app = FastAPI(title="Listing Pipeline API", version="0.1.0")
    app.state.database = database or Database.from_settings(settings)
    app.include_router(listings.router, prefix="/listings", tags=["listings"])
    return app
