# doggygallery/main.py: only app wiring, no endpoints here.
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.staticfiles import StaticFiles

from doggygallery.core.config import APP_NAME, GallerySettings, load_settings
from doggygallery.core.errors import register_error_handlers
from doggygallery.core.security import (
    AuthRateLimiter,
    MediaAwareGZipMiddleware,
    build_auth_dependency,
    security_headers_middleware,
)
from doggygallery.services.catalog import MediaTypes

# import routers
from doggygallery.api.routes import api, gallery, media

LOGGER = logging.getLogger("doggygallery.app")

STATIC_DIR = Path(__file__).resolve().parent / "static"


def create_app(settings: Optional[GallerySettings] = None) -> FastAPI:
    """Build the ASGI app for one set of settings (the CLI and the tests each make their own)."""
    settings = settings or load_settings()

    # no /docs or /openapi.json: every route except /static sits behind auth
    app = FastAPI(title=APP_NAME, version="0.5.3", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.media_types = MediaTypes.from_settings(settings)
    app.state.auth_limiter = AuthRateLimiter(settings.max_failed_attempts, settings.window_seconds)

    register_error_handlers(app)

    # added last runs outermost: gzip wraps the header middleware
    app.middleware("http")(security_headers_middleware)
    app.add_middleware(MediaAwareGZipMiddleware, minimum_size=1024)

    auth = [Depends(build_auth_dependency(settings.username, settings.password,
                                          app.state.auth_limiter))]

    # static assets are public (login prompt still needs its CSS)
    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    # API routers
    app.include_router(api.api_router, prefix="/api", dependencies=auth)

    # public (non-API) routers for files/thumbs and pages; the gallery catch-all goes last
    app.include_router(media.public_router, dependencies=auth)
    app.include_router(gallery.public_router, dependencies=auth)

    LOGGER.info("Serving %s (filter_recursive=%s, per_page=%d/%d)", settings.media_dir,
                settings.filter_recursive, settings.default_per_page, settings.max_per_page)
    return app
