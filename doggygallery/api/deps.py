# doggygallery/api/deps.py
# Per-app objects live on app.state (set in main.create_app); routes reach them through these.

from fastapi import Request

from doggygallery.core.config import GallerySettings
from doggygallery.services.catalog import MediaTypes


def get_settings(request: Request) -> GallerySettings:
    return request.app.state.settings


def get_types(request: Request) -> MediaTypes:
    return request.app.state.media_types
