# doggygallery/core/errors.py
# Domain errors raised by the services; one handler turns them into HTTP responses.
# Security rejections share 403 so the status never reveals whether a path exists.

from __future__ import annotations
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

LOGGER = logging.getLogger("doggygallery.http")


class GalleryError(Exception):
    """Base class: terminal for the request that raised it, never retried."""
    status_code = 500
    detail = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.detail)
        self.message = message or self.detail


class PathTraversalError(GalleryError):
    status_code = 403
    detail = "Forbidden"


class HiddenFileError(GalleryError):
    status_code = 403
    detail = "Forbidden"


class UnsupportedMediaTypeError(GalleryError):
    status_code = 403
    detail = "Forbidden"


class MediaNotFoundError(GalleryError):
    status_code = 404
    detail = "Not found"


class NotDirectoryError(GalleryError):
    status_code = 404
    detail = "Not found"


class MediaIOError(GalleryError):
    status_code = 500
    detail = "Internal server error"


class RangeNotSatisfiableError(GalleryError):
    status_code = 416
    detail = "Range not satisfiable"

    def __init__(self, size: int) -> None:
        super().__init__(f"range not satisfiable for size {size}")
        self.size = size


async def gallery_error_handler(request: Request, exc: GalleryError) -> JSONResponse:
    # The internal message goes to the log only; clients get the generic detail.
    level = logging.WARNING if exc.status_code == 403 else logging.DEBUG
    if exc.status_code >= 500:
        level = logging.ERROR
    LOGGER.log(level, "%s %s -> %d %s: %s", request.method, request.url.path,
               exc.status_code, type(exc).__name__, exc.message)
    headers = {}
    if isinstance(exc, RangeNotSatisfiableError):
        headers["Content-Range"] = f"bytes */{exc.size}"
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GalleryError, gallery_error_handler)
