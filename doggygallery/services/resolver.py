# doggygallery/services/resolver.py
# Turns an untrusted, user-supplied relative path into a canonical path inside the media root.
#
# Order of checks (lexical first, so rejections don't depend on what exists on disk):
#   1) percent-decode until stable (defeats %2e%2e and %252e%252e)
#   2) absolute paths / NUL bytes / '..' segments  -> PathTraversalError
#   3) any segment starting with '.'                -> HiddenFileError
#   4) canonicalize (follow symlinks), must exist   -> MediaNotFoundError
#   5) canonical result must stay under the root    -> PathTraversalError (symlink escape)

from __future__ import annotations
import logging
import urllib.parse
from pathlib import Path, PureWindowsPath
from typing import List, Optional

from doggygallery.core.errors import (
    HiddenFileError,
    MediaNotFoundError,
    NotDirectoryError,
    PathTraversalError,
)
from doggygallery.utils.http import safe_rel_under

LOGGER = logging.getLogger("doggygallery.resolver")

_MAX_UNQUOTE_ROUNDS = 5


def _fully_unquote(s: str) -> str:
    for _ in range(_MAX_UNQUOTE_ROUNDS):
        decoded = urllib.parse.unquote(s)
        if decoded == s:
            return s
        s = decoded
    # Still changing after several rounds: nobody encodes a real filename like that.
    raise PathTraversalError(f"excessively encoded path: {s!r}")


def split_request_path(requested: Optional[str]) -> List[str]:
    """
    Validate a request path lexically and return its segments.
    Empty and '.' segments are dropped; '' (the root) yields [].
    """
    s = _fully_unquote(requested or "")
    if "\x00" in s:
        raise PathTraversalError("NUL byte in path")

    s = s.replace("\\", "/")
    if s.startswith("/") or PureWindowsPath(s).drive:
        raise PathTraversalError(f"absolute path: {s!r}")

    segments = [seg for seg in s.split("/") if seg not in ("", ".")]
    if any(seg == ".." for seg in segments):
        raise PathTraversalError(f"parent segment in path: {s!r}")
    if any(seg.startswith(".") for seg in segments):
        raise HiddenFileError(f"hidden segment in path: {s!r}")
    return segments


def resolve_media_path(root: Path, requested: Optional[str], *,
                       expect_dir: Optional[bool] = None) -> Path:
    """
    Resolve `requested` against `root` and return the canonical path.

    expect_dir=True  -> must be a directory (NotDirectoryError otherwise)
    expect_dir=False -> must be a regular file (MediaNotFoundError otherwise)
    None             -> either

    Pure with respect to the filesystem: the result is only valid at the time of the
    call, so callers that read the file should open it right away (see delivery.open_media).
    """
    segments = split_request_path(requested)
    base = root.resolve()
    candidate = base.joinpath(*segments)

    try:
        resolved = candidate.resolve(strict=True)
    except FileNotFoundError:
        raise MediaNotFoundError(f"no such path: {candidate}") from None
    except (OSError, RuntimeError) as e:
        # symlink loops, permission problems on an intermediate directory
        raise MediaNotFoundError(f"cannot resolve {candidate}: {e}") from None

    rel = safe_rel_under(base, resolved)
    if rel is None:
        LOGGER.warning("Symlink escape blocked: %s -> %s", candidate, resolved)
        raise PathTraversalError(f"{candidate} resolves outside the media root")
    if any(part.startswith(".") for part in rel.parts):
        raise HiddenFileError(f"{candidate} resolves to a hidden path")

    if expect_dir is True and not resolved.is_dir():
        raise NotDirectoryError(f"not a directory: {resolved}")
    if expect_dir is False and not resolved.is_file():
        raise MediaNotFoundError(f"not a regular file: {resolved}")
    return resolved


def to_rel_path(root: Path, path: Path) -> str:
    """Root-relative, forward-slash form of an already resolved path ('' for the root)."""
    rel = safe_rel_under(root, path)
    if rel is None:
        raise PathTraversalError(f"{path} is outside the media root")
    s = rel.as_posix()
    return "" if s == "." else s
