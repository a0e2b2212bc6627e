# doggygallery/services/archives.py
# Read-only access to zip/tar music archives.
# Member paths are addressed as "<archive rel path>!/<member path>".

from __future__ import annotations
import logging
import tarfile
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, NamedTuple, Optional, Tuple

from doggygallery.core.errors import MediaIOError, MediaNotFoundError
from doggygallery.schemas.media import MediaItem, MediaKind
from doggygallery.services.resolver import split_request_path

LOGGER = logging.getLogger("doggygallery.archives")

ARCHIVE_EXTENSIONS = (".zip", ".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tbz2")
ARCHIVE_MARKER = "!/"


class Member(NamedTuple):
    name: str
    size: int
    modified: Optional[datetime]


def is_archive(filename: str) -> bool:
    lower = filename.lower()
    return any(lower.endswith(ext) for ext in ARCHIVE_EXTENSIONS)


def split_archive_path(path: str) -> Tuple[str, str]:
    """'music/a.zip!/disc1/t.mp3' -> ('music/a.zip', 'disc1/t.mp3'). Exactly one marker allowed."""
    parts = path.split(ARCHIVE_MARKER)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise MediaNotFoundError(f"not an archive member path: {path!r}")
    return parts[0], parts[1]


def _is_safe_member(name: str) -> bool:
    """No absolute names, no '..', no hidden segments (same rules as the resolver)."""
    if name.startswith("/") or "\\" in name:
        return False
    segments = [s for s in name.split("/") if s]
    return bool(segments) and not any(s == ".." or s.startswith(".") for s in segments)


def _iter_members(archive: Path) -> Iterator[Member]:
    name = archive.name.lower()
    if name.endswith(".zip"):
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                try:
                    modified = datetime(*info.date_time, tzinfo=timezone.utc)
                except ValueError:
                    modified = None
                yield Member(info.filename, info.file_size, modified)
    else:
        # "r:*" sniffs gzip/bz2/xz compression transparently
        with tarfile.open(archive, "r:*") as tf:
            for ti in tf:
                if not ti.isfile():
                    continue
                yield Member(ti.name, ti.size, datetime.fromtimestamp(ti.mtime, tz=timezone.utc))


def archive_contains_audio(archive: Path, types) -> bool:
    """True if list_archive would find at least one track. Unreadable archives count as 'no audio'."""
    try:
        return any(_is_safe_member(m.name) and types.classify(m.name) is MediaKind.audio
                   for m in _iter_members(archive))
    except (OSError, zipfile.BadZipFile, tarfile.TarError, EOFError) as e:
        LOGGER.warning("Skipping unreadable archive %s: %s", archive, e)
        return False


def list_archive(archive: Path, archive_rel: str, types) -> List[MediaItem]:
    """Audio members only, hidden/unsafe names skipped, sorted by display name."""
    items: List[MediaItem] = []
    try:
        for m in _iter_members(archive):
            if not _is_safe_member(m.name) or types.classify(m.name) is not MediaKind.audio:
                continue
            display = m.name.rsplit("/", 1)[-1]
            items.append(MediaItem(
                name=display,
                path=f"{archive_rel}{ARCHIVE_MARKER}{m.name}",
                kind=MediaKind.audio,
                extension=types.extension_of(display),
                size=m.size,
                modified=m.modified,
            ))
    except (OSError, zipfile.BadZipFile, tarfile.TarError, EOFError) as e:
        LOGGER.error("Failed to list archive %s: %s", archive, e)
        raise MediaIOError(f"cannot list {archive}: {e}") from e

    items.sort(key=lambda i: (i.name.lower(), i.name, i.path))
    return items


def read_member(archive: Path, member: str) -> bytes:
    """Bytes of exactly `member`. Members are small (tracks, cover art) so they're read whole."""
    split_request_path(member)  # same traversal/hidden rules as on-disk paths
    try:
        if archive.name.lower().endswith(".zip"):
            with zipfile.ZipFile(archive) as zf:
                try:
                    return zf.read(member)
                except KeyError:
                    raise MediaNotFoundError(f"{member!r} not in {archive}") from None
        with tarfile.open(archive, "r:*") as tf:
            try:
                ti = tf.getmember(member)
            except KeyError:
                raise MediaNotFoundError(f"{member!r} not in {archive}") from None
            f = tf.extractfile(ti) if ti.isfile() else None
            if f is None:
                raise MediaNotFoundError(f"{member!r} is not a file in {archive}")
            with f:
                return f.read()
    except (OSError, zipfile.BadZipFile, tarfile.TarError, EOFError) as e:
        LOGGER.error("Failed to extract %s from %s: %s", member, archive, e)
        raise MediaNotFoundError(f"cannot extract {member!r}: {e}") from e
