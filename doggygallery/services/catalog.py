# doggygallery/services/catalog.py
# Directory scanning, classification, filtering and pagination.
#
# Listing pipeline: scan -> classify (extension table) -> filter -> sort -> paginate.
# Filtering happens before pagination so total_entries is the filtered count.

from __future__ import annotations
import logging
import math
import os
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from doggygallery.core.errors import MediaIOError
from doggygallery.schemas.media import ArchiveEntry, DirectoryListing, MediaItem, MediaKind
from doggygallery.services.archives import is_archive
from doggygallery.services.resolver import resolve_media_path, split_request_path
from doggygallery.utils.http import safe_rel_under

LOGGER = logging.getLogger("doggygallery.catalog")


class MediaTypes:
    """Extension -> kind table. Unknown extensions classify as None and are never listed."""

    def __init__(self, image: Iterable[str], video: Iterable[str], audio: Iterable[str]) -> None:
        self._kinds: dict[str, MediaKind] = {}
        for exts, kind in ((image, MediaKind.image), (video, MediaKind.video), (audio, MediaKind.audio)):
            for e in exts:
                self._kinds.setdefault(e.lower(), kind)

    @classmethod
    def from_settings(cls, settings) -> "MediaTypes":
        return cls(settings.image_ext, settings.video_ext, settings.audio_ext)

    @staticmethod
    def extension_of(name: str) -> str:
        return os.path.splitext(name)[1].lower()

    def classify(self, name: str) -> Optional[MediaKind]:
        return self._kinds.get(self.extension_of(name))

    def extensions(self, kind: MediaKind) -> List[str]:
        return sorted(e for e, k in self._kinds.items() if k is kind)


@dataclass
class FilterQuery:
    """All present filters are ANDed. Empty strings count as absent."""
    type: Optional[str] = None
    extension: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        self.type = (self.type or "").strip().lower() or None
        ext = (self.extension or "").strip().lower()
        if ext and not ext.startswith("."):
            ext = "." + ext
        self.extension = ext or None
        self.name = (self.name or "").strip().lower() or None

    @property
    def is_empty(self) -> bool:
        return self.type is None and self.extension is None and self.name is None

    def matches(self, item: MediaItem) -> bool:
        if self.type is not None and item.kind.value != self.type:
            return False
        if self.extension is not None and item.extension != self.extension:
            return False
        # fuzzy match: case-insensitive substring of the display name
        if self.name is not None and self.name not in item.name.lower():
            return False
        return True


@dataclass
class ScanResult:
    items: List[MediaItem] = field(default_factory=list)
    subdirectories: List[str] = field(default_factory=list)
    archives: List[ArchiveEntry] = field(default_factory=list)


def _join(rel_dir: str, name: str) -> str:
    return f"{rel_dir}/{name}" if rel_dir else name


def _sort_key(name: str) -> Tuple[str, str]:
    return (name.lower(), name)


def _scan_into(base: Path, directory: Path, rel_dir: str, types: MediaTypes, result: ScanResult,
               *, recursive: bool, top: bool, seen: set) -> None:
    try:
        with os.scandir(directory) as it:
            entries = list(it)
    except OSError as e:
        LOGGER.error("Failed to read directory %s: %s", directory, e)
        raise MediaIOError(f"cannot read {directory}: {e}") from e

    for entry in entries:
        name = entry.name
        if name.startswith("."):
            continue
        try:
            if entry.is_symlink():
                target = Path(entry.path).resolve()
                rel = safe_rel_under(base, target)
                # drop links that leave the root or land on hidden content
                if rel is None or any(p.startswith(".") for p in rel.parts):
                    continue
            is_dir = entry.is_dir()
            st = entry.stat()
        except FileNotFoundError:
            # vanished since scandir (or a dangling link): not part of this snapshot
            continue
        except OSError as e:
            LOGGER.error("Failed to stat %s: %s", entry.path, e)
            raise MediaIOError(f"cannot stat {entry.path}: {e}") from e

        rel_path = _join(rel_dir, name)
        if is_dir:
            if top:
                result.subdirectories.append(name)
            if recursive:
                key = (st.st_dev, st.st_ino)
                if key in seen:
                    continue
                seen.add(key)
                _scan_into(base, Path(entry.path), rel_path, types, result,
                           recursive=True, top=False, seen=seen)
            continue

        kind = types.classify(name)
        if kind is None:
            if is_archive(name):
                result.archives.append(ArchiveEntry(name=name, path=rel_path, size=st.st_size))
            continue

        result.items.append(MediaItem(
            name=name,
            path=rel_path,
            kind=kind,
            extension=types.extension_of(name),
            size=st.st_size,
            modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        ))


def scan_directory(root: Path, directory: Path, types: MediaTypes, *,
                   rel_dir: str = "", recursive: bool = False) -> ScanResult:
    """
    Classify the entries of `directory` (already resolved inside `root`).
    Any read failure aborts the whole scan; partial results are never returned.
    """
    base = root.resolve()
    result = ScanResult()
    try:
        st = directory.stat()
        seen = {(st.st_dev, st.st_ino)}
    except OSError as e:
        raise MediaIOError(f"cannot stat {directory}: {e}") from e

    _scan_into(base, directory, rel_dir, types, result, recursive=recursive, top=True, seen=seen)

    result.items.sort(key=lambda i: (*_sort_key(i.name), i.path))
    result.subdirectories.sort(key=_sort_key)
    result.archives.sort(key=lambda a: _sort_key(a.name))
    return result


def _to_int(value, default: int) -> int:
    try:
        n = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return n if n >= 1 else default


def parse_paging(page, per_page, *, default_per_page: int, max_per_page: int) -> Tuple[int, int]:
    """Lenient query parsing: missing/invalid -> page 1 and the default size; size clamped to max."""
    return _to_int(page, 1), min(_to_int(per_page, default_per_page), max_per_page)


def paginate(items: Sequence, page: int, per_page: int) -> Tuple[list, int]:
    """1-indexed window plus total page count. Past the last page -> empty window, never an error."""
    total_pages = max(1, math.ceil(len(items) / per_page))
    start = (page - 1) * per_page
    return list(items[start:start + per_page]), total_pages


def parent_of(rel_path: str) -> Optional[str]:
    if not rel_path:
        return None
    return rel_path.rsplit("/", 1)[0] if "/" in rel_path else ""


def build_listing(rel_path: str, items: Sequence[MediaItem], query: FilterQuery, page: int,
                  per_page: int, *, subdirectories: Sequence[str] = (),
                  archives: Sequence[ArchiveEntry] = ()) -> DirectoryListing:
    filtered = [i for i in items if query.matches(i)]
    window, total_pages = paginate(filtered, page, per_page)
    return DirectoryListing(
        path=rel_path,
        parent_path=parent_of(rel_path),
        entries=window,
        subdirectories=list(subdirectories),
        archives=list(archives),
        page=page,
        per_page=per_page,
        total_entries=len(filtered),
        total_pages=total_pages,
    )


def list_directory(root: Path, requested: Optional[str], types: MediaTypes, query: FilterQuery,
                   page: int, per_page: int, *, recursive: bool = False) -> DirectoryListing:
    """
    list(directory, filter, page, per_page) -> DirectoryListing.
    `page`/`per_page` are expected to be normalized already (see parse_paging).
    """
    directory = resolve_media_path(root, requested, expect_dir=True)
    rel_path = "/".join(split_request_path(requested))
    scan = scan_directory(root, directory, types, rel_dir=rel_path, recursive=recursive)
    LOGGER.debug("Scanned /%s: %d items, %d dirs (recursive=%s)",
                 rel_path, len(scan.items), len(scan.subdirectories), recursive)
    return build_listing(rel_path, scan.items, query, page, per_page,
                         subdirectories=scan.subdirectories, archives=scan.archives)


def pick_random(items: Sequence[MediaItem], rng: Optional[random.Random] = None) -> Optional[MediaItem]:
    if not items:
        return None
    return (rng or random).choice(list(items))


def search_media(root: Path, scope: Optional[str], types: MediaTypes, query: FilterQuery,
                 page: int, per_page: int, *, recursive: bool = True) -> DirectoryListing:
    """Filtered listing under `scope`; with recursive=True every subfolder is searched too."""
    listing = list_directory(root, scope, types, query, page, per_page, recursive=recursive)
    LOGGER.debug("Search under /%s %s: %d matches", listing.path, query, listing.total_entries)
    return listing
