# doggygallery/schemas/media.py
from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class MediaKind(str, Enum):
    image = "image"
    video = "video"
    audio = "audio"


class MediaItem(BaseModel):
    name: str
    path: str                  # root-relative, forward slashes; "a.zip!/x.mp3" for archive members
    kind: MediaKind
    extension: str             # ".jpg"
    size: int
    modified: Optional[datetime] = None


class ArchiveEntry(BaseModel):
    name: str
    path: str
    size: int


class DirectoryListing(BaseModel):
    path: str
    parent_path: Optional[str] = None
    entries: List[MediaItem]
    subdirectories: List[str] = []
    archives: List[ArchiveEntry] = []
    page: int
    per_page: int
    total_entries: int
    total_pages: int

    @property
    def display_start(self) -> int:
        """1-based index of the first entry on this page (0 when the page is empty)."""
        if not self.entries:
            return 0
        return (self.page - 1) * self.per_page + 1

    @property
    def display_end(self) -> int:
        return min((self.page - 1) * self.per_page + len(self.entries), self.total_entries)


class RandomMedia(BaseModel):
    item: MediaItem
    url: str


class ConfigInfo(BaseModel):
    app_name: str
    emoji_prefix: str
    tls_version: str
    image_extensions: List[str]
    video_extensions: List[str]
    audio_extensions: List[str]
    default_per_page: int
    max_per_page: int
    swipe_threshold: int
    album_art_names: List[str]
