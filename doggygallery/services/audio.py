# doggygallery/services/audio.py
# Enhanced audio player model: time display, seek/volume state and album-art discovery.
#
# AudioPlayerState is the reference model for static/js/audio-player.js: the server never
# instantiates it, the browser runs the JS port. Change both together; tests cover this one.
# find_album_art is used directly by /api/album-art.

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple

from doggygallery.services.archives import ARCHIVE_MARKER

ALBUM_ART_NAMES: Tuple[str, ...] = (
    "cover.jpg", "cover.png", "folder.jpg", "folder.png", "album.jpg", "album.png",
)
PLACEHOLDER_ART = "/static/img/album-placeholder.svg"

Probe = Callable[[str], Awaitable[bool]]


def format_time(seconds: Optional[float]) -> str:
    """m:ss; unknown/NaN/negative durations read 0:00."""
    if seconds is None or not math.isfinite(seconds) or seconds < 0:
        return "0:00"
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


def album_art_candidates(track_src: str, names: Iterable[str] = ALBUM_ART_NAMES) -> List[str]:
    """
    Cover-art URLs to try, in order, for a track URL.
    For "x.zip!/disc1/t.mp3" only the part after the marker is treated as the directory,
    so the archive prefix stays intact: "x.zip!/disc1/cover.jpg".
    """
    src = track_src.split("#", 1)[0].split("?", 1)[0]
    if ARCHIVE_MARKER in src:
        prefix, inner = src.split(ARCHIVE_MARKER, 1)
        inner_dir = inner.rsplit("/", 1)[0] + "/" if "/" in inner else ""
        base = prefix + ARCHIVE_MARKER + inner_dir
    else:
        base = src.rsplit("/", 1)[0] + "/" if "/" in src else ""
    return [base + n for n in names]


async def first_match(candidates: Sequence[str], probe: Probe) -> Optional[str]:
    """Await each probe in order, one at a time; the first success wins."""
    for candidate in candidates:
        if await probe(candidate):
            return candidate
    return None


async def find_album_art(track_src: str, probe: Probe,
                         names: Iterable[str] = ALBUM_ART_NAMES,
                         placeholder: str = PLACEHOLDER_ART) -> Tuple[str, bool]:
    """(url, resolved) where resolved is False when the placeholder is returned."""
    found = await first_match(album_art_candidates(track_src, names), probe)
    if found is None:
        return placeholder, False
    return found, True


@dataclass
class AudioPlayerState:
    """Per-track player state; a new one is created for every displayed audio item."""
    current_time: float = 0.0
    duration: Optional[float] = None
    volume: float = 1.0
    playing: bool = False
    seeking: bool = False
    slider_value: float = 0.0
    album_art: str = PLACEHOLDER_ART
    album_art_resolved: bool = False

    @property
    def seek_enabled(self) -> bool:
        return self.duration is not None and math.isfinite(self.duration) and self.duration > 0

    @property
    def seek_max(self) -> float:
        return self.duration if self.seek_enabled else 0.0

    @property
    def volume_percent(self) -> int:
        return round(self.volume * 100)

    @property
    def time_display(self) -> str:
        position = self.slider_value if self.seeking else self.current_time
        return f"{format_time(position)} / {format_time(self.duration)}"

    def on_loaded_metadata(self, duration: Optional[float]) -> None:
        self.duration = duration

    def on_time_update(self, current_time: float) -> bool:
        """Playback clock tick. Returns False when the slider update was suppressed by a drag."""
        self.current_time = current_time
        if self.seeking:
            return False
        self.slider_value = current_time
        return True

    def begin_seek(self) -> None:
        self.seeking = True

    def drag_to(self, value: float) -> float:
        self.slider_value = max(0.0, min(float(value), self.seek_max))
        return self.slider_value

    def end_seek(self) -> float:
        """Release: the playback position jumps straight to the slider value."""
        self.seeking = False
        self.current_time = self.slider_value
        return self.current_time

    def set_volume_percent(self, percent: float) -> float:
        self.volume = max(0.0, min(float(percent), 100.0)) / 100.0
        return self.volume

    def toggle_play(self) -> bool:
        self.playing = not self.playing
        return self.playing

    def on_ended(self) -> None:
        self.playing = False

    def set_album_art(self, url: str, resolved: bool) -> None:
        self.album_art = url
        self.album_art_resolved = resolved
