# doggygallery/services/lightbox.py
# Navigation model for the gallery lightbox and music playlist.
#
# LightboxSession is the reference model for static/js/lightbox.js: the server only uses
# items_from_listing and SWIPE_THRESHOLD (rendered into data-swipe-threshold), the browser runs
# the JS port of the state machine. Change both together; tests cover this one.
#
# States: Closed | Open(i) | Open(i)+PlayingAll | Open(i)+PlayingAll+Shuffled

from __future__ import annotations
import random
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from doggygallery.schemas.media import MediaItem, MediaKind
from doggygallery.utils.http import media_url

SWIPE_THRESHOLD = 50  # px of horizontal travel before a touch counts as a swipe


@dataclass(frozen=True)
class LightboxItem:
    src: str
    type: str

    def to_dict(self) -> dict:
        return {"src": self.src, "type": self.type}


def items_from_listing(entries: Iterable[MediaItem], *,
                       kinds: Optional[Iterable[MediaKind]] = None,
                       url_for: Callable[[str], str] = media_url) -> List[LightboxItem]:
    """Lightbox playlist for a page of entries, optionally restricted to some kinds."""
    allowed = set(kinds) if kinds is not None else None
    return [
        LightboxItem(src=url_for(e.path), type=e.kind.value)
        for e in entries
        if allowed is None or e.kind in allowed
    ]


@dataclass
class LightboxSession:
    """
    One per page view. Every navigation call returns the new current index
    (or None when nothing changed) so callers never read hidden state.
    """
    items: List[LightboxItem] = field(default_factory=list)
    current_index: int = 0
    is_open: bool = False
    shuffle_enabled: bool = False
    play_all_enabled: bool = False
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @property
    def current(self) -> Optional[LightboxItem]:
        if not self.is_open or not self.items:
            return None
        return self.items[self.current_index]

    # ---- open / close ----

    def open(self, src: str) -> int:
        """Show the item whose src matches; unknown src falls back to index 0."""
        self.current_index = next((i for i, it in enumerate(self.items) if it.src == src), 0)
        self.is_open = True
        return self.current_index

    def close(self) -> None:
        # play-all is scoped to one open session; a late 'ended' must not navigate
        self.is_open = False
        self.play_all_enabled = False

    # ---- navigation ----

    def _show(self, index: int) -> Optional[int]:
        if not self.items:
            return None
        self.current_index = index % len(self.items)
        return self.current_index

    def next(self) -> Optional[int]:
        return self._show(self.current_index + 1)

    def prev(self) -> Optional[int]:
        return self._show(self.current_index - 1)

    def _random_other(self) -> Optional[int]:
        n = len(self.items)
        if n < 2:
            return None
        # draw from n-1 slots and skip over the current one: uniform, never the same
        pick = self.rng.randrange(n - 1)
        return pick + 1 if pick >= self.current_index else pick

    def random(self) -> Optional[int]:
        """Jump to a different random item; no-op with fewer than two items."""
        idx = self._random_other()
        return None if idx is None else self._show(idx)

    # ---- playlist ----

    def play_all(self, shuffle: bool = False) -> Optional[int]:
        """Start play-all from the first track, or a random one when shuffling."""
        if not self.items:
            return None
        self.play_all_enabled = True
        self.shuffle_enabled = shuffle
        start = self.rng.randrange(len(self.items)) if shuffle else 0
        return self.open(self.items[start].src)

    def toggle_shuffle(self) -> bool:
        self.shuffle_enabled = not self.shuffle_enabled
        return self.shuffle_enabled

    def on_ended(self) -> Optional[int]:
        """Natural end of playback. Loops forever in sequential mode."""
        if not self.is_open or not self.play_all_enabled:
            return None
        if self.shuffle_enabled:
            return self.random()
        return self.next()

    # ---- input ----

    def handle_key(self, key: str) -> bool:
        """Returns True when the key was consumed (the page must not see it)."""
        if not self.is_open:
            return False
        if key == "ArrowRight":
            self.next()
        elif key == "ArrowLeft":
            self.prev()
        elif key == "Escape":
            self.close()
        else:
            return False
        return True

    def handle_swipe(self, start_x: float, end_x: float) -> Optional[int]:
        diff = start_x - end_x
        if not self.is_open or abs(diff) <= SWIPE_THRESHOLD:
            return None
        # finger moved left -> next, right -> previous
        return self.next() if diff > 0 else self.prev()
