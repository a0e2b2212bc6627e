# doggygallery/services/tags.py
# Embedded cover art read from audio tags (ID3 APIC, FLAC/Vorbis pictures, MP4 covr).

from __future__ import annotations
import base64
import logging
from typing import BinaryIO, NamedTuple, Optional

import filetype
import mutagen
from mutagen import MutagenError
from mutagen.flac import Picture
from mutagen.id3 import ID3, ID3NoHeaderError
from mutagen.mp4 import MP4Cover

LOGGER = logging.getLogger("doggygallery.tags")


class EmbeddedArt(NamedTuple):
    data: bytes
    content_type: str


def _checked(data: Optional[bytes], label: str) -> Optional[EmbeddedArt]:
    """Only hand out pictures whose bytes really are an image."""
    if not data:
        return None
    guess = filetype.guess(data)
    if guess is None or not guess.mime.startswith("image/"):
        LOGGER.debug("Ignoring embedded picture in %s: not an image", label)
        return None
    return EmbeddedArt(data, guess.mime)


def _from_id3(fileobj: BinaryIO) -> Optional[bytes]:
    try:
        tags = ID3(fileobj)
    except ID3NoHeaderError:
        return None
    pics = tags.getall("APIC")
    return pics[0].data if pics else None


def _from_container(fileobj: BinaryIO) -> Optional[bytes]:
    audio = mutagen.File(fileobj)
    if audio is None:
        return None
    pictures = getattr(audio, "pictures", None)
    if pictures:
        return pictures[0].data
    tags = audio.tags
    if tags is None:
        return None
    covr = tags.get("covr") if hasattr(tags, "get") else None
    if covr and isinstance(covr[0], MP4Cover):
        return bytes(covr[0])
    # Ogg Vorbis / Opus keep FLAC picture blocks base64-encoded in a comment
    blocks = tags.get("metadata_block_picture") if hasattr(tags, "get") else None
    if blocks:
        return Picture(base64.b64decode(blocks[0])).data
    return None


def embedded_art(fileobj: BinaryIO, extension: str, label: str) -> Optional[EmbeddedArt]:
    """
    First picture stored in the track's tags, or None.
    MP3 goes through the ID3 reader alone so a tag is found even when the
    audio frames are damaged. Unreadable tags count as "no picture".
    """
    try:
        fileobj.seek(0)
        if extension == ".mp3":
            data = _from_id3(fileobj)
        else:
            data = _from_container(fileobj)
    except (MutagenError, OSError, ValueError) as e:
        LOGGER.debug("No readable tags in %s: %s", label, e)
        return None
    return _checked(data, label)
