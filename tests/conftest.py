import base64
import io
import zipfile
from pathlib import Path

import pytest
from PIL import Image
from mutagen.id3 import APIC, ID3

from doggygallery.core.config import load_settings
from doggygallery.services.catalog import MediaTypes

# Just enough leading bytes for content sniffing
MP4_BYTES = b"\x00\x00\x00\x18ftypmp42\x00\x00\x00\x00mp42isom" + b"\x00" * 512
MP3_BYTES = b"ID3\x03\x00\x00\x00\x00\x00\x0f" + bytes(range(256)) * 8
GIF_BYTES = b"GIF89a\x01\x00\x01\x00\x80\x00\x00" + b"\x00" * 64
HTML_BYTES = b"<html><body><script>alert(1)</script></body></html>"
SVG_BYTES = b'<?xml version="1.0"?>\n<svg xmlns="http://www.w3.org/2000/svg" width="4" height="4"></svg>'
# MPEG-1 layer III frame header without any ID3 tag
MPEG_FRAME_BYTES = b"\xff\xfb\x90\x64" + b"\x00" * 413

USERNAME = "woof"
PASSWORD = "bark-bark"


def image_bytes(fmt: str, size=(40, 20), color=(200, 120, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def basic_auth(user: str = USERNAME, password: str = PASSWORD) -> dict:
    token = base64.b64encode(f"{user}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


def tagged_mp3(path: Path, picture: bytes, mime: str = "image/png") -> Path:
    """An MP3 whose ID3v2 tag carries a front-cover picture."""
    path.write_bytes(MPEG_FRAME_BYTES)
    tags = ID3()
    tags.add(APIC(encoding=3, mime=mime, type=3, desc="Cover", data=picture))
    tags.save(path)
    return path


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    """
    media/
      a.png  B.jpg  clip.mp4  song.mp3  anim.gif  logo.svg  fake.png  notes.txt  album.zip
      .hidden.jpg  .secret/x.png
      sub/c.png  sub/deep/d.mp3
      music/track1.mp3  music/track2.mp3  music/cover.jpg
      escape.png -> ../outside/secret.png   (symlink out of the root)
      inner.png  -> sub/c.png               (symlink inside the root)
    """
    root = tmp_path / "media"
    root.mkdir()
    (root / "a.png").write_bytes(image_bytes("PNG"))
    (root / "B.jpg").write_bytes(image_bytes("JPEG"))
    (root / "clip.mp4").write_bytes(MP4_BYTES)
    (root / "song.mp3").write_bytes(MP3_BYTES)
    (root / "anim.gif").write_bytes(GIF_BYTES)
    (root / "logo.svg").write_bytes(SVG_BYTES)
    (root / "fake.png").write_bytes(HTML_BYTES)
    (root / "notes.txt").write_text("not media")
    (root / ".hidden.jpg").write_bytes(image_bytes("JPEG"))
    (root / ".secret").mkdir()
    (root / ".secret" / "x.png").write_bytes(image_bytes("PNG"))

    (root / "sub" / "deep").mkdir(parents=True)
    (root / "sub" / "c.png").write_bytes(image_bytes("PNG"))
    (root / "sub" / "deep" / "d.mp3").write_bytes(MP3_BYTES)

    (root / "music").mkdir()
    (root / "music" / "track1.mp3").write_bytes(MP3_BYTES)
    (root / "music" / "track2.mp3").write_bytes(MP3_BYTES)
    (root / "music" / "cover.jpg").write_bytes(image_bytes("JPEG"))

    with zipfile.ZipFile(root / "album.zip", "w") as zf:
        zf.writestr("disc1/t1.mp3", MP3_BYTES)
        zf.writestr("disc1/cover.png", image_bytes("PNG"))
        zf.writestr("readme.txt", "liner notes")
        zf.writestr(".DS_Store/t0.mp3", MP3_BYTES)

    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "secret.png").write_bytes(image_bytes("PNG"))
    (root / "escape.png").symlink_to(outside / "secret.png")
    (root / "inner.png").symlink_to(root / "sub" / "c.png")
    return root


@pytest.fixture
def settings(media_root: Path, tmp_path: Path):
    s = load_settings(
        overrides={
            "auth": {"username": USERNAME, "password": PASSWORD, "max_failed_attempts": 3},
            "gallery": {"media_dir": str(media_root), "thumb_dir": str(tmp_path / "thumbs"),
                        "default_per_page": 50},
        },
        env={},
    )
    s.validate(require_tls=False)
    return s


@pytest.fixture
def types(settings) -> MediaTypes:
    return MediaTypes.from_settings(settings)


@pytest.fixture
def app(settings):
    from doggygallery.main import create_app
    return create_app(settings)


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app, headers=basic_auth())


@pytest.fixture
def anon_client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)
