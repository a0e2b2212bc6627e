# doggygallery/core/config.py
# Loads DoggyGallery settings from a TOML file (defaults + overrides).
# - Reads --config, DOGGYGALLERY_CONFIG, or searches for doggygallery.toml
# - Environment variables override the file; CLI flags override both
# - Normalizes extension lists (lowercase, ensure leading dot)
# - Page sizes are clamped so a bad config can't produce empty/huge pages

from __future__ import annotations
from pathlib import Path
import os
from typing import Dict, Mapping, Optional
import tomli as tomllib  # py3.11+: tomllib in stdlib; using tomli for compatibility


CONFIG_FILENAME = "doggygallery.toml"

APP_NAME = "DoggyGallery"
EMOJI_PREFIX = "\U0001F415\U0001F5BC️✨\U0001F512"  # dog, picture, sparkle, lock
TLS_VERSION = "TLS 1.3"


class ConfigError(ValueError):
    """Raised when the merged configuration can't be used to start the server."""


# -------------------- Defaults (used if TOML omits keys) --------------------
_DEFAULTS = {
    "server": {
        "host": "0.0.0.0",
        "port": 7833,  # "RUFF" on a phone keypad
        "cert": "",
        "key": "",
    },
    "auth": {
        "username": "",
        "password": "",
        "max_failed_attempts": 10,
        "window_seconds": 60,
    },
    "gallery": {
        "media_dir": "./media",
        "default_per_page": 50,
        "max_per_page": 200,
        "filter_recursive": True,
        "thumb_dir": "",  # empty => ~/.cache/doggygallery/thumbs
        "thumb_height": 220,
    },
    "ext": {
        "image": ["jpg", "jpeg", "png", "gif", "webp", "bmp", "svg"],
        "video": ["mp4", "webm", "mkv", "avi", "mov", "flv", "wmv"],
        "audio": ["mp3", "wav", "ogg", "flac", "m4a", "aac", "opus", "wma"],
    },
}

# env var -> (section, key)
_ENV_OVERRIDES = {
    "DOGGYGALLERY_MEDIA_DIR": ("gallery", "media_dir"),
    "DOGGYGALLERY_USERNAME": ("auth", "username"),
    "DOGGYGALLERY_PASSWORD": ("auth", "password"),
    "DOGGYGALLERY_HOST": ("server", "host"),
    "DOGGYGALLERY_PORT": ("server", "port"),
    "DOGGYGALLERY_CERT": ("server", "cert"),
    "DOGGYGALLERY_KEY": ("server", "key"),
}


# -------------------- Read + merge TOML --------------------

def _find_config_path(explicit: Optional[str] = None,
                      env: Mapping[str, str] = os.environ) -> Path | None:
    """Find doggygallery.toml without user input.
    Priority:
      1) explicit path (--config)
      2) DOGGYGALLERY_CONFIG
      3) ./doggygallery.toml (CWD)
      4) ascend parents from CWD looking for doggygallery.toml
      5) doggygallery.toml next to the package
    """
    if explicit:
        p = Path(explicit).expanduser()
        if not p.is_file():
            raise ConfigError(f"config file not found: {p}")
        return p

    cfg_env = env.get("DOGGYGALLERY_CONFIG")
    if cfg_env:
        p = Path(cfg_env).expanduser()
        if p.exists():
            return p

    # CWD first, then walk up to the filesystem root
    cur = Path.cwd()
    while True:
        candidate = cur / CONFIG_FILENAME
        if candidate.exists():
            return candidate
        if cur.parent == cur:
            break
        cur = cur.parent

    pkg_default = Path(__file__).resolve().parents[1] / CONFIG_FILENAME
    if pkg_default.exists():
        return pkg_default

    return None


def _load_config_toml(path: Path | None) -> dict:
    """Load TOML from path or return {} if there is none."""
    if path and path.exists():
        with path.open("rb") as f:
            try:
                return tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"invalid TOML in {path}: {e}") from e
    return {}


def _norm_ext_list(exts) -> set[str]:
    """
    Normalize extension strings: ensure leading dot and lowercase.
    Accepts 'jpg' or '.jpg' and returns '.jpg'.
    """
    out: set[str] = set()
    for e in exts or []:
        e = str(e or "").strip().lower()
        if not e:
            continue
        if not e.startswith("."):
            e = "." + e
        out.add(e)
    return out


def _merge(cfg: dict, env: Mapping[str, str], overrides: Optional[dict]) -> dict:
    """defaults <- TOML <- env <- overrides, one section at a time."""
    merged: Dict[str, dict] = {}
    for section, values in _DEFAULTS.items():
        merged[section] = {**values, **(cfg.get(section) or {})}

    for var, (section, key) in _ENV_OVERRIDES.items():
        if env.get(var):
            merged[section][key] = env[var]

    for section, values in (overrides or {}).items():
        merged.setdefault(section, {})
        for key, value in values.items():
            if value is not None:
                merged[section][key] = value
    return merged


def _as_bool(v) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    return bool(v)


def _clamp(v: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, v))


# -------------------- Settings object --------------------
class GallerySettings:
    """
    Immutable-by-convention container shared by every request.
    Paths are resolved once here; services receive plain values from it.
    """
    def __init__(self, cfg: dict) -> None:
        server, auth, gallery, ext = cfg["server"], cfg["auth"], cfg["gallery"], cfg["ext"]

        self.host: str = str(server.get("host") or "0.0.0.0")
        self.port: int = _clamp(int(server.get("port") or 7833), 1, 65535)
        self.cert: Optional[Path] = Path(server["cert"]).expanduser() if server.get("cert") else None
        self.key: Optional[Path] = Path(server["key"]).expanduser() if server.get("key") else None

        self.username: str = str(auth.get("username") or "")
        self.password: str = str(auth.get("password") or "")
        self.max_failed_attempts: int = max(1, int(auth.get("max_failed_attempts", 10)))
        self.window_seconds: float = max(1.0, float(auth.get("window_seconds", 60)))

        self.media_dir: Path = Path(str(gallery.get("media_dir") or ".")).expanduser().resolve()
        self.max_per_page: int = _clamp(int(gallery.get("max_per_page", 200)), 1, 1000)
        self.default_per_page: int = _clamp(int(gallery.get("default_per_page", 50)), 1, self.max_per_page)
        self.filter_recursive: bool = _as_bool(gallery.get("filter_recursive", True))
        self.thumb_height: int = _clamp(int(gallery.get("thumb_height", 220)), 16, 1024)
        thumb_dir = gallery.get("thumb_dir")
        self.thumb_dir: Path = (
            Path(thumb_dir).expanduser() if thumb_dir
            else Path.home() / ".cache" / "doggygallery" / "thumbs"
        )

        self.image_ext: set[str] = _norm_ext_list(ext.get("image"))
        self.video_ext: set[str] = _norm_ext_list(ext.get("video"))
        self.audio_ext: set[str] = _norm_ext_list(ext.get("audio"))

    def validate(self, *, require_tls: bool = True) -> None:
        """Raise ConfigError if the server can't start with these settings."""
        if not self.media_dir.exists():
            raise ConfigError(f"Media directory does not exist: {self.media_dir}")
        if not self.media_dir.is_dir():
            raise ConfigError(f"Media path is not a directory: {self.media_dir}")
        if not self.username:
            raise ConfigError("Username cannot be empty")
        if not self.password:
            raise ConfigError("Password cannot be empty")
        if require_tls:
            if self.cert is None or self.key is None:
                raise ConfigError("Both a TLS certificate (--cert) and private key (--key) are required")
            if not self.cert.is_file():
                raise ConfigError(f"Certificate file does not exist: {self.cert}")
            if not self.key.is_file():
                raise ConfigError(f"Private key file does not exist: {self.key}")

    def public_info(self) -> dict:
        """Non-secret settings exposed to the browser via /api/config."""
        return {
            "app_name": APP_NAME,
            "emoji_prefix": EMOJI_PREFIX,
            "tls_version": TLS_VERSION,
            "image_extensions": sorted(self.image_ext),
            "video_extensions": sorted(self.video_ext),
            "audio_extensions": sorted(self.audio_ext),
            "default_per_page": self.default_per_page,
            "max_per_page": self.max_per_page,
        }

    def __repr__(self) -> str:
        return (
            f"GallerySettings(media_dir={self.media_dir}, host={self.host}, port={self.port}, "
            f"username={self.username!r}, password={'***' if self.password else ''}, "
            f"cert={self.cert}, key={self.key}, per_page={self.default_per_page}/{self.max_per_page}, "
            f"filter_recursive={self.filter_recursive})"
        )


def load_settings(config_path: Optional[str] = None,
                  overrides: Optional[dict] = None,
                  env: Mapping[str, str] = os.environ) -> GallerySettings:
    """
    Build settings from TOML + env + explicit overrides.
    `overrides` uses the TOML shape, e.g. {"gallery": {"media_dir": "/srv/media"}};
    None values are ignored so argparse defaults don't clobber the file.
    """
    path = _find_config_path(config_path, env)
    cfg = _load_config_toml(path)
    try:
        return GallerySettings(_merge(cfg, env, overrides))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid configuration value: {e}") from e
