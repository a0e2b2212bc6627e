# doggygallery/cli.py
# `doggygallery` console script: settings -> logging -> HTTPS server (TLS 1.3 only).

from __future__ import annotations
import argparse
import logging
import ssl
import sys
from typing import List, Optional

import uvicorn

from doggygallery.core.config import APP_NAME, EMOJI_PREFIX, ConfigError, load_settings
from doggygallery.core.logs import setup_logging

LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="doggygallery",
                                     description=f"{APP_NAME}: a password-protected HTTPS media gallery.")
    parser.add_argument("--config", default=None,
                        help="Path to doggygallery.toml (default: DOGGYGALLERY_CONFIG or search from CWD)")
    parser.add_argument("--media-dir", default=None, help="Directory to serve")
    parser.add_argument("--username", default=None, help="HTTP Basic username")
    parser.add_argument("--password", default=None, help="HTTP Basic password")
    parser.add_argument("--host", default=None, help="Bind address (default 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default 7833)")
    parser.add_argument("--cert", default=None, help="TLS certificate (PEM)")
    parser.add_argument("--key", default=None, help="TLS private key (PEM)")
    parser.add_argument("--log-level", default=None, choices=LEVELS,
                        help="Force log level (overrides -v)")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase verbosity (-v = DEBUG)")
    parser.add_argument("--logs-dir", default=None,
                        help="Also write rotating log files here")
    parser.add_argument("--json-logs", action="store_true",
                        help="Write JSON-formatted lines to the log file")
    return parser


def _overrides(args: argparse.Namespace) -> dict:
    """CLI flags in the TOML shape; unset flags are None and leave file/env values alone."""
    return {
        "server": {"host": args.host, "port": args.port, "cert": args.cert, "key": args.key},
        "auth": {"username": args.username, "password": args.password},
        "gallery": {"media_dir": args.media_dir},
    }


def _log_level(args: argparse.Namespace) -> int:
    if args.log_level:
        return getattr(logging, args.log_level)
    return logging.DEBUG if args.verbose else logging.INFO


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = _log_level(args)
    logger = setup_logging(level=level, logs_dir=args.logs_dir, json_logs=args.json_logs)

    try:
        settings = load_settings(args.config, overrides=_overrides(args))
        settings.validate(require_tls=True)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 2

    logger.info("%s %s starting", EMOJI_PREFIX, APP_NAME)
    logger.info("Settings: %r", settings)

    # imported here so `--help` doesn't pay for the whole app
    from doggygallery.main import create_app

    config = uvicorn.Config(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        ssl_certfile=str(settings.cert),
        ssl_keyfile=str(settings.key),
        log_level=logging.getLevelName(level).lower(),
        server_header=False,
    )
    # load() builds the SSL context; raise its floor before the socket is bound
    config.load()
    config.ssl.minimum_version = ssl.TLSVersion.TLSv1_3
    logger.info("Listening on https://%s:%d (TLS 1.3 minimum)", settings.host, settings.port)

    uvicorn.Server(config).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
