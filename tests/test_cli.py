import json
import logging

import pytest

from doggygallery import cli
from doggygallery.core.logs import JsonFormatter, setup_logging


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    for var in ("DOGGYGALLERY_CONFIG", "DOGGYGALLERY_MEDIA_DIR", "DOGGYGALLERY_USERNAME",
                "DOGGYGALLERY_PASSWORD", "DOGGYGALLERY_CERT", "DOGGYGALLERY_KEY"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    logger = logging.getLogger("doggygallery")
    for h in list(logger.handlers):
        h.close()
        logger.removeHandler(h)


def test_missing_media_dir_exits_2(tmp_path):
    rc = cli.main(["--media-dir", str(tmp_path / "nope"), "--username", "u", "--password", "p"])
    assert rc == 2


def test_missing_tls_files_exits_2(tmp_path):
    (tmp_path / "m").mkdir()
    rc = cli.main(["--media-dir", str(tmp_path / "m"), "--username", "u", "--password", "p",
                   "--cert", str(tmp_path / "cert.pem"), "--key", str(tmp_path / "key.pem")])
    assert rc == 2


def test_flags_map_to_toml_shape():
    args = cli.build_parser().parse_args(["--port", "8443", "--media-dir", "/srv/m", "-v"])
    ov = cli._overrides(args)
    assert ov["server"]["port"] == 8443
    assert ov["server"]["host"] is None
    assert ov["gallery"]["media_dir"] == "/srv/m"
    assert cli._log_level(args) == logging.DEBUG


def test_log_level_flag_wins_over_verbose():
    args = cli.build_parser().parse_args(["-v", "--log-level", "WARNING"])
    assert cli._log_level(args) == logging.WARNING


def test_setup_logging_file_handler_json(tmp_path):
    logger = setup_logging(logging.INFO, logs_dir=str(tmp_path / "logs"), json_logs=True)
    try:
        logging.getLogger("doggygallery.test").info("hello %s", "world")
        for h in logger.handlers:
            h.flush()
        line = (tmp_path / "logs" / "doggygallery.log").read_text().strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["msg"] == "hello world"
        assert payload["level"] == "INFO"
        assert payload["name"] == "doggygallery.test"
    finally:
        for h in list(logger.handlers):
            h.close()
            logger.removeHandler(h)


def test_json_formatter_includes_exception():
    try:
        raise ValueError("boom")
    except ValueError:
        import sys
        record = logging.LogRecord("doggygallery", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
    payload = json.loads(JsonFormatter().format(record))
    assert "boom" in payload["exc"]
