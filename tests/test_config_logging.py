import json
import logging

from agrilink.config import Settings
from agrilink.logger import JsonFormatter, setup_logging


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("NEARBY_DEFAULT_DISTANCE_M", "1234")
    monkeypatch.setenv("JWT_SECRET", "from-env")
    cfg = Settings(_env_file=None)
    assert cfg.nearby_default_distance_m == 1234
    assert cfg.jwt_secret == "from-env"
    assert cfg.community_feed_limit == 20


def test_json_formatter():
    record = logging.LogRecord(
        "agrilink.test", logging.WARNING, __file__, 1, "user %s denied", (7,), None
    )
    data = json.loads(JsonFormatter().format(record))
    assert data["level"] == "warning"
    assert data["logger"] == "agrilink.test"
    assert data["message"] == "user 7 denied"
    assert "ts" in data


def test_json_formatter_keeps_extra_fields():
    logger = logging.getLogger("agrilink.test.extra")
    record = logger.makeRecord(
        logger.name,
        logging.INFO,
        __file__,
        1,
        "audit: conversation created",
        (),
        None,
        extra={"conversation_id": 3, "user_id": 7},
    )
    data = json.loads(JsonFormatter().format(record))
    assert data["conversation_id"] == 3
    assert data["user_id"] == 7
    assert "args" not in data
    assert "levelno" not in data


def test_setup_logging_accepts_level_names(monkeypatch):
    seen = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: seen.update(kw))
    setup_logging("debug")
    assert seen["level"] == logging.DEBUG
    assert isinstance(seen["handlers"][0].formatter, JsonFormatter)
