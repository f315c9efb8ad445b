import json
import logging

from capstone.config import Settings
from capstone.logging_config import JSONFormatter, set_request_id, setup_logging


def _record(message="Submission locked", **extra):
    record = logging.LogRecord("capstone.services", logging.INFO, __file__, 10, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_request_id_and_extra():
    set_request_id("abc12345")
    try:
        payload = json.loads(JSONFormatter().format(_record(submission_id=7)))
    finally:
        set_request_id("")
    assert payload["message"] == "Submission locked"
    assert payload["level"] == "INFO"
    assert payload["request_id"] == "abc12345"
    assert payload["submission_id"] == 7


def test_setup_logging_picks_formatter_by_environment(tmp_path):
    logger = setup_logging(Settings(_env_file=None, environment="production", log_file=tmp_path / "app.log"))
    assert logger.name == "capstone"
    assert isinstance(logger.handlers[0].formatter, JSONFormatter)
    assert len(logger.handlers) == 2

    logger = setup_logging(Settings(_env_file=None, environment="development"))
    assert len(logger.handlers) == 1
    assert not isinstance(logger.handlers[0].formatter, JSONFormatter)
    for handler in logger.handlers:
        handler.close()
