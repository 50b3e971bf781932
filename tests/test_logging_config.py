import json
import logging

import pytest
import structlog

from vernbridge.logging_config import SERVICE_NAME, setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def test_levels_applied(restore_logging):
    setup_logging(log_level="warning", json_logs=True)

    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING
    assert len(logging.getLogger().handlers) == 1


def test_stdlib_records_rendered_as_json(restore_logging, capsys):
    setup_logging(log_level="INFO", json_logs=True)

    logging.getLogger("vernbridge.core.tracking.tracker").info("Bridge abc: created -> encoding")

    line = capsys.readouterr().out.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["event"] == "Bridge abc: created -> encoding"
    assert record["service"] == SERVICE_NAME
    assert record["network"] == "mainnet"
    assert record["level"] == "info"
