"""Tests for settings and log formatting."""

from __future__ import annotations

import json
import logging

from tasktracker.core.config import get_settings
from tasktracker.core.logging import JsonFormatter, RequestIDFilter, request_id_ctx


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("SEED_DEMO_DATA", "yes")
    monkeypatch.setenv("APP_TITLE", "Field Ops")
    monkeypatch.setenv("SUBMISSION_HISTORY", "5")
    get_settings.cache_clear()
    try:
        settings = get_settings()
    finally:
        get_settings.cache_clear()

    assert settings.LOG_LEVEL == "DEBUG"
    assert settings.SEED_DEMO_DATA is True
    assert settings.APP_TITLE == "Field Ops"
    assert settings.SUBMISSION_HISTORY == 5


def test_settings_defaults(monkeypatch):
    for name in ("LOG_LEVEL", "SEED_DEMO_DATA", "APP_TITLE", "SUBMISSION_HISTORY"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    try:
        settings = get_settings()
    finally:
        get_settings.cache_clear()

    assert settings.LOG_LEVEL == "INFO"
    assert settings.SEED_DEMO_DATA is False
    assert settings.SUBMISSION_HISTORY == 100


def test_json_formatter_includes_request_id():
    record = logging.LogRecord(
        name="tasktracker.services.workflow",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Submission %s cancelled by user",
        args=("s-1",),
        exc_info=None,
    )
    token = request_id_ctx.set("req-42")
    try:
        RequestIDFilter().filter(record)
    finally:
        request_id_ctx.reset(token)

    line = json.loads(JsonFormatter().format(record))
    assert line.pop("time")
    assert line == {
        "level": "INFO",
        "logger": "tasktracker.services.workflow",
        "message": "Submission s-1 cancelled by user",
        "request_id": "req-42",
    }


def test_json_formatter_carries_submission_context():
    logger = logging.getLogger("tasktracker.test")
    record = logger.makeRecord(
        logger.name,
        logging.WARNING,
        __file__,
        1,
        "Commit failed for submission %s",
        ("s-7",),
        None,
        extra={"submission_id": "s-7"},
    )

    line = json.loads(JsonFormatter().format(record))
    assert line["submission_id"] == "s-7"
    assert "request_id" not in line
    assert "task_id" not in line
