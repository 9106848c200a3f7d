"""Tests for application logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from assistant_runtime.app import _configure_logging

_LOGGER_NAMES = (
    "assistant_runtime",
    "uvicorn",
    "uvicorn.access",
    "uvicorn.error",
    "httpx",
    "httpcore",
)


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    root_level = root.level
    levels = {name: logging.getLogger(name).level for name in _LOGGER_NAMES}
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(root_level)
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


def test_info_level_quiets_http_stack(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "info")
    monkeypatch.delenv("LOG_FILE", raising=False)

    _configure_logging()

    assert logging.getLogger("assistant_runtime").level == logging.INFO
    assert logging.getLogger("uvicorn.access").level == logging.INFO
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("httpcore").level == logging.WARNING


def test_debug_level_keeps_http_stack_verbose(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.delenv("LOG_FILE", raising=False)

    _configure_logging()

    assert logging.getLogger("assistant_runtime").level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.DEBUG


def test_unknown_level_falls_back_to_info(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "chatty")
    monkeypatch.delenv("LOG_FILE", raising=False)

    _configure_logging()

    assert logging.getLogger("assistant_runtime").level == logging.INFO


def test_log_file_handler_is_created(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "runtime.log"
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    monkeypatch.setenv("LOG_FILE", str(log_path))

    _configure_logging()
    logging.getLogger("assistant_runtime.test").info("written to file")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert log_path.exists()
    assert "written to file" in log_path.read_text(encoding="utf-8")
