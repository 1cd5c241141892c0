"""Tests for logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from aventura.utils import logging as logging_utils


@pytest.fixture
def restore_root_logger(monkeypatch: pytest.MonkeyPatch):
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    monkeypatch.delenv("AVENTURA_LOG_LEVEL", raising=False)
    monkeypatch.delenv("AVENTURA_LOG_DIR", raising=False)
    monkeypatch.setattr(logging_utils, "_CONFIGURED", False)
    monkeypatch.setattr(logging_utils, "_LOG_PATH", None)
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.mark.parametrize(
    ("level", "expected"),
    [(None, logging.INFO), ("warning", logging.WARNING), ("15", 15), (logging.ERROR, logging.ERROR), ("bogus", logging.INFO)],
)
def test_resolve_level(level, expected, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AVENTURA_LOG_LEVEL", raising=False)
    assert logging_utils.resolve_level(level) == expected


def test_resolve_level_debug_and_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AVENTURA_LOG_LEVEL", "error")
    assert logging_utils.resolve_level() == logging.ERROR
    assert logging_utils.resolve_level("warning", debug=True) == logging.DEBUG


def test_setup_logging_writes_file(tmp_path: Path, restore_root_logger) -> None:
    path = logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, console=False)

    logging.getLogger("aventura.test").info("hello from the loop")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert path == tmp_path / "aventura.log"
    assert logging_utils.get_log_path() == path
    assert "hello from the loop" in path.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING


def test_setup_logging_is_idempotent(tmp_path: Path, restore_root_logger) -> None:
    first = logging_utils.setup_logging(log_dir=tmp_path / "a", console=False)
    second = logging_utils.setup_logging(log_dir=tmp_path / "b", console=False)
    forced = logging_utils.setup_logging(log_dir=tmp_path / "c", console=False, force=True)

    assert first == second
    assert forced == tmp_path / "c" / "aventura.log"
