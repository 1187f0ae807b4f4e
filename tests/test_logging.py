from __future__ import annotations

import logging
from pathlib import Path

from rxsmells.logging import configure_logging, get_logger


def test_loggers_live_under_the_package_hierarchy() -> None:
    assert get_logger().name == "rxsmells"
    assert get_logger("engine").name == "rxsmells.engine"


def test_console_level_follows_verbosity() -> None:
    quiet = configure_logging()
    assert quiet.level == logging.WARNING
    assert [handler.level for handler in quiet.handlers] == [logging.WARNING]

    loud = configure_logging(verbose=True)
    assert loud.level == logging.DEBUG
    assert len(loud.handlers) == 1


def test_file_trace_captures_debug_without_verbose_console(tmp_path: Path) -> None:
    trace = tmp_path / "trace.log"
    logger = configure_logging(log_file=trace)

    get_logger("engine").debug("matched %d component(s)", 3)
    for handler in logger.handlers:
        handler.flush()

    assert [handler.level for handler in logger.handlers] == [logging.WARNING, logging.DEBUG]
    assert "DEBUG rxsmells.engine [MainThread]: matched 3 component(s)" in trace.read_text(encoding="utf-8")
    configure_logging()
