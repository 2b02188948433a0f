from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping


LOG_CATEGORIES: tuple[str, ...] = (
    "sysex_sent",
    "sysex_received",
    "parsed_dump",
    "value_change",
    "navigation",
    "bitmap",
    "screen_dump",
    "error",
    "general",
)

CATEGORY_LOGGER_PREFIX = "orville"

# (message, severity, category)
LogSink = Callable[[str, str, str], None]


class CategoryFilter(logging.Filter):
    """Drop records from `orville.<category>` loggers whose category is disabled."""

    def __init__(self, enabled: Mapping[str, bool]) -> None:
        super().__init__()
        self._enabled = dict(enabled)

    def filter(self, record: logging.LogRecord) -> bool:
        prefix, _, category = record.name.partition(".")
        if prefix != CATEGORY_LOGGER_PREFIX or not category:
            return True
        return self._enabled.get(category, True)


def configure_logging(
    *,
    cli_level: str | None = None,
    categories: Mapping[str, bool] | None = None,
) -> None:
    """Configure root logging for the app.

    Precedence:
    1) `cli_level` (e.g. from argparse)
    2) env var `ORVILLE_LOG_LEVEL`
    3) default INFO

    This should be called once, early in the entrypoint.
    """

    level_name = (cli_level or os.environ.get("ORVILLE_LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        force=True,
    )

    if categories:
        category_filter = CategoryFilter(categories)
        for handler in logging.getLogger().handlers:
            handler.addFilter(category_filter)


def logging_sink(message: str, severity: str, category: str) -> None:
    """Default protocol log sink: route to the `orville.<category>` logger."""

    level = getattr(logging, severity.upper(), logging.INFO)
    logging.getLogger(f"{CATEGORY_LOGGER_PREFIX}.{category}").log(level, message)


class CategoryLog:
    """Front for a `(message, severity, category)` sink with %-style arguments."""

    def __init__(self, sink: LogSink | None = None) -> None:
        self._sink = sink or logging_sink

    def log(self, severity: str, category: str, message: str, *args: object) -> None:
        text = message % args if args else message
        self._sink(text, severity, category)

    def debug(self, category: str, message: str, *args: object) -> None:
        self.log("debug", category, message, *args)

    def info(self, category: str, message: str, *args: object) -> None:
        self.log("info", category, message, *args)

    def warning(self, category: str, message: str, *args: object) -> None:
        self.log("warning", category, message, *args)

    def error(self, category: str, message: str, *args: object) -> None:
        self.log("error", category, message, *args)
