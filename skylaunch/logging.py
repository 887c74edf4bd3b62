"""Logging for skylaunch.

Modules log through ``logger.bind(component=...)`` and pass resource ids
as keyword arguments, which loguru also stores in ``record["extra"]``.
The handlers installed here render those fields as a line prefix:

    12:00:07.412 INFO    readiness i-0abc | Instance i-0abc ready after 4 checks

Logging stays disabled until a host opts in.

Example:
    from skylaunch.logging import LogConfig, _setup_logging, _teardown_logging

    handler_ids = _setup_logging(LogConfig(level="DEBUG", console=True))
    try:
        provision(context)
    finally:
        _teardown_logging(handler_ids)
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from loguru import logger

logger.disable("skylaunch")

type LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]

# Resource ids shown after the component, most specific last
_RESOURCE_KEYS = ("instance_id", "volume_id", "allocation_id")


def _formatter(timestamp: str) -> Callable[[Any], str]:
    def _format(record: Any) -> str:
        extra = record["extra"]
        source = "{extra[component]}" if "component" in extra else "{name}"
        ids = "".join(f" {{extra[{key}]}}" for key in _RESOURCE_KEYS if key in extra)
        return (
            f"<green>{{time:{timestamp}}}</green> <level>{{level: <7}}</level> "
            f"<cyan>{source}</cyan><dim>{ids}</dim> | <level>{{message}}</level>\n{{exception}}"
        )

    return _format


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Where skylaunch logs go.

    Attributes:
        level: Minimum level for the stderr handler. The file always gets DEBUG.
        file: Log file path, or ``None`` for no file.
        console: Also log to stderr (the rich status lines go there too).
        rotation: loguru rotation policy for the file.
    """

    level: LogLevel = "INFO"
    file: str | None = ".skylaunch/skylaunch.log"
    console: bool = False
    rotation: str | None = "10 MB"


def _setup_logging(config: LogConfig) -> list[int]:
    """Install skylaunch handlers. Returns their ids for ``_teardown_logging``."""
    logger.enable("skylaunch")
    handler_ids: list[int] = []

    if config.console:
        handler_ids.append(logger.add(
            sys.stderr,
            level=config.level,
            format=_formatter("HH:mm:ss.SSS"),
            filter="skylaunch",
            colorize=True,
        ))

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handler_ids.append(logger.add(
            config.file,
            level="DEBUG",
            format=_formatter("YYYY-MM-DD HH:mm:ss.SSS"),
            filter="skylaunch",
            colorize=False,
            rotation=config.rotation,
        ))

    return handler_ids


def _teardown_logging(handler_ids: list[int]) -> None:
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable("skylaunch")
