from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

import structlog
from structlog.typing import EventDict, Processor

from threatrelay.config import AppSettings
from threatrelay.telemetry import TELEMETRY_LOGGER_NAME

ROOT_LOGGER_NAME = "threatrelay"
LOG_FILE_NAME = "threatrelay.log"
TELEMETRY_LOG_FILE_NAME = "threatrelay-telemetry.log"


@dataclass(frozen=True)
class LogPaths:
    application: Path
    telemetry: Path


def log_paths(log_dir: Path) -> LogPaths:
    return LogPaths(
        application=log_dir / LOG_FILE_NAME,
        telemetry=log_dir / TELEMETRY_LOG_FILE_NAME,
    )


def configure_application_logging(
    settings: AppSettings,
    *,
    console_level: str | None = None,
    console_stream: TextIO | None = None,
) -> LogPaths:
    """Route `threatrelay.*` loggers to the console and JSON log files.

    Console output goes to stderr unless `console_stream` is given and is
    filtered at `console_level` (default: `settings.log_level`). The
    application file records everything from DEBUG up. Telemetry is written
    to its own file and never reaches the console. Calling this again
    replaces the handlers installed by the previous call.
    """
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    paths = log_paths(settings.log_dir)
    level_name = (console_level or settings.log_level).strip().upper()
    stream = console_stream if console_stream is not None else sys.stderr

    _configure_structlog()
    _install_handlers(
        logging.getLogger(ROOT_LOGGER_NAME),
        level=logging.DEBUG,
        handlers=(
            _console_handler(stream, level=_resolve_log_level(level_name)),
            _json_file_handler(paths.application, level=logging.DEBUG),
        ),
    )
    _install_handlers(
        logging.getLogger(TELEMETRY_LOGGER_NAME),
        level=logging.INFO,
        handlers=(_json_file_handler(paths.telemetry, level=logging.INFO),),
    )

    logging.getLogger(ROOT_LOGGER_NAME).debug(
        "logging configured console_level=%s path=%s telemetry_path=%s",
        level_name,
        paths.application,
        paths.telemetry,
    )
    return paths


def _resolve_log_level(level_name: str) -> int:
    return logging.getLevelNamesMapping().get(level_name, logging.INFO)


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            _timestamper(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _install_handlers(
    logger: logging.Logger,
    *,
    level: int,
    handlers: Sequence[logging.Handler],
) -> None:
    logger.setLevel(level)
    logger.propagate = False
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    for handler in handlers:
        logger.addHandler(handler)


def _console_handler(stream: TextIO, *, level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream=stream)
    handler.setLevel(level)
    handler.setFormatter(
        _formatter(
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=_is_tty(stream)),
        )
    )
    return handler


def _json_file_handler(path: Path, *, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(
        _formatter(
            _add_source_location,
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        )
    )
    return handler


def _formatter(*processors: Processor) -> structlog.stdlib.ProcessorFormatter:
    # `foreign_pre_chain` applies to records from plain `logging` loggers.
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _timestamper(),
        ],
        processors=list(processors),
    )


def _timestamper() -> Processor:
    return structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp")


def _add_source_location(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        event_dict["module"] = record.module
        event_dict["lineno"] = record.lineno
        event_dict["func_name"] = record.funcName
    return event_dict


def _is_tty(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, OSError, ValueError):
        return False
