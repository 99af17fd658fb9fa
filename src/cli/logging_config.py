"""Structured logging configuration using structlog.

Location readings and notification targets end up in event fields, so every
record passes through ``_redact_sensitive`` before it is rendered: coordinates
are coarsened to roughly 1 km and email addresses are masked.
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Iterable, Optional

import structlog

_COORD_KEYS = {"lat", "lon", "latitude", "longitude"}
_COORD_PRECISION = 2

# "12.345678, -45.678901" style pairs inside free text
_COORD_PAIR = re.compile(r"(-?\d{1,3}\.\d{3,})\s*,\s*(-?\d{1,3}\.\d{3,})")
_EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

_LOG_FILE_BYTES = 5 * 1024 * 1024
_LOG_FILE_BACKUPS = 3


def _round_pair(match: re.Match) -> str:
    lat, lon = (round(float(g), _COORD_PRECISION) for g in match.groups())
    return f"{lat}, {lon}"


def _redact_sensitive(_, __, event_dict: dict) -> dict:
    """Structlog processor that coarsens coordinates and hides emails in log output."""
    for key, value in event_dict.items():
        if key in _COORD_KEYS and isinstance(value, float):
            event_dict[key] = round(value, _COORD_PRECISION)
        elif isinstance(value, str):
            value = _COORD_PAIR.sub(_round_pair, value)
            event_dict[key] = _EMAIL.sub("REDACTED@email", value)
    return event_dict


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ]
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _redact_sensitive,
    ]


def _formatter(renderer) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def setup_logging(
    json_mode: bool = False,
    level: str = "INFO",
    log_file: Optional[Path] = None,
    quiet: Iterable[str] = ("apscheduler",),
) -> None:
    """Configure structlog with appropriate renderer.

    Args:
        json_mode: JSON lines on stderr (for the runtime / machine consumption).
                   False = console renderer (for the CLI).
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional rotating file that always receives JSON lines.
        quiet: Third-party logger names held at WARNING or above.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            *_pre_chain(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(
        _formatter(
            structlog.processors.JSONRenderer()
            if json_mode
            else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        )
    )
    handlers: list[logging.Handler] = [console]

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        rotating = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=_LOG_FILE_BYTES, backupCount=_LOG_FILE_BACKUPS
        )
        rotating.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        handlers.append(rotating)

    root = logging.getLogger()
    for old in root.handlers:
        if isinstance(old, logging.FileHandler):
            old.close()
    root.handlers = handlers
    root.setLevel(log_level)

    for name in quiet:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
