"""structlog setup for the multiplayer client and its scripts.

Log lines go through stdlib logging so that third-party loggers (httpx,
socketio, engineio) share the same handlers and format. The local player id
is carried as a context variable once the server has assigned one.
"""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

# Chatty at INFO: one line per request or per packet.
_NOISY_LOGGERS = ("httpx", "httpcore", "socketio", "engineio")


def _serialize_enums(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Log event types, phases and operation kinds as their wire strings."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, dict):
            event_dict[key] = {k: v.value if isinstance(v, Enum) else v for k, v in value.items()}
    return event_dict


def configure_structlog() -> None:
    """Route structlog through stdlib logging with the client's processor chain."""
    # format_exc_info runs in the ProcessorFormatter so tracebacks render once per handler.
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _serialize_enums,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def _build_formatter(*, json_format: bool, colors: bool = False) -> logging.Formatter:
    renderer = structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer(colors=colors)
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def setup_logging(
    *,
    level: str = "INFO",
    json_format: bool = False,
    log_dir: Path | str | None = None,
) -> Path | None:
    """Log to stdout and, when log_dir is given, to a timestamped file inside it.

    Returns the log file path, or None without a log_dir.
    """
    configure_structlog()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(_build_formatter(json_format=json_format, colors=sys.stdout.isatty()))
    root_logger.addHandler(stdout_handler)

    if log_dir is None:
        return None

    dir_path = Path(log_dir)
    dir_path.mkdir(parents=True, exist_ok=True)
    file_path = dir_path / f"{datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)}.log"
    file_handler = logging.FileHandler(file_path)
    file_handler.setFormatter(_build_formatter(json_format=json_format))
    root_logger.addHandler(file_handler)
    return file_path


def bind_player_context(player_id: str | None) -> None:
    """Attach the local player id to every subsequent log line, or drop it when None."""
    if player_id is None:
        structlog.contextvars.unbind_contextvars("player_id")
    else:
        structlog.contextvars.bind_contextvars(player_id=player_id)
