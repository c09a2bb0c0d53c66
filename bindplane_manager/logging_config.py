"""
Logging configuration for the BindPlane manager.

Console output plus rotating log files, with dedicated streams for API access
and agent lifecycle events.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

API_LOGGER = "bindplane_manager.api"
AGENTS_LOGGER = "bindplane_manager.agents"

# Extra record attributes copied into structured output
EXTRA_FIELDS = ("agent_id", "request_id", "resource_kind", "duration_ms")


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_obj[field] = getattr(record, field)

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable formatter for console and file logs."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = False):
        self.use_colors = use_colors
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        if self.use_colors and record.levelname in self.COLORS:
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
        return super().format(record)


def level_for_env(env: str) -> str:
    """Development logs at DEBUG, everything else at INFO."""
    return "DEBUG" if env == "development" else "INFO"


def _rotating_handler(
    path: Path, formatter: logging.Formatter, max_bytes: int, backup_count: int
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    log_dir: str,
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    use_json: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 10,
    output: str = "file",
    log_file_name: str = "bindplane.log",
) -> None:
    """
    Configure logging for the BindPlane manager.

    Args:
        log_dir: Directory for log files
        console_level: Console logging level
        file_level: File logging level
        use_json: Use JSON formatting for files
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep
        output: ``file`` adds rotating files, ``stdout`` logs to the console only
        log_file_name: Name of the main log file
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, console_level))
    console_handler.setFormatter(HumanReadableFormatter(use_colors=sys.stdout.isatty()))
    root_logger.addHandler(console_handler)

    for name in (API_LOGGER, AGENTS_LOGGER):
        stream = logging.getLogger(name)
        stream.handlers.clear()
        stream.propagate = True

    if output == "file":
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_formatter = StructuredFormatter() if use_json else HumanReadableFormatter()

        main_handler = _rotating_handler(
            log_path / log_file_name, file_formatter, max_bytes, backup_count
        )
        main_handler.setLevel(getattr(logging, file_level))
        root_logger.addHandler(main_handler)

        error_handler = _rotating_handler(
            log_path / "error.log", file_formatter, max_bytes, backup_count
        )
        error_handler.setLevel(logging.ERROR)
        root_logger.addHandler(error_handler)

        agent_logger = logging.getLogger(AGENTS_LOGGER)
        agent_logger.addHandler(
            _rotating_handler(
                log_path / "agent-lifecycle.log", file_formatter, max_bytes, backup_count
            )
        )
        agent_logger.setLevel(logging.DEBUG)
        agent_logger.propagate = False

        api_logger = logging.getLogger(API_LOGGER)
        api_logger.addHandler(
            _rotating_handler(log_path / "api-access.log", file_formatter, max_bytes, backup_count)
        )
        api_logger.setLevel(logging.INFO)
        api_logger.propagate = False

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    root_logger.info(
        f"Logging initialized - Console: {console_level}, File: {file_level}, "
        f"Output: {output}, Directory: {log_dir}, JSON: {use_json}"
    )


class LogContext:
    """Context manager for adding contextual information to logs."""

    def __init__(self, logger: logging.Logger, **kwargs):
        self.logger = logger
        self.context = kwargs
        self.old_factory = None

    def __enter__(self):
        old_factory = logging.getLogRecordFactory()
        self.old_factory = old_factory

        def record_factory(*args, **kwargs):
            record = old_factory(*args, **kwargs)
            for key, value in self.context.items():
                setattr(record, key, value)
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.old_factory:
            logging.setLogRecordFactory(self.old_factory)


def log_agent_event(
    agent_id: str,
    event: str,
    level: str = "INFO",
    logger: Optional[logging.Logger] = None,
    **details: Any,
) -> None:
    """
    Log an agent lifecycle event.

    Args:
        agent_id: Agent identifier
        event: Event name (connected, disconnected, labeled, deleted, ...)
        level: Log level
        logger: Logger to write to, the agent lifecycle stream by default
        **details: Additional event details
    """
    logger = logger or logging.getLogger(AGENTS_LOGGER)

    message = f"Agent {event}: {agent_id}"
    if details:
        message += f" - {json.dumps(details, default=str, sort_keys=True)}"

    getattr(logger, level.lower())(message, extra={"agent_id": agent_id})
