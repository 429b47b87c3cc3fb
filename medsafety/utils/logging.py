"""
Structured Logging Configuration

Every module logs through get_logger(__name__); the service configures the
root logger once at start-up from settings.
"""
import logging
import sys
from typing import Any, Dict, Optional
from datetime import datetime, timezone


class StructuredFormatter(logging.Formatter):
    """
    Single-line formatter: UTC timestamp, level, logger name, message.

    Medication context passed through ``extra=`` (see ``CONTEXT_FIELDS``) is
    appended as key=value pairs so one medication can be followed across the
    store, oracle and resolver logs.
    """

    CONTEXT_FIELDS = ("medication", "drug_class", "rule_row", "revision")

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        record.timestamp = datetime.now(timezone.utc).isoformat()

        if self.use_color:
            color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
            reset = self.COLORS['RESET']
        else:
            color = reset = ""

        log_message = (
            f"{color}[{record.timestamp}] "
            f"{record.levelname:8} "
            f"[{record.name}] "
            f"{record.getMessage()}"
            f"{format_context(record)}{reset}"
        )

        if record.exc_info:
            log_message += f"\n{self.formatException(record.exc_info)}"

        return log_message


def format_context(record: logging.LogRecord) -> str:
    """Render the record's medication context fields, or "" when none are set."""
    pairs = [
        f"{name}={getattr(record, name)}"
        for name in StructuredFormatter.CONTEXT_FIELDS
        if getattr(record, name, None) not in (None, "")
    ]
    return f" | {' '.join(pairs)}" if pairs else ""


def medication_context(medication: str, **fields) -> Dict[str, Any]:
    """Build the ``extra=`` mapping for a log call about one medication."""
    return {"medication": medication, **fields}


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter(use_color=sys.stdout.isatty()))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
        ))
        root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
