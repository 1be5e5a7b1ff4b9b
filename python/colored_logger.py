import logging
import sys
from typing import Optional

# Custom logging levels used by the file, archive and certificate pipelines
TRACE_LEVEL = 5
PROGRESS_LEVEL = 22
SUCCESS_LEVEL = 25
FAILURE_LEVEL = 45

logging.addLevelName(TRACE_LEVEL, "TRACE")
logging.addLevelName(PROGRESS_LEVEL, "PROGRESS")
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")
logging.addLevelName(FAILURE_LEVEL, "FAILURE")

DEFAULT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Formatter that wraps each record in an ANSI color chosen by level."""

    COLORS = {
        "TRACE": "\033[90m",  # Bright Black (Gray)
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "PROGRESS": "\033[94m",  # Bright Blue
        "SUCCESS": "\033[92m",  # Bright Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "FAILURE": "\033[91m",  # Bright Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(
        self, fmt: Optional[str] = None, datefmt: Optional[str] = None, stream=None
    ):
        super().__init__(fmt, datefmt)
        self._stream = stream if stream is not None else sys.stderr

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)

        # Plain text when redirected to a file or pipe
        isatty = getattr(self._stream, "isatty", None)
        if isatty is not None and isatty():
            level_color = self.COLORS.get(record.levelname, "")
            return f"{level_color}{message}{self.COLORS['RESET']}"

        return message


def setup_colored_logging(
    level: int = logging.INFO, log_file: Optional[str] = None
) -> None:
    """
    Configure colored console logging for the application.

    Args:
        level: Logging level (default: logging.INFO)
        log_file: Optional path of a plain-text log file written alongside the console
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(
        ColoredFormatter(DEFAULT_FORMAT, DEFAULT_DATEFMT, stream=sys.stderr)
    )
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT, DEFAULT_DATEFMT))
        root_logger.addHandler(file_handler)


def level_from_name(name: str, default: int = logging.INFO) -> int:
    """Translate a level name such as "debug" or "PROGRESS" into its number."""
    if not name:
        return default
    value = logging.getLevelName(name.strip().upper())
    return value if isinstance(value, int) else default


class EnhancedLogger:
    """Logger wrapper with methods for the custom levels."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def trace(self, msg, *args, **kwargs):
        """Very detailed debugging info, e.g. per-entry archive traffic."""
        self._logger.log(TRACE_LEVEL, msg, *args, **kwargs)

    def progress(self, msg, *args, **kwargs):
        """Progress of a long-running job."""
        self._logger.log(PROGRESS_LEVEL, msg, *args, **kwargs)

    def success(self, msg, *args, **kwargs):
        """A job or batch that finished without failures."""
        self._logger.log(SUCCESS_LEVEL, msg, *args, **kwargs)

    def failure(self, msg, *args, **kwargs):
        """A whole job that aborted."""
        self._logger.log(FAILURE_LEVEL, msg, *args, **kwargs)

    # debug/info/warning/error/critical/exception come from the wrapped logger
    def __getattr__(self, name):
        return getattr(self._logger, name)


def get_colored_logger(name: str) -> EnhancedLogger:
    """
    Get an enhanced logger instance with custom level methods.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Enhanced logger instance
    """
    return EnhancedLogger(logging.getLogger(name))
