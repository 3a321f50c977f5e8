from datetime import datetime
from pytz import timezone
import logging.config
import logging
import os

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

_ANSI_RESET = "\033[0m"
_LEVEL_COLORS: dict[int, str] = {
    logging.DEBUG: "\033[36m",     # cyan
    logging.WARNING: "\033[33m",   # yellow
    logging.ERROR: "\033[31m",     # red
    logging.CRITICAL: "\033[35m",  # magenta
}


def resolve_level(default: str = "info") -> int:
    """Log level from LOG_LEVEL, INFO for unknown names."""
    level = logging.getLevelName(os.getenv("LOG_LEVEL", default).strip().upper())
    return level if isinstance(level, int) else logging.INFO


class TimezoneFormatter(logging.Formatter):
    """Renders timestamps in the TIMEZONE zone and marks warnings and errors with an emoji."""

    def __init__(self, tz_name: str, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    @staticmethod
    def _marker(levelno: int) -> str:
        if levelno >= logging.ERROR:
            return "⛔ "
        if levelno == logging.WARNING:
            return "⚠️ "
        return ""

    def format(self, record):
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # malformed %-args from a third party logger
            message = f"{record.msg} {record.args}"
        # the record is shared between handlers, format a copy
        copy = logging.makeLogRecord(record.__dict__)
        copy.msg = self._marker(record.levelno) + message
        copy.args = ()
        return super().format(copy)


class ConsoleFormatter(TimezoneFormatter):
    """Colours the whole line by level. Only used for the console handler."""

    def format(self, record) -> str:
        line = super().format(record)
        color = _LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}{_ANSI_RESET}" if color else line


def setup_logging(name: str = "memory_engine") -> logging.Logger:
    """Configure console and rotating file logging and return the application logger.

    Environment:
        LOG_LEVEL: debug, info, warning or error (default info).
        TIMEZONE: zone used for timestamps (default Europe/Berlin).
        ROOT_DIR: the log file goes to $ROOT_DIR/logs/app.log, the working directory when unset.
    """
    log_dir = os.path.join(os.getenv("ROOT_DIR") or os.getcwd(), "logs")
    os.makedirs(log_dir, exist_ok=True)
    tz_name = os.getenv("TIMEZONE", "Europe/Berlin")
    level = resolve_level()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "file": {"()": TimezoneFormatter, "format": LOG_FORMAT, "datefmt": DATE_FORMAT, "tz_name": tz_name},
            "console": {"()": ConsoleFormatter, "format": LOG_FORMAT, "datefmt": DATE_FORMAT, "tz_name": tz_name},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
                "level": level,
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "file",
                "level": level,
                "filename": os.path.join(log_dir, "app.log"),
                "maxBytes": LOG_FILE_MAX_BYTES,
                "backupCount": LOG_FILE_BACKUPS,
                "encoding": "utf-8",
            },
        },
        "root": {"handlers": ["console", "file"], "level": level},
    })

    # request logs only in debug mode
    logging.getLogger("httpx").setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING if level > logging.DEBUG else logging.DEBUG)

    return logging.getLogger(name)
