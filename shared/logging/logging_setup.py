from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from logging import Logger
from typing import Iterator
import copy
import logging
import logging.config
import os

from pytz import timezone

_ANSI_RESET = "\033[0m"
_COLOR_MAP: dict[str, str] = {
    "cyan": "\033[36m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "red": "\033[31m",
    "magenta": "\033[35m",
    "blue": "\033[34m",
    "white": "\033[37m",
}
_LEVEL_PREFIX = {logging.ERROR: "⛔ ", logging.CRITICAL: "⛔ ", logging.WARNING: "⚠️ "}

# tenant / video / session of the request or job being handled
_log_context: ContextVar[dict[str, str]] = ContextVar("video_rag_log_context", default={})


def _is_debug() -> bool:
    return os.getenv("LOG_LEVEL", "info").lower() == "debug"


##########################################
############### CONTEXT ##################
##########################################


@contextmanager
def bind_log_context(**fields: str | None) -> Iterator[None]:
    """Tag every log line inside the block with the given ids.

    Usage::

        with bind_log_context(tenant=tenant_id, video=video_id):
            ...

    Nested blocks add to the outer context; None values are skipped.
    """
    merged = {**_log_context.get(), **{k: str(v) for k, v in fields.items() if v is not None}}
    token = _log_context.set(merged)
    try:
        yield
    finally:
        _log_context.reset(token)


def get_log_context() -> dict[str, str]:
    return dict(_log_context.get())


class LogContextFilter(logging.Filter):
    """Adds ``log_context`` ("tenant=a video=b " or "") to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        fields = _log_context.get()
        record.log_context = "".join(f"{key}={value} " for key, value in fields.items())
        return True


##########################################
############### FORMATTER ################
##########################################


class CustomFormatter(logging.Formatter):
    def __init__(self, tz_name, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    def format(self, record):
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # broken %-args from a third-party logger
            return ""
        # the record is shared by every handler; prefix a copy only
        local = copy.copy(record)
        local.msg = _LEVEL_PREFIX.get(record.levelno, "") + message
        local.args = ()
        if not hasattr(local, "log_context"):
            local.log_context = ""
        return super().format(local)


class ColoredFormatter(CustomFormatter):
    """Console formatter; wraps a line in ANSI color when the record has ``color``."""

    def format(self, record) -> str:
        line = super().format(record)
        ansi = _COLOR_MAP.get(getattr(record, "color", None) or "", "")
        return f"{ansi}{line}{_ANSI_RESET}" if line and ansi else line


##########################################
################ LOGGER ##################
##########################################


class ColorLogger:
    """Logger wrapper whose methods take an optional ``color=`` keyword.

        logger.info("Ingested video %s", video_id, color="green")

    Only the console handler colors output; the log file stays plain.
    Everything else (setLevel, handlers, ...) goes to the wrapped logger.
    """

    def __init__(self, logger: Logger):
        self._logger = logger

    def _log(self, level: int, msg, args, color: str | None, kwargs: dict) -> None:
        if color is not None:
            kwargs["extra"] = {**(kwargs.get("extra") or {}), "color": color}
        # record the caller's line, not this wrapper's
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, msg, *args, **kwargs)

    def log(self, level: int, msg, *args, color: str | None = None, **kwargs):
        self._log(level, msg, args, color, kwargs)

    def debug(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.DEBUG, msg, args, color, kwargs)

    def info(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.INFO, msg, args, color, kwargs)

    def warning(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.WARNING, msg, args, color, kwargs)

    def error(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.ERROR, msg, args, color, kwargs)

    def critical(self, msg, *args, color: str | None = None, **kwargs):
        self._log(logging.CRITICAL, msg, args, color, kwargs)

    def exception(self, msg, *args, color: str | None = None, **kwargs):
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, args, color, kwargs)

    def __getattr__(self, name):
        return getattr(self._logger, name)


def setup_logging() -> ColorLogger:
    """Configure console and rotating file output and return the app logger.

    Environment:
        LOG_LEVEL         "debug" for verbose output (default info)
        TIMEZONE          timestamps zone (default Europe/Berlin)
        ROOT_DIR          logs go to <ROOT_DIR>/logs/app.log (default cwd)
        LOG_MAX_BYTES     rotate the file at this size (default 10 MB)
        LOG_BACKUP_COUNT  rotated files to keep (default 5)
    """
    debug_mode = _is_debug()
    loglevel = logging.DEBUG if debug_mode else logging.INFO
    log_dir = os.path.join(os.getenv("ROOT_DIR") or os.getcwd(), "logs")
    os.makedirs(log_dir, exist_ok=True)
    tz_name = os.getenv("TIMEZONE", "Europe/Berlin")
    line_format = "%(asctime)s - %(levelname)s - %(log_context)s%(message)s"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"log_context": {"()": LogContextFilter}},
            "formatters": {
                "standard": {"()": CustomFormatter, "format": line_format, "datefmt": "%Y-%m-%d %H:%M:%S", "tz_name": tz_name},
                "colored": {"()": ColoredFormatter, "format": line_format, "datefmt": "%Y-%m-%d %H:%M:%S", "tz_name": tz_name},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "colored",
                    "filters": ["log_context"],
                    "level": loglevel,
                    "stream": "ext://sys.stdout",
                },
                "file": {
                    "class": "logging.handlers.RotatingFileHandler",
                    "formatter": "standard",
                    "filters": ["log_context"],
                    "level": loglevel,
                    "filename": os.path.join(log_dir, "app.log"),
                    "maxBytes": int(os.getenv("LOG_MAX_BYTES") or 10 * 1024 * 1024),
                    "backupCount": int(os.getenv("LOG_BACKUP_COUNT") or 5),
                    "encoding": "utf-8",
                },
            },
            "root": {"handlers": ["console", "file"], "level": loglevel},
        }
    )

    # both log every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug_mode else logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug_mode else logging.WARNING)

    return ColorLogger(logging.getLogger("video_rag_bridge"))
