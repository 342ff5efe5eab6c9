"""日志配置模块：统一控制台/文件输出格式，并为各组件提供子日志器。

- 控制台默认彩色输出，`LOG_JSON=true` 时切换为结构化 JSON；
- 文件按天滚动，保留 14 份；
- 每条日志都会带上当前请求的 `request_id`（由中间件写入上下文）。
"""

import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Optional

from .config import get_settings

LOGGER_NAME = "app"


class _TZFormatter(logging.Formatter):
    """按 Settings.timezone 渲染时间戳，未提供 datefmt 时输出带毫秒的 ISO-8601。"""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: D401
        tz = get_settings().timezone_info
        dt = datetime.fromtimestamp(record.created, tz)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(sep=" ", timespec="milliseconds")


class ColorFormatter(_TZFormatter):
    """ANSI 彩色格式化器：根据日志级别渲染不同颜色。"""

    RESET = "\033[0m"
    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }

    def __init__(
        self,
        fmt: str,
        datefmt: Optional[str] = None,
        style: str = "%",
        use_colors: Optional[bool] = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        if use_colors is None:
            use_colors = sys.stderr.isatty()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.COLORS.get(record.levelno) if self.use_colors else None
        if not color:
            return message
        return f"{color}{message}{self.RESET}"


class JsonFormatter(_TZFormatter):
    """Structured JSON formatter for logs."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, datefmt=None),
            "logger": record.name,
            "level": record.levelname,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIdFilter(logging.Filter):
    """Injects request_id from contextvars into every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.request_id = _request_id_ctx.get()
        return True


def setup_logging() -> None:
    """初始化日志系统：应用日志、uvicorn 日志与 SQL 回显共用同一组处理器。"""
    settings = get_settings()
    settings.log_directory.mkdir(parents=True, exist_ok=True)

    console_formatter = "json" if settings.log_json else "standard"
    file_formatter = "json" if settings.log_json else "plain"
    handlers = ["default", "file"]
    # DATABASE_ECHO 打开时由日志系统接管 SQL 输出，避免 SQLAlchemy 自带的 print 风格处理器
    sql_level = "INFO" if settings.database_echo else "WARNING"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "()": "app.packages.drive.core.logger.ColorFormatter",
                    "format": "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
                },
                "plain": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
                },
                "json": {
                    "()": "app.packages.drive.core.logger.JsonFormatter",
                },
            },
            "filters": {
                "request_id": {"()": "app.packages.drive.core.logger.RequestIdFilter"},
            },
            "handlers": {
                "default": {
                    "level": settings.log_level,
                    "class": "logging.StreamHandler",
                    "formatter": console_formatter,
                    "filters": ["request_id"],
                },
                "file": {
                    "level": settings.log_level,
                    "class": "logging.handlers.TimedRotatingFileHandler",
                    "formatter": file_formatter,
                    "filename": str(settings.log_file_path),
                    "when": "midnight",
                    "backupCount": 14,
                    "encoding": "utf-8",
                    "delay": True,
                    "filters": ["request_id"],
                },
            },
            "loggers": {
                "uvicorn": {"handlers": handlers, "level": settings.log_level, "propagate": False},
                "uvicorn.error": {"handlers": handlers, "level": settings.log_level, "propagate": False},
                "uvicorn.access": {"handlers": handlers, "level": settings.log_level, "propagate": False},
                "sqlalchemy.engine": {"handlers": handlers, "level": sql_level, "propagate": False},
                LOGGER_NAME: {"handlers": handlers, "level": settings.log_level, "propagate": False},
            },
            "root": {"handlers": handlers, "level": settings.log_level},
        }
    )


logger = logging.getLogger(LOGGER_NAME)


def get_logger(component: str) -> logging.Logger:
    """返回挂在应用日志器下的组件日志器，例如 ``app.crud.fs_node``。"""
    return logger.getChild(component)


def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)
