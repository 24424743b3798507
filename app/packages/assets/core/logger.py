"""日志配置模块：统一日志格式，并把运维事件单独落盘。

业务日志走 ``app``；下载账本写入失败、存储故障这类不影响客户端响应、
但需要人工处理的事件走 ``app.operator``，除常规输出外还会写入独立的
``operator.log``，方便告警系统只盯一个文件。
"""

import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Optional

from .config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
OPERATOR_LOGGER_NAME = "app.operator"

_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class _TZFormatter(logging.Formatter):
    """按 ``Settings.timezone`` 渲染时间戳，默认精确到毫秒。"""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        stamp = datetime.fromtimestamp(record.created, get_settings().timezone_info)
        if datefmt:
            return stamp.strftime(datefmt)
        return stamp.isoformat(sep=" ", timespec="milliseconds")


class ColorFormatter(_TZFormatter):
    """终端彩色输出：按级别着色，非 TTY 环境自动关闭。"""

    RESET = "\033[0m"
    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }

    def __init__(self, fmt: str, datefmt: Optional[str] = None, use_colors: Optional[bool] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_colors = sys.stderr.isatty() if use_colors is None else use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.COLORS.get(record.levelno) if self.use_colors else None
        return f"{color}{message}{self.RESET}" if color else message


class JsonFormatter(_TZFormatter):
    """结构化输出，每条日志一行 JSON。"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "logger": record.name,
            "level": record.levelname,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class RequestIdFilter(logging.Filter):
    """把当前请求的 request_id 注入 LogRecord，后台线程中为 ``None``。"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx.get()
        return True


def _rotating_file(filename: str, level: str, formatter: str) -> dict[str, Any]:
    return {
        "level": level,
        "class": "logging.handlers.TimedRotatingFileHandler",
        "formatter": formatter,
        "filename": filename,
        "when": "midnight",
        "backupCount": 14,
        "encoding": "utf-8",
        "delay": True,
        "filters": ["request_id"],
    }


def setup_logging() -> None:
    """初始化日志系统：控制台 + 按天滚动的应用日志 + 运维日志。"""
    settings = get_settings()
    log_dir = settings.log_directory
    log_dir.mkdir(parents=True, exist_ok=True)

    level = settings.log_level
    file_formatter = "json" if settings.log_json else "plain"
    common = {"handlers": ["console", "file"], "level": level, "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_id": {"()": RequestIdFilter}},
            "formatters": {
                "color": {"()": ColorFormatter, "fmt": LOG_FORMAT},
                "plain": {"()": _TZFormatter, "fmt": LOG_FORMAT},
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "console": {
                    "level": level,
                    "class": "logging.StreamHandler",
                    "formatter": "json" if settings.log_json else "color",
                    "filters": ["request_id"],
                },
                "file": _rotating_file(str(settings.log_file_path), level, file_formatter),
                "operator_file": _rotating_file(
                    str(log_dir / settings.operator_log_file_name), "WARNING", file_formatter
                ),
            },
            "loggers": {
                **{name: dict(common) for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "app")},
                # 运维事件同时进入 app 的处理器（propagate）与独立文件
                OPERATOR_LOGGER_NAME: {"handlers": ["operator_file"], "level": level, "propagate": True},
            },
            "root": {"handlers": ["console", "file"], "level": level},
        }
    )


logger = logging.getLogger("app")
operator_logger = logging.getLogger(OPERATOR_LOGGER_NAME)


def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)
