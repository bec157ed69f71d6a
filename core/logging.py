"""
统一日志模块 (Core Logging)

- 标准 logging 处理器 + structlog，对接同一套 root logger
- 所有日志输出到 stderr，stdout 只保留乱码诊断行，便于管道处理
- 每个校验任务通过 correlation_context 注入文件级 correlation_id
"""

import functools
import json
import logging
import sys
import time
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional, Union

import structlog
from dotenv import find_dotenv, load_dotenv

from core.config import Settings, settings as default_settings
from core.context import current_file_var, trace_id_var


class JsonFormatter(logging.Formatter):
    """JSON 格式化器"""

    def __init__(
        self, include_traceback: bool = True, datefmt: str = None
    ) -> None:
        super().__init__(datefmt=datefmt)
        self.include_traceback = include_traceback
        self.datefmt = datefmt or "%Y-%m-%dT%H:%M:%S%z"

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "process": record.process,
            "thread": record.threadName,
            "correlation_id": getattr(record, "correlation_id", "-"),
            "file": getattr(record, "file", None),
            "func_name": record.funcName,
            "lineno": record.lineno,
        }

        # 附加异常信息
        if record.exc_info and self.include_traceback:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


class ColorTextFormatter(logging.Formatter):
    """标准彩色文本格式化器"""

    _COLORS = {
        "DEBUG": "\x1b[90m",  # 灰
        "INFO": "\x1b[32m",  # 绿
        "WARNING": "\x1b[33m",  # 黄
        "ERROR": "\x1b[31m",  # 红
        "CRITICAL": "\x1b[35m",  # 品红
    }
    _RESET = "\x1b[0m"

    def __init__(
        self, use_color: bool = True, datefmt: str | None = None, include_traceback: bool = True
    ) -> None:
        fmt = "%(asctime)s [%(correlation_id)s][%(levelname)s][%(name)s] %(message)s"
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color
        self.include_traceback = include_traceback

    def formatException(self, ei) -> str:
        if not self.include_traceback:
            # 只保留异常类型与消息
            return f"{ei[0].__name__}: {ei[1]}"
        return super().formatException(ei)

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        out = super().format(record)
        if not self.use_color:
            return out
        color = self._COLORS.get(logging.getLevelName(record.levelno))
        return f"{color}{out}{self._RESET}" if color else out


class _ContextFilter(logging.Filter):
    """Inject correlation_id / file from context vars."""

    def filter(self, record: logging.LogRecord) -> bool:
        cid = trace_id_var.get()
        if cid == "-":
            cid = getattr(record, "correlation_id", "-")
        record.correlation_id = cid
        if not hasattr(record, "file"):
            record.file = current_file_var.get()
        return True


class _MuteFilter(logging.Filter):
    """按 logger 名前缀静音 (任何级别)"""

    def __init__(self, prefixes) -> None:
        super().__init__()
        self.mute_prefixes = [p for p in prefixes if p]

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name or ""
        for prefix in self.mute_prefixes:
            if name.startswith(prefix):
                return False
        return True


class SafeLoggerFactory(structlog.stdlib.LoggerFactory):
    """确保 logger name 永远是字符串"""
    def __call__(self, *args, **kwargs):
        if args and args[0] is None:
            args = ("root",) + args[1:]
        elif not args:
            args = ("root",)
        return super().__call__(*args, **kwargs)


def configure_structlog():
    """配置 structlog 以对接标准 logging 系统"""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        context_class=dict,
        logger_factory=SafeLoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _build_formatter(cfg: Settings, use_color: bool) -> logging.Formatter:
    if cfg.LOG_FORMAT.lower() == "json":
        return JsonFormatter(include_traceback=cfg.LOG_INCLUDE_TRACEBACK)
    return ColorTextFormatter(use_color=use_color, include_traceback=cfg.LOG_INCLUDE_TRACEBACK)


def setup_logging(cfg: Optional[Settings] = None, level: Optional[str] = None, stream=None) -> logging.Logger:
    """配置日志系统，包括可选的滚动归档"""
    # 优先加载 .env
    try:
        load_dotenv(find_dotenv(usecwd=True))
    except OSError as e:
        print(f"Error loading .env: {e}", file=sys.stderr)

    cfg = cfg or default_settings
    configure_structlog()

    root_logger = logging.getLogger()
    effective = (level or cfg.LOG_LEVEL or "WARNING").upper()
    root_logger.setLevel(getattr(logging, effective, logging.WARNING))

    # 移除现有处理器
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    # Console Handler (stderr)
    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setFormatter(_build_formatter(cfg, use_color=cfg.LOG_COLOR))
    console_handler.addFilter(_ContextFilter())
    console_handler.addFilter(_MuteFilter(cfg.LOG_MUTE_LOGGERS))
    root_logger.addHandler(console_handler)

    # File Handler (Rolling & Auto Cleanup)
    if cfg.LOG_TO_FILE and cfg.LOG_DIR:
        log_dir = Path(cfg.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=str(log_dir / "app.log"),
            maxBytes=cfg.LOG_MAX_BYTES,
            backupCount=cfg.LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(_build_formatter(cfg, use_color=False))
        file_handler.addFilter(_ContextFilter())
        file_handler.addFilter(_MuteFilter(cfg.LOG_MUTE_LOGGERS))
        root_logger.addHandler(file_handler)

    structlog.get_logger(__name__).debug(
        "Log system initialized (Core)",
        level=logging.getLevelName(root_logger.level),
        format=cfg.LOG_FORMAT,
        to_file=cfg.LOG_TO_FILE,
    )
    return root_logger


class StandardLogger:
    """标准化日志记录器"""

    def __init__(self, name: str):
        if not isinstance(name, str):
            name = str(name) if name is not None else "unknown"
        self.name = name
        self.logger = logging.getLogger(name)
        self.module_name = name.split(".")[-1] if "." in name else name

    def _log(self, level: str, message: str, *args, **kwargs) -> None:
        standard_params = {"exc_info", "stack_info", "stacklevel", "extra"}
        log_kwargs = {k: v for k, v in kwargs.items() if k in standard_params}

        extra = log_kwargs.get("extra", {}) or {}
        other_params = {k: v for k, v in kwargs.items() if k not in standard_params}
        if other_params:
            extra = {**extra, **other_params}

        if extra:
            log_kwargs["extra"] = extra

        getattr(self.logger, level.lower())(message, *args, **log_kwargs)

    def debug(self, message: str, *args, **kwargs) -> None: self._log("debug", message, *args, **kwargs)
    def info(self, message: str, *args, **kwargs) -> None: self._log("info", message, *args, **kwargs)
    def warning(self, message: str, *args, **kwargs) -> None: self._log("warning", message, *args, **kwargs)
    def error(self, message: str, *args, **kwargs) -> None: self._log("error", message, *args, **kwargs)
    def exception(self, message: str, *args, **kwargs) -> None: self._log("exception", message, *args, **kwargs)

    # 业务日志方法
    def log_operation(self, operation: str, entity_id: Optional[Union[int, str]] = None, details: Optional[str] = None, level: str = "info") -> None:
        msg = f"[{self.module_name}] {operation}"
        if entity_id: msg += f" [ID: {entity_id}]"
        if details: msg += f" - {details}"
        self._log(level, msg)

    def log_error(self, operation: str, error: Exception, entity_id: Optional[Union[int, str]] = None, context: Optional[Dict[str, Any]] = None) -> None:
        msg = f"[{self.module_name}] {operation} 失败"
        if entity_id: msg += f" [ID: {entity_id}]"
        msg += f": {str(error)}"
        if context: msg += f" | 上下文: {json.dumps(context, ensure_ascii=False, default=str)}"
        self._log("error", msg)

    def log_performance(self, operation: str, duration: float, entity_count: Optional[int] = None, details: Optional[str] = None) -> None:
        msg = f"[{self.module_name}] {operation} 性能 | 耗时: {duration:.3f}s"
        if entity_count is not None:
            msg += f" | 处理数量: {entity_count}"
            if duration > 0: msg += f" | 处理速率: {entity_count / duration:.1f}/s"
        if details: msg += f" | {details}"
        self._log("info", msg)


# Cache
_logger_cache: Dict[str, StandardLogger] = {}

def get_logger(name: str) -> StandardLogger:
    if not isinstance(name, str):
        name = str(name) if name is not None else "unknown"
    if name not in _logger_cache:
        _logger_cache[name] = StandardLogger(name)
    return _logger_cache[name]


def log_performance(operation_name: str = None, threshold_seconds: float = 5.0):
    """同步函数耗时记录装饰器；返回值为 int 时作为处理数量记录"""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__ or __name__)
            op_name = operation_name or func.__name__
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.log_error(op_name, e)
                raise
            duration = time.perf_counter() - start
            count = result if isinstance(result, int) and not isinstance(result, bool) else None
            logger.log_performance(op_name, duration, entity_count=count)
            if duration > threshold_seconds:
                logger.log_operation(f"{op_name} 性能警告", details=f"Time: {duration:.3f}s", level="warning")
            return result
        return wrapper
    return decorator


@contextmanager
def correlation_context(cid: Optional[str], file: Optional[str] = None):
    token = trace_id_var.set(str(cid)) if cid else None
    file_token = current_file_var.set(file) if file else None
    try:
        yield
    finally:
        if file_token:
            current_file_var.reset(file_token)
        if token:
            trace_id_var.reset(token)


def short_id(val: Any, length: int = 6) -> str:
    s = str(val)
    if len(s) > length: return "..." + s[-length:]
    return s
