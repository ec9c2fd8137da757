"""
Utility functions for the application
"""

import sys
import time
import logging
import structlog
from structlog import contextvars as struct_context
from contextlib import contextmanager
from typing import Optional


_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "false": logging.CRITICAL,
}

_log_level = "info"


# 配置structlog
def configure_structlog(level: str = "info") -> None:
    """配置structlog日志系统"""
    global _log_level
    _log_level = level if level in _LEVELS else "info"

    processors = [
        struct_context.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=False),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if _log_level in ("debug", "info"):
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        # 禁用模式：只输出致命错误
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS[_log_level]),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )


def get_logger(name: Optional[str] = None):
    """
    获取一个structlog logger实例

    Args:
        name: logger名称（可选）

    Returns:
        structlog BoundLogger实例
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


def bind_request_context(**kwargs) -> None:
    """绑定结构化日志上下文，忽略空值。"""
    filtered = {k: v for k, v in kwargs.items() if v is not None}
    if filtered:
        struct_context.bind_contextvars(**filtered)


def reset_request_context(*keys: str) -> None:
    """清理指定上下文字段，未传入则清空全部。"""
    if keys:
        struct_context.unbind_contextvars(*keys)
    else:
        struct_context.clear_contextvars()


def error_log(message: str, **kwargs) -> None:
    """错误日志记录函数（所有级别都输出）"""
    get_logger().error(message, **kwargs)


def warning_log(message: str, **kwargs) -> None:
    get_logger().warning(message, **kwargs)


def info_log(message: str, **kwargs) -> None:
    """信息日志记录函数（info和debug级别输出）"""
    get_logger().info(message, **kwargs)


def debug_log(message: str, **kwargs) -> None:
    """调试日志记录函数（仅debug级别输出）"""
    get_logger().debug(message, **kwargs)


def is_debug_enabled() -> bool:
    return _log_level == "debug"


def request_stage_log(stage: str, message: str, **kwargs) -> None:
    """
    Log info-level request stage transitions without dumping payload data.

    Args:
        stage: Logical stage identifier (e.g. "received", "upstream_request").
        message: Human readable description for terminal viewers.
        **kwargs: Extra structured fields to enrich the log.
    """
    normalized_stage = (stage or "unknown").strip().lower().replace(" ", "_")
    info_log(f"[REQUEST] {message}", stage=normalized_stage, **kwargs)


@contextmanager
def perf_timer(operation_name: str, log_result: bool = True, threshold_ms: float = 0):
    """
    性能计时上下文管理器

    Args:
        operation_name: 操作名称
        log_result: 是否记录结果到日志
        threshold_ms: 仅记录超过此阈值的操作（毫秒），0表示记录所有

    Yields:
        包含elapsed_ms的字典，可在上下文中使用
    """
    timer_dict = {"elapsed_ms": 0.0}
    start_time = time.perf_counter()

    try:
        yield timer_dict
    finally:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        timer_dict["elapsed_ms"] = elapsed_ms

        if log_result and elapsed_ms >= threshold_ms:
            debug_log(f"⏱️ {operation_name}", elapsed_ms=f"{elapsed_ms:.2f}ms")
