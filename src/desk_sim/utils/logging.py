"""结构化日志配置模块。

使用 structlog 提供结构化日志支持，支持 JSON 和控制台两种输出格式。
订单、持仓、策略事件统一通过下方的 log_* 辅助函数输出。
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from desk_sim.config import LogFormat, Settings, get_settings

# HTTP 客户端每次请求都会打 INFO 日志，行情轮询时过于嘈杂
_NOISY_LOGGERS = ("httpx", "httpcore")


def _renderer(log_format: LogFormat) -> list[Processor]:
    if log_format == LogFormat.JSON:
        return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def setup_logging(settings: Settings | None = None) -> None:
    """配置结构化日志系统。

    可重复调用：每次按传入（或全局）配置重建 handler 和处理器链。
    """
    settings = settings or get_settings()

    log_level = getattr(logging, settings.log_level)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            *_renderer(settings.log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """获取结构化日志记录器。

    Args:
        name: 日志记录器名称。如果为 None，则使用调用模块名。

    Returns:
        结构化日志记录器实例。
    """
    return structlog.get_logger(name)


# 便捷日志函数
def log_order_event(
    logger: structlog.stdlib.BoundLogger,
    event: str,
    *,
    order_id: str,
    status: str,
    filled: float | None = None,
    level: str = "info",
    **kwargs: Any,
) -> None:
    """记录订单生命周期事件。"""
    getattr(logger, level)(
        event,
        order_id=order_id,
        status=status,
        filled=None if filled is None else round(filled, 4),
        **kwargs,
    )


def log_position_event(
    logger: structlog.stdlib.BoundLogger,
    event: str,
    *,
    position_id: str,
    token: str,
    exchange: str,
    side: str,
    size: float,
    price: float,
    **kwargs: Any,
) -> None:
    """记录持仓开平事件。"""
    logger.info(
        event,
        position_id=position_id,
        token=token,
        exchange=exchange,
        side=side,
        size=size,
        price=price,
        **kwargs,
    )


def log_strategy_event(
    logger: structlog.stdlib.BoundLogger,
    event: str,
    *,
    strategy_id: str,
    status: str,
    **kwargs: Any,
) -> None:
    """记录策略部署与状态变化。"""
    level = "warning" if status == "stopped" else "info"
    getattr(logger, level)(
        event,
        strategy_id=strategy_id,
        status=status,
        **kwargs,
    )
