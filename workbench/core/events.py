"""领域事件总线（Observer 模式）

RepositoryService 在代码仓创建、删除、权限组变更后 fire 事件，
订阅者（索引、通知、审计等）按事件类型注册回调。
单个订阅者失败只记录日志，不影响其他订阅者，也不回滚已完成的操作。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]


class EventBus:
    """按事件类型分发的同步事件总线"""

    def __init__(self) -> None:
        self._handlers: dict[type, list[EventHandler]] = {}

    def subscribe(self, event_type: type, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: type, handler: EventHandler) -> bool:
        handlers = self._handlers.get(event_type, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def fire(self, event: Any) -> None:
        for handler in list(self._handlers.get(type(event), [])):
            try:
                handler(event)
            except (ValueError, RuntimeError, OSError, TypeError, KeyError):
                logger.exception(
                    "事件处理失败: %s -> %s",
                    type(event).__name__, getattr(handler, "__name__", handler),
                )
