"""当前空间上下文

活动组织单元保存在 ContextVar 中：Web 请求线程、CLI 调用、asyncio 任务
各自持有独立的值，互不串扰。
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from workbench.core.models import OrganizationalUnit, Space

logger = logging.getLogger(__name__)

_active_ou: ContextVar[OrganizationalUnit | None] = ContextVar("active_ou", default=None)


class WorkspaceProjectContext:
    """活动组织单元的持有者"""

    def get_active_organizational_unit(self) -> OrganizationalUnit | None:
        return _active_ou.get()

    def set_active_organizational_unit(self, ou: OrganizationalUnit | None) -> None:
        _active_ou.set(ou)
        logger.debug("活动组织单元: %s", ou.name if ou else None)

    def clear(self) -> None:
        _active_ou.set(None)

    @contextmanager
    def activate(self, ou: OrganizationalUnit) -> Iterator[OrganizationalUnit]:
        """在 with 块内切换活动组织单元，退出时恢复"""
        token = _active_ou.set(ou)
        try:
            yield ou
        finally:
            _active_ou.reset(token)


class SpacesAPI:
    """空间名称解析"""

    def __init__(self) -> None:
        self._spaces: dict[str, Space] = {}

    def get_space(self, name: str) -> Space:
        space = self._spaces.get(name)
        if space is None:
            space = self._spaces.setdefault(name, Space(name))
        return space

    def get_spaces(self) -> list[Space]:
        return list(self._spaces.values())
