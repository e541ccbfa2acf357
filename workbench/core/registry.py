"""已配置代码仓的内存索引（ConfiguredRepositories）

按空间隔离，维护两张索引:
  (space, alias)     -> Repository
  (space, root_path) -> Repository

本类只操作内存，从不写配置存储；服务层负责把两者的写入配对。
读写由一把锁保护，单个键的替换对并发读是原子的。

生命周期:
  start(config_store, factory)  服务启动时从配置存储加载
  reconcile(config_store, factory)  崩溃恢复后与配置存储重新对齐
  stop()  服务停止时清空
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from workbench.core.models import SPACE, ConfigType, Repository, Space

if TYPE_CHECKING:
    from workbench.core.config_store import ConfigurationService

logger = logging.getLogger(__name__)


def _key(space: Space | str) -> str:
    return space.name if isinstance(space, Space) else space


@dataclass
class ReconcileReport:
    """reconcile 的结果：哪些别名被补入、哪些被剔除"""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class _SpaceIndex:
    def __init__(self) -> None:
        self.by_alias: dict[str, Repository] = {}
        self.by_root: dict[str, Repository] = {}

    def put(self, repo: Repository) -> None:
        old = self.by_alias.get(repo.alias)
        if old is not None and old.root_path is not None:
            self.by_root.pop(old.root_path, None)
        self.by_alias[repo.alias] = repo
        if repo.root_path is not None:
            self.by_root[repo.root_path] = repo

    def pop(self, alias: str) -> Repository | None:
        repo = self.by_alias.pop(alias, None)
        if repo is not None and repo.root_path is not None:
            self.by_root.pop(repo.root_path, None)
        return repo


class ConfiguredRepositories:
    """按空间隔离的代码仓内存注册表"""

    def __init__(self) -> None:
        self._spaces: dict[str, _SpaceIndex] = {}
        self._lock = threading.RLock()
        self._started = False

    # ---- 生命周期 ----

    def start(self, config_store: ConfigurationService, factory: Callable) -> None:
        """从配置存储加载全部代码仓；factory 为 ConfigGroup -> Repository"""
        with self._lock:
            self._spaces = self._load(config_store, factory)
            self._started = True
        logger.info("代码仓注册表已启动: %d 个代码仓", self.size())

    def stop(self) -> None:
        with self._lock:
            self._spaces.clear()
            self._started = False
        logger.info("代码仓注册表已停止")

    @property
    def started(self) -> bool:
        return self._started

    def reconcile(
        self, config_store: ConfigurationService, factory: Callable,
    ) -> ReconcileReport:
        """以配置存储为准重建索引，返回差异"""
        report = ReconcileReport()
        with self._lock:
            before = {
                (space, alias)
                for space, idx in self._spaces.items()
                for alias in idx.by_alias
            }
            self._spaces = self._load(config_store, factory)
            after = {
                (space, alias)
                for space, idx in self._spaces.items()
                for alias in idx.by_alias
            }
        report.added = sorted(f"{s}/{a}" for s, a in after - before)
        report.removed = sorted(f"{s}/{a}" for s, a in before - after)
        if report.changed:
            logger.warning(
                "注册表与配置存储不一致，已对齐: 补入=%s 剔除=%s",
                report.added, report.removed,
            )
        return report

    def _load(
        self, config_store: ConfigurationService, factory: Callable,
    ) -> dict[str, _SpaceIndex]:
        """构建新的索引；factory 抛异常时现有索引保持不变"""
        spaces: dict[str, _SpaceIndex] = {}
        for group in config_store.get_configuration(ConfigType.REPOSITORY):
            if not group.enabled:
                continue
            space = group.namespace or group.get_value(SPACE)
            if not space:
                logger.warning("配置组缺少 space，跳过: %s", group.name)
                continue
            spaces.setdefault(space, _SpaceIndex()).put(factory(group))
        return spaces

    # ---- 查询 / 修改 ----

    def _index(self, space: Space | str) -> _SpaceIndex:
        return self._spaces.setdefault(_key(space), _SpaceIndex())

    def add(self, space: Space | str, repo: Repository) -> None:
        with self._lock:
            self._index(space).put(repo)

    def update(self, space: Space | str, repo: Repository) -> None:
        with self._lock:
            self._index(space).put(repo)

    def remove(self, space: Space | str, alias: str) -> Repository | None:
        with self._lock:
            idx = self._spaces.get(_key(space))
            return idx.pop(alias) if idx else None

    def get_by_alias(self, space: Space | str, alias: str) -> Repository | None:
        with self._lock:
            idx = self._spaces.get(_key(space))
            return idx.by_alias.get(alias) if idx else None

    def get_by_root_path(self, space: Space | str, path: str) -> Repository | None:
        with self._lock:
            idx = self._spaces.get(_key(space))
            return idx.by_root.get(path) if idx else None

    def get_all(self, space: Space | str) -> Collection[Repository]:
        with self._lock:
            idx = self._spaces.get(_key(space))
            return list(idx.by_alias.values()) if idx else []

    def contains_alias(self, space: Space | str, alias: str) -> bool:
        return self.get_by_alias(space, alias) is not None

    def size(self) -> int:
        with self._lock:
            return sum(len(idx.by_alias) for idx in self._spaces.values())
