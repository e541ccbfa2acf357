"""服务容器：统一构造并共享服务实例

容器持有的对象图:
  config_store / secrets / config_factory     配置存储
  vfs (git | memory) / repository_factory     版本文件系统
  repositories                                 内存注册表（显式生命周期）
  org_units / context / spaces / authorization
  events
  repository_service                           以上全部注入
  process_factory / flow_executor              流程组合内核

生命周期:
  start()  从配置存储加载注册表
  stop()   清空注册表

用法:
    container = ServiceContainer(Config.under(tmp_dir))
    container.start()
    svc = container.repository_service

    # 全局单例（CLI / Web 共享）
    from workbench.services.container import get_container
    svc = get_container().repository_service
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from workbench.core.config import Config
    from workbench.core.config_store import (
        ConfigurationFactory,
        ConfigurationService,
        SecretStore,
    )
    from workbench.core.events import EventBus
    from workbench.core.protocols import VersionedFileSystem
    from workbench.core.registry import ConfiguredRepositories
    from workbench.flow.executor import FlowExecutor
    from workbench.flow.factory import ProcessFactory
    from workbench.services.authz import GroupAuthorizationManager
    from workbench.services.context import SpacesAPI, WorkspaceProjectContext
    from workbench.services.org_unit_service import OrganizationalUnitService
    from workbench.services.repository_factory import DefaultRepositoryFactory
    from workbench.services.repository_service import RepositoryService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器，同一容器内的实例共享状态"""

    def __init__(self, config: Config | None = None) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from workbench.core.config import get_config
            config = get_config()
        self._config = config

    @property
    def config(self) -> Config:
        return self._config

    # ---- 生命周期 ----

    def start(self) -> ServiceContainer:
        if not self.repositories.started:
            self.repositories.start(self.config_store, self.repository_factory)
        return self

    def stop(self) -> None:
        if "repositories" in self._instances:
            self.repositories.stop()

    # ---- 配置存储 ----

    @property
    def config_store(self) -> ConfigurationService:
        if "config_store" not in self._instances:
            from workbench.core.config_store import ConfigurationService
            self._instances["config_store"] = ConfigurationService(self._config.config_file)
        return self._instances["config_store"]  # type: ignore[return-value]

    @property
    def secrets(self) -> SecretStore:
        if "secrets" not in self._instances:
            from workbench.core.config_store import SecretStore
            self._instances["secrets"] = SecretStore(self._config.secrets_file)
        return self._instances["secrets"]  # type: ignore[return-value]

    @property
    def config_factory(self) -> ConfigurationFactory:
        if "config_factory" not in self._instances:
            from workbench.core.config_store import ConfigurationFactory
            self._instances["config_factory"] = ConfigurationFactory(self.secrets)
        return self._instances["config_factory"]  # type: ignore[return-value]

    # ---- 版本文件系统 ----

    @property
    def vfs(self) -> VersionedFileSystem:
        if "vfs" not in self._instances:
            from workbench.core.vfs import (
                GitMetadataStore,
                GitVersionedFileSystem,
                InMemoryVersionedFileSystem,
            )
            if self._config.vfs_backend == "memory":
                self._instances["vfs"] = InMemoryVersionedFileSystem()
            else:
                self._instances["vfs"] = GitVersionedFileSystem(
                    root=self._config.repositories_root,
                    metadata=GitMetadataStore(self._config.metadata_file),
                )
        return self._instances["vfs"]  # type: ignore[return-value]

    @property
    def repository_factory(self) -> DefaultRepositoryFactory:
        if "repository_factory" not in self._instances:
            from workbench.services.repository_factory import DefaultRepositoryFactory
            self._instances["repository_factory"] = DefaultRepositoryFactory(
                self.vfs,
                default_scheme=self._config.default_scheme,
                default_branch=self._config.default_branch,
            )
        return self._instances["repository_factory"]  # type: ignore[return-value]

    # ---- 注册表与上下文 ----

    @property
    def repositories(self) -> ConfiguredRepositories:
        if "repositories" not in self._instances:
            from workbench.core.registry import ConfiguredRepositories
            self._instances["repositories"] = ConfiguredRepositories()
        return self._instances["repositories"]  # type: ignore[return-value]

    @property
    def org_units(self) -> OrganizationalUnitService:
        if "org_units" not in self._instances:
            from workbench.services.org_unit_service import OrganizationalUnitService
            self._instances["org_units"] = OrganizationalUnitService(
                self._config.org_units_file, self.repositories,
            )
        return self._instances["org_units"]  # type: ignore[return-value]

    @property
    def context(self) -> WorkspaceProjectContext:
        if "context" not in self._instances:
            from workbench.services.context import WorkspaceProjectContext
            self._instances["context"] = WorkspaceProjectContext()
        return self._instances["context"]  # type: ignore[return-value]

    @property
    def spaces(self) -> SpacesAPI:
        if "spaces" not in self._instances:
            from workbench.services.context import SpacesAPI
            self._instances["spaces"] = SpacesAPI()
        return self._instances["spaces"]  # type: ignore[return-value]

    @property
    def authorization(self) -> GroupAuthorizationManager:
        if "authorization" not in self._instances:
            from workbench.services.authz import GroupAuthorizationManager
            self._instances["authorization"] = GroupAuthorizationManager()
        return self._instances["authorization"]  # type: ignore[return-value]

    @property
    def events(self) -> EventBus:
        if "events" not in self._instances:
            from workbench.core.events import EventBus
            self._instances["events"] = EventBus()
        return self._instances["events"]  # type: ignore[return-value]

    # ---- 服务层 ----

    @property
    def repository_service(self) -> RepositoryService:
        if "repository_service" not in self._instances:
            from workbench.services.repository_service import RepositoryService
            self.start()
            self._instances["repository_service"] = RepositoryService(
                config_store=self.config_store,
                config_factory=self.config_factory,
                repositories=self.repositories,
                repository_factory=self.repository_factory,
                vfs=self.vfs,
                org_units=self.org_units,
                context=self.context,
                spaces=self.spaces,
                authorization=self.authorization,
                events=self.events,
                history_page_size=self._config.history_page_size,
            )
        return self._instances["repository_service"]  # type: ignore[return-value]

    # ---- 流程内核 ----

    @property
    def process_factory(self) -> ProcessFactory:
        if "process_factory" not in self._instances:
            from workbench.flow.factory import ProcessFactory
            self._instances["process_factory"] = ProcessFactory()
        return self._instances["process_factory"]  # type: ignore[return-value]

    @property
    def flow_executor(self) -> FlowExecutor:
        if "flow_executor" not in self._instances:
            from workbench.flow.executor import FlowExecutor
            self._instances["flow_executor"] = FlowExecutor(
                step_timeout=self._config.step_timeout or None,
            )
        return self._instances["flow_executor"]  # type: ignore[return-value]


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例（线程安全）"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def reset_container() -> None:
    """停止并重置全局容器（仅用于测试）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        if _global is not None:
            _global.stop()
        _global = None
