"""代码仓服务：创建 / 删除 / 查询 / 历史分页 / 权限组管理

唯一入口。每个生命周期操作按固定顺序协调三方:
  1. 配置存储（批处理作用域内写配置组）
  2. 内存注册表 ConfiguredRepositories
  3. 领域事件、组织单元关联、VCS 来源元数据

批处理只是作用域守卫，不是事务：中途失败时已写入的部分保持原样，
异常在批处理释放之后抛出。进程崩溃导致的配置存储 / 注册表不一致
由 ConfiguredRepositories.reconcile 修复。

并发约定：同一别名的写操作由调用方串行化，本服务内部不加锁。
"""

from __future__ import annotations

import logging
import re
from collections.abc import Collection
from typing import Any, NoReturn

from workbench.core.config_store import ConfigurationFactory, ConfigurationService
from workbench.core.events import EventBus
from workbench.core.exceptions import (
    MissingDefaultBranchError,
    NoActiveSpaceInContextError,
    RepositoryAlreadyExistsError,
    RepositoryNotFoundError,
    ValidationError,
    handle_exception,
)
from workbench.core.models import (
    SCHEME,
    SECURITY_GROUPS,
    ConfigGroup,
    ConfigItem,
    ConfigType,
    NewRepositoryEvent,
    OrganizationalUnit,
    Repository,
    RepositoryEnvironmentConfiguration,
    RepositoryEnvironmentConfigurations,
    RepositoryInfo,
    RepositoryRemovedEvent,
    RepositoryUpdatedEvent,
    Space,
    VersionRecord,
)
from workbench.core.protocols import (
    AuthorizationManager,
    RepositoryFactory,
    VersionedFileSystem,
)
from workbench.core.registry import ConfiguredRepositories
from workbench.services.context import SpacesAPI, WorkspaceProjectContext
from workbench.services.org_unit_service import OrganizationalUnitService

logger = logging.getLogger(__name__)

HISTORY_PAGE_SIZE = 10

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_.\-]")
_WHITESPACE = re.compile(r"\s+")


def _rethrow(exc: Exception) -> NoReturn:
    """领域异常原样抛出，其他异常包装为 RepositoryServiceError"""
    wrapped = handle_exception(exc)
    if wrapped is exc:
        raise exc
    raise wrapped from exc


class RepositoryService:
    """代码仓生命周期管理"""

    def __init__(
        self,
        *,
        config_store: ConfigurationService,
        config_factory: ConfigurationFactory,
        repositories: ConfiguredRepositories,
        repository_factory: RepositoryFactory,
        vfs: VersionedFileSystem,
        org_units: OrganizationalUnitService,
        context: WorkspaceProjectContext,
        spaces: SpacesAPI,
        authorization: AuthorizationManager,
        events: EventBus | None = None,
        history_page_size: int = HISTORY_PAGE_SIZE,
    ) -> None:
        self.config_store = config_store
        self.config_factory = config_factory
        self.repositories = repositories
        self.repository_factory = repository_factory
        self.vfs = vfs
        self.org_units = org_units
        self.context = context
        self.spaces = spaces
        self.authorization = authorization
        self.events = events or EventBus()
        self.history_page_size = history_page_size

    # ---- 空间解析 ----

    def _current_space(self) -> Space:
        ou = self.context.get_active_organizational_unit()
        if ou is None:
            raise NoActiveSpaceInContextError()
        return self.spaces.get_space(ou.space)

    # ---- 查询 ----

    def get_repository(self, alias: str) -> Repository | None:
        return self.repositories.get_by_alias(self._current_space(), alias)

    def get_repository_from_space(self, space: Space, alias: str) -> Repository | None:
        return self.repositories.get_by_alias(space, alias)

    def get_repository_by_root_path(self, root: str) -> Repository | None:
        return self.repositories.get_by_root_path(self._current_space(), root)

    def get_all_repositories(self) -> Collection[Repository]:
        return self.repositories.get_all(self._current_space())

    def get_repositories(self, identity: Any) -> list[Repository]:
        """当前空间中调用者有权查看的代码仓"""
        return [
            repo for repo in self.repositories.get_all(self._current_space())
            if self.authorization.authorize(repo, identity)
        ]

    def get_repository_info(self, alias: str) -> RepositoryInfo:
        """代码仓 + 所属组织单元（线性扫描，取第一个匹配）+ 第一页历史"""
        repo = self.get_repository(alias)
        if repo is None:
            raise RepositoryNotFoundError(alias)

        owner: str | None = None
        for ou in self.org_units.get_all_organizational_units():
            if ou.space != repo.space:
                continue
            if alias in ou.repository_aliases():
                owner = ou.name
                break

        history = (
            self.get_repository_history(alias, 0, self.history_page_size)
            if repo.is_initialized() else []
        )
        return RepositoryInfo(
            identifier=repo.identifier,
            alias=alias,
            owner=owner,
            root=repo.root_path,
            public_uris=list(repo.public_uris),
            initial_history=history,
        )

    # ---- 历史 ----

    def get_repository_history(
        self, alias: str, start: int, end: int,
    ) -> list[VersionRecord]:
        """[start, end) 区间的提交记录，最新的在前

        end < 0 或超出总数时取总数；start < 0 时取 0；
        start 越界或 start >= end 返回空列表。
        代码仓不存在返回空列表；存在但没有默认分支抛 MissingDefaultBranchError。
        """
        repo = self.get_repository(alias)
        if repo is None:
            return []
        if repo.default_branch is None:
            raise MissingDefaultBranchError(alias)

        try:
            records = self.vfs.history_of(repo.default_branch.path)
        except Exception as e:
            logger.exception("读取代码仓历史失败: %s", alias)
            _rethrow(e)

        size = len(records)
        start = max(start, 0)
        if end < 0 or end > size:
            end = size
        if start >= size or start >= end:
            return []

        newest_first = list(reversed(records))
        return newest_first[start:end]

    def get_repository_history_page(self, alias: str, start: int) -> list[VersionRecord]:
        return self.get_repository_history(alias, start, start + self.history_page_size)

    def get_repository_history_all(self, alias: str) -> list[VersionRecord]:
        return self.get_repository_history(alias, 0, -1)

    # ---- 名称规范 ----

    @staticmethod
    def normalize_repository_name(name: str) -> str:
        """空白折叠为 '-'，去掉 [A-Za-z0-9_.-] 以外的字符"""
        return _INVALID_NAME_CHARS.sub("", _WHITESPACE.sub("-", name.strip()))

    def validate_repository_name(self, name: str | None) -> bool:
        """非空、已规范化，且不以 "." 开头（"." 与 ".." 会映射到上级目录）"""
        if not name or name.startswith("."):
            return False
        return name == self.normalize_repository_name(name)

    # ---- 创建 ----

    def create_repository(
        self,
        ou: OrganizationalUnit,
        scheme: str,
        alias: str,
        env_config: RepositoryEnvironmentConfigurations | None = None,
    ) -> Repository:
        """在组织单元下创建代码仓，别名在空间内已存在时抛 RepositoryAlreadyExistsError"""
        env_config = env_config or RepositoryEnvironmentConfigurations()
        try:
            if not self.validate_repository_name(alias):
                raise ValidationError(f"非法的代码仓名称: {alias!r}")
            space = self._current_space()
            if ou.space != space.name:
                raise ValidationError(
                    f"组织单元 {ou.name} 属于空间 {ou.space}，与当前空间 {space.name} 不一致",
                )
            env_config.space = ou.space

            repo = self._create(space, scheme, alias, env_config)
            self.org_units.add_repository(ou, repo)
            self.vfs.write_origin_metadata(repo.identifier, env_config.origin)
        except Exception as e:
            logger.error("创建代码仓失败: %s", alias, exc_info=True)
            _rethrow(e)
        logger.info("代码仓已创建: %s (space=%s, ou=%s)", alias, space.name, ou.name)
        return repo

    def _create(
        self,
        space: Space,
        scheme: str,
        alias: str,
        env_config: RepositoryEnvironmentConfigurations,
    ) -> Repository:
        if self.repositories.contains_alias(space, alias):
            raise RepositoryAlreadyExistsError(alias)

        repo: Repository | None = None
        with self.config_store.batch():
            group = self.config_factory.new_config_group(
                ConfigType.REPOSITORY, alias, "", namespace=space.name,
            )
            group.add_item(self.config_factory.new_config_item(SECURITY_GROUPS, []))
            if not env_config.contains(SCHEME):
                group.add_item(self.config_factory.new_config_item(SCHEME, scheme))
            for configuration in env_config.items():
                group.add_item(self._config_item(configuration))
            repo = self._register(space, group)

        self.events.fire(NewRepositoryEvent(repo))
        return repo

    def _register(self, space: Space, group: ConfigGroup) -> Repository:
        repo = self.repository_factory.build(group)
        self.config_store.add_configuration(group)
        self.repositories.add(space, repo)
        return repo

    def _config_item(self, configuration: RepositoryEnvironmentConfiguration) -> ConfigItem:
        if configuration.is_secured_configuration_item():
            return self.config_factory.new_secured_config_item(
                configuration.name, str(configuration.value),
            )
        return self.config_factory.new_config_item(configuration.name, configuration.value)

    # ---- 删除 ----

    def _find_repository_config(self, space: Space, alias: str) -> ConfigGroup | None:
        return self.config_store.find_configuration(
            ConfigType.REPOSITORY, alias, namespace=space.name,
        )

    def remove_repository(self, alias: str) -> None:
        """删除代码仓：配置组、注册表、版本文件系统、组织单元引用、来源元数据"""
        space = self._current_space()
        config = self._find_repository_config(space, alias)

        try:
            with self.config_store.batch():
                if config is not None:
                    self.config_store.remove_configuration(config)
                    self.config_factory.discard_secrets(config)

                repo = self.repositories.remove(space, alias)
                if repo is not None:
                    self.events.fire(RepositoryRemovedEvent(repo))
                    if repo.default_branch is None:
                        raise MissingDefaultBranchError(alias)
                    self.vfs.delete_all(repo.default_branch.path)

                for ou in self.org_units.get_all_organizational_units():
                    if ou.space != space.name:
                        continue
                    for ref in list(ou.repositories):
                        if ref.alias == alias:
                            self.org_units.remove_repository(ou, ref)
                self.vfs.delete_origin_metadata(f"{space.name}/{alias}")
        except Exception as e:
            logger.error("删除代码仓失败: %s", alias, exc_info=True)
            _rethrow(e)
        logger.info("代码仓已删除: %s (space=%s)", alias, space.name)

    # ---- 权限组 ----

    def add_group(self, repository: Repository, group: str) -> Repository:
        def _add(groups: list[str]) -> None:
            if group not in groups:
                groups.append(group)
        return self._update_groups(repository, _add)

    def remove_group(self, repository: Repository, group: str) -> Repository:
        def _remove(groups: list[str]) -> None:
            if group in groups:
                groups.remove(group)
        return self._update_groups(repository, _remove)

    def _update_groups(self, repository: Repository, mutate: Any) -> Repository:
        space = self._current_space()
        config = self._find_repository_config(space, repository.alias)
        if config is None:
            raise RepositoryNotFoundError(repository.alias)

        item = config.get_item(SECURITY_GROUPS)
        if item is None or not isinstance(item.value, list):
            item = self.config_factory.new_config_item(SECURITY_GROUPS, [])
            config.add_item(item)
        mutate(item.value)

        try:
            self.config_store.update_configuration(config)
            updated = self.repository_factory.build(config)
        except Exception as e:
            logger.error("更新代码仓权限组失败: %s", repository.alias, exc_info=True)
            _rethrow(e)
        self.repositories.update(space, updated)
        self.events.fire(RepositoryUpdatedEvent(updated))
        logger.info("代码仓权限组已更新: %s -> %s", repository.alias, item.value)
        return updated
