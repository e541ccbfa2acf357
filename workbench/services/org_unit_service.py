"""组织单元服务

组织单元持久化在 YAML 注册表中，只记录代码仓别名:

    organizational_units:
      team-a:
        space: team-a
        owner: alice
        repositories: [core, docs]

读取时别名按所在空间从 ConfiguredRepositories 解析为 Repository；
注册表中已不存在的别名保留为未初始化的占位对象，
删除代码仓时仍能据此清理引用。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from workbench.core.exceptions import ValidationError
from workbench.core.models import OrganizationalUnit, Repository
from workbench.core.registry import ConfiguredRepositories
from workbench.core.yaml_registry import YamlRegistry

logger = logging.getLogger(__name__)


class OrganizationalUnitService(YamlRegistry):
    """组织单元的增删改查与代码仓关联"""

    section_key = "organizational_units"

    def __init__(
        self, registry_file: str | Path, repositories: ConfiguredRepositories,
    ) -> None:
        super().__init__(registry_file)
        self._repositories = repositories

    def _to_ou(self, name: str, entry: dict[str, Any]) -> OrganizationalUnit:
        space = entry.get("space", name)
        repos: list[Repository] = []
        for alias in entry.get("repositories", []):
            repo = self._repositories.get_by_alias(space, alias)
            repos.append(repo if repo is not None else Repository(alias=alias, space=space))
        return OrganizationalUnit(
            name=name, space=space, owner=entry.get("owner", ""), repositories=repos,
        )

    def create_organizational_unit(
        self, name: str, *, space: str = "", owner: str = "",
    ) -> OrganizationalUnit:
        if not name:
            raise ValidationError("组织单元 name 为必填")
        if self._get_raw(name) is not None:
            raise ValidationError(f"组织单元已存在: {name}")
        entry = {"space": space or name, "owner": owner, "repositories": []}
        self._put(name, entry)
        logger.info("组织单元已创建: %s (space=%s)", name, entry["space"])
        return self._to_ou(name, entry)

    def get_organizational_unit(self, name: str) -> OrganizationalUnit | None:
        entry = self._get_raw(name)
        return None if entry is None else self._to_ou(name, entry)

    def get_all_organizational_units(self) -> list[OrganizationalUnit]:
        return [self._to_ou(name, entry) for name, entry in self._section().items()]

    def remove_organizational_unit(self, name: str) -> bool:
        if not self._remove(name):
            return False
        logger.info("组织单元已删除: %s", name)
        return True

    def add_repository(self, ou: OrganizationalUnit, repository: Repository) -> None:
        entry = self._get_raw(ou.name)
        if entry is None:
            raise ValidationError(f"组织单元不存在: {ou.name}")
        aliases: list[str] = entry.setdefault("repositories", [])
        if repository.alias not in aliases:
            aliases.append(repository.alias)
            self._save()
        if repository.alias not in ou.repository_aliases():
            ou.repositories.append(repository)

    def remove_repository(self, ou: OrganizationalUnit, repository: Repository) -> None:
        entry = self._get_raw(ou.name)
        if entry is not None:
            aliases: list[str] = entry.get("repositories", [])
            if repository.alias in aliases:
                aliases.remove(repository.alias)
                self._save()
        ou.repositories = [r for r in ou.repositories if r.alias != repository.alias]
