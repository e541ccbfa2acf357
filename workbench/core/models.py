"""核心数据模型

空间 / 组织单元 / 代码仓 / 分支 / 版本记录 / 配置组 / 领域事件
集中定义在此，服务层与 Web、CLI 统一从这里导入。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

# =========================================================================
# 空间与组织单元
# =========================================================================


@dataclass(frozen=True)
class Space:
    """租户命名空间"""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass
class OrganizationalUnit:
    """组织单元：在某个空间内拥有一组代码仓"""

    name: str
    space: str = ""
    owner: str = ""
    repositories: list[Repository] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.space:
            self.space = self.name

    def repository_aliases(self) -> list[str]:
        return [r.alias for r in self.repositories]


# =========================================================================
# 代码仓领域模型
# =========================================================================


@dataclass(frozen=True)
class Branch:
    """分支：名称 + 在版本文件系统中的根路径"""

    name: str
    path: str


@dataclass
class Repository:
    """代码仓

    default_branch 为 None 表示尚未初始化，
    除注册外的大部分操作都要求存在默认分支。
    """

    alias: str
    space: str
    identifier: str = ""
    scheme: str = "git"
    branches: list[Branch] = field(default_factory=list)
    default_branch: Branch | None = None
    public_uris: list[str] = field(default_factory=list)
    security_groups: list[str] = field(default_factory=list)
    environment: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.identifier:
            self.identifier = f"{self.space}/{self.alias}"

    @property
    def root_path(self) -> str | None:
        return self.default_branch.path if self.default_branch else None

    def is_initialized(self) -> bool:
        return self.default_branch is not None

    def get_branch(self, name: str) -> Branch | None:
        for b in self.branches:
            if b.name == name:
                return b
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "alias": self.alias,
            "space": self.space,
            "scheme": self.scheme,
            "default_branch": self.default_branch.name if self.default_branch else None,
            "root_path": self.root_path,
            "branches": [{"name": b.name, "path": b.path} for b in self.branches],
            "public_uris": list(self.public_uris),
            "security_groups": list(self.security_groups),
        }


@dataclass(frozen=True)
class VersionRecord:
    """一次提交的不可变记录"""

    id: str
    author: str
    email: str
    comment: str
    timestamp: datetime
    uri: str

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "author": self.author,
            "email": self.email,
            "comment": self.comment,
            "timestamp": self.timestamp.isoformat(),
            "uri": self.uri,
        }


@dataclass
class RepositoryInfo:
    """代码仓详情：代码仓 + 所属组织单元 + 第一页历史"""

    identifier: str
    alias: str
    owner: str | None
    root: str | None
    public_uris: list[str]
    initial_history: list[VersionRecord]

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "alias": self.alias,
            "owner": self.owner,
            "root": self.root,
            "public_uris": list(self.public_uris),
            "history": [r.to_dict() for r in self.initial_history],
        }


# =========================================================================
# 配置组
# =========================================================================


class ConfigType(str, Enum):
    """配置组类型"""

    GLOBAL = "global"
    SPACE = "space"
    ORGANIZATIONAL_UNIT = "organizational_unit"
    REPOSITORY = "repository"


@dataclass
class ConfigItem:
    """配置项；secured=True 时 value 是密钥令牌而非明文"""

    name: str
    value: Any = None
    secured: bool = False


@dataclass
class ConfigGroup:
    """一组命名配置项（每个代码仓一组，类型为 REPOSITORY）

    namespace 用于区分不同空间下的同名配置组（代码仓配置组取所属空间）。
    """

    type: ConfigType
    name: str
    namespace: str = ""
    description: str = ""
    enabled: bool = True
    items: list[ConfigItem] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name

    def get_item(self, name: str) -> ConfigItem | None:
        for item in self.items:
            if item.name == name:
                return item
        return None

    def get_value(self, name: str, default: Any = None) -> Any:
        item = self.get_item(name)
        return default if item is None else item.value

    def add_item(self, item: ConfigItem) -> None:
        """同名配置项会被替换"""
        self.remove_item(item.name)
        self.items.append(item)

    def remove_item(self, name: str) -> bool:
        before = len(self.items)
        self.items = [i for i in self.items if i.name != name]
        return len(self.items) != before


# =========================================================================
# 代码仓环境配置
# =========================================================================

SCHEME = "scheme"
SPACE = "space"
BRANCH = "branch"
ORIGIN = "origin"
SECURITY_GROUPS = "security:groups"
PUBLIC_URI = "public-uri"
INIT = "init"


@dataclass
class RepositoryEnvironmentConfiguration:
    """创建代码仓时传入的单条环境配置"""

    name: str
    value: Any
    secured: bool = False

    def is_secured_configuration_item(self) -> bool:
        return self.secured


class RepositoryEnvironmentConfigurations:
    """创建代码仓时传入的环境配置集合（保持插入顺序）"""

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self._items: dict[str, RepositoryEnvironmentConfiguration] = {}
        for k, v in (values or {}).items():
            self.add(k, v)

    def add(self, name: str, value: Any, *, secured: bool = False) -> None:
        self._items[name] = RepositoryEnvironmentConfiguration(name, value, secured)

    def contains(self, name: str) -> bool:
        return name in self._items

    def get(self, name: str, default: Any = None) -> Any:
        item = self._items.get(name)
        return default if item is None else item.value

    def items(self) -> list[RepositoryEnvironmentConfiguration]:
        return list(self._items.values())

    @property
    def space(self) -> str:
        return self.get(SPACE, "")

    @space.setter
    def space(self, value: str) -> None:
        self.add(SPACE, value)

    @property
    def origin(self) -> str:
        return self.get(ORIGIN, "")


# =========================================================================
# 领域事件
# =========================================================================


@dataclass(frozen=True)
class NewRepositoryEvent:
    repository: Repository


@dataclass(frozen=True)
class RepositoryRemovedEvent:
    repository: Repository


@dataclass(frozen=True)
class RepositoryUpdatedEvent:
    repository: Repository
