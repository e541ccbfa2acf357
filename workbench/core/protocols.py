"""领域协议定义

RepositoryService 依赖的外部协作者接口。
使用 typing.Protocol 而非 ABC，现有实现无需继承即可满足协议，
测试中直接注入 MagicMock 或轻量假实现。
"""

from __future__ import annotations

from typing import Any, Protocol

from workbench.core.models import ConfigGroup, Repository, VersionRecord

# =========================================================================
# 版本文件系统协议
# =========================================================================


class VersionedFileSystem(Protocol):
    """版本化文件系统

    路径为分支根路径（见 workbench.core.vfs.branch_path）。
    history_of 返回的记录按时间从旧到新排列。
    """

    def history_of(self, path: str) -> list[VersionRecord]:
        ...

    def delete_all(self, path: str) -> None:
        """删除 path 所属的整个版本化文件系统（所有分支）"""
        ...

    def write_origin_metadata(self, alias: str, origin: str) -> None:
        """alias 为空间限定的代码仓标识（space/alias）"""
        ...

    def delete_origin_metadata(self, alias: str) -> None:
        ...

    def init_filesystem(self, path: str) -> None:
        """以 path 对应的分支初始化文件系统（已存在时不做任何事）"""
        ...

    def branches_of(self, path: str) -> list[str]:
        ...


# =========================================================================
# 代码仓工厂协议
# =========================================================================


class RepositoryFactory(Protocol):
    """由配置组构造 Repository 对象"""

    def build(self, group: ConfigGroup) -> Repository:
        ...


# =========================================================================
# 鉴权协议
# =========================================================================


class AuthorizationManager(Protocol):
    """列出代码仓时判断调用者是否可见"""

    def authorize(self, repository: Repository, identity: Any) -> bool:
        ...
