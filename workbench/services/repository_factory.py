"""由配置组构造 Repository

配置组中的保留项:
  space / scheme / branch / security:groups / public-uri / init
其余项作为环境配置放入 Repository.environment（secured 项保持令牌形式）。

init 为真（默认）时，文件系统不存在则以 branch 初始化；
init 为假且文件系统没有任何分支时，构造出的代码仓没有默认分支（未初始化）。
"""

from __future__ import annotations

import logging

from workbench.core.models import (
    BRANCH,
    INIT,
    PUBLIC_URI,
    SCHEME,
    SECURITY_GROUPS,
    SPACE,
    Branch,
    ConfigGroup,
    Repository,
)
from workbench.core.protocols import VersionedFileSystem
from workbench.core.vfs import branch_path

logger = logging.getLogger(__name__)

_RESERVED = {SPACE, SCHEME, BRANCH, SECURITY_GROUPS, PUBLIC_URI, INIT}


class DefaultRepositoryFactory:
    """ConfigGroup -> Repository"""

    def __init__(
        self,
        vfs: VersionedFileSystem,
        *,
        default_scheme: str = "git",
        default_branch: str = "master",
    ) -> None:
        self.vfs = vfs
        self.default_scheme = default_scheme
        self.default_branch = default_branch

    def build(self, group: ConfigGroup) -> Repository:
        alias = group.name
        space = group.namespace or group.get_value(SPACE, "")
        scheme = group.get_value(SCHEME) or self.default_scheme
        wanted = group.get_value(BRANCH) or self.default_branch

        default_path = branch_path(scheme, space, alias, wanted)
        if _truthy(group.get_value(INIT, True)):
            self.vfs.init_filesystem(default_path)

        branches = [
            Branch(name=b, path=branch_path(scheme, space, alias, b))
            for b in self.vfs.branches_of(default_path)
        ]
        default = next((b for b in branches if b.name == wanted), None)
        if default is None and branches:
            default = branches[0]
            logger.warning("代码仓 %s 缺少分支 %s，改用 %s", alias, wanted, default.name)

        uris = group.get_value(PUBLIC_URI) or []
        if isinstance(uris, str):
            uris = [uris]

        return Repository(
            alias=alias,
            space=space,
            scheme=scheme,
            branches=branches,
            default_branch=default,
            public_uris=list(uris),
            security_groups=list(group.get_value(SECURITY_GROUPS) or []),
            environment={
                i.name: i.value for i in group.items if i.name not in _RESERVED
            },
        )

    __call__ = build


def _truthy(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "0", "false", "no", "off")
    return bool(value)
