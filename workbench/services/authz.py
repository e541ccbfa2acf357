"""基于权限组的代码仓可见性判断"""

from __future__ import annotations

from dataclasses import dataclass, field

from workbench.core.models import Repository


@dataclass(frozen=True)
class Identity:
    """调用者身份"""

    name: str
    groups: frozenset[str] = field(default_factory=frozenset)


class GroupAuthorizationManager:
    """代码仓未配置权限组时对所有人可见，否则要求身份至少属于其中一个组"""

    def __init__(self, admin_group: str = "admin") -> None:
        self.admin_group = admin_group

    def authorize(self, repository: Repository, identity: Identity) -> bool:
        if not repository.security_groups:
            return True
        if self.admin_group and self.admin_group in identity.groups:
            return True
        return bool(set(repository.security_groups) & identity.groups)
