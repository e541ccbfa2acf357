"""配置存储：按类型分组的命名配置组

每个代码仓对应一个 REPOSITORY 类型的配置组，持久化在同一个 YAML 文件中:

    groups:
      repository:
        <space>/<alias>:
          name: <alias>
          namespace: <space>
          description: ""
          enabled: true
          items:
            - {name: scheme, value: git, secured: false}

批处理（start_batch / end_batch）只是作用域与落盘合并：
批内的写入只标记脏数据，最外层 end_batch 时统一写一次文件。
它不提供原子性。批内某次调用失败时，之前的写入依然生效，
异常照常抛给调用方；崩溃后需要用 ConfiguredRepositories.reconcile 对齐内存注册表。
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from workbench.core.models import ConfigGroup, ConfigItem, ConfigType
from workbench.core.yaml_registry import YamlRegistry

logger = logging.getLogger(__name__)

SECRET_TOKEN_PREFIX = "secret:"


class ConfigurationService(YamlRegistry):
    """YAML 文件支撑的配置组存储"""

    section_key = "groups"

    def __init__(self, config_file: str | Path) -> None:
        super().__init__(config_file)
        self._batch_depth = 0
        self._dirty = False

    # ---- 批处理 ----

    def start_batch(self) -> None:
        self._batch_depth += 1

    def end_batch(self) -> None:
        """结束一层批处理；最外层结束时落盘"""
        if self._batch_depth == 0:
            logger.warning("end_batch 调用次数多于 start_batch，忽略")
            return
        self._batch_depth -= 1
        if self._batch_depth == 0 and self._dirty:
            self._dirty = False
            super()._save()

    @property
    def in_batch(self) -> bool:
        return self._batch_depth > 0

    @contextmanager
    def batch(self) -> Iterator[ConfigurationService]:
        """批处理作用域守卫：进入时 start_batch，退出时（含异常）end_batch"""
        self.start_batch()
        try:
            yield self
        finally:
            self.end_batch()

    def _save(self) -> None:
        if self.in_batch:
            self._dirty = True
            return
        super()._save()

    # ---- 配置组 CRUD ----

    def _type_section(self, config_type: ConfigType) -> dict[str, Any]:
        result: dict[str, Any] = self._section().setdefault(config_type.value, {})
        return result

    def add_configuration(self, group: ConfigGroup) -> None:
        section = self._type_section(group.type)
        if group.key in section:
            logger.warning("配置组已存在，将被覆盖: %s/%s", group.type.value, group.key)
        section[group.key] = _dump_group(group)
        self._save()
        logger.debug("配置组已写入: %s/%s", group.type.value, group.key)

    def update_configuration(self, group: ConfigGroup) -> None:
        section = self._type_section(group.type)
        if group.key not in section:
            raise KeyError(f"配置组不存在: {group.type.value}/{group.key}")
        section[group.key] = _dump_group(group)
        self._save()

    def remove_configuration(self, group: ConfigGroup) -> bool:
        section = self._type_section(group.type)
        if group.key not in section:
            return False
        del section[group.key]
        self._save()
        logger.debug("配置组已删除: %s/%s", group.type.value, group.key)
        return True

    def get_configuration(self, config_type: ConfigType) -> list[ConfigGroup]:
        """返回某类型的全部配置组（每次返回新对象，修改后需 update_configuration）"""
        return [
            _load_group(config_type, raw)
            for raw in self._type_section(config_type).values()
        ]

    def find_configuration(
        self, config_type: ConfigType, name: str, namespace: str = "",
    ) -> ConfigGroup | None:
        """按名称线性查找"""
        for group in self.get_configuration(config_type):
            if group.name == name and group.namespace == namespace:
                return group
        return None


def _dump_group(group: ConfigGroup) -> dict[str, Any]:
    return {
        "name": group.name,
        "namespace": group.namespace,
        "description": group.description,
        "enabled": group.enabled,
        "items": [
            {"name": i.name, "value": i.value, "secured": i.secured}
            for i in group.items
        ],
    }


def _load_group(config_type: ConfigType, raw: dict[str, Any]) -> ConfigGroup:
    return ConfigGroup(
        type=config_type,
        name=raw["name"],
        namespace=raw.get("namespace", ""),
        description=raw.get("description", ""),
        enabled=raw.get("enabled", True),
        items=[
            ConfigItem(
                name=i["name"],
                value=i.get("value"),
                secured=bool(i.get("secured", False)),
            )
            for i in raw.get("items", [])
        ],
    )


# =========================================================================
# 密钥存储 + 配置工厂
# =========================================================================


class SecretStore(YamlRegistry):
    """敏感配置值的存储；配置组中只保存不透明令牌"""

    section_key = "secrets"

    def store(self, plaintext: str) -> str:
        token = SECRET_TOKEN_PREFIX + uuid.uuid4().hex
        self._put(token, plaintext)
        return token

    def reveal(self, token: str) -> str | None:
        value = self._get_raw(token)
        return None if value is None else str(value)

    def discard(self, token: str) -> bool:
        return self._remove(token)


class ConfigurationFactory:
    """配置组 / 配置项工厂"""

    def __init__(self, secrets: SecretStore) -> None:
        self.secrets = secrets

    @staticmethod
    def new_config_group(
        config_type: ConfigType, name: str, description: str = "", namespace: str = "",
    ) -> ConfigGroup:
        return ConfigGroup(
            type=config_type, name=name, namespace=namespace, description=description,
        )

    @staticmethod
    def new_config_item(name: str, value: Any) -> ConfigItem:
        return ConfigItem(name=name, value=value)

    def new_secured_config_item(self, name: str, plaintext: str) -> ConfigItem:
        return ConfigItem(name=name, value=self.secrets.store(plaintext), secured=True)

    def reveal(self, item: ConfigItem) -> Any:
        """取配置项的真实值（secured 项解析令牌）"""
        if not item.secured:
            return item.value
        return self.secrets.reveal(str(item.value))

    def discard_secrets(self, group: ConfigGroup) -> int:
        """丢弃配置组中 secured 项引用的密钥，返回丢弃数量"""
        return sum(
            1 for item in group.items
            if item.secured and self.secrets.discard(str(item.value))
        )
