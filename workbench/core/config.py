"""集中配置管理

数据文件位置、版本文件系统根目录、历史分页大小、步骤超时等
统一从这里读取；支持 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

from workbench.core.exceptions import ConfigError
from workbench.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """workbench 全局配置"""

    # 数据文件
    data_dir: str = "data"
    config_file: str = "data/config.yml"
    secrets_file: str = "data/secrets.yml"
    org_units_file: str = "data/org_units.yml"
    metadata_file: str = "data/git_metadata.yml"

    # 版本文件系统
    vfs_backend: str = "git"  # git | memory
    repositories_root: str = "data/repositories"
    default_scheme: str = "git"
    default_branch: str = "master"

    # 服务
    history_page_size: int = 10

    # 流程执行，0 表示不限时
    step_timeout: float = 0.0

    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.history_page_size <= 0:
            raise ConfigError(f"history_page_size 必须为正数: {self.history_page_size}")
        if self.vfs_backend not in ("git", "memory"):
            raise ConfigError(f"不支持的版本文件系统后端: {self.vfs_backend}")

    @classmethod
    def from_file(cls, path: str = "configs/workbench.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__}
        matched = {k: v for k, v in data.items() if k in known and k != "extra"}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    @classmethod
    def under(cls, root: str | Path, **overrides: object) -> Config:
        """把全部数据文件放到 root 目录下（测试、演示用）"""
        base = Path(root)
        values: dict[str, object] = {
            "data_dir": str(base),
            "config_file": str(base / "config.yml"),
            "secrets_file": str(base / "secrets.yml"),
            "org_units_file": str(base / "org_units.yml"),
            "metadata_file": str(base / "git_metadata.yml"),
            "repositories_root": str(base / "repositories"),
        }
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    def to_dict(self) -> dict:
        return asdict(self)


# 全局单例；由 CLI / Web 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "configs/workbench.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
