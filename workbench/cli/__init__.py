"""workbench 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import click

from workbench import __version__
from workbench.core.exceptions import WorkbenchError
from workbench.services.container import get_container
from workbench.utils.logger import setup_logging


def _svc() -> Any:
    """获取全局服务容器的快捷方式"""
    return get_container()


def _parse_kv_pairs(pairs: tuple[str, ...]) -> dict[str, str]:
    """解析 key=value 参数对"""
    result: dict[str, str] = {}
    for p in pairs:
        if "=" in p:
            k, v = p.split("=", 1)
            result[k.strip()] = v.strip()
    return result


@contextmanager
def _guard() -> Iterator[None]:
    """领域异常转为 click 的友好错误输出（退出码 1）"""
    try:
        yield
    except WorkbenchError as e:
        raise click.ClickException(f"[{e.code}] {e}") from e


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config", "-c", "config_path", default="", envvar="WORKBENCH_CONFIG",
    help="配置文件路径（YAML）",
)
def main(config_path: str) -> None:
    """workbench - 代码仓管理与流程编排"""
    setup_logging(
        level=os.getenv("WORKBENCH_LOG_LEVEL", "INFO"),
        json_output=os.getenv("WORKBENCH_LOG_JSON", "") == "1",
    )
    if config_path:
        from workbench.core.config import init_config
        from workbench.services.container import reset_container
        init_config(config_path)
        reset_container()


# 注册各领域子命令
from workbench.cli.cmd_misc import register as _reg_misc  # noqa: E402
from workbench.cli.cmd_ou import register as _reg_ou  # noqa: E402
from workbench.cli.cmd_repo import register as _reg_repo  # noqa: E402

_reg_repo(main)
_reg_ou(main)
_reg_misc(main)
