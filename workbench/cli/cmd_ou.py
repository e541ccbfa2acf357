"""CLI: 组织单元命令"""

from __future__ import annotations

import click

from workbench.cli import _guard, _svc


def register(group: click.Group) -> None:
    group.add_command(ou_group)


@click.group(name="ou")
def ou_group() -> None:
    """组织单元管理"""


@ou_group.command(name="create")
@click.argument("name")
@click.option("--space", default="", help="所属空间（缺省与名称相同）")
@click.option("--owner", default="", help="负责人")
def ou_create(name: str, space: str, owner: str) -> None:
    """创建组织单元"""
    with _guard():
        ou = _svc().org_units.create_organizational_unit(name, space=space, owner=owner)
    click.echo(f"组织单元已创建: {ou.name} (space={ou.space})")


@ou_group.command(name="list")
def ou_list() -> None:
    """列出组织单元"""
    units = _svc().org_units.get_all_organizational_units()
    if not units:
        click.echo("没有组织单元。")
        return
    for ou in units:
        repos = ",".join(ou.repository_aliases()) or "-"
        click.echo(f"  {ou.name:20s} space={ou.space:15s} repos=[{repos}]")


@ou_group.command(name="remove")
@click.argument("name")
def ou_remove(name: str) -> None:
    """删除组织单元（不删除其代码仓）"""
    if not _svc().org_units.remove_organizational_unit(name):
        raise click.ClickException(f"组织单元不存在: {name}")
    click.echo(f"组织单元已删除: {name}")
