"""CLI: 代码仓管理命令

所有子命令都在 --ou 指定的组织单元（及其空间）下执行:

    workbench repo --ou team-a create core --origin https://example.com/core.git
    workbench repo --ou team-a history core --start 0 --end 20
"""

from __future__ import annotations

from typing import Any

import click

from workbench.cli import _guard, _parse_kv_pairs, _svc
from workbench.core.models import (
    BRANCH,
    ORIGIN,
    PUBLIC_URI,
    OrganizationalUnit,
    Repository,
    RepositoryEnvironmentConfigurations,
)


def register(group: click.Group) -> None:
    group.add_command(repo_group)


def _activate(ctx: click.Context) -> OrganizationalUnit:
    """按 --ou 加载组织单元并设为当前上下文"""
    name = ctx.obj["ou"]
    ou = _svc().org_units.get_organizational_unit(name)
    if ou is None:
        raise click.ClickException(f"组织单元不存在: {name}")
    _svc().context.set_active_organizational_unit(ou)
    return ou


def _require(alias: str) -> Repository:
    repo = _svc().repository_service.get_repository(alias)
    if repo is None:
        raise click.ClickException(f"代码仓不存在: {alias}")
    return repo


@click.group(name="repo")
@click.option("--ou", required=True, envvar="WORKBENCH_OU", help="组织单元名称")
@click.pass_context
def repo_group(ctx: click.Context, ou: str) -> None:
    """代码仓管理"""
    ctx.ensure_object(dict)
    ctx.obj["ou"] = ou


@repo_group.command(name="create")
@click.argument("alias")
@click.option("--scheme", default="git", help="版本文件系统 scheme")
@click.option("--origin", default="", help="克隆来源 URL")
@click.option("--branch", default="", help="默认分支（缺省取配置）")
@click.option("--public-uri", multiple=True, help="对外访问地址（可多次）")
@click.option("--env", multiple=True, help="环境配置 key=value（可多次）")
@click.option("--secret", multiple=True, help="敏感配置 key=value（可多次，只存令牌）")
@click.pass_context
def repo_create(ctx: click.Context, alias: str, **kwargs: Any) -> None:
    """在组织单元下创建代码仓"""
    env = RepositoryEnvironmentConfigurations(_parse_kv_pairs(kwargs.get("env", ())))
    for name, value in _parse_kv_pairs(kwargs.get("secret", ())).items():
        env.add(name, value, secured=True)
    if kwargs.get("origin"):
        env.add(ORIGIN, kwargs["origin"])
    if kwargs.get("branch"):
        env.add(BRANCH, kwargs["branch"])
    if kwargs.get("public_uri"):
        env.add(PUBLIC_URI, list(kwargs["public_uri"]))

    with _guard():
        ou = _activate(ctx)
        repo = _svc().repository_service.create_repository(
            ou, kwargs.get("scheme", "git"), alias, env,
        )
    click.echo(f"代码仓已创建: {repo.identifier} (root={repo.root_path})")


@repo_group.command(name="remove")
@click.argument("alias")
@click.pass_context
def repo_remove(ctx: click.Context, alias: str) -> None:
    """删除代码仓（配置、版本文件系统、组织单元引用）"""
    with _guard():
        _activate(ctx)
        _svc().repository_service.remove_repository(alias)
    click.echo(f"代码仓已删除: {alias}")


@repo_group.command(name="list")
@click.option("--user", default="", help="按该身份过滤可见代码仓")
@click.option("--group", "groups", multiple=True, help="身份所属权限组（可多次）")
@click.pass_context
def repo_list(ctx: click.Context, user: str, groups: tuple[str, ...]) -> None:
    """列出当前空间中的代码仓"""
    with _guard():
        _activate(ctx)
        svc = _svc().repository_service
        if user:
            from workbench.services.authz import Identity
            repos = svc.get_repositories(Identity(user, frozenset(groups)))
        else:
            repos = list(svc.get_all_repositories())
    if not repos:
        click.echo("没有已注册的代码仓。")
        return
    for r in sorted(repos, key=lambda x: x.alias):
        branch = r.default_branch.name if r.default_branch else "-"
        sec = ",".join(r.security_groups) or "-"
        click.echo(f"  {r.alias:20s} [{r.scheme}] branch={branch:10s} groups=[{sec}]")


@repo_group.command(name="history")
@click.argument("alias")
@click.option("--start", default=0, help="起始位置（0 为最新提交）")
@click.option("--end", default=None, type=int, help="结束位置（不含），缺省为一页")
@click.option("--all", "show_all", is_flag=True, help="显示全部历史")
@click.pass_context
def repo_history(
    ctx: click.Context, alias: str, start: int, end: int | None, show_all: bool,
) -> None:
    """查看代码仓提交历史（最新在前）"""
    with _guard():
        _activate(ctx)
        svc = _svc().repository_service
        if show_all:
            records = svc.get_repository_history_all(alias)
        elif end is None:
            records = svc.get_repository_history_page(alias, start)
        else:
            records = svc.get_repository_history(alias, start, end)
    if not records:
        click.echo("没有提交记录。")
        return
    for r in records:
        click.echo(f"  {r.id[:10]}  {r.timestamp:%Y-%m-%d %H:%M}  {r.author:15s} {r.comment}")


@repo_group.command(name="info")
@click.argument("alias")
@click.pass_context
def repo_info(ctx: click.Context, alias: str) -> None:
    """查看代码仓详情"""
    with _guard():
        _activate(ctx)
        info = _svc().repository_service.get_repository_info(alias)
    click.echo(f"代码仓: {info.identifier}")
    click.echo(f"  所属组织单元: {info.owner or '-'}")
    click.echo(f"  根路径: {info.root or '-'}")
    for uri in info.public_uris:
        click.echo(f"  地址: {uri}")
    click.echo(f"  最近提交: {len(info.initial_history)} 条")
    for r in info.initial_history:
        click.echo(f"    {r.id[:10]}  {r.author:15s} {r.comment}")


@repo_group.command(name="group-add")
@click.argument("alias")
@click.argument("group")
@click.pass_context
def repo_group_add(ctx: click.Context, alias: str, group: str) -> None:
    """为代码仓添加权限组"""
    with _guard():
        _activate(ctx)
        repo = _svc().repository_service.add_group(_require(alias), group)
    click.echo(f"权限组已更新: {alias} -> {', '.join(repo.security_groups)}")


@repo_group.command(name="group-remove")
@click.argument("alias")
@click.argument("group")
@click.pass_context
def repo_group_remove(ctx: click.Context, alias: str, group: str) -> None:
    """从代码仓移除权限组"""
    with _guard():
        _activate(ctx)
        repo = _svc().repository_service.remove_group(_require(alias), group)
    click.echo(f"权限组已更新: {alias} -> {', '.join(repo.security_groups) or '-'}")
