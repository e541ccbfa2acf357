"""CLI: 杂项命令（Web 服务、注册表对齐）"""

from __future__ import annotations

import click

from workbench.cli import _svc


def register(group: click.Group) -> None:
    group.add_command(serve)
    group.add_command(reconcile)


@click.command()
@click.option("--host", default="127.0.0.1", help="监听地址")
@click.option("--port", default=8888, help="监听端口")
def serve(host: str, port: int) -> None:
    """启动代码仓管理 Web API"""
    from workbench.web.app import run_server
    run_server(port=port, host=host)


@click.command()
def reconcile() -> None:
    """以配置存储为准重建代码仓注册表"""
    container = _svc().start()
    report = container.repositories.reconcile(
        container.config_store, container.repository_factory,
    )
    if not report.changed:
        click.echo("注册表与配置存储一致。")
        return
    for name in report.added:
        click.echo(f"  + {name}")
    for name in report.removed:
        click.echo(f"  - {name}")
