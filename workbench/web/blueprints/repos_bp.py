"""代码仓 API Blueprint

当前组织单元由请求头 X-Workbench-OU 指定，请求结束时清除。
"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, Response, g, jsonify, request

from workbench.core.models import (
    BRANCH,
    ORIGIN,
    PUBLIC_URI,
    RepositoryEnvironmentConfigurations,
)
from workbench.web.responses import bad_request, not_found, ok

repos_bp = Blueprint("repos", __name__, url_prefix="/api/repos")

OU_HEADER = "X-Workbench-OU"


def _container() -> Any:
    from workbench.services.container import get_container
    return get_container()


def _repo_svc() -> Any:
    return _container().repository_service


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"参数 '{name}' 必须为整数: {raw}") from None


@repos_bp.before_request
def _activate_ou() -> tuple[Response, int] | None:
    name = request.headers.get(OU_HEADER, "")
    if not name:
        return None
    ou = _container().org_units.get_organizational_unit(name)
    if ou is None:
        return not_found(f"组织单元 {name} ")
    _container().context.set_active_organizational_unit(ou)
    g.ou = ou
    return None


@repos_bp.teardown_request
def _clear_ou(_exc: BaseException | None) -> None:
    if g.pop("ou", None) is not None:
        _container().context.clear()


@repos_bp.route("", methods=["GET"])
def list_all() -> Response:
    user = request.args.get("user", "")
    svc = _repo_svc()
    if user:
        from workbench.services.authz import Identity
        groups = frozenset(x for x in request.args.get("groups", "").split(",") if x)
        repos = svc.get_repositories(Identity(user, groups))
    else:
        repos = svc.get_all_repositories()
    return jsonify(repos=[r.to_dict() for r in sorted(repos, key=lambda x: x.alias)])


@repos_bp.route("", methods=["POST"])
def create() -> tuple[Response, int] | Response:
    body = request.get_json(silent=True) or {}
    alias = body.get("alias", "")
    if not alias:
        return bad_request("需要提供 alias")
    if "ou" not in g:
        return bad_request(f"需要通过请求头 {OU_HEADER} 指定组织单元")

    env = RepositoryEnvironmentConfigurations(body.get("env") or {})
    for name, value in (body.get("secrets") or {}).items():
        env.add(name, value, secured=True)
    if body.get("origin"):
        env.add(ORIGIN, body["origin"])
    if body.get("branch"):
        env.add(BRANCH, body["branch"])
    if body.get("public_uris"):
        env.add(PUBLIC_URI, list(body["public_uris"]))

    repo = _repo_svc().create_repository(g.ou, body.get("scheme", "git"), alias, env)
    return ok({"message": f"代码仓已创建: {alias}", "repo": repo.to_dict()}, 201)


@repos_bp.route("/<alias>", methods=["GET"])
def get(alias: str) -> Response:
    return jsonify(repo=_repo_svc().get_repository_info(alias).to_dict())


@repos_bp.route("/<alias>", methods=["DELETE"])
def delete(alias: str) -> tuple[Response, int] | Response:
    if _repo_svc().get_repository(alias) is None:
        return not_found("代码仓")
    _repo_svc().remove_repository(alias)
    return jsonify(message=f"代码仓已删除: {alias}")


@repos_bp.route("/<alias>/history", methods=["GET"])
def history(alias: str) -> tuple[Response, int] | Response:
    svc = _repo_svc()
    try:
        start = _int_arg("start", 0)
        end = _int_arg("end", start + svc.history_page_size)
    except ValueError as e:
        return bad_request(str(e))
    records = svc.get_repository_history(alias, start, end)
    return jsonify(alias=alias, start=start, end=end, history=[r.to_dict() for r in records])


@repos_bp.route("/<alias>/groups", methods=["POST"])
def add_group(alias: str) -> tuple[Response, int] | Response:
    group = (request.get_json(silent=True) or {}).get("group", "")
    if not group:
        return bad_request("需要提供 group")
    repo = _repo_svc().get_repository(alias)
    if repo is None:
        return not_found("代码仓")
    updated = _repo_svc().add_group(repo, group)
    return jsonify(repo=updated.to_dict())


@repos_bp.route("/<alias>/groups/<group>", methods=["DELETE"])
def remove_group(alias: str, group: str) -> tuple[Response, int] | Response:
    repo = _repo_svc().get_repository(alias)
    if repo is None:
        return not_found("代码仓")
    updated = _repo_svc().remove_group(repo, group)
    return jsonify(repo=updated.to_dict())
