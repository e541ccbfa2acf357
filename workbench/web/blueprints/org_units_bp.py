"""组织单元 API Blueprint"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, Response, jsonify, request

from workbench.core.models import OrganizationalUnit
from workbench.web.responses import bad_request, not_found, ok

org_units_bp = Blueprint("org_units", __name__, url_prefix="/api/org-units")


def _ou_svc() -> Any:
    from workbench.services.container import get_container
    return get_container().org_units


def _to_dict(ou: OrganizationalUnit) -> dict[str, Any]:
    return {
        "name": ou.name,
        "space": ou.space,
        "owner": ou.owner,
        "repositories": ou.repository_aliases(),
    }


@org_units_bp.route("", methods=["GET"])
def list_all() -> Response:
    return jsonify(org_units=[_to_dict(ou) for ou in _ou_svc().get_all_organizational_units()])


@org_units_bp.route("", methods=["POST"])
def create() -> tuple[Response, int] | Response:
    body = request.get_json(silent=True) or {}
    name = body.get("name", "")
    if not name:
        return bad_request("需要提供 name")
    ou = _ou_svc().create_organizational_unit(
        name, space=body.get("space", ""), owner=body.get("owner", ""),
    )
    return ok({"message": f"组织单元已创建: {name}", "org_unit": _to_dict(ou)}, 201)


@org_units_bp.route("/<name>", methods=["GET"])
def get(name: str) -> tuple[Response, int] | Response:
    ou = _ou_svc().get_organizational_unit(name)
    if ou is None:
        return not_found("组织单元")
    return jsonify(org_unit=_to_dict(ou))


@org_units_bp.route("/<name>", methods=["DELETE"])
def delete(name: str) -> tuple[Response, int] | Response:
    if _ou_svc().remove_organizational_unit(name):
        return jsonify(message=f"组织单元已删除: {name}")
    return not_found("组织单元")
