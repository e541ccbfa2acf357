"""Web 层统一响应辅助函数

领域异常按 code 映射 HTTP 状态码，各 Blueprint 直接抛出即可。
"""

from __future__ import annotations

from flask import Response, jsonify

from workbench.core.exceptions import WorkbenchError

# WorkbenchError.code -> HTTP 状态码，未列出的一律 500
STATUS_BY_CODE: dict[str, int] = {
    "REPOSITORY_ALREADY_EXISTS": 409,
    "REPOSITORY_NOT_FOUND": 404,
    "MISSING_DEFAULT_BRANCH": 412,
    "VALIDATION_ERROR": 400,
    "NO_ACTIVE_SPACE": 400,
    "CONFIG_ERROR": 500,
}


def ok(data: dict, status: int = 200) -> tuple[Response, int] | Response:
    """成功响应"""
    if status == 200:
        return jsonify(data)
    return jsonify(data), status


def not_found(resource: str) -> tuple[Response, int]:
    """资源不存在"""
    return jsonify(error=f"{resource}不存在"), 404


def bad_request(message: str) -> tuple[Response, int]:
    """请求参数错误"""
    return jsonify(error=message), 400


def domain_error(exc: WorkbenchError) -> tuple[Response, int]:
    """领域异常 -> JSON 错误响应"""
    status = STATUS_BY_CODE.get(exc.code, 500)
    return jsonify(error=str(exc), code=exc.code), status
