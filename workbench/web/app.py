"""代码仓管理 Web API（基于 Flask）

提供：代码仓创建 / 删除 / 查询 / 历史分页 / 权限组管理，组织单元管理。

启动方式: workbench serve --port 8888
"""

from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from workbench import __version__
from workbench.core.exceptions import WorkbenchError
from workbench.web.blueprints import org_units_bp, repos_bp
from workbench.web.responses import domain_error

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # 1 MB

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = MAX_CONTENT_LENGTH


# =========================================================================
# 全局 JSON 错误处理
# =========================================================================


@app.errorhandler(HTTPException)
def handle_http_exception(exc):
    """将所有 HTTP 异常统一返回 JSON"""
    return jsonify(error=exc.description), exc.code


@app.errorhandler(WorkbenchError)
def handle_domain_exception(exc):
    """领域异常按 code 映射状态码"""
    response = domain_error(exc)
    if response[1] >= 500:
        logger.error("请求处理失败: [%s] %s", exc.code, exc)
    return response


@app.errorhandler(Exception)
def handle_generic_exception(exc):  # noqa: ARG001
    """捕获未处理异常，返回 500 JSON"""
    logger.exception("未处理的异常")
    return jsonify(error="服务器内部错误"), 500


@app.route("/api/health")
def health():
    return jsonify(status="ok", version=__version__)


app.register_blueprint(repos_bp)
app.register_blueprint(org_units_bp)


def run_server(port: int = 8888, debug: bool = False, host: str = "127.0.0.1") -> None:
    logger.info("workbench Web API 已启动: http://%s:%d", host, port)
    app.run(host=host, port=port, debug=debug)
