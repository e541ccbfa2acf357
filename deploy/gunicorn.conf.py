"""Gunicorn 生产配置

用法:
  gunicorn --config deploy/gunicorn.conf.py workbench.web.app:app

代码仓注册表保存在进程内存中，多个 worker 会各自持有一份并互相不可见，
因此固定单 worker，用线程扩展并发。
"""

import os

# ---------- 网络 ----------
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8888")

# ---------- 并发 ----------
workers = 1
threads = int(os.getenv("GUNICORN_THREADS", "8"))
worker_class = "gthread"
timeout = 60

# ---------- 日志 ----------
accesslog = os.getenv("GUNICORN_ACCESS_LOG", "-")
errorlog = os.getenv("GUNICORN_ERROR_LOG", "-")
loglevel = os.getenv("WORKBENCH_LOG_LEVEL", "info").lower()

# ---------- 进程管理 ----------
graceful_timeout = 30
keepalive = 5


def post_worker_init(worker):  # noqa: ARG001
    """worker 启动后加载配置并从配置存储恢复注册表"""
    from workbench.core.config import init_config
    from workbench.services.container import get_container

    init_config(os.getenv("WORKBENCH_CONFIG", "configs/workbench.yml"))
    get_container().start()
