"""workbench 日志配置

统一的日志初始化：人类可读文本或结构化 JSON（便于日志平台采集）。
代码仓操作和流程执行通过 logging 的 extra 携带上下文字段
（space / alias / run_id / node），JSON 输出时会一并写出。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

# 通过 extra= 传入、需要出现在 JSON 日志中的上下文字段
CONTEXT_FIELDS = ("space", "alias", "run_id", "node")

_TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器

    输出字段: timestamp / level / logger / message / location，
    以及 CONTEXT_FIELDS 中出现在记录上的上下文字段。
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: str = "",
) -> None:
    """配置根日志器

    参数:
        level: 日志级别字符串（DEBUG / INFO / WARNING / ERROR）
        json_output: True 时输出 JSON 行
        log_file: 非空时额外写入该文件（格式与 stderr 一致）

    重复调用会先清理已有 handler，不会产生重复输出。
    """
    reset_logging()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter: logging.Formatter = (
        JSONFormatter() if json_output else logging.Formatter(_TEXT_FORMAT)
    )
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """获取指定名称的 logger，通常传 __name__"""
    return logging.getLogger(name)


def reset_logging() -> None:
    """移除并关闭根日志器上的全部 handler（测试中常用）"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
