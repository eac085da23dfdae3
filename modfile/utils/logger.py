"""modfile 日志配置

命令行入口调用 setup_logging() 配置 ``modfile`` 包日志器；作为库被引用时
不主动配置任何 handler，由调用方决定日志去向。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

LOGGER_NAME = "modfile"

TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """单行 JSON 日志，便于 CI 流水线消费

    输出格式:
        {
            "timestamp": "2024-01-01T12:00:00+00:00",
            "level": "INFO",
            "logger": "modfile.core.manifest",
            "message": "已加载清单 pkg/kcl.mod: 2 个依赖",
            "line": 167,
            "path": "pkg/kcl.mod" (记录带 extra={"path": ...} 时),
            "exception": "traceback..." (仅在有异常时)
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": record.lineno,
        }
        path = getattr(record, "path", None)
        if path:
            entry["path"] = path
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str = "WARNING", json_output: bool = False) -> logging.Logger:
    """配置 modfile 包日志器，输出到 stderr，不干扰命令的标准输出

    重复调用时替换上一次安装的 handler，不会重复输出。
    """
    log = logging.getLogger(LOGGER_NAME)
    for handler in log.handlers[:]:
        log.removeHandler(handler)
        handler.close()

    log.setLevel(getattr(logging, level.upper(), logging.WARNING))
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT))
    log.addHandler(handler)
    return log
