"""锁文件 (kcl.mod.lock)

依赖解析完成后由工具整体生成，记录精确版本与内容校验和，不应手工编辑
（但手工编辑后只要符合格式仍可被解析）。

文件格式: 根表只有 dependencies，每个依赖一个小节，字段全部展开:

    [dependencies.MyKcl1]
    name = "MyKcl1"
    full_name = "MyKcl1_v0.0.2"
    version = "v0.0.2"
    sum = "hjkasdahjksdasdhjk"
    url = "https://github.com/test/MyKcl1.git"
    tag = "v0.0.2"

没有依赖时只输出空的 [dependencies] 表头。

输出顺序即依赖表的迭代顺序；相同内容、相同顺序的依赖表生成的文本逐字节一致，
保证版本控制中的 diff 最小。没有 sum 的条目无法提供完整性保证，编码与解码都会拒绝。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from modfile.core.config import Config, get_config
from modfile.core.dependency import Dependencies, Dependency
from modfile.core.exceptions import (
    MalformedManifestError,
    MissingChecksumError,
    ModfileError,
)
from modfile.utils.toml_io import atomic_write, dumps_toml, loads_toml, read_text

logger = logging.getLogger(__name__)


def dump_lock_toml(deps: Dependencies, config: Config | None = None) -> str:
    """依赖表 -> 锁文件文本

    异常:
        MissingChecksumError: 任一条目 sum 为空，names 中列出全部缺失项
    """
    cfg = config or get_config()
    missing = [key for key, dep in deps.items() if not dep.sum]
    if missing:
        raise MissingChecksumError(
            f"以下依赖缺少校验和，无法写入锁文件: {', '.join(missing)}",
            names=missing,
        )
    data = {
        "dependencies": {
            key: dep.to_fields(key, lock=True, recompute_full_name=cfg.recompute_full_name)
            for key, dep in deps.items()
        },
    }
    return dumps_toml(data)


def load_lock_toml(text: str, path: str = "") -> Dependencies:
    """锁文件文本 -> 依赖表，按文本顺序恢复

    异常:
        MalformedManifestError: TOML 语法错误或结构不符
        MissingChecksumError: 存在没有 sum 的条目
        UnknownSourceKindError: 条目来源无法识别
    """
    data = loads_toml(text, path)
    raw = data.get("dependencies", {})
    if not isinstance(raw, dict):
        raise MalformedManifestError("锁文件 dependencies 必须是表", path=path)

    deps = Dependencies()
    for key, fields in raw.items():
        deps.set(key, _parse_locked(key, fields, path))

    missing = [key for key, dep in deps.items() if not dep.sum]
    if missing:
        raise MissingChecksumError(
            f"锁文件中以下依赖缺少校验和: {', '.join(missing)}",
            names=missing, path=path,
        )
    return deps


def lock_file_exists(directory: str | Path, config: Config | None = None) -> bool:
    cfg = config or get_config()
    return (Path(directory) / cfg.lock_file_name).is_file()


def load_lock_file(directory: str | Path, config: Config | None = None) -> Dependencies:
    """读取目录下的锁文件

    异常:
        ManifestNotFoundError: 锁文件不存在
        MalformedManifestError: 文件过大、非 UTF-8 或格式错误
        MissingChecksumError: 存在没有 sum 的条目
    """
    cfg = config or get_config()
    p = Path(directory) / cfg.lock_file_name
    text = read_text(p, "锁文件")
    deps = load_lock_toml(text, str(p))
    logger.info("已加载锁文件 %s: %d 个依赖", p, len(deps), extra={"path": str(p)})
    return deps


def store_lock_file(
    directory: str | Path, deps: Dependencies, config: Config | None = None,
) -> Path:
    """整体覆盖写入锁文件（原子写入）"""
    cfg = config or get_config()
    p = Path(directory) / cfg.lock_file_name
    atomic_write(p, dump_lock_toml(deps, cfg))
    logger.info("锁文件已更新: %s (%d 个依赖)", p, len(deps), extra={"path": str(p)})
    return p


def _parse_locked(key: str, fields: Any, path: str) -> Dependency:
    if not isinstance(fields, dict):
        raise MalformedManifestError(f"锁文件条目 '{key}' 必须是表", path=path)
    try:
        return Dependency.from_fields(fields, key)
    except ModfileError as e:
        e.path = e.path or path
        raise
