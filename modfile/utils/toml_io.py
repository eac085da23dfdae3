"""TOML 文件统一读写工具

集中管理 kcl.mod / kcl.mod.lock 的文本编解码与落盘，避免各模块重复实现。
统一 encoding="utf-8"、文件大小限制、目录自动创建、原子写入。

读取失败一律转换为领域异常: 文件不存在 -> ManifestNotFoundError，
过大 / 非 UTF-8 / 语法错误 -> MalformedManifestError。
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Any

import tomli_w

from modfile.core.exceptions import MalformedManifestError, ManifestNotFoundError

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)

# TOML 文件最大大小限制 (10MB)，防止恶意大文件导致内存耗尽
MAX_TOML_SIZE = 10 * 1024 * 1024


def atomic_write(path: str | Path, content: str) -> None:
    """同目录临时文件写完后 os.replace 覆盖目标，读者只会看到旧内容或新内容

    换行固定为 ``\\n``，同一内容在任何平台上写出的字节一致。
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(p.parent), prefix=f".{p.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
        os.replace(tmp, p)
    except Exception:
        Path(tmp).unlink(missing_ok=True)
        raise


def read_text(path: str | Path, label: str = "文件") -> str:
    """读取 TOML 文本

    参数:
        path: 文件路径
        label: 错误信息中的文件称呼，如 "清单文件"、"锁文件"

    异常:
        ManifestNotFoundError: 文件不存在
        MalformedManifestError: 文件过大（超过 MAX_TOML_SIZE）或不是合法的 UTF-8
    """
    p = Path(path)
    try:
        file_size = p.stat().st_size
        if file_size > MAX_TOML_SIZE:
            raise MalformedManifestError(
                f"{label}过大: {file_size} 字节, 超过限制 {MAX_TOML_SIZE} 字节",
                path=str(p),
            )
        return p.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ManifestNotFoundError(f"{label}不存在", path=str(p)) from e
    except UnicodeDecodeError as e:
        raise MalformedManifestError(f"{label}不是合法的 UTF-8 文本: {e}", path=str(p)) from e


def loads_toml(text: str, path: str = "") -> dict[str, Any]:
    """解析 TOML 文本，语法错误统一转换为 MalformedManifestError"""
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        logger.error("解析 TOML 失败: %s, 错误: %s", path or "<text>", e)
        raise MalformedManifestError(f"TOML 语法错误: {e}", path=path) from e


def dumps_toml(data: dict[str, Any]) -> str:
    """序列化为 TOML 文本

    键顺序与 data 的插入顺序一致；同一张表内标量先于子表输出，
    子表按深度优先展开。非裸键与字符串值按 TOML 规则加引号并转义。
    """
    return tomli_w.dumps(data)
