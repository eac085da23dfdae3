"""集中配置管理

替代各模块散落的默认文件名 / 默认仓库常量，提供统一的配置入口。
支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from modfile.core.exceptions import ConfigError
from modfile.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

# 未知顶层键的处理策略
UNKNOWN_KEY_POLICIES = ("ignore", "preserve", "error")


@dataclass
class Config:
    """全局配置"""

    # 文件名
    mod_file_name: str = "kcl.mod"
    lock_file_name: str = "kcl.mod.lock"

    # OCI 默认坐标，短写依赖 (name = "0.0.1") 补全时使用
    default_oci_registry: str = "ghcr.io"
    default_oci_repo: str = "kcl-lang"

    # 新建清单时的 edition
    default_edition: str = "v0.9.0"

    # 解码宽松度: ignore / preserve / error
    unknown_keys: str = "ignore"

    # 保存时是否按 name + version 重新生成 full_name
    recompute_full_name: bool = False

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    def validate(self) -> None:
        if self.unknown_keys not in UNKNOWN_KEY_POLICIES:
            raise ConfigError(
                f"unknown_keys 取值无效: {self.unknown_keys!r}，"
                f"可选: {', '.join(UNKNOWN_KEY_POLICIES)}"
            )

    @classmethod
    def from_file(cls, path: str = "modfile.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        cfg.validate()
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "modfile.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current


def reset_config() -> None:
    """恢复默认配置，测试中使用"""
    global _current  # noqa: PLW0603
    _current = None
