"""包清单 (kcl.mod)

人工可编辑的包描述: 包标识 + 文件匹配规则 + 有序依赖表 + 可选 profile。

文件格式:

    [package]
    name = "MyKcl"
    edition = "v0.0.1"
    version = "v0.0.1"
    include = [
        "src/",
        "README.md",
    ]

    [profile]
    entries = [
        "main.k",
    ]

    [dependencies.MyKcl1]
    url = "https://github.com/test/MyKcl1.git"
    tag = "v0.0.2"

    [dependencies.oci_pkg]
    version = "0.0.1"
    oci = "oci://ghcr.io/kcl-lang/oci_pkg"
    tag = "0.0.1"

每个依赖一个 [dependencies.<key>] 小节，按依赖表的迭代顺序输出，不输出 sum。
解码时还接受短写 ``name = "0.0.1"`` (默认 registry 上的 OCI 包)。

用法:
    from modfile.core.manifest import load_mod_file

    mod = load_mod_file("path/to/pkg")
    dep = mod.dependencies.get("k8s")
    mod.save("path/to/pkg/kcl.mod")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from modfile.core.config import Config, get_config
from modfile.core.dependency import Dependencies, Dependency
from modfile.core.exceptions import MalformedManifestError, ModfileError
from modfile.utils.toml_io import atomic_write, dumps_toml, loads_toml, read_text

logger = logging.getLogger(__name__)

KNOWN_KEYS = ("package", "dependencies", "profile", "profiles")


@dataclass
class Package:
    """包标识，name 与 version 必填"""

    name: str
    version: str
    edition: str = ""
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)


@dataclass
class Profile:
    """编译入口等不透明的路径列表，顺序有意义"""

    entries: list[str] = field(default_factory=list)


@dataclass
class ModFile:
    """包清单"""

    package: Package
    dependencies: Dependencies = field(default_factory=Dependencies)
    profile: Profile | None = None
    extra: dict[str, Any] = field(default_factory=dict)  # unknown_keys=preserve 时保留的未知字段

    def has_profile(self) -> bool:
        return self.profile is not None

    def get_entries(self) -> list[str]:
        if self.profile is None:
            return []
        return list(self.profile.entries)

    def fill_dependencies_info(self, config: Config | None = None) -> None:
        """为 OCI 依赖补全默认 registry / repo / tag"""
        cfg = config or get_config()
        for key, dep in self.dependencies.items():
            self.dependencies.set(key, dep.with_defaults(cfg))

    # ------------------------------------------------------------------
    # 编解码
    # ------------------------------------------------------------------

    def to_dict(self, config: Config | None = None) -> dict[str, Any]:
        """清单 -> 可序列化的字典，顺序: package, profile, dependencies, 保留的未知字段

        异常:
            MalformedManifestError: package.name 或 package.version 为空，
                否则写出的文件无法再次加载
        """
        cfg = config or get_config()
        pkg = self.package
        for key in ("name", "version"):
            if not getattr(pkg, key):
                raise MalformedManifestError(f"package.{key} 缺失或为空")
        package: dict[str, Any] = {
            "name": pkg.name,
            "edition": pkg.edition,
            "version": pkg.version,
        }
        if pkg.include:
            package["include"] = list(pkg.include)
        if pkg.exclude:
            package["exclude"] = list(pkg.exclude)

        data: dict[str, Any] = {"package": package}
        if self.profile is not None:
            data["profile"] = {"entries": list(self.profile.entries)}
        data["dependencies"] = {
            key: dep.to_fields(key, recompute_full_name=cfg.recompute_full_name)
            for key, dep in self.dependencies.items()
        }
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    def to_toml(self, config: Config | None = None) -> str:
        return dumps_toml(self.to_dict(config))

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], config: Config | None = None, path: str = "",
    ) -> ModFile:
        cfg = config or get_config()
        try:
            return cls(
                package=_parse_package(data.get("package")),
                dependencies=_parse_dependencies(data.get("dependencies", {})),
                profile=_parse_profile(data),
                extra=_unknown_keys(data, cfg.unknown_keys),
            )
        except ModfileError as e:
            e.path = e.path or path
            raise

    @classmethod
    def from_toml(cls, text: str, config: Config | None = None, path: str = "") -> ModFile:
        return cls.from_dict(loads_toml(text, path), config, path)

    # ------------------------------------------------------------------
    # 读写
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: str | Path, config: Config | None = None) -> ModFile:
        """从指定文件加载清单

        异常:
            ManifestNotFoundError: 文件不存在
            MalformedManifestError: 文件过大、非 UTF-8、解析失败或缺少必填字段
        """
        p = Path(path)
        text = read_text(p, "清单文件")
        mod = cls.from_toml(text, config, str(p))
        logger.info("已加载清单 %s: %d 个依赖", p, len(mod.dependencies), extra={"path": str(p)})
        return mod

    def save(self, path: str | Path, config: Config | None = None) -> Path:
        """按规范格式原子写入，内存状态不变时重复保存内容一致"""
        p = Path(path)
        atomic_write(p, self.to_toml(config))
        logger.info("清单已保存: %s", p, extra={"path": str(p)})
        return p

    def store(self, directory: str | Path, config: Config | None = None) -> Path:
        cfg = config or get_config()
        return self.save(Path(directory) / cfg.mod_file_name, cfg)


def load_mod_file(directory: str | Path, config: Config | None = None) -> ModFile:
    """读取目录下约定名称的清单文件 (默认 kcl.mod)"""
    cfg = config or get_config()
    return ModFile.load(Path(directory) / cfg.mod_file_name, cfg)


def mod_file_exists(directory: str | Path, config: Config | None = None) -> bool:
    cfg = config or get_config()
    return (Path(directory) / cfg.mod_file_name).is_file()


def new_mod_file(
    name: str, version: str = "0.0.1", edition: str = "", config: Config | None = None,
) -> ModFile:
    """新建包时的初始清单，edition 缺省取配置中的 default_edition"""
    cfg = config or get_config()
    return ModFile(package=Package(
        name=name, edition=edition or cfg.default_edition, version=version,
    ))


# ----------------------------------------------------------------------
# 解码辅助
# ----------------------------------------------------------------------


def _parse_package(raw: Any) -> Package:
    if not isinstance(raw, dict):
        raise MalformedManifestError("缺少 [package] 表")
    for key in ("name", "version"):
        value = raw.get(key)
        if not isinstance(value, str) or not value:
            raise MalformedManifestError(f"package.{key} 缺失或为空")
    edition = raw.get("edition", "")
    if not isinstance(edition, str):
        raise MalformedManifestError("package.edition 必须是字符串")
    return Package(
        name=raw["name"],
        edition=edition,
        version=raw["version"],
        include=_str_list(raw.get("include", []), "package.include"),
        exclude=_str_list(raw.get("exclude", []), "package.exclude"),
    )


def _parse_dependencies(raw: Any) -> Dependencies:
    if not isinstance(raw, dict):
        raise MalformedManifestError("dependencies 必须是表")
    deps = Dependencies()
    for key, value in raw.items():
        if isinstance(value, str):
            if not value:
                raise MalformedManifestError(f"依赖 '{key}' 的版本不能为空")
            deps.set(key, Dependency.from_shorthand(key, value))
        elif isinstance(value, dict):
            deps.set(key, Dependency.from_fields(value, key))
        else:
            raise MalformedManifestError(
                f"依赖 '{key}' 必须是表或版本字符串，实际为 {type(value).__name__}"
            )
    return deps


def _parse_profile(data: dict[str, Any]) -> Profile | None:
    present = [k for k in ("profile", "profiles") if k in data]
    if not present:
        return None
    if len(present) > 1:
        raise MalformedManifestError("profile 与 profiles 不能同时出现")
    raw = data[present[0]]
    if not isinstance(raw, dict):
        raise MalformedManifestError(f"{present[0]} 必须是表")
    return Profile(entries=_str_list(raw.get("entries", []), f"{present[0]}.entries"))


def _unknown_keys(data: dict[str, Any], policy: str) -> dict[str, Any]:
    unknown = {k: v for k, v in data.items() if k not in KNOWN_KEYS}
    if not unknown:
        return {}
    if policy == "error":
        raise MalformedManifestError(f"未知字段: {', '.join(unknown)}")
    if policy == "preserve":
        logger.debug("保留未知字段: %s", ", ".join(unknown))
        return unknown
    logger.debug("忽略未知字段: %s", ", ".join(unknown))
    return {}


def _str_list(value: Any, name: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MalformedManifestError(f"{name} 必须是字符串数组")
    return list(value)
