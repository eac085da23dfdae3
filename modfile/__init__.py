"""modfile - 包清单 (kcl.mod) 与锁文件 (kcl.mod.lock) 模型

依赖来源、有序依赖表，以及两种文件的确定性、可往返的 TOML 编解码。
"""

from modfile.core.dependency import Dependencies, Dependency
from modfile.core.exceptions import (
    ConfigError,
    MalformedManifestError,
    ManifestNotFoundError,
    MissingChecksumError,
    ModfileError,
    UnknownSourceKindError,
)
from modfile.core.lockfile import (
    dump_lock_toml,
    load_lock_file,
    load_lock_toml,
    lock_file_exists,
    store_lock_file,
)
from modfile.core.manifest import (
    ModFile,
    Package,
    Profile,
    load_mod_file,
    mod_file_exists,
    new_mod_file,
)
from modfile.core.source import GitSource, LocalSource, OciSource, Source, SourceKind

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "Dependencies",
    "Dependency",
    "GitSource",
    "LocalSource",
    "MalformedManifestError",
    "ManifestNotFoundError",
    "MissingChecksumError",
    "ModFile",
    "ModfileError",
    "OciSource",
    "Package",
    "Profile",
    "Source",
    "SourceKind",
    "UnknownSourceKindError",
    "dump_lock_toml",
    "load_lock_file",
    "load_lock_toml",
    "load_mod_file",
    "lock_file_exists",
    "mod_file_exists",
    "new_mod_file",
    "store_lock_file",
]
