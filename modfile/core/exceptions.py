"""统一异常体系

所有清单 / 锁文件相关异常继承 ModfileError，替代散落的 ValueError / KeyError。
CLI 层据此输出 "[code] message" 形式的友好提示，调用方可通过 path 定位出错文件。
"""

from __future__ import annotations


class ModfileError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path

    def __str__(self) -> str:
        msg = super().__str__()
        if self.path:
            return f"{msg} ({self.path})"
        return msg


class ConfigError(ModfileError):
    """配置文件内容无效"""

    code = "CONFIG_ERROR"


class MalformedManifestError(ModfileError):
    """文本无法解析，或缺少必填的包标识字段"""

    code = "MALFORMED_MANIFEST"


class UnknownSourceKindError(ModfileError):
    """依赖记录不匹配任何来源键组，或同时匹配多个"""

    code = "UNKNOWN_SOURCE_KIND"

    def __init__(self, message: str, key: str = "", path: str = "") -> None:
        super().__init__(message, path=path)
        self.key = key


class MissingChecksumError(ModfileError):
    """锁文件中存在没有 sum 的依赖"""

    code = "MISSING_CHECKSUM"

    def __init__(self, message: str, names: list[str] | None = None, path: str = "") -> None:
        super().__init__(message, path=path)
        self.names = names or []


class ManifestNotFoundError(ModfileError):
    """期望的清单或锁文件不存在"""

    code = "NOT_FOUND"
