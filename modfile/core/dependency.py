"""依赖条目与有序依赖表

扁平化策略:
  序列化时，一个依赖条目的身份字段 (name / full_name / version / sum)
  与来源字段合并为一条扁平记录，不嵌套；来源类型由出现的键组恢复
  (见 modfile.core.source)。

  清单 (kcl.mod):   name 与表键相同时省略，full_name 与推导值相同时省略，
                     不输出 sum；坐标完整的 OCI 来源用组合 URL。
  锁文件 (kcl.mod.lock): name / full_name / version / sum 全部输出，
                     OCI 来源输出 reg / repo / tag。
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from modfile.core.exceptions import MalformedManifestError, UnknownSourceKindError
from modfile.core.source import (
    GitSource,
    LocalSource,
    OciSource,
    Source,
    source_from_fields,
    source_to_fields,
)

if TYPE_CHECKING:
    from modfile.core.config import Config


@dataclass
class Dependency:
    """单个依赖的元信息

    full_name 是存储 / 查找用的复合标识，构造时为空则按 name 与版本推导；
    加载时保留文件中的原值，不重新计算（历史条目可能早于命名规则变更）。
    """

    name: str
    full_name: str = ""
    version: str = ""
    sum: str = ""  # 校验和，仅锁文件场景有值
    source: Source | None = None

    def __post_init__(self) -> None:
        if not self.full_name:
            self.full_name = self.gen_full_name()

    def gen_full_name(self) -> str:
        """推导 full_name: name_version，无版本时 name_<tag>，都没有时为 name"""
        suffix = self.version or _source_ref(self.source)
        return f"{self.name}_{suffix}" if suffix else self.name

    def is_from_local(self) -> bool:
        return isinstance(self.source, LocalSource)

    def local_full_path(self, home: str | Path) -> Path:
        """依赖在本地的目录

        本地来源: 绝对路径原样返回，相对路径基于包根目录 home；
        其他来源: home/<full_name>
        """
        if isinstance(self.source, LocalSource):
            path = Path(self.source.path)
            return path if path.is_absolute() else Path(home) / path
        return Path(home) / self.full_name

    def with_defaults(self, config: Config) -> Dependency:
        """OCI 来源补全默认 registry / repo，tag 为空时取 version"""
        if not isinstance(self.source, OciSource):
            return self
        oci = self.source.with_defaults(self.name, config)
        if not oci.tag and self.version:
            oci = replace(oci, tag=self.version)
        return replace(self, source=oci)

    def to_fields(
        self, key: str = "", lock: bool = False, recompute_full_name: bool = False,
    ) -> dict[str, str]:
        """依赖条目 -> 扁平记录

        参数:
            key: 条目在依赖表中的键，清单场景据此省略冗余的 name
            lock: True 为锁文件格式，False 为清单格式
            recompute_full_name: 输出按当前 name / 版本重新推导的 full_name
        """
        if self.source is None:
            raise UnknownSourceKindError(
                f"依赖 '{key or self.name}' 未设置来源", key=key or self.name,
            )
        derived = self.gen_full_name()
        full_name = derived if recompute_full_name else self.full_name

        if lock:
            fields = {
                "name": self.name,
                "full_name": full_name,
                "version": self.version,
                "sum": self.sum,
            }
        else:
            fields = {}
            if self.name != key:
                fields["name"] = self.name
            if full_name != derived:
                fields["full_name"] = full_name
            if self.version:
                fields["version"] = self.version

        fields.update(source_to_fields(self.source, combined_oci=not lock))
        return fields

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any], key: str) -> Dependency:
        """扁平记录 -> 依赖条目，缺省的 name 取表键，缺省的 full_name 按规则推导"""
        return cls(
            name=_opt_str(fields, "name", key) or key,
            full_name=_opt_str(fields, "full_name", key),
            version=_opt_str(fields, "version", key),
            sum=_opt_str(fields, "sum", key),
            source=source_from_fields(fields, key),
        )

    @classmethod
    def from_shorthand(cls, key: str, version: str) -> Dependency:
        """清单短写 ``name = "0.0.1"``: 默认 registry 上的 OCI 包"""
        return cls(name=key, version=version, source=OciSource(tag=version))


class Dependencies:
    """按插入顺序保存的依赖表

    顺序是序列化契约的一部分: 编码按迭代顺序输出，解码按文本顺序恢复。
    列表记录顺序、字典做索引。

    相等比较只看内容不看顺序；需要同时比较顺序时用 same_order()。
    """

    def __init__(self, items: Iterable[tuple[str, Dependency]] = ()) -> None:
        self._keys: list[str] = []
        self._index: dict[str, Dependency] = {}
        for key, dep in items:
            self.set(key, dep)

    def set(self, key: str, dep: Dependency) -> None:
        """新增或覆盖，覆盖时保留原位置"""
        if key not in self._index:
            self._keys.append(key)
        self._index[key] = dep

    def get(self, key: str) -> Dependency | None:
        return self._index.get(key)

    def remove(self, key: str) -> bool:
        if key not in self._index:
            return False
        del self._index[key]
        self._keys.remove(key)
        return True

    def keys(self) -> list[str]:
        return list(self._keys)

    def values(self) -> list[Dependency]:
        return [self._index[k] for k in self._keys]

    def items(self) -> list[tuple[str, Dependency]]:
        return [(k, self._index[k]) for k in self._keys]

    def same_order(self, other: Dependencies) -> bool:
        return self == other and self._keys == other._keys

    def copy(self) -> Dependencies:
        return Dependencies(self.items())

    def __getitem__(self, key: str) -> Dependency:
        return self._index[key]

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._keys)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Dependencies):
            return NotImplemented
        return self._index == other._index

    def __repr__(self) -> str:
        return f"Dependencies({self.items()!r})"


def _source_ref(source: Source | None) -> str:
    if isinstance(source, GitSource):
        return source.ref
    if isinstance(source, OciSource):
        return source.tag
    return ""


def _opt_str(fields: Mapping[str, Any], name: str, key: str) -> str:
    value = fields.get(name, "")
    if not isinstance(value, str):
        raise MalformedManifestError(
            f"依赖 '{key}' 的字段 {name} 必须是字符串，实际为 {type(value).__name__}"
        )
    return value
