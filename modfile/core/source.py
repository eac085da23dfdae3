"""依赖来源模型

来源是三选一的标签联合: Local / Git / OCI。
序列化形式里没有显式的类型字段，来源类型完全由扁平记录中出现的键组决定:

  ======  =====================  ======================
  类型    判别键                 附加键
  ======  =====================  ======================
  Local   path                   -
  Git     url                    tag / branch / commit
  OCI     oci (组合 URL)         tag
          或 reg / repo
  ======  =====================  ======================

同时出现多组判别键、或一组都没有时，解码失败 (UnknownSourceKindError)。

OCI 组合 URL 形如 ``[oci://]registry[:port]/repository[:tag]``，
tag 分隔符是最后一个 ``/`` 之后的 ``:``，因此 registry 端口不会被误认为 tag。
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Union

from modfile.core.exceptions import MalformedManifestError, UnknownSourceKindError

if TYPE_CHECKING:
    from modfile.core.config import Config

OCI_SCHEME = "oci://"


class SourceKind(str, Enum):
    """依赖来源类型"""
    LOCAL = "local"
    GIT = "git"
    OCI = "oci"


# 各来源类型的判别键
SOURCE_KEY_GROUPS: dict[SourceKind, tuple[str, ...]] = {
    SourceKind.LOCAL: ("path",),
    SourceKind.GIT: ("url",),
    SourceKind.OCI: ("oci", "reg", "repo"),
}

GIT_REF_KEYS = ("tag", "branch", "commit")

# 扁平记录中属于来源的全部键
SOURCE_KEYS = ("path", "url", "tag", "branch", "commit", "oci", "reg", "repo")


@dataclass
class LocalSource:
    """本地文件系统路径"""

    path: str

    kind: ClassVar[SourceKind] = SourceKind.LOCAL

    def to_fields(self) -> dict[str, str]:
        return {"path": self.path}


@dataclass
class GitSource:
    """版本控制仓库，ref 选择器 (tag / branch / commit) 不强制互斥"""

    url: str
    tag: str = ""
    branch: str = ""
    commit: str = ""

    kind: ClassVar[SourceKind] = SourceKind.GIT

    @property
    def ref(self) -> str:
        return self.tag or self.commit or self.branch

    def to_fields(self) -> dict[str, str]:
        fields = {"url": self.url}
        for key in GIT_REF_KEYS:
            value = getattr(self, key)
            if value:
                fields[key] = value
        return fields


@dataclass
class OciSource:
    """OCI 制品仓库坐标，任一字段都可为空，由默认值或组合 URL 补全"""

    reg: str = ""
    repo: str = ""
    tag: str = ""

    kind: ClassVar[SourceKind] = SourceKind.OCI

    @classmethod
    def from_url(cls, url: str, tag: str = "") -> OciSource:
        """从组合 URL 拆出 reg / repo / tag

        参数:
            url: ``[oci://]registry[:port]/repository[:tag]``
            tag: 记录中单独给出的 tag，与 URL 内嵌 tag 同时存在时必须一致

        异常:
            UnknownSourceKindError: 协议不支持、缺少 registry 或 repository、tag 冲突
        """
        raw = url.strip()
        if raw.startswith(OCI_SCHEME):
            raw = raw[len(OCI_SCHEME):]
        elif "://" in raw:
            raise UnknownSourceKindError(f"不支持的 OCI URL 协议: {url}")

        reg, _, rest = raw.partition("/")
        if not reg or not rest:
            raise UnknownSourceKindError(f"OCI URL 缺少 registry 或 repository: {url}")

        repo, url_tag = rest, ""
        if ":" in rest.rsplit("/", 1)[-1]:
            repo, _, url_tag = rest.rpartition(":")
            if not repo or not url_tag:
                raise UnknownSourceKindError(f"OCI URL 格式错误: {url}")

        if tag and url_tag and tag != url_tag:
            raise UnknownSourceKindError(
                f"OCI URL 内嵌 tag 与 tag 字段冲突: {url_tag} != {tag}"
            )
        return cls(reg=reg, repo=repo, tag=tag or url_tag)

    @property
    def oci_url(self) -> str:
        """清单中使用的 ``oci://reg/repo`` 形式（不含 tag）"""
        return f"{OCI_SCHEME}{self.reg}/{self.repo}"

    def into_canonical_url(self) -> str:
        """生成 ``reg/repo:tag``，tag 为空时省略 ``:tag``"""
        if not self.reg or not self.repo:
            raise ValueError(
                f"OCI 坐标不完整，无法生成 URL: reg={self.reg!r}, repo={self.repo!r}"
            )
        url = f"{self.reg}/{self.repo}"
        return f"{url}:{self.tag}" if self.tag else url

    def with_defaults(self, name: str, config: Config) -> OciSource:
        """空的 reg / repo 用默认 registry 与 ``<default_oci_repo>/<name>`` 补全"""
        return OciSource(
            reg=self.reg or config.default_oci_registry,
            repo=self.repo or f"{config.default_oci_repo}/{name}",
            tag=self.tag,
        )

    def to_fields(self, combined: bool = False) -> dict[str, str]:
        # 坐标不完整时始终输出 reg / repo，保证解码时仍能识别为 OCI
        if combined and self.reg and self.repo:
            fields = {"oci": self.oci_url}
            if self.tag:
                fields["tag"] = self.tag
            return fields
        return {"reg": self.reg, "repo": self.repo, "tag": self.tag}


Source = Union[LocalSource, GitSource, OciSource]


def source_to_fields(source: Source, combined_oci: bool = False) -> dict[str, str]:
    """来源 -> 扁平键值片段

    combined_oci 为 True 时（清单场景），坐标完整的 OCI 来源输出为
    ``oci = "oci://reg/repo"`` + ``tag``；锁文件始终输出 reg / repo / tag。
    """
    if isinstance(source, OciSource):
        return source.to_fields(combined=combined_oci)
    return source.to_fields()


def source_from_fields(fields: Mapping[str, Any], key: str = "") -> Source:
    """扁平键值片段 -> 来源，按出现的判别键组确定类型

    异常:
        UnknownSourceKindError: 没有匹配的键组，或匹配多个键组
        MalformedManifestError: 来源字段不是字符串
    """
    matched = [
        kind for kind, group in SOURCE_KEY_GROUPS.items()
        if any(k in fields for k in group)
    ]
    if not matched:
        raise UnknownSourceKindError(
            f"依赖 '{key}' 未声明来源 (path / url / oci / reg / repo)", key=key,
        )
    if len(matched) > 1:
        kinds = ", ".join(k.value for k in matched)
        raise UnknownSourceKindError(f"依赖 '{key}' 的来源有歧义: {kinds}", key=key)

    values = {k: _str_field(fields, k, key) for k in SOURCE_KEYS if k in fields}
    kind = matched[0]

    if kind is SourceKind.LOCAL:
        _reject(values, ("tag", "branch", "commit"), kind, key)
        return LocalSource(path=values["path"])

    if kind is SourceKind.GIT:
        return GitSource(
            url=values["url"],
            tag=values.get("tag", ""),
            branch=values.get("branch", ""),
            commit=values.get("commit", ""),
        )

    _reject(values, ("branch", "commit"), kind, key)
    if "oci" in values:
        _reject(values, ("reg", "repo"), kind, key)
        try:
            return OciSource.from_url(values["oci"], tag=values.get("tag", ""))
        except UnknownSourceKindError as e:
            raise UnknownSourceKindError(f"依赖 '{key}': {e}", key=key) from e
    return OciSource(
        reg=values.get("reg", ""),
        repo=values.get("repo", ""),
        tag=values.get("tag", ""),
    )


def _reject(
    values: Mapping[str, str], keys: tuple[str, ...], kind: SourceKind, key: str,
) -> None:
    stray = [k for k in keys if k in values]
    if stray:
        raise UnknownSourceKindError(
            f"依赖 '{key}' 的来源有歧义: {kind.value} 来源不接受 {', '.join(stray)}",
            key=key,
        )


def _str_field(fields: Mapping[str, Any], name: str, key: str) -> str:
    value = fields[name]
    if not isinstance(value, str):
        raise MalformedManifestError(
            f"依赖 '{key}' 的字段 {name} 必须是字符串，实际为 {type(value).__name__}"
        )
    return value
