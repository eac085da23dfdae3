"""清单 / 锁文件命令: show, deps, fmt, lock"""

from __future__ import annotations

import functools
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path
from typing import Any

import click

from modfile.core.config import get_config
from modfile.core.dependency import Dependency
from modfile.core.exceptions import ModfileError
from modfile.core.lockfile import load_lock_file
from modfile.core.manifest import ModFile, load_mod_file
from modfile.core.source import GitSource, LocalSource, OciSource
from modfile.utils.toml_io import read_text


def register(group: click.Group) -> None:
    group.add_command(show)
    group.add_command(list_deps)
    group.add_command(fmt)
    group.add_command(lock)


def _report_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """ModfileError 输出为 "[code] message" 并以状态码 1 退出"""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ModfileError as e:
            click.echo(f"[{e.code}] {e}", err=True)
            raise SystemExit(1) from e

    return wrapper


def describe_source(dep: Dependency) -> str:
    """来源的单行描述，OCI 来源按默认值补全后输出组合 URL"""
    dep = dep.with_defaults(get_config())
    src = dep.source
    if isinstance(src, LocalSource):
        return src.path
    if isinstance(src, GitSource):
        return f"{src.url}@{src.ref}" if src.ref else src.url
    if isinstance(src, OciSource):
        return src.into_canonical_url()
    return "-"


# ---- 清单 ----

@click.command()
@click.argument("directory", default=".")
@_report_errors
def show(directory: str) -> None:
    """显示包标识与 profile"""
    mod = load_mod_file(directory)
    pkg = mod.package
    click.echo(f"{pkg.name} {pkg.version} (edition {pkg.edition or '-'})")
    if pkg.include:
        click.echo(f"  include: {', '.join(pkg.include)}")
    if pkg.exclude:
        click.echo(f"  exclude: {', '.join(pkg.exclude)}")
    if mod.has_profile():
        click.echo(f"  entries: {', '.join(mod.get_entries())}")
    click.echo(f"  dependencies: {len(mod.dependencies)}")


@click.command(name="deps")
@click.argument("directory", default=".")
@_report_errors
def list_deps(directory: str) -> None:
    """按清单顺序列出依赖"""
    mod = load_mod_file(directory)
    if not mod.dependencies:
        click.echo("没有声明依赖。")
        return
    for key, dep in mod.dependencies.items():
        kind = dep.source.kind.value if dep.source else "-"
        click.echo(f"  {key:20s} {kind:5s} {dep.version or '-':12s} {describe_source(dep)}")


@click.command()
@click.argument("directory", default=".")
@click.option("--check", is_flag=True, help="只检查，不写回；需要格式化时返回 1")
@_report_errors
def fmt(directory: str, check: bool) -> None:
    """按规范格式重写 kcl.mod"""
    cfg = get_config()
    # 格式化不应丢弃未知字段
    if cfg.unknown_keys == "ignore":
        cfg = replace(cfg, unknown_keys="preserve")
    path = Path(directory) / cfg.mod_file_name
    original = read_text(path, "清单文件")
    mod = ModFile.from_toml(original, cfg, str(path))
    if mod.to_toml(cfg) == original:
        click.echo(f"已是规范格式: {path}")
        return
    if check:
        click.echo(f"需要格式化: {path}", err=True)
        raise SystemExit(1)
    mod.save(path, cfg)
    click.echo(f"已格式化: {path}")


# ---- 锁文件 ----

@click.command()
@click.argument("directory", default=".")
@_report_errors
def lock(directory: str) -> None:
    """校验 kcl.mod.lock 并列出锁定的依赖"""
    deps = load_lock_file(directory)
    for dep in deps.values():
        click.echo(f"  {dep.full_name:30s} {dep.version or '-':12s} {dep.sum}")
    click.echo(f"共 {len(deps)} 个锁定依赖")
