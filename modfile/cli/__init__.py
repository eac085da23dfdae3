"""modfile 命令行接口

只读查看与格式化 kcl.mod / kcl.mod.lock，不负责依赖的拉取与解析。
命令按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os

import click

from modfile import __version__
from modfile.core.config import init_config
from modfile.utils.logger import setup_logging


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default="", help="配置文件路径 (YAML)")
def main(config_path: str) -> None:
    """modfile - 包清单与锁文件工具"""
    setup_logging(
        level=os.getenv("MODFILE_LOG_LEVEL", "WARNING"),
        json_output=os.getenv("MODFILE_LOG_JSON", "") == "1",
    )
    if config_path:
        init_config(config_path)


# 注册各领域子命令
from modfile.cli.cmd_mod import register as _reg_mod  # noqa: E402

_reg_mod(main)
