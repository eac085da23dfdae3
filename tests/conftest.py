"""测试共享 fixture"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from modfile.core.config import reset_config

TESTDATA = Path(__file__).parent / "testdata"


@pytest.fixture(autouse=True)
def _default_config() -> Iterator[None]:
    """每个用例使用默认配置，避免全局单例在用例之间泄漏"""
    reset_config()
    yield
    reset_config()


@pytest.fixture()
def testdata() -> Path:
    return TESTDATA
