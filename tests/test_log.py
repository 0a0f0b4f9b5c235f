"""测试 statecodec 日志模块."""

import logging

import pytest

from statecodec import StateStruct, from_value
from statecodec.log import get_excerpt, logger


class Point(StateStruct):
    """测试用记录."""

    x: int


def test_logger_config() -> None:
    """验证 Logger 默认配置不包含 Handler 且名称正确."""
    assert logger.name == "statecodec"
    assert not logger.handlers
    assert logger.level == logging.NOTSET


def test_get_excerpt_basic() -> None:
    """get_excerpt() 应标出错误位置."""
    excerpt = get_excerpt('{"x": }', pos=6, window=4)

    lines = excerpt.splitlines()
    assert lines[0].startswith("位置 6")
    assert lines[1] == 'x": }'
    assert lines[2].index("^") == 4


def test_get_excerpt_boundaries() -> None:
    """get_excerpt() 应正确处理起始和结束边界."""
    assert get_excerpt("abc", pos=0, window=1).splitlines()[2] == "^"
    assert get_excerpt("abc", pos=3, window=1).splitlines()[1] == "c"


def test_get_excerpt_empty() -> None:
    """get_excerpt() 应能处理空文本而不报错."""
    excerpt = get_excerpt("", pos=0)

    assert "位置" in excerpt


def test_get_excerpt_newlines() -> None:
    """换行符替换为空格, 保持标记对齐."""
    excerpt = get_excerpt("a\nb", pos=2)

    assert excerpt.splitlines()[1] == "a b"


def test_debug_records(caplog: pytest.LogCaptureFixture) -> None:
    """忽略未知字段时输出 debug 日志."""
    caplog.set_level(logging.DEBUG, logger="statecodec")

    from_value({"x": 1, "y": 2}, Point)

    assert "忽略 Point 中的未知字段 'y'" in caplog.text
