"""测试 statecodec 命令行工具."""

import json
import re
from pathlib import Path
from typing import Any

import pytest

from statecodec import StateField, StateStruct, StateUnion

try:
    from click.testing import CliRunner

    from statecodec.__main__ import cli, describe
except ImportError:
    pytest.skip("click not installed", allow_module_level=True)


class Recorder:
    """测试用上下文."""


class Order(StateStruct, stateless=True):
    """CLI 测试用记录."""

    order_id: int = StateField(rename="id")
    note: str = StateField(stateful=True, default="")
    cache: list[int] = StateField(skip=True, default_factory=list)


class Node(StateStruct, state=Recorder):
    """CLI 测试用的自引用记录."""

    children: list["Node"] = StateField(default_factory=list)


class Shape(StateUnion):
    """CLI 测试用联合."""


class Circle(Shape, stateless=True):
    """有负载变体."""

    radius: float


class Empty(Shape, rename="empty"):
    """无负载变体."""


class NotAStruct:
    """不是 StateStruct 的类."""

    value: Any = None


TARGET = f"{__name__}:Order"


@pytest.fixture
def runner() -> CliRunner:
    """提供 Click CLI 测试运行器.

    Returns:
        CliRunner 实例.
    """
    return CliRunner()


def strip_ansi(text: str) -> str:
    """去除 ANSI 转义序列."""
    ansi_escape = re.compile(r"\x1B(?:[@-Z\-_]|\[[0-?]*[ -/]*[@-~])")
    return ansi_escape.sub("", text)


def test_describe_record() -> None:
    """describe() 应给出字段的决议结果."""
    info = describe(Order)

    assert info["kind"] == "record"
    assert info["mode"] == "stateless"
    assert info["strategy"] == "precise"
    assert [f["wire_key"] for f in info["fields"]] == ["id", "note", "cache"]
    assert [f["mode"] for f in info["fields"]] == ["stateless", "stateful", "stateless"]
    assert info["fields"][2]["omission"] == "skip"
    assert info["bounds"] == ["int: plain", "str: context"]


def test_describe_union() -> None:
    """describe() 应列出联合的变体."""
    info = describe(Shape)

    assert info["kind"] == "union"
    assert [(v["tag"], v["index"]) for v in info["variants"]] == [
        ("Circle", 0),
        ("empty", 1),
    ]
    assert info["variants"][0]["mode"] == "stateless"


def test_describe_marker() -> None:
    """声明了上下文类型的记录使用粗略推导."""
    info = describe(Node)

    assert info["marker"] == "state=Recorder"
    assert info["strategy"] == "coarse"
    assert info["bounds"] == []


def test_cli_help(runner: CliRunner) -> None:
    """--help 选项应显示帮助信息."""
    result = runner.invoke(cli, ["inspect", "--help"])

    assert result.exit_code == 0
    assert "Usage:" in result.output


def test_cli_tree(runner: CliRunner) -> None:
    """默认以树形显示字段与约束."""
    result = runner.invoke(cli, ["inspect", TARGET])

    assert result.exit_code == 0
    output = strip_ansi(result.output)
    assert "Order" in output
    assert "order_id -> 'id'" in output
    assert "[skip]" in output
    assert "Bounds (precise)" in output


def test_cli_tree_union(runner: CliRunner) -> None:
    """联合以变体分组显示."""
    result = runner.invoke(cli, ["inspect", f"{__name__}:Shape"])

    assert result.exit_code == 0
    output = strip_ansi(result.output)
    assert "[0] Circle" in output
    assert "[1] empty" in output


def test_cli_pretty(runner: CliRunner) -> None:
    """pretty 格式输出纯文本."""
    result = runner.invoke(cli, ["inspect", TARGET, "--format", "pretty"])

    assert result.exit_code == 0
    assert "order_id -> id: int [stateless]" in result.output
    assert "cache -> cache: list[int] [skip]" in result.output


def test_cli_json_output_file(runner: CliRunner) -> None:
    """json 格式保存到文件."""
    with runner.isolated_filesystem():
        result = runner.invoke(
            cli, ["inspect", TARGET, "--format", "json", "-o", "order.json"]
        )

        assert result.exit_code == 0
        data = json.loads(Path("order.json").read_text(encoding="utf-8"))

    assert data == describe(Order)


def test_cli_tree_output_file(runner: CliRunner) -> None:
    """树形输出保存到文件时不包含 ANSI 转义."""
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["inspect", TARGET, "-o", "order.txt"])

        assert result.exit_code == 0
        content = Path("order.txt").read_text(encoding="utf-8")

    assert "\x1b[" not in content
    assert "Order" in content


def test_cli_invalid_target(runner: CliRunner) -> None:
    """目标格式错误时报错."""
    result = runner.invoke(cli, ["inspect", "no_colon"])

    assert result.exit_code != 0
    assert "module:Class" in result.output


def test_cli_missing_module(runner: CliRunner) -> None:
    """目标模块不存在时报错."""
    result = runner.invoke(cli, ["inspect", "statecodec_missing_module:Order"])

    assert result.exit_code != 0


def test_cli_not_a_struct(runner: CliRunner) -> None:
    """目标不是 StateStruct 时报错."""
    result = runner.invoke(cli, ["inspect", f"{__name__}:NotAStruct"])

    assert result.exit_code != 0
    assert "不是 StateStruct" in result.output
