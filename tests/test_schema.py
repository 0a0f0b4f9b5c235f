"""测试结构描述模型.

覆盖 statecodec.schema 模块:
1. 类声明到 RecordShape / UnionShape 的转换
2. 容器级、变体级、字段级注解的格式检查
"""

from typing import Protocol, runtime_checkable

import pytest

from statecodec import SchemaError, StateField, StateStruct, StateUnion
from statecodec.schema import (
    ExplicitCapability,
    ExplicitContextType,
    Mode,
    RecordShape,
    UnionShape,
    build_shape,
)


class Session:
    """测试用上下文."""


@runtime_checkable
class HasSession(Protocol):
    """可运行时检查的能力."""

    def session_id(self) -> int: ...


class NotCheckable(Protocol):
    """不可运行时检查的能力."""

    def session_id(self) -> int: ...


class Point(StateStruct, stateless=True):
    """简单记录."""

    x: int
    y: int = StateField(rename="Y", stateful=True)


class Pinned(StateStruct, state=Session):
    """固定上下文类型的记录."""

    value: int


class Capable(StateStruct, state_implements=HasSession):
    """声明能力的记录."""

    value: int


class Event(StateUnion):
    """测试用联合."""


class Started(Event, stateless=True):
    """第一个变体."""

    at: int


class Stopped(Event, rename="stop"):
    """第二个变体 (无负载)."""


def test_build_record_shape() -> None:
    """记录应按声明顺序产出字段, 并保留原始注解."""
    shape = build_shape(Point)

    assert isinstance(shape, RecordShape)
    assert shape.name == "Point"
    assert shape.container.mode is Mode.STATELESS
    assert shape.container.marker is None
    assert [f.declared_name for f in shape.fields] == ["x", "y"]
    assert shape.fields[0].mode is None
    assert shape.fields[1].mode is Mode.STATEFUL
    assert shape.fields[1].rename == "Y"


def test_build_union_shape() -> None:
    """联合的变体应按定义顺序排列."""
    shape = build_shape(Event)

    assert isinstance(shape, UnionShape)
    assert [v.name for v in shape.variants] == ["Started", "Stopped"]
    assert shape.variants[0].mode is Mode.STATELESS
    assert shape.variants[1].rename == "stop"
    assert shape.variants[1].unit


def test_recursion_markers() -> None:
    """state / state_implements 应转换为对应的标记."""
    assert build_shape(Pinned).container.marker == ExplicitContextType(Session)
    assert build_shape(Capable).container.marker == ExplicitCapability(HasSession)
    assert str(build_shape(Pinned).container.marker) == "state=Session"


def test_field_mode_conflict() -> None:
    """字段同时声明 stateless 与 stateful 应报错."""
    with pytest.raises(SchemaError, match="mutually exclusive") as exc_info:

        class Broken(StateStruct):
            value: int = StateField(stateless=True, stateful=True)

    assert exc_info.value.item == "value"


def test_non_bool_flag() -> None:
    """开关选项必须是 bool."""
    with pytest.raises(SchemaError, match="must be a bool"):

        class Broken(StateStruct):
            value: int = StateField(skip="yes")


def test_empty_rename() -> None:
    """rename 不能为空字符串."""
    with pytest.raises(SchemaError, match="non-empty string") as exc_info:

        class Broken(StateStruct):
            value: int = StateField(rename="")

    assert "rename=''" in str(exc_info.value)


def test_container_mode_conflict() -> None:
    """容器同时声明 stateless 与 stateful 应报错."""
    with pytest.raises(SchemaError, match="mutually exclusive"):

        class Broken(StateStruct, stateless=True, stateful=True):
            value: int


def test_record_rejects_variant_options() -> None:
    """记录不接受变体级注解."""
    with pytest.raises(SchemaError, match="unsupported option 'rename'"):

        class Broken(StateStruct, rename="other"):
            value: int


def test_state_with_state_implements() -> None:
    """state 与 state_implements 互斥."""
    with pytest.raises(SchemaError, match="cannot be combined"):

        class Broken(StateStruct, state=Session, state_implements=HasSession):
            value: int


def test_capability_must_be_class() -> None:
    """state_implements 必须是类."""
    with pytest.raises(SchemaError, match="must be a class"):

        class Broken(StateStruct, state_implements=42):
            value: int


def test_capability_protocol_must_be_runtime_checkable() -> None:
    """Protocol 能力必须可运行时检查."""
    with pytest.raises(SchemaError, match="runtime_checkable"):

        class Broken(StateStruct, state_implements=NotCheckable):
            value: int


def test_codec_must_provide_operations() -> None:
    """codec 对象必须提供两个操作."""
    with pytest.raises(SchemaError, match="codec"):

        class Broken(StateStruct):
            value: int = StateField(codec=object())


def test_variant_rejects_container_options() -> None:
    """变体上声明 state 应报错, 且不会注册到联合中."""
    with pytest.raises(SchemaError, match="must be declared on the union"):

        class Broken(Event, state=Session):
            value: int

    assert [v.__name__ for v in Event.__state_variants__] == ["Started", "Stopped"]


def test_variant_style() -> None:
    """style 只能是 named 或 tuple."""
    with pytest.raises(SchemaError, match="style"):

        class Broken(Event, style="diagonal"):
            value: int


def test_transparent_union() -> None:
    """联合不支持 transparent."""

    class Wrapped(StateUnion, transparent=True):
        pass

    with pytest.raises(SchemaError, match="transparent"):

        class Only(Wrapped):
            value: int


def test_subclassing_variant() -> None:
    """变体不能再被继承."""
    with pytest.raises(SchemaError, match="directly"):

        class Restarted(Started):
            pass


def test_state_must_be_class() -> None:
    """state 必须是类."""
    with pytest.raises(SchemaError, match="must name a class"):

        class Broken(StateStruct, state="Session"):
            value: int
