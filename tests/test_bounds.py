"""测试约束与递归推导.

覆盖 statecodec.bounds 模块:
1. 精确推导: 约束落在最窄的位置 (TypeVar 与叶子类型)
2. 粗略推导: 声明了 state / state_implements 的容器
3. 自引用类型的环检测
4. 构建期与参数化时的约束检查
"""

from typing import Any, Generic, Optional, TypeVar

import pytest

from statecodec import (
    Bound,
    ContextTypeError,
    Requirement,
    SchemaError,
    StateField,
    StateRecursionError,
    StateStruct,
    from_value,
    to_value,
)
from statecodec.bounds import bound_satisfied, infer_bounds
from statecodec.resolve import resolved_shape

K = TypeVar("K")
V = TypeVar("V")
T = TypeVar("T")


class Recorder:
    """记录调用次数的上下文."""

    def __init__(self) -> None:
        self.serialized = 0
        self.deserialized = 0


class CounterValue:
    """实现上下文协议的叶子类型."""

    def __init__(self, value: int) -> None:
        self.value = value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CounterValue) and other.value == self.value

    def __repr__(self) -> str:
        return f"CounterValue({self.value})"

    def encode_with_context(self, context: Recorder, sink: Any) -> None:
        context.serialized += 1
        sink.serialize_value(self.value)

    @classmethod
    def decode_with_context(cls, context: Recorder, source: Any) -> "CounterValue":
        context.deserialized += 1
        return cls(source.deserialize_value())


class Opaque:
    """既没有上下文协议也没有普通协议的类型."""


class Inventory(StateStruct):
    """字段类型混合容器与叶子."""

    items: list[CounterValue]
    lookup: dict[str, CounterValue] = StateField(default_factory=dict)
    note: str = StateField(stateless=True, default="")


class Pair(StateStruct, Generic[K, V]):
    """泛型记录: 键按普通协议, 值按上下文协议."""

    key: K = StateField(stateless=True)
    values: list[V]


class Inner(StateStruct):
    """嵌套的记录."""

    leaf: CounterValue


class Outer(StateStruct):
    """包含嵌套记录的记录."""

    inner: Inner
    maybe: Optional[Inner] = None


class Node(StateStruct, state=Recorder):
    """声明了上下文类型的自引用记录."""

    value: CounterValue
    children: list["Node"] = StateField(default_factory=list)


class Forest(StateStruct):
    """引用了固定上下文容器的记录."""

    roots: list[Node]


class Tagged(StateStruct, Generic[T], state=Recorder):
    """声明了上下文类型的泛型记录."""

    value: T


def test_precise_bounds_on_leaves() -> None:
    """精确推导: list / dict 展开到元素类型, 字典的键使用普通协议."""
    bounds = infer_bounds(resolved_shape(Inventory))

    assert bounds.strategy == "precise"
    assert list(bounds) == [
        Bound(CounterValue, Requirement.CONTEXT),
        Bound(str, Requirement.PLAIN),
    ]
    assert bounds.sources[Bound(CounterValue, Requirement.CONTEXT)] == "Inventory.items"


def test_precise_bounds_on_type_vars() -> None:
    """精确推导: 约束落在 TypeVar 上, 而不是 list[V] 上."""
    bounds = infer_bounds(resolved_shape(Pair))

    assert list(bounds) == [
        Bound(K, Requirement.PLAIN),
        Bound(V, Requirement.CONTEXT),
    ]
    assert str(bounds.bounds[0]) == "K: plain"


def test_precise_bounds_through_nested_records() -> None:
    """嵌套的记录被展开为其字段的约束."""
    bounds = infer_bounds(resolved_shape(Outer))

    assert list(bounds) == [Bound(CounterValue, Requirement.CONTEXT)]
    assert bounds.sources[bounds.bounds[0]] == "Outer.inner.Inner.leaf"


def test_coarse_bounds_without_parameters() -> None:
    """粗略推导不展开字段, 无泛型参数时没有约束."""
    bounds = infer_bounds(resolved_shape(Node))

    assert bounds.strategy == "coarse"
    assert len(bounds) == 0


def test_coarse_bounds_per_parameter() -> None:
    """粗略推导为每个泛型参数加一条绑定到上下文类型的约束."""
    bounds = infer_bounds(resolved_shape(Tagged))

    assert list(bounds) == [Bound(T, Requirement.CONTEXT, Recorder)]
    assert str(bounds.bounds[0]) == "T: context[Recorder]"


def test_pinned_container_is_opaque() -> None:
    """固定了上下文类型的嵌套容器只产生一条约束."""
    bounds = infer_bounds(resolved_shape(Forest))

    assert list(bounds) == [Bound(Node, Requirement.CONTEXT, Recorder)]


def test_self_reference_without_declaration() -> None:
    """未声明上下文类型的自引用记录无法生成."""
    with pytest.raises(StateRecursionError) as exc_info:

        class Tree(StateStruct):
            value: int
            children: list["Tree"] = StateField(default_factory=list)

        Tree.state_codec()

    assert exc_info.value.path == ["Tree", "Tree"]
    assert "state_implements" in str(exc_info.value)
    assert isinstance(exc_info.value, RecursionError)


def test_self_reference_round_trip() -> None:
    """声明了上下文类型的自引用记录可以往返编解码."""
    tree = Node(
        value=CounterValue(1),
        children=[Node(value=CounterValue(2)), Node(value=CounterValue(3))],
    )
    recorder = Recorder()

    data = to_value(tree, recorder)

    assert data == {
        "value": 1,
        "children": [
            {"value": 2, "children": []},
            {"value": 3, "children": []},
        ],
    }
    assert recorder.serialized == 3
    assert from_value(data, Node, recorder) == tree
    assert recorder.deserialized == 3


def test_pinned_container_checks_context() -> None:
    """上下文类型不符时拒绝编解码."""
    with pytest.raises(ContextTypeError, match="requires a context of type Recorder"):
        to_value(Node(value=CounterValue(1)), context=object())

    with pytest.raises(ContextTypeError):
        from_value({"value": 1, "children": []}, Node, context=None)


def test_unsupported_leaf_type() -> None:
    """字段类型既不支持上下文协议也不支持普通协议时报错."""
    with pytest.raises(SchemaError, match="does not support the context protocol"):

        class Broken(StateStruct):
            value: Opaque


def test_stateless_field_needs_plain_protocol() -> None:
    """普通协议字段的类型必须支持普通协议."""
    with pytest.raises(SchemaError, match="does not support the plain protocol") as exc_info:

        class Broken(StateStruct):
            value: CounterValue = StateField(stateless=True)

    assert exc_info.value.item == "Broken.value"


def test_parametrization_is_checked() -> None:
    """泛型参数化时检查实参."""
    Pair[str, CounterValue]

    with pytest.raises(SchemaError):
        Pair[CounterValue, int]

    with pytest.raises(SchemaError):
        Pair[str, Opaque]


def test_bound_satisfied() -> None:
    """上下文协议可以由普通协议兜底."""
    assert bound_satisfied(int, Requirement.CONTEXT)
    assert bound_satisfied(CounterValue, Requirement.CONTEXT)
    assert not bound_satisfied(CounterValue, Requirement.PLAIN)
    assert not bound_satisfied(Opaque, Requirement.CONTEXT)
