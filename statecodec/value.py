"""值树格式.

该模块提供把协议写入/读取为 JSON 兼容 Python 对象的参考格式实现:
`ValueSerializer` 产出 dict/list/标量组成的树, `ValueDeserializer` 读取它.

联合类型使用外部标签: 有负载的变体写为 `{"Tag": payload}`,
无负载的变体写为 `"Tag"`. 启用 `Option.VARIANT_INDEX` 时标签为索引.
"""

from collections.abc import Callable, Iterator
from typing import Any

from .config import Config
from .exceptions import DecodeError
from .protocol import (
    Deserializer,
    MapSerializer,
    SeqSerializer,
    Serializer,
    StructSerializer,
)


class PairsDict(dict[str, Any]):
    """保留原始键值对顺序 (包括重复键) 的 dict.

    用作 `json.loads` 的 `object_pairs_hook`, 使解码端能够发现重复字段.
    """

    def __init__(self, pairs: list[tuple[str, Any]]) -> None:
        super().__init__(pairs)
        self.pairs = pairs


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, dict):
        return "map"
    if isinstance(value, list | tuple):
        return "sequence"
    return type(value).__name__


class ValueSerializer(Serializer):
    """把协议写入为 Python 对象树.

    Examples:
        >>> sink = ValueSerializer()
        >>> struct = sink.serialize_struct("Point", 2)
        >>> struct.field("x").serialize_value(1)
        >>> struct.field("y").serialize_value(2)
        >>> struct.end()
        >>> sink.value
        {'x': 1, 'y': 2}
    """

    __slots__ = ("_emit", "config", "value", "written")

    def __init__(
        self,
        config: Config | None = None,
        emit: Callable[[Any], None] | None = None,
    ) -> None:
        self.config = config or Config()
        self._emit = emit
        self.value: Any = None
        self.written = False

    def _put(self, value: Any) -> None:
        self.value = value
        self.written = True
        if self._emit is not None:
            self._emit(value)

    def _tag(self, index: int, variant: str) -> str | int:
        return index if self.config.variant_index else variant

    def _child(self, emit: Callable[[Any], None]) -> "ValueSerializer":
        return ValueSerializer(self.config, emit)

    def serialize_value(self, value: Any) -> None:
        self._put(value)

    def serialize_none(self) -> None:
        self._put(None)

    def serialize_seq(self, length: int | None) -> SeqSerializer:
        return _SeqBuilder(self)

    def serialize_map(self, length: int | None) -> MapSerializer:
        return _MapBuilder(self)

    def serialize_struct(self, name: str, length: int) -> StructSerializer:
        return _StructBuilder(self)

    def serialize_unit_variant(self, name: str, index: int, variant: str) -> None:
        self._put(self._tag(index, variant))

    def serialize_variant(self, name: str, index: int, variant: str) -> Serializer:
        tag = self._tag(index, variant)
        return self._child(lambda payload: self._put({tag: payload}))


class _SeqBuilder(SeqSerializer):
    def __init__(self, parent: ValueSerializer) -> None:
        self._parent = parent
        self._items: list[Any] = []

    def element(self) -> Serializer:
        return self._parent._child(self._items.append)

    def end(self) -> None:
        self._parent._put(self._items)


class _MapBuilder(MapSerializer):
    def __init__(self, parent: ValueSerializer) -> None:
        self._parent = parent
        self._data: dict[Any, Any] = {}

    def entry(self, key: Any) -> Serializer:
        return self._parent._child(lambda value: self._data.__setitem__(key, value))

    def end(self) -> None:
        self._parent._put(self._data)


class _StructBuilder(StructSerializer):
    def __init__(self, parent: ValueSerializer) -> None:
        self._parent = parent
        self._data: dict[str, Any] = {}

    def field(self, key: str) -> Serializer:
        return self._parent._child(lambda value: self._data.__setitem__(key, value))

    def end(self) -> None:
        self._parent._put(self._data)


class ValueDeserializer(Deserializer):
    """从 Python 对象树读取协议."""

    __slots__ = ("_value", "config")

    def __init__(self, value: Any, config: Config | None = None) -> None:
        self._value = value
        self.config = config or Config()

    def _child(self, value: Any) -> "ValueDeserializer":
        return ValueDeserializer(value, self.config)

    def deserialize_value(self) -> Any:
        return self._value

    def deserialize_option(self) -> Deserializer | None:
        if self._value is None:
            return None
        return self

    def deserialize_seq(self) -> Iterator[Deserializer]:
        if not isinstance(self._value, list | tuple):
            raise DecodeError(f"expected sequence, got {_type_name(self._value)}")
        return (self._child(item) for item in self._value)

    def deserialize_map(self) -> Iterator[tuple[Any, Deserializer]]:
        if not isinstance(self._value, dict):
            raise DecodeError(f"expected map, got {_type_name(self._value)}")
        return ((key, self._child(item)) for key, item in self._value.items())

    def deserialize_struct(
        self, name: str, fields: list[str]
    ) -> Iterator[tuple[str, Deserializer]]:
        if not isinstance(self._value, dict):
            raise DecodeError(
                f"expected struct {name}, got {_type_name(self._value)}"
            )
        pairs = getattr(self._value, "pairs", None)
        if pairs is None:
            pairs = self._value.items()
        return ((key, self._child(item)) for key, item in pairs)

    def deserialize_variant(
        self, name: str, variants: list[str]
    ) -> tuple[str | int, Deserializer | None]:
        value = self._value
        if isinstance(value, str | int) and not isinstance(value, bool):
            return self._tag(value), None
        if isinstance(value, dict) and len(value) == 1:
            ((tag, payload),) = value.items()
            return self._tag(tag), self._child(payload)
        raise DecodeError(
            f"expected variant of {name}, got {_type_name(value)}"
        )

    def _tag(self, tag: Any) -> Any:
        if self.config.variant_index and isinstance(tag, str) and tag.isdigit():
            return int(tag)
        return tag

    def ignore(self) -> None:
        pass
