"""测试 statecodec API 层."""

import io
import json
from typing import Any

import pytest

from statecodec import (
    DecodeError,
    Option,
    StateField,
    StateStruct,
    ValueDeserializer,
    ValueSerializer,
    decode_with_context,
    dump,
    dumps,
    encode_with_context,
    from_value,
    load,
    loads,
    to_value,
)


class Symbols:
    """字符串驻留表: 编码时分配编号, 解码时按编号还原."""

    def __init__(self) -> None:
        self.ids: dict[str, int] = {}
        self.names: list[str] = []

    def intern(self, name: str) -> int:
        if name not in self.ids:
            self.ids[name] = len(self.names)
            self.names.append(name)
        return self.ids[name]


class Symbol:
    """通过上下文驻留的字符串."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Symbol) and other.name == self.name

    def encode_with_context(self, context: Symbols, sink: Any) -> None:
        sink.serialize_value(context.intern(self.name))

    @classmethod
    def decode_with_context(cls, context: Symbols, source: Any) -> "Symbol":
        return cls(context.names[source.deserialize_value()])


class Record(StateStruct):
    """测试用记录."""

    kind: Symbol
    tags: list[Symbol] = StateField(default_factory=list)
    title: str = StateField(rename="Title", default="")


def test_context_shared_across_fields() -> None:
    """同一个上下文对象在整棵调用树中共享."""
    symbols = Symbols()
    record = Record(kind=Symbol("user"), tags=[Symbol("admin"), Symbol("user")])

    data = to_value(record, symbols)

    assert data == {"kind": 0, "tags": [1, 0], "Title": ""}
    assert symbols.names == ["user", "admin"]
    assert from_value(data, Record, symbols) == record


def test_dumps_and_loads() -> None:
    """dumps() / loads() 经过 JSON 文本往返."""
    symbols = Symbols()
    record = Record(kind=Symbol("a"), title="hello")

    text = dumps(record, symbols)

    assert json.loads(text) == {"kind": 0, "tags": [], "Title": "hello"}
    assert loads(text, Record, symbols) == record
    assert loads(text.encode("utf-8"), Record, symbols) == record


def test_dumps_options() -> None:
    """SORT_KEYS 与 indent 选项."""
    record = Record(kind=Symbol("a"))

    text = dumps(record, Symbols(), option=Option.SORT_KEYS, indent=2)

    assert text.splitlines()[1] == '  "Title": "",'
    assert list(json.loads(text)) == ["Title", "kind", "tags"]


def test_dumps_non_ascii() -> None:
    """非 ASCII 字符原样输出."""
    record = Record(kind=Symbol("a"), title="你好")

    assert "你好" in dumps(record, Symbols())


def test_dump_and_load() -> None:
    """dump() / load() 读写文件对象."""
    symbols = Symbols()
    record = Record(kind=Symbol("x"), tags=[Symbol("y")])
    buffer = io.StringIO()

    dump(record, buffer, symbols)
    buffer.seek(0)

    assert load(buffer, Record, symbols) == record


def test_load_bytes() -> None:
    """load() 接受二进制文件对象."""
    symbols = Symbols()
    symbols.intern("x")
    buffer = io.BytesIO(b'{"kind": 0}')

    assert load(buffer, Record, symbols) == Record(kind=Symbol("x"))


def test_loads_invalid_json() -> None:
    """无效的 JSON 文本抛出 DecodeError."""
    with pytest.raises(DecodeError, match="invalid JSON") as exc_info:
        loads('{"kind": }', Record, Symbols())

    assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)


def test_encode_with_declared_type() -> None:
    """以声明类型编码任意值, 上下文传到每个元素."""
    symbols = Symbols()
    sink = ValueSerializer()

    encode_with_context(
        {"a": [Symbol("p"), Symbol("q")], "b": [Symbol("p")]},
        symbols,
        sink,
        type_=dict[str, list[Symbol]],
    )

    assert sink.value == {"a": [0, 1], "b": [0]}

    decoded = decode_with_context(
        dict[str, list[Symbol]], symbols, ValueDeserializer(sink.value)
    )
    assert decoded == {"a": [Symbol("p"), Symbol("q")], "b": [Symbol("p")]}


def test_plain_values() -> None:
    """没有上下文协议的值按普通协议编码."""
    assert to_value(1) == 1
    assert to_value([1, 2], type_=list[int]) == [1, 2]
    assert from_value(["1", "2"], list[int]) == [1, 2]
    assert from_value(None, Record | None) is None


def test_record_in_optional_position() -> None:
    """Optional 的记录按上下文协议解码."""
    symbols = Symbols()
    symbols.intern("z")

    decoded = from_value({"kind": 0}, Record | None, symbols)

    assert decoded == Record(kind=Symbol("z"))
