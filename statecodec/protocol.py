"""编解码协议.

该模块定义了核心与外部格式之间的接口:

- `Serializer` / `Deserializer`: 访问者风格的格式协议, 由具体格式实现
  (参见 `statecodec.value`).
- `SerializeState` / `DeserializeState`: 上下文传递协议, 由手写的叶子类型
  或生成的 `StateStruct` 实现.
"""

import abc
from collections.abc import Iterator
from typing import Any, Protocol, runtime_checkable

from .config import Config


class SeqSerializer(abc.ABC):
    """序列写入器."""

    @abc.abstractmethod
    def element(self) -> "Serializer":
        """返回下一个元素的写入器."""

    @abc.abstractmethod
    def end(self) -> None:
        """结束序列."""


class MapSerializer(abc.ABC):
    """映射写入器, 键总是按普通协议写入."""

    @abc.abstractmethod
    def entry(self, key: Any) -> "Serializer":
        """返回键 `key` 对应值的写入器."""

    @abc.abstractmethod
    def end(self) -> None:
        """结束映射."""


class StructSerializer(abc.ABC):
    """结构体写入器."""

    @abc.abstractmethod
    def field(self, key: str) -> "Serializer":
        """返回 wire key 为 `key` 的字段的写入器."""

    @abc.abstractmethod
    def end(self) -> None:
        """结束结构体."""


class Serializer(abc.ABC):
    """格式写入器 (sink).

    每个写入器只接收一个值: 一个普通值, 或者一个复合值的开头.
    """

    config: Config

    @abc.abstractmethod
    def serialize_value(self, value: Any) -> None:
        """写入普通协议产出的值 (JSON 兼容的 Python 对象)."""

    @abc.abstractmethod
    def serialize_none(self) -> None:
        """写入空值."""

    @abc.abstractmethod
    def serialize_seq(self, length: int | None) -> SeqSerializer:
        """开始写入序列."""

    @abc.abstractmethod
    def serialize_map(self, length: int | None) -> MapSerializer:
        """开始写入映射."""

    @abc.abstractmethod
    def serialize_struct(self, name: str, length: int) -> StructSerializer:
        """开始写入名为 `name` 的结构体, 共 `length` 个字段."""

    @abc.abstractmethod
    def serialize_unit_variant(self, name: str, index: int, variant: str) -> None:
        """写入无负载的变体."""

    @abc.abstractmethod
    def serialize_variant(self, name: str, index: int, variant: str) -> "Serializer":
        """写入变体标签, 返回负载的写入器."""


class Deserializer(abc.ABC):
    """格式读取器 (source)."""

    config: Config

    @abc.abstractmethod
    def deserialize_value(self) -> Any:
        """读取一个普通值, 交给普通协议校验."""

    @abc.abstractmethod
    def deserialize_option(self) -> "Deserializer | None":
        """读取可选值. 空值返回 None, 否则返回内部值的读取器."""

    @abc.abstractmethod
    def deserialize_seq(self) -> Iterator["Deserializer"]:
        """按顺序产出每个元素的读取器."""

    @abc.abstractmethod
    def deserialize_map(self) -> Iterator[tuple[Any, "Deserializer"]]:
        """产出 (键, 值读取器) 对."""

    @abc.abstractmethod
    def deserialize_struct(
        self, name: str, fields: list[str]
    ) -> Iterator[tuple[str, "Deserializer"]]:
        """按输入顺序产出 (wire key, 值读取器) 对."""

    @abc.abstractmethod
    def deserialize_variant(
        self, name: str, variants: list[str]
    ) -> tuple[str | int, "Deserializer | None"]:
        """读取变体标签.

        Returns:
            (标签, 负载读取器). 无负载的变体返回的读取器为 None.
            标签是名称还是索引取决于格式的约定.
        """

    def ignore(self) -> None:
        """跳过当前值."""
        self.deserialize_value()


@runtime_checkable
class SerializeState(Protocol):
    """携带上下文的序列化协议."""

    def encode_with_context(self, context: Any, sink: Serializer) -> None: ...


@runtime_checkable
class DeserializeState(Protocol):
    """携带上下文的反序列化协议 (类方法)."""

    def decode_with_context(self, context: Any, source: Deserializer) -> Any: ...


def supports_context(tp: Any) -> bool:
    """类型是否自己实现了上下文传递协议 (编码和解码两端)."""
    return (
        isinstance(tp, type)
        and callable(getattr(tp, "encode_with_context", None))
        and callable(getattr(tp, "decode_with_context", None))
    )


def is_codec(obj: Any) -> bool:
    """对象是否可以作为字段级 `codec` 使用."""
    return callable(getattr(obj, "encode_with_context", None)) and callable(
        getattr(obj, "decode_with_context", None)
    )
