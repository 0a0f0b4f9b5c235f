"""普通协议适配器.

普通协议 (不带上下文的编解码) 由 pydantic `TypeAdapter` 提供:
编码时转换为 JSON 兼容的 Python 对象, 解码时从这些对象校验重建.
"""

from functools import lru_cache
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter
from pydantic.errors import PydanticSchemaGenerationError

from .protocol import Deserializer, Serializer

T = TypeVar("T")


class PlainAdapter(Generic[T]):
    """普通协议适配器.

    类似于 `pydantic.TypeAdapter`, 但写入/读取的是格式协议而不是 Python 对象.

    Examples:
        >>> adapter = PlainAdapter.for_type(list[int])
        >>> adapter.to_value([1, 2, 3])
        [1, 2, 3]
    """

    def __init__(self, type_: type[T] | Any):
        """初始化普通协议适配器.

        Args:
            type_: 目标类型 (如 int, list[int], BaseModel 子类).

        Raises:
            PydanticSchemaGenerationError: pydantic 无法为该类型生成 schema.
        """
        self._type = type_
        self._pydantic_adapter = TypeAdapter(type_)

    @classmethod
    def for_type(cls, type_: Any) -> "PlainAdapter[Any]":
        """返回缓存的适配器实例."""
        try:
            return _cached_adapter(type_)
        except TypeError:
            # 不可哈希的类型注解 (如带字典元数据的 Annotated)
            return cls(type_)

    def to_value(self, value: T) -> Any:
        """转换为 JSON 兼容的 Python 对象."""
        return self._pydantic_adapter.dump_python(value, mode="json", by_alias=True)

    def from_value(self, data: Any) -> T:
        """从 JSON 兼容的 Python 对象校验重建."""
        return self._pydantic_adapter.validate_python(data)

    def encode(self, value: T, sink: Serializer) -> None:
        """按普通协议写入."""
        sink.serialize_value(self.to_value(value))

    def decode(self, source: Deserializer) -> T:
        """按普通协议读取."""
        return self.from_value(source.deserialize_value())


@lru_cache(maxsize=512)
def _cached_adapter(type_: Any) -> PlainAdapter[Any]:
    return PlainAdapter(type_)


def supports_plain(type_: Any) -> bool:
    """pydantic 是否能为该类型提供普通协议."""
    try:
        PlainAdapter.for_type(type_)
    except PydanticSchemaGenerationError:
        return False
    return True
