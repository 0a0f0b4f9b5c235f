"""statecodec API 模块.

提供携带上下文的编解码入口 `encode_with_context` / `decode_with_context`,
以及基于值树格式和 JSON 文本的 `to_value`, `from_value`, `dumps`, `loads`,
`dump`, `load`.
"""

import json
from typing import IO, Any, TypeVar, overload

from .codec import context_decoder, context_encoder
from .config import Config
from .exceptions import DecodeError
from .log import get_excerpt, logger
from .options import Option
from .protocol import Deserializer, Serializer
from .value import PairsDict, ValueDeserializer, ValueSerializer

T = TypeVar("T")


def encode_with_context(
    value: Any, context: Any, sink: Serializer, type_: Any = None
) -> None:
    """把任意值按上下文协议写入 `sink`.

    Args:
        value: 要编码的值.
        context: 调用方持有的上下文对象, 按引用传给每个字段.
        sink: 格式写入器.
        type_: 声明类型 (如 `list[Model]`), 默认使用 `type(value)`.
    """
    encoder = context_encoder(type_ if type_ is not None else type(value))
    encoder(value, context, sink)


def decode_with_context(type_: type[T] | Any, context: Any, source: Deserializer) -> T:
    """按上下文协议从 `source` 读取 `type_` 的值."""
    return context_decoder(type_)(context, source)


def to_value(
    obj: Any,
    context: Any = None,
    option: Option = Option.NONE,
    type_: Any = None,
) -> Any:
    """编码为 JSON 兼容的 Python 对象.

    Examples:
        >>> from statecodec import StateStruct
        >>> class Point(StateStruct):
        ...     x: int
        ...     y: int
        >>> to_value(Point(x=1, y=2))
        {'x': 1, 'y': 2}
    """
    sink = ValueSerializer(Config.from_params(option=option))
    encode_with_context(obj, context, sink, type_)
    return sink.value


def from_value(
    data: Any,
    target: type[T] | Any,
    context: Any = None,
    option: Option = Option.NONE,
) -> T:
    """从 JSON 兼容的 Python 对象解码为 `target`."""
    source = ValueDeserializer(data, Config.from_params(option=option))
    return decode_with_context(target, context, source)


def dumps(
    obj: Any,
    context: Any = None,
    option: Option = Option.NONE,
    indent: int | None = None,
    type_: Any = None,
) -> str:
    """序列化对象为 JSON 文本.

    Args:
        obj: 要序列化的对象, 通常是 `StateStruct` 实例.
        context: 上下文对象, 会传给每个上下文模式字段的编码操作.
        option: 序列化选项 (如 `Option.VARIANT_INDEX`).
        indent: JSON 缩进.
        type_: 声明类型, 默认使用 `type(obj)`.

    Returns:
        str: JSON 文本.
    """
    config = Config.from_params(option=option, indent=indent)
    sink = ValueSerializer(config)
    encode_with_context(obj, context, sink, type_)
    return json.dumps(
        sink.value,
        ensure_ascii=False,
        indent=config.indent,
        sort_keys=config.sort_keys,
    )


@overload
def loads(
    data: str | bytes | bytearray,
    target: type[T],
    context: Any = None,
    option: Option = Option.NONE,
) -> T: ...


@overload
def loads(
    data: str | bytes | bytearray,
    target: Any,
    context: Any = None,
    option: Option = Option.NONE,
) -> Any: ...


def loads(
    data: str | bytes | bytearray,
    target: Any,
    context: Any = None,
    option: Option = Option.NONE,
) -> Any:
    """从 JSON 文本反序列化.

    Args:
        data: JSON 文本.
        target: 目标类型.
        context: 上下文对象.
        option: 反序列化选项.

    Returns:
        目标类型的实例.

    Raises:
        DecodeError: JSON 文本格式错误, 或结构与目标类型不符.
    """
    text = data.decode("utf-8") if isinstance(data, bytes | bytearray) else data
    try:
        raw = json.loads(text, object_pairs_hook=PairsDict)
    except json.JSONDecodeError as e:
        logger.debug("JSON 解析失败: %s\n%s", e.msg, get_excerpt(text, e.pos))
        raise DecodeError(f"invalid JSON: {e.msg} at position {e.pos}") from e
    return from_value(raw, target, context, option)


def dump(
    obj: Any,
    fp: IO[str],
    context: Any = None,
    option: Option = Option.NONE,
    indent: int | None = None,
) -> None:
    """序列化对象并写入文件对象."""
    fp.write(dumps(obj, context=context, option=option, indent=indent))


def load(
    fp: IO[str] | IO[bytes],
    target: Any,
    context: Any = None,
    option: Option = Option.NONE,
) -> Any:
    """从文件对象读取 JSON 并反序列化."""
    return loads(fp.read(), target, context=context, option=option)
