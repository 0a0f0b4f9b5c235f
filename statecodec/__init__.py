"""携带上下文的结构化编解码库.

为结构体 (`StateStruct`) 和带标签的联合 (`StateUnion`) 自动生成
`encode_with_context` / `decode_with_context` 两个操作, 把调用方持有的
上下文对象传递给每个嵌套字段自己的编解码操作.
"""

from .api import (
    decode_with_context,
    dump,
    dumps,
    encode_with_context,
    from_value,
    load,
    loads,
    to_value,
)
from .bounds import Bound, BoundSet, Requirement
from .config import Config
from .exceptions import (
    ContextTypeError,
    DecodeError,
    DuplicateFieldError,
    EncodeError,
    MissingFieldError,
    SchemaError,
    StateError,
    StateRecursionError,
    UnknownFieldError,
    UnknownVariantError,
)
from .options import Option
from .plain import PlainAdapter
from .protocol import (
    Deserializer,
    DeserializeState,
    Serializer,
    SerializeState,
)
from .schema import Mode, Omission
from .struct import StateField, StateStruct, StateUnion
from .value import ValueDeserializer, ValueSerializer

__version__ = "0.1.0"

__all__ = [
    "Bound",
    "BoundSet",
    "Config",
    "ContextTypeError",
    "DecodeError",
    "DeserializeState",
    "Deserializer",
    "DuplicateFieldError",
    "EncodeError",
    "MissingFieldError",
    "Mode",
    "Omission",
    "Option",
    "PlainAdapter",
    "Requirement",
    "SchemaError",
    "SerializeState",
    "Serializer",
    "StateError",
    "StateField",
    "StateRecursionError",
    "StateStruct",
    "StateUnion",
    "UnknownFieldError",
    "UnknownVariantError",
    "ValueDeserializer",
    "ValueSerializer",
    "__version__",
    "decode_with_context",
    "dump",
    "dumps",
    "encode_with_context",
    "from_value",
    "load",
    "loads",
    "to_value",
]
