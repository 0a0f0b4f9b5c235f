"""结构体定义模块."""

from typing import Any, ClassVar, TypeVar, cast

from pydantic import BaseModel, ConfigDict, Field
from pydantic_core import PydanticUndefined
from typing_extensions import Self, dataclass_transform

from .exceptions import DecodeError, SchemaError, StateError
from .options import Option

S = TypeVar("S", bound="StateStruct")

_UNSET: Any = object()

# 类关键字参数中属于本库的注解
CLASS_OPTIONS = frozenset(
    {
        "stateless",
        "stateful",
        "state",
        "state_implements",
        "transparent",
        "rename",
        "style",
    }
)


def StateField(
    default: Any = PydanticUndefined,
    *,
    rename: Any = _UNSET,
    skip: Any = _UNSET,
    stateless: Any = _UNSET,
    stateful: Any = _UNSET,
    codec: Any = _UNSET,
    default_factory: Any | None = None,
) -> Any:
    """创建带上下文编解码注解的字段配置.

    这是一个 Pydantic `Field` 的包装函数, 用于注入字段级注解.
    不需要注解的字段可以直接使用普通的类型注解和默认值.

    Args:
        default: 字段的静态默认值.
        rename: 线上使用的 wire key, 默认为字段名.
            同时作为 pydantic 的 alias, 普通协议也使用这个名字.
        skip: 是否跳过该字段. 被跳过的字段不出现在线上,
            解码时使用默认值 (或类型的零值) 构造. 不能与 `rename` 同时使用.
        stateless: 强制该字段使用普通协议 (不传递上下文).
        stateful: 强制该字段使用上下文协议.
        codec: 自定义编解码对象, 需提供 `encode_with_context(value, context, sink)`
            和 `decode_with_context(context, source)`.
        default_factory: 用于生成默认值的无参可调用对象.

    Returns:
        Any: 包含注解元数据的 Pydantic FieldInfo 对象.

    Examples:
        >>> class Event(StateStruct):
        ...     # 默认: 上下文协议, wire key 为 "id"
        ...     id: Symbol
        ...     # 线上使用 "ts"
        ...     timestamp: int = StateField(rename="ts")
        ...     # 不传递上下文
        ...     payload: dict[str, str] = StateField(stateless=True, default_factory=dict)
        ...     # 不出现在线上
        ...     cache: list[int] = StateField(skip=True, default_factory=list)
    """
    # 只记录显式给出的选项, 格式检查在类创建时进行 (以便报告字段名)
    options = {
        key: value
        for key, value in (
            ("rename", rename),
            ("skip", skip),
            ("stateless", stateless),
            ("stateful", stateful),
            ("codec", codec),
        )
        if value is not _UNSET
    }

    kwargs: dict[str, Any] = {"json_schema_extra": {"state": options}}

    if default is not PydanticUndefined:
        kwargs["default"] = default

    if default_factory is not None:
        kwargs["default_factory"] = default_factory

    if isinstance(rename, str) and rename:
        kwargs["alias"] = rename

    if skip is True:
        kwargs["exclude"] = True

    # cast call to Any to avoid type checking issues with Field return type
    return cast(Any, Field)(**kwargs)


def _union_root(bases: tuple[type, ...]) -> type | None:
    for base in bases:
        kind = getattr(base, "__state_kind__", None)
        if kind == "union":
            return base
        if kind == "variant":
            raise SchemaError(
                f"variants must subclass the union directly, not {base.__name__}",
                item=base.__name__,
            )
    return None


def _inherited_options(bases: tuple[type, ...]) -> dict[str, Any]:
    for base in bases:
        options = getattr(base, "__state_options__", None)
        if options:
            return dict(options)
    return {}


@dataclass_transform(kw_only_default=True, field_specifiers=(StateField,))
class StateStructMeta(type(BaseModel)):
    """StateStruct 的元类.

    在类创建时收集类关键字参数中的注解, 注册联合的变体,
    并在字段类型都已解析时立即生成编解码操作 (构建期错误在此抛出).
    """

    def __new__(  # noqa: D102
        mcs,
        name: str,
        bases: tuple[type, ...],
        namespace: dict[str, Any],
        **kwargs: Any,
    ):
        options = {key: kwargs.pop(key) for key in list(kwargs) if key in CLASS_OPTIONS}
        cls = super().__new__(mcs, name, bases, namespace, **kwargs)

        if namespace.get("__module__") == __name__ and name in (
            "StateStruct",
            "StateUnion",
        ):
            return cls

        cls.__state_shape__ = None
        cls.__state_codec__ = None

        origin = cls.__pydantic_generic_metadata__.get("origin")
        if origin is not None:
            # 参数化的泛型 (如 Box[int]) 沿用原始类的注解
            cls.__state_kind__ = origin.__state_kind__
            cls.__state_options__ = dict(origin.__state_options__)
            mcs._build(cls)
            return cls

        if StateUnion in bases:
            cls.__state_kind__ = "union"
            cls.__state_union__ = cls
            cls.__state_variants__ = []
            cls.__state_options__ = options
            return cls

        root = _union_root(bases)
        if root is not None:
            cls.__state_kind__ = "variant"
            cls.__state_union__ = root
            cls.__state_options__ = options
            root.__state_variants__.append(cls)
            root.__state_shape__ = None
            root.__state_codec__ = None
            try:
                mcs._build(root)
            except StateError:
                root.__state_variants__.remove(cls)
                root.__state_shape__ = None
                root.__state_codec__ = None
                raise
            return cls

        cls.__state_kind__ = "record"
        cls.__state_options__ = {**_inherited_options(bases), **options}
        mcs._build(cls)
        return cls

    @staticmethod
    def _build(cls: Any) -> None:
        members = [cls, *getattr(cls, "__state_variants__", ())]
        if not all(member.__pydantic_complete__ for member in members):
            # 存在未解析的前向引用, 推迟到首次使用时构建
            return
        from .codec import build_codec

        cls.__state_codec__ = build_codec(cls)


class StateStruct(BaseModel, metaclass=StateStructMeta):
    """携带上下文编解码的结构体基类.

    继承自 `pydantic.BaseModel`, 为子类生成 `encode_with_context` 与
    `decode_with_context` 两个操作: 每个字段按其决议模式调用自己的
    上下文协议或普通协议, 上下文对象按引用传递到整棵调用树.

    类关键字参数 (容器级注解):
        stateless: 字段默认使用普通协议.
        stateful: 字段默认使用上下文协议 (默认行为).
        state: 固定上下文类型, 约束推导改为按泛型参数的粗略推导.
            自引用类型必须声明 `state` 或 `state_implements`.
        state_implements: 上下文必须满足的能力 (类或 runtime_checkable Protocol).
        transparent: 唯一的字段直接代替结构体本身编码.

    Examples:
        >>> class Recorder:
        ...     def __init__(self):
        ...         self.count = 0
        >>> class Counter:
        ...     def __init__(self, value: int):
        ...         self.value = value
        ...     def encode_with_context(self, context, sink):
        ...         context.count += 1
        ...         sink.serialize_value(self.value)
        ...     @classmethod
        ...     def decode_with_context(cls, context, source):
        ...         context.count += 1
        ...         return cls(source.deserialize_value())
        >>> class Example(StateStruct):
        ...     first: Counter
        ...     second: Counter
        >>> recorder = Recorder()
        >>> Example(first=Counter(1), second=Counter(2)).model_dump_state(recorder)
        {'first': 1, 'second': 2}
        >>> recorder.count
        2
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    __state_kind__: ClassVar[str | None] = None
    __state_options__: ClassVar[dict[str, Any]] = {}
    __state_union__: ClassVar[Any] = None
    __state_variants__: ClassVar[Any] = ()
    __state_shape__: ClassVar[Any] = None
    __state_codec__: ClassVar[Any] = None

    @classmethod
    def state_codec(cls) -> Any:
        """返回 (必要时生成) 容器的编解码操作.

        变体共享所属联合的操作.
        """
        owner = cls.__state_union__ or cls
        codec = owner.__dict__.get("__state_codec__")
        if codec is None:
            from .codec import build_codec

            codec = build_codec(owner)
            owner.__state_codec__ = codec
        return codec

    def encode_with_context(self, context: Any, sink: Any) -> None:
        """按上下文协议写入 `sink`.

        Args:
            context: 调用方持有的上下文对象.
            sink: 格式写入器 (`statecodec.protocol.Serializer`).

        Raises:
            EncodeError: 某个字段编码失败, `loc` 为其 wire key 路径.
            ContextTypeError: 上下文不满足 `state` / `state_implements`.
        """
        type(self).state_codec().encode(self, context, sink)

    @classmethod
    def decode_with_context(cls, context: Any, source: Any) -> Self:
        """按上下文协议从 `source` 读取实例.

        Raises:
            DecodeError: 输入不符合结构 (含缺失字段、未知变体等).
            ValidationError: 字段值不满足模型校验.
        """
        value = cls.state_codec().decode(context, source)
        if not isinstance(value, cls):
            raise DecodeError(
                f"expected {cls.__name__}, got variant {type(value).__name__}"
            )
        return value

    def model_dump_state(
        self, context: Any = None, option: Option = Option.NONE
    ) -> Any:
        """编码为 JSON 兼容的 Python 对象."""
        from .api import to_value

        return to_value(self, context, option=option)

    def model_dump_state_json(
        self,
        context: Any = None,
        option: Option = Option.NONE,
        indent: int | None = None,
    ) -> str:
        """编码为 JSON 文本."""
        from .api import dumps

        return dumps(self, context, option=option, indent=indent)

    @classmethod
    def model_validate_state(
        cls: type[S],
        data: Any,
        context: Any = None,
        option: Option = Option.NONE,
    ) -> S:
        """从 JSON 文本或 JSON 兼容的 Python 对象解码.

        Args:
            data: JSON 文本 (str/bytes) 或已解析的对象.
            context: 上下文对象.
            option: 反序列化选项.

        Returns:
            S: 结构体实例.
        """
        from .api import from_value, loads

        if isinstance(data, str | bytes | bytearray):
            return loads(data, cls, context=context, option=option)
        return from_value(data, cls, context=context, option=option)


class StateUnion(StateStruct):
    """带标签联合类型的根.

    `StateUnion` 的直接子类是联合的根, 根的直接子类是变体 (按定义顺序).
    没有字段的变体是无负载变体; `style="tuple"` 的变体按位置编码.

    变体的类关键字参数 (变体级注解): `stateless`, `stateful`, `rename`, `style`.

    Examples:
        >>> class Shape(StateUnion, stateless=True):
        ...     pass
        >>> class Circle(Shape):
        ...     radius: float
        >>> class Empty(Shape):
        ...     pass
        >>> Circle(radius=1.5).model_dump_state()
        {'Circle': {'radius': 1.5}}
        >>> Empty().model_dump_state()
        'Empty'
    """
