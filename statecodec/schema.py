"""结构描述模型.

把一个 `StateStruct` / `StateUnion` 的声明及其原始注解 (类关键字参数、
`StateField` 选项) 转换为 `TypeShape`. 这里只做结构上的检查,
模式优先级与 wire key 的决议在 `statecodec.resolve` 中完成.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from pydantic.fields import FieldInfo

from .exceptions import SchemaError
from .protocol import is_codec

FIELD_OPTIONS = frozenset({"stateless", "stateful", "rename", "skip", "codec"})
CONTAINER_OPTIONS = frozenset(
    {"stateless", "stateful", "state", "state_implements", "transparent"}
)
VARIANT_OPTIONS = frozenset({"stateless", "stateful", "rename", "style"})
STYLES = ("named", "tuple")


class Mode(Enum):
    """字段使用的协议."""

    STATEFUL = "stateful"
    STATELESS = "stateless"


class Omission(Enum):
    """字段在线上的存在方式."""

    INCLUDE = "include"
    SKIP_WITH_DEFAULT = "skip"


@dataclass(frozen=True)
class ExplicitContextType:
    """`state=T`: 固定容器的上下文类型."""

    type: Any

    @property
    def target(self) -> Any:
        return self.type

    def __str__(self) -> str:
        return f"state={_type_name(self.type)}"


@dataclass(frozen=True)
class ExplicitCapability:
    """`state_implements=C`: 上下文必须满足能力 C."""

    capability: Any

    @property
    def target(self) -> Any:
        return self.capability

    def __str__(self) -> str:
        return f"state_implements={_type_name(self.capability)}"


RecursionMarker = Union[ExplicitContextType, ExplicitCapability]

# 注解的原始形式: 类关键字参数或 StateField 选项
RawOptions = dict[str, Any]


@dataclass(frozen=True)
class FieldSpec:
    """一个字段的声明及其字段级注解 (尚未决议)."""

    declared_name: str
    declared_type: Any
    mode: Mode | None = None
    rename: str | None = None
    skip: bool = False
    codec: Any = None
    field_info: FieldInfo | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ContainerSpec:
    """容器级注解."""

    mode: Mode | None = None
    marker: RecursionMarker | None = None
    transparent: bool = False


@dataclass(frozen=True)
class VariantSpec:
    """联合类型中一个变体的声明."""

    name: str
    cls: type
    fields: tuple[FieldSpec, ...]
    style: str = "named"
    mode: Mode | None = None
    rename: str | None = None

    @property
    def unit(self) -> bool:
        return not self.fields


@dataclass(frozen=True)
class RecordShape:
    """带命名字段的记录."""

    cls: type
    name: str
    fields: tuple[FieldSpec, ...]
    container: ContainerSpec
    parameters: tuple[Any, ...] = ()


@dataclass(frozen=True)
class UnionShape:
    """带标签的联合类型."""

    cls: type
    name: str
    variants: tuple[VariantSpec, ...]
    container: ContainerSpec
    parameters: tuple[Any, ...] = ()


TypeShape = Union[RecordShape, UnionShape]


def _type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or repr(tp)


def _annotation_text(key: str, value: Any) -> str:
    return f"{key}={value!r}"


def _check_keys(options: RawOptions, allowed: frozenset[str], item: str) -> None:
    for key, value in options.items():
        if key not in allowed:
            raise SchemaError(
                f"unsupported option {key!r}",
                item=item,
                annotation=_annotation_text(key, value),
            )


def _check_flag(options: RawOptions, key: str, item: str) -> bool:
    value = options.get(key, False)
    if not isinstance(value, bool):
        raise SchemaError(
            f"option {key!r} must be a bool",
            item=item,
            annotation=_annotation_text(key, value),
        )
    return value


def parse_mode(options: RawOptions, item: str) -> Mode | None:
    """解析 `stateless` / `stateful` 开关, 未声明时返回 None."""
    stateless = _check_flag(options, "stateless", item)
    stateful = _check_flag(options, "stateful", item)
    if stateless and stateful:
        raise SchemaError(
            "'stateless' and 'stateful' are mutually exclusive",
            item=item,
            annotation="stateless=True, stateful=True",
        )
    if stateless:
        return Mode.STATELESS
    if stateful:
        return Mode.STATEFUL
    return None


def _parse_rename(options: RawOptions, item: str) -> str | None:
    if "rename" not in options:
        return None
    value = options["rename"]
    if not isinstance(value, str) or not value:
        raise SchemaError(
            "option 'rename' must be a non-empty string",
            item=item,
            annotation=_annotation_text("rename", value),
        )
    return value


def _check_capability(value: Any, item: str) -> None:
    if not isinstance(value, type):
        raise SchemaError(
            "option 'state_implements' must be a class or a runtime checkable Protocol",
            item=item,
            annotation=_annotation_text("state_implements", value),
        )
    if getattr(value, "_is_protocol", False) and not getattr(
        value, "_is_runtime_protocol", False
    ):
        raise SchemaError(
            "Protocol capabilities must be decorated with @runtime_checkable",
            item=item,
            annotation=_annotation_text("state_implements", value),
        )


def parse_container_options(options: RawOptions, item: str) -> ContainerSpec:
    """解析容器级注解."""
    _check_keys(options, CONTAINER_OPTIONS, item)
    mode = parse_mode(options, item)
    transparent = _check_flag(options, "transparent", item)

    marker: RecursionMarker | None = None
    if "state" in options and "state_implements" in options:
        raise SchemaError(
            "'state' cannot be combined with 'state_implements'",
            item=item,
            annotation=(
                f"{_annotation_text('state', options['state'])}, "
                f"{_annotation_text('state_implements', options['state_implements'])}"
            ),
        )
    if "state" in options:
        state = options["state"]
        if not isinstance(state, type):
            raise SchemaError(
                "option 'state' must name a class",
                item=item,
                annotation=_annotation_text("state", state),
            )
        marker = ExplicitContextType(state)
    elif "state_implements" in options:
        capability = options["state_implements"]
        _check_capability(capability, item)
        marker = ExplicitCapability(capability)

    return ContainerSpec(mode=mode, marker=marker, transparent=transparent)


def parse_variant_options(
    options: RawOptions, item: str
) -> tuple[Mode | None, str | None, str]:
    """解析变体级注解, 返回 (模式, 标签重命名, 负载风格)."""
    for key in ("state", "state_implements", "transparent"):
        if key in options:
            raise SchemaError(
                f"option {key!r} must be declared on the union, not on a variant",
                item=item,
                annotation=_annotation_text(key, options[key]),
            )
    _check_keys(options, VARIANT_OPTIONS, item)
    style = options.get("style", "named")
    if style not in STYLES:
        raise SchemaError(
            f"option 'style' must be one of {STYLES!r}",
            item=item,
            annotation=_annotation_text("style", style),
        )
    return parse_mode(options, item), _parse_rename(options, item), style


def field_options(field_info: FieldInfo) -> RawOptions:
    """取出 `StateField` 存放在 json_schema_extra 中的原始选项."""
    extra = field_info.json_schema_extra
    if not isinstance(extra, dict):
        return {}
    options = extra.get("state")
    if options is None:
        return {}
    if not isinstance(options, dict):
        raise SchemaError(
            "field options must be a mapping", annotation=repr(options)
        )
    return options


def parse_field(name: str, field_info: FieldInfo) -> FieldSpec:
    """解析一个字段的声明."""
    options = field_options(field_info)
    _check_keys(options, FIELD_OPTIONS, name)
    mode = parse_mode(options, name)
    rename = _parse_rename(options, name)
    skip = _check_flag(options, "skip", name)

    codec = options.get("codec")
    if codec is not None and not is_codec(codec):
        raise SchemaError(
            "option 'codec' must provide encode_with_context and decode_with_context",
            item=name,
            annotation=_annotation_text("codec", codec),
        )

    return FieldSpec(
        declared_name=name,
        declared_type=field_info.annotation,
        mode=mode,
        rename=rename,
        skip=skip,
        codec=codec,
        field_info=field_info,
    )


def field_specs(cls: Any) -> tuple[FieldSpec, ...]:
    """按声明顺序解析模型的所有字段."""
    return tuple(parse_field(name, info) for name, info in cls.model_fields.items())


def type_parameters(cls: Any) -> tuple[Any, ...]:
    """容器自身仍未绑定的泛型参数."""
    metadata = getattr(cls, "__pydantic_generic_metadata__", None) or {}
    return tuple(metadata.get("parameters") or ())


def build_shape(cls: Any) -> TypeShape:
    """从类声明构建 `TypeShape`.

    Args:
        cls: `StateStruct` 子类 (记录) 或 `StateUnion` 的直接子类 (联合根).

    Returns:
        TypeShape: 记录或联合的结构描述.

    Raises:
        SchemaError: 注解格式错误.
    """
    name = cls.__name__
    container = parse_container_options(dict(cls.__state_options__), name)
    parameters = type_parameters(cls)

    if cls.__state_kind__ == "union":
        if container.transparent:
            raise SchemaError(
                "option 'transparent' is not supported on unions",
                item=name,
                annotation="transparent=True",
            )
        variants = []
        for variant in cls.__state_variants__:
            mode, rename, style = parse_variant_options(
                dict(variant.__state_options__), variant.__name__
            )
            variants.append(
                VariantSpec(
                    name=variant.__name__,
                    cls=variant,
                    fields=field_specs(variant),
                    style=style,
                    mode=mode,
                    rename=rename,
                )
            )
        return UnionShape(cls, name, tuple(variants), container, parameters)

    return RecordShape(cls, name, field_specs(cls), container, parameters)


def state_container(tp: Any) -> Any:
    """如果 `tp` 是生成协议的容器类, 返回其容器 (变体归属到联合根), 否则返回 None."""
    if not isinstance(tp, type):
        return None
    kind = getattr(tp, "__state_kind__", None)
    if kind is None:
        return None
    if kind == "variant":
        return tp.__state_union__
    return tp
