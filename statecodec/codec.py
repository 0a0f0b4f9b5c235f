"""操作生成.

为每个容器生成两个操作: `encode(value, context, sink)` 与
`decode(context, source)`. 每个字段在构建期就选定了编解码闭包
(上下文协议或普通协议), 运行时只做直接调用.
"""

import collections.abc
import contextlib
import types as stdlib_types
from collections.abc import Callable
from typing import Annotated, Any, TypeVar, Union, get_args, get_origin

from pydantic.errors import PydanticSchemaGenerationError

from .bounds import (
    MAPPING_ORIGINS,
    BoundSet,
    check_bounds,
    check_parameters,
    infer_bounds,
    type_repr,
)
from .exceptions import (
    ContextTypeError,
    DecodeError,
    DuplicateFieldError,
    EncodeError,
    MissingFieldError,
    SchemaError,
    StateError,
    UnknownFieldError,
    UnknownVariantError,
)
from .log import logger
from .plain import PlainAdapter
from .protocol import Deserializer, Serializer, supports_context
from .resolve import ResolvedField, ResolvedShape, ResolvedVariant, resolved_shape
from .schema import Mode

Encoder = Callable[[Any, Any, Serializer], None]
Decoder = Callable[[Any, Deserializer], Any]


@contextlib.contextmanager
def located(key: str | int, error_cls: type[EncodeError] | type[DecodeError]):
    """把字段内部的失败标记上字段的 wire key 后继续向上抛出."""
    try:
        yield
    except (EncodeError, DecodeError) as e:
        e.loc.insert(0, key)
        raise
    except StateError:
        raise
    except Exception as e:
        raise error_cls(f"{type(e).__name__}: {e}", loc=[key]) from e


# --- 类型驱动的编解码闭包 ---


def plain_encoder(tp: Any) -> Encoder:
    """普通协议编码闭包."""
    adapter = PlainAdapter.for_type(Any if isinstance(tp, TypeVar) else tp)

    def encode(value: Any, context: Any, sink: Serializer) -> None:
        adapter.encode(value, sink)

    return encode


def plain_decoder(tp: Any) -> Decoder:
    """普通协议解码闭包."""
    adapter = PlainAdapter.for_type(Any if isinstance(tp, TypeVar) else tp)

    def decode(context: Any, source: Deserializer) -> Any:
        return adapter.decode(source)

    return decode


def _encode_dynamic(value: Any, context: Any, sink: Serializer) -> None:
    # 声明类型为 Any 或未绑定的 TypeVar 时只能按普通协议解码
    if supports_context(type(value)):
        name = type(value).__name__
        raise EncodeError(
            f"{name} uses the context protocol but its declared type cannot "
            f"decode it; parametrize the container (e.g. Box[{name}]) "
            f"or annotate the concrete type"
        )
    if value is None:
        sink.serialize_none()
    else:
        PlainAdapter.for_type(type(value)).encode(value, sink)


def _decode_dynamic(context: Any, source: Deserializer) -> Any:
    return source.deserialize_value()


def _strip(tp: Any) -> Any:
    while get_origin(tp) is Annotated:
        tp = get_args(tp)[0]
    return tp


def _optional_inner(tp: Any) -> Any:
    args = [a for a in get_args(tp) if a is not type(None)]
    if len(args) == 1 and len(get_args(tp)) == 2:
        return args[0]
    return None


def _has_context(tp: Any) -> bool:
    """类型 (或其任意嵌套参数) 是否实现了上下文协议."""
    tp = _strip(tp)
    if supports_context(tp):
        return True
    return any(_has_context(arg) for arg in get_args(tp) if arg is not Ellipsis)


def _plain_union(tp: Any) -> Any:
    """非 Optional 的联合只能整体按普通协议编解码.

    Raises:
        SchemaError: 某个成员需要上下文协议.
    """
    if any(_has_context(arg) for arg in get_args(tp)):
        raise SchemaError(
            "stateful positions cannot hold a union with context-threaded members; "
            "mark the field stateless=True or give it a codec",
            annotation=type_repr(tp),
        )
    return tp


def context_encoder(tp: Any) -> Encoder:
    """上下文协议编码闭包.

    沿 `list` / `tuple` / `set` / `dict` / `Optional` 展开,
    把上下文传到每个元素; 实现了上下文协议的类型直接调用其方法,
    其余类型由普通协议兜底.
    """
    tp = _strip(tp)
    if tp is Any or isinstance(tp, TypeVar):
        return _encode_dynamic

    origin = get_origin(tp)
    args = get_args(tp)

    if origin is Union or origin is stdlib_types.UnionType:
        inner_tp = _optional_inner(tp)
        if inner_tp is None:
            return plain_encoder(_plain_union(tp))
        inner = context_encoder(inner_tp)

        def encode_optional(value: Any, context: Any, sink: Serializer) -> None:
            if value is None:
                sink.serialize_none()
            else:
                inner(value, context, sink)

        return encode_optional

    if origin is tuple and args and args[-1] is not Ellipsis:
        items = [context_encoder(arg) for arg in args]

        def encode_tuple(value: Any, context: Any, sink: Serializer) -> None:
            if len(value) != len(items):
                raise EncodeError(
                    f"expected tuple of length {len(items)}, got {len(value)}"
                )
            seq = sink.serialize_seq(len(items))
            for index, (item, encode) in enumerate(zip(value, items)):
                with located(index, EncodeError):
                    encode(item, context, seq.element())
            seq.end()

        return encode_tuple

    if origin in (tuple, list, set, frozenset) or origin in (
        collections.abc.Sequence,
        collections.abc.MutableSequence,
        collections.abc.Set,
        collections.abc.MutableSet,
    ):
        element = context_encoder(args[0]) if args else _encode_dynamic

        def encode_seq(value: Any, context: Any, sink: Serializer) -> None:
            seq = sink.serialize_seq(len(value))
            for index, item in enumerate(value):
                with located(index, EncodeError):
                    element(item, context, seq.element())
            seq.end()

        return encode_seq

    if origin in MAPPING_ORIGINS:
        key_adapter = PlainAdapter.for_type(args[0] if args else Any)
        entry = context_encoder(args[1]) if args else _encode_dynamic

        def encode_map(value: Any, context: Any, sink: Serializer) -> None:
            mapping = sink.serialize_map(len(value))
            for key, item in value.items():
                wire_key = key_adapter.to_value(key)
                with located(wire_key, EncodeError):
                    entry(item, context, mapping.entry(wire_key))
            mapping.end()

        return encode_map

    if supports_context(tp):

        def encode_state(value: Any, context: Any, sink: Serializer) -> None:
            value.encode_with_context(context, sink)

        return encode_state

    return plain_encoder(tp)


def context_decoder(tp: Any) -> Decoder:
    """上下文协议解码闭包, 与 `context_encoder` 对称."""
    tp = _strip(tp)
    if tp is Any or isinstance(tp, TypeVar):
        return _decode_dynamic

    origin = get_origin(tp)
    args = get_args(tp)

    if origin is Union or origin is stdlib_types.UnionType:
        inner_tp = _optional_inner(tp)
        if inner_tp is None:
            return plain_decoder(_plain_union(tp))
        inner = context_decoder(inner_tp)

        def decode_optional(context: Any, source: Deserializer) -> Any:
            sub = source.deserialize_option()
            if sub is None:
                return None
            return inner(context, sub)

        return decode_optional

    if origin is tuple and args and args[-1] is not Ellipsis:
        items = [context_decoder(arg) for arg in args]

        def decode_tuple(context: Any, source: Deserializer) -> Any:
            result = []
            for index, sub in enumerate(source.deserialize_seq()):
                if index >= len(items):
                    raise DecodeError(
                        f"expected tuple of length {len(items)}, got more"
                    )
                with located(index, DecodeError):
                    result.append(items[index](context, sub))
            if len(result) != len(items):
                raise DecodeError(
                    f"expected tuple of length {len(items)}, got {len(result)}"
                )
            return tuple(result)

        return decode_tuple

    if origin in (tuple, list, set, frozenset) or origin in (
        collections.abc.Sequence,
        collections.abc.MutableSequence,
        collections.abc.Set,
        collections.abc.MutableSet,
    ):
        element = context_decoder(args[0]) if args else _decode_dynamic
        if origin in (set, collections.abc.Set, collections.abc.MutableSet):
            build: Callable[[list[Any]], Any] = set
        elif origin is frozenset:
            build = frozenset
        elif origin is tuple:
            build = tuple
        else:
            build = list

        def decode_seq(context: Any, source: Deserializer) -> Any:
            result = []
            for index, sub in enumerate(source.deserialize_seq()):
                with located(index, DecodeError):
                    result.append(element(context, sub))
            return build(result)

        return decode_seq

    if origin in MAPPING_ORIGINS:
        key_adapter = PlainAdapter.for_type(args[0] if args else Any)
        entry = context_decoder(args[1]) if args else _decode_dynamic

        def decode_map(context: Any, source: Deserializer) -> Any:
            result = {}
            for raw_key, sub in source.deserialize_map():
                with located(raw_key, DecodeError):
                    result[key_adapter.from_value(raw_key)] = entry(context, sub)
            return result

        return decode_map

    if supports_context(tp):

        def decode_state(context: Any, source: Deserializer) -> Any:
            return tp.decode_with_context(context, source)

        return decode_state

    return plain_decoder(tp)


# --- 字段与容器 ---


class FieldCodec:
    """一个决议后字段的编解码计划."""

    __slots__ = ("decode", "encode", "field")

    def __init__(self, field: ResolvedField, owner: str):
        self.field = field
        if field.codec is not None:
            codec = field.codec
            self.encode: Encoder = codec.encode_with_context
            self.decode: Decoder = codec.decode_with_context
            return
        item = f"{owner}.{field.declared_name}"
        try:
            if field.mode is Mode.STATEFUL:
                self.encode = context_encoder(field.declared_type)
                self.decode = context_decoder(field.declared_type)
            else:
                self.encode = plain_encoder(field.declared_type)
                self.decode = plain_decoder(field.declared_type)
        except SchemaError as e:
            if e.item is not None:
                raise
            raise SchemaError(str(e.args[0]), item=item, annotation=e.annotation) from e
        except PydanticSchemaGenerationError as e:
            raise SchemaError(
                "field type supports neither the context protocol nor the plain "
                "protocol; change the annotation or give the field a codec",
                item=item,
                annotation=type_repr(field.declared_type),
            ) from e

    @property
    def name(self) -> str:
        return self.field.declared_name

    @property
    def key(self) -> str:
        return self.field.wire_key


class FieldsCodec:
    """一组字段 (记录或变体负载) 的编解码."""

    def __init__(self, name: str, fields: tuple[ResolvedField, ...]):
        self.name = name
        self.fields = [FieldCodec(f, name) for f in fields]
        self.active = [f for f in self.fields if not f.field.skipped]
        self.skipped = [f for f in self.fields if f.field.skipped]
        self.keys = [f.key for f in self.active]
        self._by_key = {f.key: f for f in self.active}

    def encode_named(self, value: Any, context: Any, sink: Serializer) -> None:
        struct = sink.serialize_struct(self.name, len(self.active))
        for item in self.active:
            with located(item.key, EncodeError):
                item.encode(getattr(value, item.name), context, struct.field(item.key))
        struct.end()

    def encode_positional(self, value: Any, context: Any, sink: Serializer) -> None:
        if len(self.active) == 1:
            item = self.active[0]
            with located(item.key, EncodeError):
                item.encode(getattr(value, item.name), context, sink)
            return
        seq = sink.serialize_seq(len(self.active))
        for item in self.active:
            with located(item.key, EncodeError):
                item.encode(getattr(value, item.name), context, seq.element())
        seq.end()

    def decode_named(self, context: Any, source: Deserializer) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for key, sub in source.deserialize_struct(self.name, self.keys):
            item = self._by_key.get(key)
            if item is None:
                if source.config.deny_unknown_fields:
                    raise UnknownFieldError(key, self.keys)
                logger.debug("忽略 %s 中的未知字段 %r", self.name, key)
                sub.ignore()
                continue
            if item.name in values:
                raise DuplicateFieldError(key)
            with located(key, DecodeError):
                values[item.name] = item.decode(context, sub)
        return self._complete(values)

    def decode_positional(self, context: Any, source: Deserializer) -> dict[str, Any]:
        values: dict[str, Any] = {}
        if len(self.active) == 1:
            item = self.active[0]
            with located(item.key, DecodeError):
                values[item.name] = item.decode(context, source)
            return self._complete(values)

        subs = source.deserialize_seq()
        for item in self.active:
            sub = next(subs, None)
            if sub is None:
                raise MissingFieldError(item.key)
            with located(item.key, DecodeError):
                values[item.name] = item.decode(context, sub)
        if next(subs, None) is not None:
            raise DecodeError(
                f"expected {len(self.active)} elements for {self.name}, got more"
            )
        return self._complete(values)

    def _complete(self, values: dict[str, Any]) -> dict[str, Any]:
        for item in self.active:
            if item.name not in values and item.field.required:
                raise MissingFieldError(item.key)
        for item in self.skipped:
            zero = item.field.zero
            assert zero is not None
            values[item.name] = zero()
        return values


class ContainerCodec:
    """容器级操作的公共部分: 上下文检查和约束."""

    def __init__(self, resolved: ResolvedShape, bounds: BoundSet):
        self.resolved = resolved
        self.bounds = bounds
        self.name = resolved.name
        self.marker = resolved.marker

    def check_context(self, context: Any) -> None:
        """声明了 `state` / `state_implements` 的容器检查上下文类型."""
        if self.marker is None:
            return
        target = self.marker.target
        if not isinstance(context, target):
            raise ContextTypeError(
                f"{self.name} requires a context of type "
                f"{getattr(target, '__name__', target)!s}, "
                f"got {type(context).__name__}"
            )

    def encode(self, value: Any, context: Any, sink: Serializer) -> None:
        raise NotImplementedError

    def decode(self, context: Any, source: Deserializer) -> Any:
        raise NotImplementedError


class StructCodec(ContainerCodec):
    """记录的编解码操作."""

    def __init__(self, resolved: ResolvedShape, bounds: BoundSet):
        super().__init__(resolved, bounds)
        self.cls = resolved.cls
        self.transparent = resolved.transparent
        self.fields = FieldsCodec(resolved.name, resolved.fields)

    def encode(self, value: Any, context: Any, sink: Serializer) -> None:
        self.check_context(context)
        if self.transparent:
            self.fields.encode_positional(value, context, sink)
        else:
            self.fields.encode_named(value, context, sink)

    def decode(self, context: Any, source: Deserializer) -> Any:
        self.check_context(context)
        if self.transparent:
            values = self.fields.decode_positional(context, source)
        else:
            values = self.fields.decode_named(context, source)
        return self.cls.model_validate(values)


class UnionCodec(ContainerCodec):
    """联合类型的编解码操作: 先写/读标签, 再按变体的决议模式处理负载."""

    def __init__(self, resolved: ResolvedShape, bounds: BoundSet):
        super().__init__(resolved, bounds)
        self.variants = resolved.variants
        self.tags = [v.tag for v in self.variants]
        self._payloads = {v.cls: FieldsCodec(v.tag, v.fields) for v in self.variants}
        self._by_cls = {v.cls: v for v in self.variants}
        self._by_tag = {v.tag: v for v in self.variants}

    def _variant_for(self, tag: Any) -> ResolvedVariant:
        if isinstance(tag, int) and not isinstance(tag, bool):
            if 0 <= tag < len(self.variants):
                return self.variants[tag]
        elif tag in self._by_tag:
            return self._by_tag[tag]
        raise UnknownVariantError(tag, self.tags)

    def encode(self, value: Any, context: Any, sink: Serializer) -> None:
        self.check_context(context)
        variant = self._by_cls.get(type(value))
        if variant is None:
            raise EncodeError(
                f"{type(value).__name__} is not a variant of {self.name}"
            )
        if variant.unit:
            sink.serialize_unit_variant(self.name, variant.index, variant.tag)
            return
        payload = sink.serialize_variant(self.name, variant.index, variant.tag)
        fields = self._payloads[variant.cls]
        with located(variant.tag, EncodeError):
            if variant.style == "tuple":
                fields.encode_positional(value, context, payload)
            else:
                fields.encode_named(value, context, payload)

    def decode(self, context: Any, source: Deserializer) -> Any:
        self.check_context(context)
        tag, payload = source.deserialize_variant(self.name, self.tags)
        variant = self._variant_for(tag)
        if variant.unit:
            return variant.cls()
        if payload is None:
            raise DecodeError(f"variant {variant.tag!r} of {self.name} needs a payload")
        fields = self._payloads[variant.cls]
        with located(variant.tag, DecodeError):
            if variant.style == "tuple":
                values = fields.decode_positional(context, payload)
            else:
                values = fields.decode_named(context, payload)
        return variant.cls.model_validate(values)


def build_codec(cls: Any) -> ContainerCodec:
    """为容器类生成编解码操作.

    依次执行: 结构描述 -> 属性决议 -> 约束推导与检查 -> 操作生成.

    Raises:
        SchemaError: 注解或字段类型不合法.
        StateRecursionError: 自引用类型缺少 `state` / `state_implements`.
    """
    resolved = resolved_shape(cls)
    bounds = infer_bounds(resolved)
    check_bounds(bounds)

    origin = cls.__pydantic_generic_metadata__.get("origin")
    if origin is not None:
        check_parameters(cls, origin.state_codec().bounds)

    if resolved.kind == "union":
        return UnionCodec(resolved, bounds)
    return StructCodec(resolved, bounds)
