"""属性决议.

把 `TypeShape` 中的原始注解决议为每个字段唯一确定的模式、wire key 和
省略方式. 优先级: 字段 > 变体 > 容器 > 默认 (`Mode.STATEFUL`).
"""

import types as stdlib_types
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Union, get_args, get_origin

from .exceptions import SchemaError
from .log import logger
from .schema import (
    FieldSpec,
    Mode,
    Omission,
    RecordShape,
    RecursionMarker,
    TypeShape,
    UnionShape,
    VariantSpec,
    build_shape,
)


@dataclass(frozen=True)
class ResolvedField:
    """决议后的字段."""

    declared_name: str
    wire_key: str
    declared_type: Any
    mode: Mode
    omission: Omission
    codec: Any = None
    required: bool = True
    zero: Callable[[], Any] | None = field(default=None, compare=False, repr=False)

    @property
    def skipped(self) -> bool:
        return self.omission is Omission.SKIP_WITH_DEFAULT


@dataclass(frozen=True)
class ResolvedVariant:
    """决议后的变体."""

    name: str
    tag: str
    index: int
    cls: type
    style: str
    mode: Mode
    fields: tuple[ResolvedField, ...]

    @property
    def unit(self) -> bool:
        return not self.fields

    @property
    def active_fields(self) -> tuple[ResolvedField, ...]:
        return tuple(f for f in self.fields if not f.skipped)


@dataclass(frozen=True)
class ResolvedShape:
    """决议后的容器视图, 供约束推导和操作生成使用."""

    cls: type
    name: str
    kind: str
    mode: Mode
    marker: RecursionMarker | None
    parameters: tuple[Any, ...]
    fields: tuple[ResolvedField, ...] = ()
    variants: tuple[ResolvedVariant, ...] = ()
    transparent: bool = False

    def all_fields(self) -> tuple[ResolvedField, ...]:
        """记录的字段, 或联合所有变体的字段."""
        if self.kind == "union":
            return tuple(f for v in self.variants for f in v.fields)
        return self.fields


def _zero_factory(spec: FieldSpec, owner: str) -> Callable[[], Any]:
    info = spec.field_info
    if info is not None and not info.is_required():
        return lambda: info.get_default(call_default_factory=True)

    tp = spec.declared_type
    origin = get_origin(tp)
    if origin is Union or origin is stdlib_types.UnionType:
        if type(None) in get_args(tp):
            return lambda: None
    factory = origin if isinstance(origin, type) else tp
    if isinstance(factory, type):
        try:
            factory()
        except Exception as e:
            raise SchemaError(
                f"skipped field has no default and {factory.__name__}() failed: {e}",
                item=f"{owner}.{spec.declared_name}",
                annotation="skip=True",
            ) from e
        return factory
    raise SchemaError(
        "skipped field has no default and its type has no zero-value constructor",
        item=f"{owner}.{spec.declared_name}",
        annotation="skip=True",
    )


def resolve_field(spec: FieldSpec, default_mode: Mode, owner: str) -> ResolvedField:
    """决议一个字段.

    `skip` 与 `rename` 不能同时出现: 被跳过的字段从不出现在线上,
    重命名没有意义.
    """
    if spec.skip and spec.rename is not None:
        raise SchemaError(
            "'skip' cannot be combined with 'rename'",
            item=f"{owner}.{spec.declared_name}",
            annotation=f"skip=True, rename={spec.rename!r}",
        )

    mode = spec.mode if spec.mode is not None else default_mode
    wire_key = spec.rename if spec.rename is not None else spec.declared_name

    if spec.skip:
        return ResolvedField(
            declared_name=spec.declared_name,
            wire_key=wire_key,
            declared_type=spec.declared_type,
            mode=mode,
            omission=Omission.SKIP_WITH_DEFAULT,
            required=False,
            zero=_zero_factory(spec, owner),
        )

    info = spec.field_info
    return ResolvedField(
        declared_name=spec.declared_name,
        wire_key=wire_key,
        declared_type=spec.declared_type,
        mode=mode,
        omission=Omission.INCLUDE,
        codec=spec.codec,
        required=info.is_required() if info is not None else True,
    )


def resolve_fields(
    specs: tuple[FieldSpec, ...], default_mode: Mode, owner: str
) -> tuple[ResolvedField, ...]:
    """决议一组字段并检查 wire key 唯一性."""
    resolved = tuple(resolve_field(spec, default_mode, owner) for spec in specs)

    seen: dict[str, str] = {}
    for item in resolved:
        if item.skipped:
            continue
        other = seen.get(item.wire_key)
        if other is not None:
            raise SchemaError(
                f"fields {other!r} and {item.declared_name!r} "
                f"both use wire key {item.wire_key!r}",
                item=f"{owner}.{item.declared_name}",
            )
        seen[item.wire_key] = item.declared_name
    return resolved


def _resolve_variant(
    spec: VariantSpec, index: int, container_mode: Mode
) -> ResolvedVariant:
    mode = spec.mode if spec.mode is not None else container_mode
    fields = resolve_fields(spec.fields, mode, spec.name)
    if spec.style == "tuple":
        for item in fields:
            if item.wire_key != item.declared_name:
                raise SchemaError(
                    "positional variants cannot rename fields",
                    item=f"{spec.name}.{item.declared_name}",
                    annotation=f"rename={item.wire_key!r}",
                )
    return ResolvedVariant(
        name=spec.name,
        tag=spec.rename if spec.rename is not None else spec.name,
        index=index,
        cls=spec.cls,
        style=spec.style,
        mode=mode,
        fields=fields,
    )


def resolve_shape(shape: TypeShape) -> ResolvedShape:
    """决议整个容器.

    Raises:
        SchemaError: wire key 冲突、变体标签冲突、skip 与 rename 冲突,
            或 transparent 容器的字段数不为 1.
    """
    container = shape.container
    mode = container.mode if container.mode is not None else Mode.STATEFUL

    if isinstance(shape, UnionShape):
        variants = tuple(
            _resolve_variant(spec, index, mode)
            for index, spec in enumerate(shape.variants)
        )
        tags: dict[str, str] = {}
        for variant in variants:
            if variant.tag in tags:
                raise SchemaError(
                    f"variants {tags[variant.tag]!r} and {variant.name!r} "
                    f"both use tag {variant.tag!r}",
                    item=variant.name,
                )
            tags[variant.tag] = variant.name
        logger.debug(
            "决议联合 %s: %d 个变体, 默认模式 %s", shape.name, len(variants), mode.value
        )
        return ResolvedShape(
            cls=shape.cls,
            name=shape.name,
            kind="union",
            mode=mode,
            marker=container.marker,
            parameters=shape.parameters,
            variants=variants,
        )

    assert isinstance(shape, RecordShape)
    fields = resolve_fields(shape.fields, mode, shape.name)
    if container.transparent:
        active = [f for f in fields if not f.skipped]
        if len(active) != 1:
            raise SchemaError(
                f"transparent structs must have exactly one field, got {len(active)}",
                item=shape.name,
                annotation="transparent=True",
            )
    logger.debug(
        "决议结构体 %s: %s",
        shape.name,
        ", ".join(f"{f.declared_name}->{f.wire_key}:{f.mode.value}" for f in fields),
    )
    return ResolvedShape(
        cls=shape.cls,
        name=shape.name,
        kind="record",
        mode=mode,
        marker=container.marker,
        parameters=shape.parameters,
        fields=fields,
        transparent=container.transparent,
    )


def resolved_shape(cls: Any) -> ResolvedShape:
    """返回容器类的决议视图, 结果缓存在类上."""
    cached = cls.__dict__.get("__state_shape__")
    if cached is None:
        ensure_complete(cls)
        cached = resolve_shape(build_shape(cls))
        cls.__state_shape__ = cached
    return cached


def ensure_complete(cls: Any) -> None:
    """确保 pydantic 已解析容器 (及其所有变体) 的前向引用."""
    members = [cls, *getattr(cls, "__state_variants__", ())]
    for member in members:
        if member.__pydantic_complete__:
            continue
        try:
            member.model_rebuild(raise_errors=True)
        except Exception as e:
            raise SchemaError(
                f"cannot resolve field types: {e}", item=member.__name__
            ) from e
