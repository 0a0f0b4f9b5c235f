"""约束与递归推导.

为生成的操作推导所需的约束:

- 精确推导 (未声明 `state` / `state_implements`): 沿每个字段的声明类型
  展开, 在最窄的位置加约束 (`list[T]` 约束的是 `T` 而不是 `list[T]`).
  展开时遇到正在展开的容器即为环, 抛出 `StateRecursionError`.
- 粗略推导 (声明了 `state` / `state_implements`): 不展开字段,
  为容器的每个泛型参数加一条绑定到声明上下文的约束.
"""

import collections.abc
import types as stdlib_types
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, TypeVar, Union, get_args, get_origin

from .exceptions import SchemaError, StateRecursionError
from .log import logger
from .plain import supports_plain
from .protocol import supports_context
from .resolve import ResolvedShape, resolved_shape
from .schema import Mode, state_container

SEQUENCE_ORIGINS = (
    list,
    set,
    frozenset,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Set,
    collections.abc.MutableSet,
)
MAPPING_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


class Requirement(Enum):
    """约束要求的协议."""

    CONTEXT = "context"
    PLAIN = "plain"


@dataclass(frozen=True)
class Bound:
    """一条约束: `subject` 必须支持 `requirement` 协议.

    Attributes:
        subject: TypeVar 或具体类型.
        requirement: 所需协议.
        context: 上下文类型/能力 (None 表示容器的任意上下文).
    """

    subject: Any
    requirement: Requirement
    context: Any = None

    def __str__(self) -> str:
        text = f"{type_repr(self.subject)}: {self.requirement.value}"
        if self.context is not None:
            text += f"[{type_repr(self.context)}]"
        return text


@dataclass(frozen=True)
class BoundSet:
    """约束集合 (有序, 已去重)."""

    strategy: str
    bounds: tuple[Bound, ...] = ()
    sources: dict[Bound, str] = field(default_factory=dict, compare=False)

    def __iter__(self):
        return iter(self.bounds)

    def __len__(self) -> int:
        return len(self.bounds)


def type_repr(tp: Any) -> str:
    """类型的简短文本表示."""
    if isinstance(tp, TypeVar):
        return tp.__name__
    if isinstance(tp, type) and not get_args(tp):
        return tp.__name__
    return repr(tp).replace("typing.", "")


def _strip_annotated(tp: Any) -> Any:
    while get_origin(tp) is Annotated:
        tp = get_args(tp)[0]
    return tp


def _type_vars(tp: Any) -> list[Any]:
    found: list[Any] = []
    stack = [tp]
    while stack:
        current = stack.pop()
        if isinstance(current, TypeVar):
            if current not in found:
                found.append(current)
            continue
        params = getattr(current, "__pydantic_generic_metadata__", None)
        if params:
            stack.extend(reversed(params.get("parameters") or ()))
        stack.extend(reversed(get_args(current)))
    return found


class _Collector:
    """逐字段类型展开, 带显式的访问栈检测环."""

    def __init__(self, root: Any):
        self._visiting: list[Any] = [root]
        self.bounds: dict[Bound, str] = {}

    def add(self, bound: Bound, source: str) -> None:
        self.bounds.setdefault(bound, source)

    def expand_shape(self, resolved: ResolvedShape, trail: list[str]) -> None:
        for item in resolved.all_fields():
            if item.skipped or item.codec is not None:
                continue
            self.expand(item.declared_type, item.mode, [*trail, item.wire_key])

    def expand(self, tp: Any, mode: Mode, trail: list[str]) -> None:
        source = ".".join(trail)
        tp = _strip_annotated(tp)
        if tp is Any or tp is type(None):
            return

        if mode is Mode.STATELESS:
            params = _type_vars(tp)
            if params:
                for param in params:
                    self.add(Bound(param, Requirement.PLAIN), source)
            else:
                self.add(Bound(tp, Requirement.PLAIN), source)
            return

        if isinstance(tp, TypeVar):
            self.add(Bound(tp, Requirement.CONTEXT), source)
            return

        origin = get_origin(tp)
        args = get_args(tp)
        if origin is Union or origin is stdlib_types.UnionType:
            for arg in args:
                self.expand(arg, mode, trail)
            return
        if origin is tuple:
            for arg in args:
                if arg is not Ellipsis:
                    self.expand(arg, mode, trail)
            return
        if origin in SEQUENCE_ORIGINS:
            if args:
                self.expand(args[0], mode, trail)
            return
        if origin in MAPPING_ORIGINS:
            if args:
                self.expand(args[0], Mode.STATELESS, trail)
                self.expand(args[1], mode, trail)
            return

        container = state_container(tp)
        if container is not None:
            if container in self._visiting:
                path = [type_repr(c) for c in self._visiting] + [type_repr(container)]
                raise StateRecursionError(
                    f"bound inference for {type_repr(self._visiting[0])} does not "
                    f"terminate at {source}; declare state=... or "
                    f"state_implements=... on the container",
                    path=path,
                )
            nested = resolved_shape(container)
            if nested.marker is not None:
                self.add(
                    Bound(tp, Requirement.CONTEXT, nested.marker.target), source
                )
                return
            self._visiting.append(container)
            try:
                self.expand_shape(nested, [*trail, type_repr(container)])
            finally:
                self._visiting.pop()
            return

        self.add(Bound(tp, Requirement.CONTEXT), source)


def infer_bounds(resolved: ResolvedShape) -> BoundSet:
    """推导容器生成操作所需的约束.

    Args:
        resolved: 决议后的容器视图.

    Returns:
        BoundSet: 有序去重的约束集合.

    Raises:
        StateRecursionError: 未声明 `state` / `state_implements` 的自引用类型.
    """
    if resolved.marker is not None:
        target = resolved.marker.target
        bounds = tuple(
            Bound(param, Requirement.CONTEXT, target) for param in resolved.parameters
        )
        logger.debug(
            "%s 声明了 %s, 使用粗略约束 (%d 条)",
            resolved.name,
            resolved.marker,
            len(bounds),
        )
        return BoundSet(
            "coarse", bounds, {bound: resolved.name for bound in bounds}
        )

    collector = _Collector(resolved.cls)
    collector.expand_shape(resolved, [resolved.name])
    logger.debug(
        "%s 精确推导得到 %d 条约束", resolved.name, len(collector.bounds)
    )
    return BoundSet("precise", tuple(collector.bounds), dict(collector.bounds))


def bound_satisfied(subject: Any, requirement: Requirement) -> bool:
    """具体类型是否满足约束.

    上下文协议也可以由普通协议兜底 (忽略上下文), 联合类型只支持上下文协议.
    """
    if requirement is Requirement.PLAIN:
        container = state_container(subject)
        if container is not None and container.__state_kind__ == "union":
            return False
        return supports_plain(subject)
    return supports_context(subject) or supports_plain(subject)


def check_bounds(bounds: BoundSet) -> None:
    """在构建期检查所有具体类型上的约束.

    Raises:
        SchemaError: 某个字段类型不支持其模式所需的协议.
    """
    for bound in bounds:
        if isinstance(bound.subject, TypeVar):
            continue
        if not bound_satisfied(bound.subject, bound.requirement):
            raise SchemaError(
                f"type {type_repr(bound.subject)} does not support the "
                f"{bound.requirement.value} protocol",
                item=bounds.sources.get(bound),
            )


def check_parameters(cls: Any, origin_bounds: BoundSet) -> None:
    """检查泛型容器参数化 (如 `Box[X]`) 时的实参是否满足 TypeVar 约束.

    Raises:
        SchemaError: 实参不满足约束.
    """
    metadata = cls.__pydantic_generic_metadata__
    origin = metadata["origin"]
    params = getattr(origin, "__pydantic_generic_metadata__", {}).get("parameters") or ()
    bindings = dict(zip(params, metadata["args"]))

    for bound in origin_bounds:
        if bound.subject not in bindings:
            continue
        arg = _strip_annotated(bindings[bound.subject])
        if isinstance(arg, TypeVar) or arg is Any or _type_vars(arg):
            continue
        if not bound_satisfied(arg, bound.requirement):
            raise SchemaError(
                f"{type_repr(arg)} does not satisfy bound {bound}",
                item=cls.__name__,
            )
