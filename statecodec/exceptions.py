"""statecodec 异常类.

该模块为 statecodec 定义了异常层次结构.
构建期错误 (SchemaError, StateRecursionError) 在类创建时抛出,
运行期错误 (EncodeError, DecodeError 及其子类) 在编解码时抛出.
"""

from typing import Any


class StateError(Exception):
    """所有 statecodec 异常的基类."""

    pass


class SchemaError(StateError):
    """结构描述不合法时抛出 (构建期).

    Case:
        - 注解选项格式错误 (如 `rename=""`).
        - 两个字段解析出相同的 wire key.
        - `skip` 与 `rename` 同时出现.
        - 字段类型不满足其模式所需的协议.
    """

    def __init__(
        self,
        msg: str,
        item: str | None = None,
        annotation: str | None = None,
    ) -> None:
        """初始化结构错误.

        Args:
            msg: 错误描述信息.
            item: 出错的字段名或变体名.
            annotation: 出错的注解文本.
        """
        super().__init__(msg)
        self.item = item
        self.annotation = annotation

    def __str__(self) -> str:
        base_msg = super().__str__()
        parts = []
        if self.item is not None:
            parts.append(f"item {self.item!r}")
        if self.annotation is not None:
            parts.append(f"annotation {self.annotation}")
        if parts:
            return f"{base_msg} ({', '.join(parts)})"
        return base_msg


class StateRecursionError(StateError, RecursionError):
    """逐字段约束推导无法终止时抛出 (构建期).

    自引用类型需要在容器上声明 `state=...` 或 `state_implements=...`.
    """

    def __init__(self, msg: str, path: list[str] | None = None) -> None:
        """初始化递归错误.

        Args:
            msg: 错误描述信息.
            path: 推导过程中形成环的类型路径.
        """
        super().__init__(msg)
        self.path = path or []

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.path:
            return f"{base_msg} (cycle: {' -> '.join(self.path)})"
        return base_msg


class ContextTypeError(StateError, TypeError):
    """上下文对象不满足容器声明的 `state` / `state_implements` 时抛出."""

    pass


class EncodeError(StateError):
    """序列化失败时抛出.

    `loc` 记录出错字段的 wire key 路径, 由外向内.
    """

    def __init__(self, msg: str, loc: list[str | int] | None = None) -> None:
        """初始化编码错误.

        Args:
            msg: 错误描述信息.
            loc: 错误发生的位置路径 (wire key 或索引).
        """
        super().__init__(msg)
        self.loc = loc or []

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.loc:
            loc_str = ".".join(str(x) for x in self.loc)
            return f"{base_msg} (at {loc_str})"
        return base_msg


class DecodeError(StateError):
    """反序列化失败时抛出.

    Case:
        - 输入结构与声明不符 (如期望 struct 却得到 list).
        - 必填字段缺失或重复.
        - 未知的变体标签.
    """

    def __init__(self, msg: str, loc: list[str | int] | None = None) -> None:
        """初始化解码错误.

        Args:
            msg: 错误描述信息.
            loc: 错误发生的位置路径 (wire key 或索引).
        """
        super().__init__(msg)
        self.loc = loc or []

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.loc:
            loc_str = ".".join(str(x) for x in self.loc)
            return f"{base_msg} (at {loc_str})"
        return base_msg


class MissingFieldError(DecodeError):
    """输入中缺少必填 (未跳过) 字段时抛出."""

    def __init__(self, key: str, loc: list[str | int] | None = None) -> None:
        super().__init__(f"missing field {key!r}", loc)
        self.key = key


class DuplicateFieldError(DecodeError):
    """同一字段在输入中出现多次时抛出."""

    def __init__(self, key: str, loc: list[str | int] | None = None) -> None:
        super().__init__(f"duplicate field {key!r}", loc)
        self.key = key


class UnknownFieldError(DecodeError):
    """启用 `DENY_UNKNOWN_FIELDS` 时遇到未声明的字段抛出."""

    def __init__(
        self, key: Any, expected: list[str], loc: list[str | int] | None = None
    ) -> None:
        super().__init__(
            f"unknown field {key!r}, expected one of {expected!r}", loc
        )
        self.key = key
        self.expected = expected


class UnknownVariantError(DecodeError):
    """变体标签不属于任何已声明的变体时抛出."""

    def __init__(
        self, tag: Any, expected: list[str], loc: list[str | int] | None = None
    ) -> None:
        """初始化未知变体错误.

        Args:
            tag: 输入中读到的标签.
            expected: 所有合法标签.
            loc: 错误发生的位置路径.
        """
        super().__init__(
            f"unknown variant {tag!r}, expected one of {expected!r}", loc
        )
        self.tag = tag
        self.expected = expected
