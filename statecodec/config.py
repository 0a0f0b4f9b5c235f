"""statecodec 配置对象."""

from dataclasses import dataclass

from .options import Option


@dataclass(frozen=True)
class Config:
    """编解码配置 (不可变).

    在 API 入口层创建, 然后传递给格式实现 (Serializer/Deserializer).

    Attributes:
        flags: 选项标志 (IntFlag).
        indent: 输出 JSON 时的缩进, None 表示紧凑输出.
    """

    flags: Option = Option.NONE
    indent: int | None = None

    @classmethod
    def from_params(
        cls,
        option: Option = Option.NONE,
        indent: int | None = None,
    ) -> "Config":
        """从参数构建配置对象.

        Args:
            option: Option 枚举.
            indent: JSON 缩进.

        Returns:
            Config: 配置对象.
        """
        return cls(flags=Option(option), indent=indent)

    @property
    def variant_index(self) -> bool:
        """变体标签是否使用索引."""
        return bool(self.flags & Option.VARIANT_INDEX)

    @property
    def deny_unknown_fields(self) -> bool:
        """是否拒绝未知字段."""
        return bool(self.flags & Option.DENY_UNKNOWN_FIELDS)

    @property
    def sort_keys(self) -> bool:
        """输出时是否按键排序."""
        return bool(self.flags & Option.SORT_KEYS)

    @property
    def option(self) -> int:
        """返回 int 形式的 option 值."""
        return int(self.flags)
