"""statecodec 编解码的配置选项.

该模块定义了用于控制 `dumps` 和 `loads` 函数行为的选项标志.
"""

from enum import IntFlag


class Option(IntFlag):
    """statecodec 配置选项标志.

    可以使用位运算组合多个选项:
        option = Option.VARIANT_INDEX | Option.DENY_UNKNOWN_FIELDS
    """

    # 默认行为: 变体标签使用名称, 忽略未知字段
    NONE = 0x0000

    # 变体标签使用声明顺序中的索引而不是名称
    VARIANT_INDEX = 0x0001

    # 解码时遇到未声明的字段抛出 UnknownFieldError
    DENY_UNKNOWN_FIELDS = 0x0002

    # 输出 JSON 时按键排序
    SORT_KEYS = 0x0004
