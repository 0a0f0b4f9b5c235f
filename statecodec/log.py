"""statecodec 日志记录器."""

import logging

logger = logging.getLogger("statecodec")


def get_excerpt(text: str, pos: int, window: int = 16) -> str:
    """获取指定位置周围文本的片段, 并用 `^` 标出位置."""
    start = max(0, pos - window)
    end = min(len(text), pos + window)
    chunk = text[start:end].replace("\n", " ").replace("\r", " ")
    marker = " " * (min(pos, len(text)) - start) + "^"

    return f"位置 {pos} 的上下文 (显示 {start}-{end}):\n{chunk}\n{marker}"
