"""Text processing utilities for provider output."""

from __future__ import annotations

import re


# 模型有时会把译文包在代码块里
_CODE_FENCE = re.compile(r'^```[\w-]*[ \t]*\n|\n[ \t]*```$')

# 成对出现的包裹引号
_QUOTE_PAIRS = [('"', '"'), ("'", "'"), ('“', '”'), ('「', '」'), ('«', '»')]


def clean_translated_text(text: str) -> str:
    """
    Clean translated subtitle text returned by the provider.

    只去掉外层的格式包装（代码块、成对引号、首尾空白），
    保留行内换行，使多行字幕保持原有行数。

    Args:
        text: Raw translated text

    Returns:
        Cleaned text
    """
    if not text or not isinstance(text, str):
        return ""

    text = text.strip()
    text = _CODE_FENCE.sub('', text).strip()

    for opening, closing in _QUOTE_PAIRS:
        if len(text) >= 2 and text.startswith(opening) and text.endswith(closing):
            inner = text[len(opening):-len(closing)]
            # 内部还有同样的引号时不剥离，避免破坏引用对白
            if opening not in inner and closing not in inner:
                text = inner.strip()
            break

    # 行尾空白与多余空行
    lines = [line.rstrip() for line in text.split('\n')]
    return '\n'.join(line for line in lines if line.strip())


def count_lines(text: str) -> int:
    """Number of non-empty lines in a subtitle text."""
    return sum(1 for line in text.split('\n') if line.strip())


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate text to maximum length with suffix.

    Args:
        text: Text to truncate
        max_length: Maximum length including suffix
        suffix: Suffix to append if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix
