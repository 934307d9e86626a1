"""
Script-aware tokenization for correction diffing.

Chinese text is split per character, Latin text into whitespace/punctuation
delimited runs, so edits in either script diff at a useful granularity.
"""

import unicodedata
from typing import List


CJK_START = "\u4e00"
CJK_END = "\u9fff"


def is_cjk(char: str) -> bool:
    """True for characters in the CJK Unified Ideographs block."""
    return CJK_START <= char <= CJK_END


def contains_cjk(text: str) -> bool:
    return any(is_cjk(c) for c in text)


def is_punctuation(char: str) -> bool:
    """Unicode punctuation (general category P*), ASCII and fullwidth alike."""
    return unicodedata.category(char).startswith("P")


def strip_punctuation(text: str) -> str:
    """Trim leading and trailing punctuation characters."""
    start, end = 0, len(text)
    while start < end and is_punctuation(text[start]):
        start += 1
    while end > start and is_punctuation(text[end - 1]):
        end -= 1
    return text[start:end]


def tokenize(text: str) -> List[str]:
    """
    Split text into comparable tokens.

    - CJK ideograph: its own token
    - Whitespace: boundary, dropped
    - Punctuation: boundary, kept as a one-character token
    - Anything else: accumulated into the current run

    Examples:
        tokenize("I use antropic api") -> ["I", "use", "antropic", "api"]
        tokenize("测试LLM功能") -> ["测", "试", "LLM", "功", "能"]
    """
    tokens: List[str] = []
    current: List[str] = []

    def flush() -> None:
        if current:
            tokens.append("".join(current))
            current.clear()

    for char in text:
        if is_cjk(char):
            flush()
            tokens.append(char)
        elif char.isspace():
            flush()
        elif is_punctuation(char):
            flush()
            tokens.append(char)
        else:
            current.append(char)

    flush()
    return tokens
