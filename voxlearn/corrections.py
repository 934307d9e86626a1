"""
Correction extraction from edit scripts.

Reduces a token-level diff to semantic replace pairs (what the user
actually fixed) and derives hotword candidates from them.
"""

from typing import Iterable, List, Sequence

from .diff import DiffOperation, diff
from .text import contains_cjk, is_cjk, strip_punctuation, tokenize
from .types import TextCorrection


# Words that never become hotwords (English + Chinese high-frequency words)
COMMON_WORDS = frozenset({
    # English
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "her", "was", "one",
    "our", "out", "day", "get", "has", "him", "his", "how", "man", "new", "now", "old",
    "see", "two", "way", "who", "boy", "did", "its", "let", "put", "say", "she", "too",
    "use", "that", "this", "with", "have", "from", "they", "will", "what", "when", "make",
    "like", "time", "just", "know", "take", "people", "into", "year", "your", "good",
    "some", "could", "them", "than", "then", "these", "very", "about", "would", "there",
    "their", "which", "also", "been", "were", "said", "each", "should", "other", "only",
    "such", "being", "after", "before", "because", "through", "where", "while", "does",

    # Chinese single characters
    "的", "是", "在", "了", "和", "有", "我", "他", "她", "它", "这", "那", "你", "吗", "啊", "呢",
    "吧", "啦", "哦", "嗯", "哈", "呀", "嘛", "哟", "喔", "诶",

    # Chinese 2-character words
    "我们", "他们", "她们", "它们", "什么", "怎么", "为什么", "可以", "不是", "没有", "还是",
    "如果", "因为", "所以", "但是", "而且", "或者", "那么", "这样", "那样", "一个", "一些",
    "很多", "非常", "特别", "已经", "还有", "知道", "觉得", "认为", "应该", "可能", "需要",
    "希望", "想要", "喜欢", "看到", "听到", "说话", "做事", "时候", "地方", "东西", "事情",
    "问题", "方法", "办法", "情况", "状态", "结果", "原因", "开始", "结束", "继续", "停止",
    "功能", "测试",

    # Chinese 3+ character phrases
    "不知道", "不一定", "不一样", "有一点", "有时候", "没关系", "不客气", "对不起", "不好意思",
    "不可能", "很可能", "怎么样", "是不是", "好不好", "行不行", "可不可以",
    "没关系的", "不要紧的", "无所谓的", "没问题的", "可以的话", "如果可以",
    "应该没有", "可能没有", "肯定没有", "一定要的", "必须要的",
})

MIN_LATIN_HOTWORD_LENGTH = 3
MIN_CJK_HOTWORD_LENGTH = 2
MAX_CJK_HOTWORD_LENGTH = 10


def extract_corrections(operations: Sequence[DiffOperation]) -> List[TextCorrection]:
    """
    Turn an edit script into replace pairs.

    Each contiguous block of non-equal operations is one edit site. A site
    with deletions and insertions is a replacement; a pure deletion or pure
    insertion teaches nothing and is skipped. Inside a site, consecutive CJK
    characters form one phrase, so "六次体制" -> "热词提示" stays whole. When
    both sides have the same number of units they pair up one to one
    ("antropic api" -> "Anthropic API" gives two corrections), otherwise the
    whole site becomes a single correction.
    """
    corrections: List[TextCorrection] = []
    i = 0

    while i < len(operations):
        if operations[i].kind == "equal":
            i += 1
            continue

        deleted: List[str] = []
        inserted: List[str] = []
        while i < len(operations) and operations[i].kind != "equal":
            op = operations[i]
            if op.kind == "delete":
                deleted.append(op.token)
            elif op.kind == "insert":
                inserted.append(op.token)
            else:
                raise ValueError(f"Unknown diff operation: {op.kind!r}")
            i += 1

        if deleted and inserted:
            corrections.extend(_pair_site(deleted, inserted))

    return corrections


def _pair_site(deleted: List[str], inserted: List[str]) -> List[TextCorrection]:
    originals = _units(deleted)
    replacements = _units(inserted)

    if len(originals) == len(replacements):
        pairs = list(zip(originals, replacements))
    else:
        pairs = [(_join(originals), _join(replacements))]

    result = []
    for original, corrected in pairs:
        correction = TextCorrection(
            original=strip_punctuation(original.strip()),
            corrected=strip_punctuation(corrected.strip()),
        )
        if correction.is_meaningful():
            result.append(correction)
    return result


def _units(tokens: List[str]) -> List[str]:
    """Merge runs of CJK characters into phrases and drop punctuation tokens."""
    units: List[str] = []
    cjk_run: List[str] = []

    for token in tokens:
        if len(token) == 1 and is_cjk(token):
            cjk_run.append(token)
            continue
        if cjk_run:
            units.append("".join(cjk_run))
            cjk_run = []
        if strip_punctuation(token):
            units.append(token)

    if cjk_run:
        units.append("".join(cjk_run))
    return units


def _join(units: List[str]) -> str:
    """Join units with spaces, except next to CJK text."""
    text = ""
    for unit in units:
        if text and not (is_cjk(text[-1]) or is_cjk(unit[0])):
            text += " "
        text += unit
    return text


def detect_corrections(original: str, edited: str) -> List[TextCorrection]:
    """Tokenize, diff and extract corrections between two transcripts."""
    if original == edited:
        return []
    return extract_corrections(diff(tokenize(original), tokenize(edited)))


def extract_hotwords(
    corrections: Iterable[TextCorrection],
    common_words: Iterable[str] = COMMON_WORDS,
) -> List[str]:
    """
    Derive hotword candidates from the corrected side of each correction.

    CJK phrases of 2-10 characters are kept whole; Latin text is split on
    whitespace and pieces of 3+ characters are kept. Common words are dropped
    in both cases. Duplicates are left for the vocabulary merge to resolve.
    """
    common = common_words if isinstance(common_words, (set, frozenset)) else set(common_words)
    hotwords: List[str] = []

    for correction in corrections:
        text = correction.corrected.strip()

        if contains_cjk(text):
            if MIN_CJK_HOTWORD_LENGTH <= len(text) <= MAX_CJK_HOTWORD_LENGTH and text not in common:
                hotwords.append(text)
            continue

        for piece in text.split():
            word = strip_punctuation(piece)
            if len(word) < MIN_LATIN_HOTWORD_LENGTH or word.lower() in common:
                continue
            hotwords.append(word)

    return hotwords
