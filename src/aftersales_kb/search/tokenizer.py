"""
Tokenizer for knowledge-base search.

Tokenization pipeline:
1. Lowercase conversion
2. Collapse whitespace runs (including ideographic space U+3000) to one space
3. Replace Unicode punctuation (P*) and symbols (S*) with spaces
4. Split into words on whitespace
5. CJK words -> character unigrams + adjacent-pair bigrams
   Other words -> kept whole

Character n-grams stand in for a Chinese word-segmentation dictionary:
bigrams capture two-character word fragments, unigrams keep recall for
single-character terms.
"""

import re
import unicodedata
from typing import List

# (start, end) code point ranges, inclusive
CJK_RANGES = (
    (0x4E00, 0x9FFF),  # CJK Unified Ideographs
    (0x3400, 0x4DBF),  # CJK Extension A
    (0x3040, 0x30FF),  # Hiragana + Katakana
    (0xAC00, 0xD7AF),  # Hangul syllables
)

_WHITESPACE_RE = re.compile(r"[\u3000\s]+")


def is_cjk(char: str) -> bool:
    """Check whether a single character falls in one of CJK_RANGES."""
    code = ord(char)
    return any(start <= code <= end for start, end in CJK_RANGES)


def normalize(text) -> str:
    """
    Normalize text before splitting.

    None and non-string values normalize to an empty string.

    Examples:
        >>> normalize("货架，安装不上！")
        '货架 安装不上 '
        >>> normalize("SKU:A-100")
        'sku a 100'
    """
    if not isinstance(text, str):
        return ""

    text = _WHITESPACE_RE.sub(" ", text.lower())

    # Each punctuation/symbol character becomes one space (runs are not collapsed)
    return "".join(
        " " if unicodedata.category(ch)[0] in ("P", "S") else ch
        for ch in text
    )


def tokenize(text) -> List[str]:
    """
    Tokenize text into retrieval terms.

    A word containing any CJK character is expanded into unigrams and bigrams:
    a word of length L yields L unigrams and L-1 bigrams, interleaved.
    Any other word is emitted as a single term.

    Args:
        text: Input text (None or non-string treated as empty)

    Returns:
        Flat list of terms, duplicates preserved for term-frequency counting

    Examples:
        >>> tokenize("孔位")
        ['孔', '孔位', '位']

        >>> tokenize("SKU")
        ['sku']

        >>> tokenize("Bracket 松动!")
        ['bracket', '松', '松动', '动']

        >>> tokenize("   ")
        []
    """
    tokens: List[str] = []

    for word in normalize(text).split():
        if any(is_cjk(ch) for ch in word):
            for i, ch in enumerate(word):
                if ch.strip():
                    tokens.append(ch)
                if i < len(word) - 1:
                    tokens.append(word[i:i + 2])
        else:
            tokens.append(word)

    return tokens
