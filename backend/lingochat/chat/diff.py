"""Word- and character-level text diff used to highlight message corrections.

The diff is computed from a Longest Common Subsequence table over tokens.
Tokens are compared case-insensitively, so a correction that only changes
capitalisation shows up as an ``equal`` segment carrying the corrected casing.

Tokenisation
------------
Word diff splits on runs of whitespace but keeps the runs themselves as
tokens, so the segments reproduce the original spacing exactly::

    "I go  to"  ->  ["I", " ", "go", "  ", "to"]

Char diff uses one token per character and is meant for short strings.

Complexity is O(m*n) time and memory in the number of tokens. That is fine
for chat messages (length-limited on input) and not meant for documents.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence

_WHITESPACE_RUN = re.compile(r"(\s+)")


class SegmentType(str, Enum):
    """Kind of a diff segment."""
    EQUAL = "equal"
    INSERT = "insert"
    DELETE = "delete"


@dataclass
class DiffSegment:
    """A contiguous span of text with a single diff type.

    Attributes:
        type: equal, insert (only in corrected) or delete (only in original).
        text: The joined tokens of the span.
    """
    type: SegmentType
    text: str

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dictionary."""
        return {"type": self.type.value, "text": self.text}


def tokenize(text: str) -> List[str]:
    """Split text into words and whitespace runs, dropping empty pieces."""
    return [token for token in _WHITESPACE_RUN.split(text) if token]


def _same(a: str, b: str) -> bool:
    return a.lower() == b.lower()


def _lcs_table(a: Sequence[str], b: Sequence[str]) -> List[List[int]]:
    m, n = len(a), len(b)
    dp = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(1, m + 1):
        for j in range(1, n + 1):
            if _same(a[i - 1], b[j - 1]):
                dp[i][j] = dp[i - 1][j - 1] + 1
            else:
                dp[i][j] = max(dp[i - 1][j], dp[i][j - 1])
    return dp


def _build_segments(
    original: Sequence[str], corrected: Sequence[str]
) -> List[DiffSegment]:
    dp = _lcs_table(original, corrected)
    i, j = len(original), len(corrected)

    # Built back to front: each group is [type, tokens-in-reverse]
    groups: List[list] = []

    def push(kind: SegmentType, token: str) -> None:
        if groups and groups[-1][0] is kind:
            groups[-1][1].append(token)
        else:
            groups.append([kind, [token]])

    while i > 0 or j > 0:
        if i > 0 and j > 0 and _same(original[i - 1], corrected[j - 1]):
            push(SegmentType.EQUAL, corrected[j - 1])
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or dp[i][j - 1] >= dp[i - 1][j]):
            # Ties go to insert so fixtures stay deterministic
            push(SegmentType.INSERT, corrected[j - 1])
            j -= 1
        else:
            push(SegmentType.DELETE, original[i - 1])
            i -= 1

    groups.reverse()
    return [DiffSegment(type=kind, text="".join(reversed(tokens))) for kind, tokens in groups]


def compute_word_diff(original: str, corrected: str) -> List[DiffSegment]:
    """Diff two strings word by word.

    Args:
        original: Text as the sender wrote it.
        corrected: Text as the corrector proposes it.

    Returns:
        Ordered segments. Joining equal+insert texts gives ``corrected``;
        joining equal+delete texts gives ``original`` up to the casing of
        equal segments.

    Example:
        compute_word_diff("I go to school", "I went to school") gives
        equal "I ", delete "go", insert "went", equal " to school".
    """
    return _build_segments(tokenize(original), tokenize(corrected))


def compute_char_diff(original: str, corrected: str) -> List[DiffSegment]:
    """Diff two short strings character by character."""
    return _build_segments(list(original), list(corrected))
