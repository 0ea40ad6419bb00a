"""Tokenizers exposing per-token character offsets."""

from __future__ import annotations

import re
from typing import Protocol

TokenOffsets = list[tuple[int, int]]

_TOKEN_RE = re.compile(r"\w+|[^\w\s]", re.UNICODE)


class Tokenizer(Protocol):
    name: str

    def offsets(self, text: str) -> TokenOffsets:
        """Return ``(start_char, end_char)`` for every token of ``text``."""
        ...

    def count(self, text: str) -> int:
        ...


class RegexTokenizer:
    """Word runs and single punctuation marks; offsets are exact."""

    name = "regex"

    def offsets(self, text: str) -> TokenOffsets:
        return [match.span() for match in _TOKEN_RE.finditer(text)]

    def count(self, text: str) -> int:
        return sum(1 for _ in _TOKEN_RE.finditer(text))


class TiktokenTokenizer:
    """BPE tokenizer matching the completion models' token accounting."""

    name = "tiktoken"

    def __init__(self, encoding_name: str = "cl100k_base") -> None:
        import tiktoken

        self.encoding = tiktoken.get_encoding(encoding_name)

    def offsets(self, text: str) -> TokenOffsets:
        tokens = self.encoding.encode(text, disallowed_special=())
        if not tokens:
            return []
        _, starts = self.encoding.decode_with_offsets(tokens)
        spans: TokenOffsets = []
        for idx, start in enumerate(starts):
            end = starts[idx + 1] if idx + 1 < len(starts) else len(text)
            spans.append((start, max(start, end)))
        return spans

    def count(self, text: str) -> int:
        return len(self.encoding.encode(text, disallowed_special=()))


def build_tokenizer(name: str) -> Tokenizer:
    if name == "tiktoken":
        return TiktokenTokenizer()
    if name == "regex":
        return RegexTokenizer()
    raise ValueError(f"Unknown tokenizer: {name}")


__all__ = ["Tokenizer", "TokenOffsets", "RegexTokenizer", "TiktokenTokenizer", "build_tokenizer"]
