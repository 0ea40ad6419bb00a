"""Chunking utilities for conversation messages."""

from __future__ import annotations

import re
from bisect import bisect_left
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, Sequence

from chat_memory.ingest.tokenizer import RegexTokenizer, TokenOffsets, Tokenizer
from chat_memory.models.entities import Fragment, Role

_CODE_FENCE_RE = re.compile(r"```[\s\S]*?```")
_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_CODE_HINT_RES = (
    _CODE_FENCE_RE,
    re.compile(r"^\s*(function|const|let|var|class|interface|type|import|export)\b", re.MULTILINE),
    re.compile(r"^\s*(def|class|import|from)\b", re.MULTILINE),
    re.compile(r"^\s*(public|private|protected|class|interface)\b", re.MULTILINE),
)


@dataclass(slots=True)
class Segment:
    """Token range ``[start, end)`` with the character range it covers."""

    start: int
    end: int
    char_start: int
    char_end: int
    is_code: bool

    @property
    def size(self) -> int:
        return self.end - self.start


@dataclass(slots=True)
class MessageChunk:
    index: int
    content: str
    is_code: bool
    start_token: int
    end_token: int


class Chunker:
    """Split message text into token-bounded fragments, keeping code fences whole."""

    def __init__(
        self,
        tokenizer: Tokenizer | None = None,
        chunk_size: int = 600,
        overlap: int = 100,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= overlap < chunk_size:
            raise ValueError("overlap must be in [0, chunk_size)")
        self.tokenizer = tokenizer or RegexTokenizer()
        self.chunk_size = chunk_size
        self.overlap = overlap

    def chunk(self, content: str) -> list[MessageChunk]:
        if not content.strip():
            return []
        offsets = self.tokenizer.offsets(content)
        total = len(offsets)
        if total == 0:
            return []
        if total <= self.chunk_size:
            return [MessageChunk(0, content, detect_code(content), 0, total)]

        starts = [start for start, _ in offsets]
        segments: list[Segment] = []
        for unit in self._split_code_blocks(content, offsets, starts):
            if unit.size <= self.chunk_size:
                segments.append(unit)
            elif unit.is_code:
                # blank lines are not boundaries inside code
                segments.extend(self._token_windows(unit, offsets))
            else:
                segments.extend(self._pack_paragraphs(content, unit, offsets, starts))

        return [
            MessageChunk(
                index=idx,
                content=content[segment.char_start : segment.char_end],
                is_code=segment.is_code,
                start_token=segment.start,
                end_token=segment.end,
            )
            for idx, segment in enumerate(segments)
        ]

    # ------------------------------------------------------------------

    def _split_code_blocks(
        self, content: str, offsets: TokenOffsets, starts: Sequence[int]
    ) -> Iterator[Segment]:
        cursor = 0
        for match in _CODE_FENCE_RE.finditer(content):
            before = _text_segment(cursor, match.start(), offsets, starts)
            if before is not None:
                yield before
            first = bisect_left(starts, match.start())
            last = bisect_left(starts, match.end())
            if last > first:
                yield Segment(first, last, match.start(), match.end(), is_code=True)
            cursor = match.end()
        tail = _text_segment(cursor, len(content), offsets, starts)
        if tail is not None:
            yield tail

    def _pack_paragraphs(
        self,
        content: str,
        unit: Segment,
        offsets: TokenOffsets,
        starts: Sequence[int],
    ) -> list[Segment]:
        paragraphs: list[Segment] = []
        cursor = unit.char_start
        for match in _PARAGRAPH_RE.finditer(content, unit.char_start, unit.char_end):
            paragraph = _text_segment(cursor, match.start(), offsets, starts)
            if paragraph is not None:
                paragraphs.append(paragraph)
            cursor = match.end()
        paragraph = _text_segment(cursor, unit.char_end, offsets, starts)
        if paragraph is not None:
            paragraphs.append(paragraph)

        packed: list[Segment] = []
        current: Segment | None = None
        for paragraph in paragraphs:
            if current is not None and paragraph.end - current.start <= self.chunk_size:
                current = Segment(current.start, paragraph.end, current.char_start, paragraph.char_end, False)
                continue
            if current is not None:
                packed.append(current)
                current = None
            if paragraph.size > self.chunk_size:
                packed.extend(self._token_windows(paragraph, offsets))
            else:
                current = paragraph
        if current is not None:
            packed.append(current)
        return packed

    def _token_windows(self, segment: Segment, offsets: TokenOffsets) -> list[Segment]:
        windows: list[Segment] = []
        step = self.chunk_size - self.overlap
        start = segment.start
        while True:
            end = min(start + self.chunk_size, segment.end)
            char_start = max(segment.char_start, offsets[start][0])
            char_end = min(segment.char_end, offsets[end - 1][1])
            windows.append(Segment(start, end, char_start, char_end, segment.is_code))
            if end >= segment.end:
                break
            start += step
        return windows


def _text_segment(
    char_start: int, char_end: int, offsets: TokenOffsets, starts: Sequence[int]
) -> Segment | None:
    """Tokens starting inside ``[char_start, char_end)``, trimmed to their text."""
    first = bisect_left(starts, char_start)
    last = bisect_left(starts, char_end)
    if last <= first:
        return None
    return Segment(
        first,
        last,
        offsets[first][0],
        min(char_end, offsets[last - 1][1]),
        is_code=False,
    )


def detect_code(content: str) -> bool:
    """Heuristic: fenced block or lines opening with declaration keywords."""
    return any(pattern.search(content) for pattern in _CODE_HINT_RES)


def build_fragments(
    chunks: Iterable[MessageChunk],
    *,
    user_id: str,
    conversation_id: str,
    message_id: str,
    role: Role,
    created_at: datetime,
    model_used: str | None = None,
    profile_tags: Sequence[str] = (),
) -> list[Fragment]:
    """Attach message metadata to raw chunks."""
    return [
        Fragment(
            message_id=message_id,
            conversation_id=conversation_id,
            user_id=user_id,
            index=chunk.index,
            content=chunk.content,
            is_code=chunk.is_code,
            start_token=chunk.start_token,
            end_token=chunk.end_token,
            role=role,
            created_at=created_at,
            model_used=model_used,
            profile_tags=list(profile_tags),
        )
        for chunk in chunks
    ]


__all__ = ["Chunker", "MessageChunk", "Segment", "build_fragments", "detect_code"]
