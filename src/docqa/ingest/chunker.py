"""Content chunker: cascading paragraph → sentence → word splitting.

Only text that does not fit is split further: a paragraph over the limit
falls through to sentence boundaries, a sentence over the limit falls
through to whitespace. Pieces accumulate into a running buffer joined by
blank lines; the buffer is flushed whenever the next piece would overflow.
"""

from __future__ import annotations

import re

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_JOINER = "\n\n"


class ContentChunker:
    """Split long documents into bounded, embeddable pieces.

    Args:
        max_length: Default upper bound on chunk length, in characters.
    """

    def __init__(self, max_length: int = 4000) -> None:
        if max_length < 1:
            raise ValueError("max_length must be >= 1")
        self.max_length = max_length

    def chunk(self, text: str, max_length: int | None = None) -> list[str]:
        """Return *text* as an ordered list of non-empty chunks.

        Text that already fits is returned unchanged as a single chunk.
        Every chunk is at most *max_length* characters, except a single
        word longer than *max_length*, which is kept whole.
        """
        limit = max_length if max_length is not None else self.max_length
        if limit < 1:
            raise ValueError("max_length must be >= 1")
        if not text.strip():
            return []
        if len(text) <= limit:
            return [text]

        chunks: list[str] = []
        buffer = ""

        def push(piece: str) -> None:
            nonlocal buffer
            if buffer and len(buffer) + len(_JOINER) + len(piece) > limit:
                chunks.append(buffer)
                buffer = piece
            else:
                buffer = f"{buffer}{_JOINER}{piece}" if buffer else piece

        for paragraph in _PARAGRAPH_RE.split(text):
            paragraph = paragraph.strip()
            if not paragraph:
                continue
            if len(paragraph) <= limit:
                push(paragraph)
                continue
            for sentence in _SENTENCE_RE.split(paragraph):
                if len(sentence) <= limit:
                    push(sentence)
                else:
                    for piece in _split_words(sentence, limit):
                        push(piece)

        if buffer:
            chunks.append(buffer)
        return [c.strip() for c in chunks if c.strip()]


def _split_words(sentence: str, limit: int) -> list[str]:
    """Greedy word packing; an oversized word becomes its own piece."""
    pieces: list[str] = []
    current = ""
    for word in sentence.split():
        if current and len(current) + 1 + len(word) > limit:
            pieces.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word
    if current:
        pieces.append(current)
    return pieces
