"""Fixed-step sliding-window chunking of raw document text.

Windows start at 0, S-O, 2(S-O), ... for chunk size S and overlap O, until the
window start reaches the end of the text. Each window is trimmed; whitespace-only
windows are dropped, but their bounds still advance the window.
"""

from __future__ import annotations

from dataclasses import dataclass

CHUNK_SIZE_CHARS = 500
OVERLAP_CHARS = 100


@dataclass
class TextChunk:
    """A trimmed window. ``start``/``end`` are the untrimmed window bounds."""

    content: str
    start: int
    end: int


def validate_chunking(chunk_size: int, chunk_overlap: int) -> None:
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0:
        raise ValueError(f"chunk_overlap must be non-negative, got {chunk_overlap}")
    if chunk_overlap >= chunk_size:
        raise ValueError(
            f"chunk_overlap ({chunk_overlap}) must be strictly less than chunk_size ({chunk_size})"
        )


def chunk_text(
    text: str,
    chunk_size: int = CHUNK_SIZE_CHARS,
    chunk_overlap: int = OVERLAP_CHARS,
) -> list[TextChunk]:
    """Split ``text`` into overlapping character windows."""
    validate_chunking(chunk_size, chunk_overlap)
    step = chunk_size - chunk_overlap
    length = len(text)

    chunks: list[TextChunk] = []
    start = 0
    while start < length:
        end = min(start + chunk_size, length)
        content = text[start:end].strip()
        if content:
            chunks.append(TextChunk(content=content, start=start, end=end))
        start += step
    return chunks
