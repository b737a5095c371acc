"""Sentence-aware text chunker with word-based overlap.

Accumulates whole sentences into chunks and records the char offsets of the
part of each chunk that is new (not carried over as overlap).
"""

from __future__ import annotations

import math
import re

from projectbrain.models import TextSpan

# A sentence is anything up to a run of terminal punctuation plus trailing
# whitespace; text after the last terminator is a sentence of its own.
_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+\s*|[^.!?]+")

# Average characters per word used to turn a char overlap into a word count.
_CHARS_PER_WORD = 6


def split_sentences(text: str) -> list[str]:
    """Split text into sentences. ``"".join(result) == text`` always holds."""
    return _SENTENCE_RE.findall(text)


def chunk_text(
    text: str,
    *,
    max_chunk_size: int = 1000,
    overlap: int = 200,
) -> list[TextSpan]:
    """Split text into overlapping, sentence-aligned chunks.

    Args:
        text: Full document text.
        max_chunk_size: Target chunk size in characters. A single sentence
            longer than this becomes its own oversized chunk.
        overlap: Approximate number of trailing characters of a closed chunk
            repeated at the start of the next one (0 disables overlap).

    Returns:
        List of TextSpan objects in document order.
    """
    if not text or not text.strip():
        return []

    overlap_words = math.ceil(overlap / _CHARS_PER_WORD) if overlap > 0 else 0

    spans: list[TextSpan] = []
    current = ""
    fresh_start: int | None = None  # offset of the first non-overlap sentence
    offset = 0

    for sentence in split_sentences(text):
        if (
            fresh_start is not None
            and len(current + sentence) > max_chunk_size
            and current.strip()
        ):
            spans.append(
                TextSpan(
                    text=current.strip(),
                    index=len(spans),
                    start_char=fresh_start,
                    end_char=offset,
                )
            )
            if overlap_words:
                words = current.split(" ")
                current = " ".join(words[-overlap_words:]) + " "
            else:
                current = ""
            fresh_start = None

        if fresh_start is None:
            fresh_start = offset
        current += sentence
        offset += len(sentence)

    if fresh_start is not None and current.strip():
        spans.append(
            TextSpan(
                text=current.strip(),
                index=len(spans),
                start_char=fresh_start,
                end_char=offset,
            )
        )

    return spans
