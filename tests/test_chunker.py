"""Tests for projectbrain.ingest.chunker and fingerprint."""

from __future__ import annotations

import hashlib

from projectbrain.ingest.chunker import chunk_text, split_sentences
from projectbrain.ingest.fingerprint import fingerprint

LONG_TEXT = " ".join(
    f"Sentence number {i} talks about the launch plan in some detail." for i in range(60)
)


def test_empty_text():
    assert chunk_text("") == []


def test_whitespace_only():
    assert chunk_text("   \n\n  ") == []


def test_short_text_single_chunk():
    spans = chunk_text("Hello world.", max_chunk_size=1000)
    assert len(spans) == 1
    assert spans[0].text == "Hello world."
    assert spans[0].index == 0
    assert (spans[0].start_char, spans[0].end_char) == (0, 12)


def test_trailing_text_without_terminator_is_kept():
    spans = chunk_text("First sentence. And a tail without a full stop")
    assert spans[-1].text.endswith("without a full stop")


def test_split_sentences_reconstructs_input():
    text = "One. Two?  Three!\nFour... and trailing"
    assert "".join(split_sentences(text)) == text


def test_chunks_respect_size_and_are_ordered():
    spans = chunk_text(LONG_TEXT, max_chunk_size=300, overlap=60)
    assert len(spans) > 1
    assert [s.index for s in spans] == list(range(len(spans)))
    # Only a single oversized sentence may exceed the limit, plus overlap.
    assert all(len(s.text) <= 300 + 60 for s in spans)


def test_fresh_offsets_reconstruct_text():
    spans = chunk_text(LONG_TEXT, max_chunk_size=300, overlap=60)
    assert spans[0].start_char == 0
    assert spans[-1].end_char == len(LONG_TEXT)
    for prev, nxt in zip(spans, spans[1:]):
        assert prev.end_char == nxt.start_char
    assert "".join(LONG_TEXT[s.start_char : s.end_char] for s in spans) == LONG_TEXT


def test_overlap_repeats_previous_words():
    spans = chunk_text(LONG_TEXT, max_chunk_size=300, overlap=60)
    last_words = spans[0].text.split(" ")[-3:]
    assert spans[1].text.startswith(" ".join(last_words)) or " ".join(last_words) in spans[1].text


def test_zero_overlap_chunks_are_disjoint():
    spans = chunk_text(LONG_TEXT, max_chunk_size=300, overlap=0)
    for span in spans:
        assert span.text == LONG_TEXT[span.start_char : span.end_char].strip()


def test_oversized_sentence_kept_whole():
    giant = "word " * 400 + "end."
    spans = chunk_text("Intro. " + giant, max_chunk_size=100, overlap=0)
    assert any(s.text == giant.strip() for s in spans)


def test_chunking_is_deterministic():
    assert chunk_text(LONG_TEXT, max_chunk_size=250) == chunk_text(LONG_TEXT, max_chunk_size=250)


def test_fingerprint_is_sha256():
    data = b"hello project"
    assert fingerprint(data) == hashlib.sha256(data).hexdigest()


def test_fingerprint_str_matches_utf8_bytes():
    assert fingerprint("naïve café") == fingerprint("naïve café".encode("utf-8"))


def test_fingerprint_changes_with_one_byte():
    assert fingerprint(b"launch in March") != fingerprint(b"launch in April")
    assert fingerprint(b"abc") == fingerprint(b"abc")
