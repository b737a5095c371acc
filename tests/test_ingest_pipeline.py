"""Tests for projectbrain.ingest.pipeline."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FAKE_MODEL, bag_of_words
from projectbrain.embeddings import EmbeddingGateway
from projectbrain.ingest.fingerprint import fingerprint
from projectbrain.ingest.pipeline import IngestionPipeline
from projectbrain.memory.store import MemoryStore
from projectbrain.models import FileStatus, UploadedFile


def _file(name: str, text: str, url: str | None = None) -> UploadedFile:
    return UploadedFile(name=name, data=text.encode(), content_type="text/plain", url=url)


async def _decode(file: UploadedFile) -> str:
    await asyncio.sleep(0)
    return file.data.decode()


@pytest.mark.asyncio
async def test_ingest_stores_documents_and_chunks(docstore, memory):
    pipeline = IngestionPipeline(docstore, memory, extract=_decode)
    report = await pipeline.ingest(
        [_file("a.txt", "Alpha launches in March.", url="s3://b/a.txt")], "p1"
    )

    assert report.total == 1
    assert len(report.stored) == 1
    item = report.stored[0]
    assert item.status == FileStatus.STORED
    assert item.chunks_stored == 1

    doc = docstore.get_document("p1", item.document_id)
    assert doc.file_url == "s3://b/a.txt"
    assert doc.content == "Alpha launches in March."
    assert doc.content_hash == fingerprint(b"Alpha launches in March.")


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_cap(docstore, memory):
    in_flight = 0
    peak = 0

    async def slow_extract(file: UploadedFile) -> str:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return file.data.decode()

    pipeline = IngestionPipeline(docstore, memory, extract=slow_extract, concurrency=3)
    files = [_file(f"f{i}.txt", f"Document number {i} body.") for i in range(8)]
    report = await pipeline.ingest(files, "p1")

    assert len(report.stored) == 8
    assert peak == 3


@pytest.mark.asyncio
async def test_duplicate_upload_in_one_batch(docstore, memory):
    pipeline = IngestionPipeline(docstore, memory, extract=_decode)
    same = "Identical bytes in both uploads."
    report = await pipeline.ingest([_file("one.txt", same), _file("two.txt", same)], "p1")

    assert len(report.stored) == 1
    assert len(report.skipped) == 1
    assert report.skipped[0].status == FileStatus.SKIPPED_DUPLICATE
    assert len(docstore.list_documents("p1")) == 1


@pytest.mark.asyncio
async def test_reupload_in_later_batch_is_duplicate(docstore, memory):
    pipeline = IngestionPipeline(docstore, memory, extract=_decode)
    await pipeline.ingest([_file("a.txt", "Some content here.")], "p1")
    report = await pipeline.ingest([_file("renamed.txt", "Some content here.")], "p1")
    assert len(report.skipped) == 1
    assert len(docstore.list_documents("p1")) == 1


@pytest.mark.asyncio
async def test_session_fingerprints_are_shared(docstore, memory):
    pipeline = IngestionPipeline(docstore, memory, extract=_decode)
    seen: set[str] = set()
    await pipeline.ingest([_file("a.txt", "Session text.")], "p1", seen_fingerprints=seen)
    assert fingerprint(b"Session text.") in seen


@pytest.mark.asyncio
async def test_failing_file_does_not_abort_batch(docstore, memory):
    async def picky(file: UploadedFile) -> str:
        if file.name == "bad.txt":
            raise ValueError("cannot parse")
        return file.data.decode()

    seen: set[str] = set()
    pipeline = IngestionPipeline(docstore, memory, extract=picky)
    report = await pipeline.ingest(
        [_file("good.txt", "Good content."), _file("bad.txt", "Bad content.")],
        "p1",
        seen_fingerprints=seen,
    )

    assert [i.file_name for i in report.stored] == ["good.txt"]
    assert [i.file_name for i in report.failed] == ["bad.txt"]
    assert report.failed[0].error == "cannot parse"
    # The failed upload can be retried.
    assert fingerprint(b"Bad content.") not in seen


@pytest.mark.asyncio
async def test_timeout_marks_file_failed(docstore, memory):
    async def hang(file: UploadedFile) -> str:
        await asyncio.sleep(5)
        return ""

    pipeline = IngestionPipeline(docstore, memory, extract=hang, file_timeout=0.01)
    report = await pipeline.ingest([_file("slow.txt", "x")], "p1")
    assert report.failed[0].status == FileStatus.FAILED
    assert "Timed out" in report.failed[0].error


@pytest.mark.asyncio
async def test_oversized_file_fails(docstore, memory):
    pipeline = IngestionPipeline(docstore, memory, extract=_decode, max_file_size=4)
    report = await pipeline.ingest([_file("big.txt", "too large")], "p1")
    assert len(report.failed) == 1
    assert "exceeds" in report.failed[0].error


@pytest.mark.asyncio
async def test_progress_reported_after_every_file(docstore, memory):
    async def picky(file: UploadedFile) -> str:
        if file.name == "bad.txt":
            raise ValueError("nope")
        return file.data.decode()

    events: list[tuple[int, int]] = []
    pipeline = IngestionPipeline(docstore, memory, extract=picky)
    await pipeline.ingest(
        [_file("a.txt", "A."), _file("bad.txt", "B."), _file("c.txt", "A.")],
        "p1",
        on_progress=lambda done, total: events.append((done, total)),
    )
    assert events == [(1, 3), (2, 3), (3, 3)]


@pytest.mark.asyncio
async def test_timed_out_document_is_rolled_back_and_can_be_retried(docstore, vectorstore):
    slow = True

    async def embed(texts):
        if slow:
            await asyncio.sleep(5)
        return [bag_of_words(t) for t in texts]

    memory = MemoryStore(docstore, vectorstore, EmbeddingGateway(embed, model=FAKE_MODEL))
    pipeline = IngestionPipeline(docstore, memory, extract=_decode, file_timeout=0.2)
    upload = _file("plan.txt", "Budget is 40k for the launch.")
    seen: set[str] = set()

    first = await pipeline.ingest([upload], "p1", seen_fingerprints=seen)

    assert "Timed out" in first.failed[0].error
    assert first.failed[0].document_id is None
    assert docstore.list_documents("p1") == []
    assert fingerprint(upload.data) not in seen

    slow = False
    retry = await pipeline.ingest([upload], "p1", seen_fingerprints=seen)

    assert len(retry.stored) == 1
    assert retry.stored[0].chunks_stored == 1
    stats = memory.stats("p1")
    assert stats.document_count == 1
    assert stats.embedded_chunk_count == 1
    assert len(docstore.list_documents("p1")) == 1


@pytest.mark.asyncio
async def test_indexing_error_removes_the_document(docstore, memory, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("index unavailable")

    monkeypatch.setattr(memory, "store_document", broken)
    pipeline = IngestionPipeline(docstore, memory, extract=_decode)

    report = await pipeline.ingest([_file("a.txt", "Alpha launches in March.")], "p1")

    assert report.failed[0].error == "index unavailable"
    assert docstore.list_documents("p1") == []
    assert docstore.find_document_by_hash("p1", fingerprint(b"Alpha launches in March.")) is None
