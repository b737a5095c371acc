"""Ingestion pipeline — fingerprint → dedup → extract → store → index.

Processes a batch of uploads with a bounded number of files in flight.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from projectbrain.ingest.fingerprint import fingerprint
from projectbrain.ingest.normalizers import extract_text
from projectbrain.memory.store import MemoryStore
from projectbrain.models import (
    FileStatus,
    IngestItem,
    IngestReport,
    ProjectDocument,
    UploadedFile,
)
from projectbrain.stores.docstore import DocStore

log = logging.getLogger(__name__)

ExtractFn = Callable[[UploadedFile], Awaitable[str]]
ProgressFn = Callable[[int, int], None]


class IngestionPipeline:
    """Upload batch processor with a fixed concurrency cap."""

    def __init__(
        self,
        docstore: DocStore,
        memory: MemoryStore,
        *,
        extract: ExtractFn = extract_text,
        concurrency: int = 3,
        file_timeout: float = 300.0,
        max_file_size: int = 100 * 1024 * 1024,
    ):
        self.docstore = docstore
        self.memory = memory
        self.extract = extract
        self.concurrency = max(1, concurrency)
        self.file_timeout = file_timeout
        self.max_file_size = max_file_size

    async def ingest(
        self,
        files: list[UploadedFile],
        project_id: str,
        *,
        on_progress: ProgressFn | None = None,
        seen_fingerprints: set[str] | None = None,
    ) -> IngestReport:
        """Ingest a batch of uploads into a project.

        Args:
            files: Uploaded files (raw bytes plus object-storage URL).
            project_id: Owning project.
            on_progress: Called with (processed, total) after every file.
            seen_fingerprints: Fingerprints already accepted this session.
                Updated in place with every file stored from this batch.

        Returns:
            IngestReport grouping per-file outcomes. A failing file never
            aborts the batch.
        """
        seen = seen_fingerprints if seen_fingerprints is not None else set()
        items = [IngestItem(file_name=f.name) for f in files]
        total = len(files)
        processed = 0
        semaphore = asyncio.Semaphore(self.concurrency)

        async def worker(file: UploadedFile, item: IngestItem) -> None:
            nonlocal processed
            async with semaphore:
                item.status = FileStatus.PROCESSING
                try:
                    await asyncio.wait_for(
                        self._process(file, item, project_id, seen),
                        timeout=self.file_timeout,
                    )
                except asyncio.TimeoutError:
                    log.warning("Ingest of %s timed out", file.name)
                    await self._fail(
                        item, project_id, seen, f"Timed out after {self.file_timeout}s"
                    )
                except Exception as e:
                    log.exception("Ingest of %s failed", file.name)
                    await self._fail(item, project_id, seen, str(e) or type(e).__name__)
                processed += 1
                if on_progress:
                    on_progress(processed, total)

        await asyncio.gather(*(worker(f, i) for f, i in zip(files, items)))

        report = IngestReport(total=total)
        for item in items:
            if item.status == FileStatus.STORED:
                report.stored.append(item)
            elif item.status == FileStatus.SKIPPED_DUPLICATE:
                report.skipped.append(item)
            else:
                report.failed.append(item)

        log.info(
            "Ingested %d/%d files for project %s (%d duplicates, %d failed)",
            len(report.stored),
            total,
            project_id,
            len(report.skipped),
            len(report.failed),
        )
        return report

    async def _process(
        self,
        file: UploadedFile,
        item: IngestItem,
        project_id: str,
        seen: set[str],
    ) -> None:
        if file.size > self.max_file_size:
            item.status = FileStatus.FAILED
            item.error = f"File exceeds {self.max_file_size} bytes"
            return

        digest = fingerprint(file.data)
        item.fingerprint = digest

        # Check-and-claim with no await in between.
        if digest in seen or self.docstore.find_document_by_hash(project_id, digest):
            item.status = FileStatus.SKIPPED_DUPLICATE
            log.info("Skipping duplicate upload: %s", file.name)
            return
        seen.add(digest)

        log.info("Ingesting: %s", file.name)
        content = await self.extract(file)

        doc = ProjectDocument(
            project_id=project_id,
            title=file.name,
            file_name=file.name,
            file_url=file.url,
            content=content,
            content_hash=digest,
        )
        self.docstore.upsert_document(doc)
        item.document_id = doc.document_id

        item.chunks_stored = await self.memory.store_document(
            project_id,
            document_id=doc.document_id,
            document_name=doc.title,
            content=content,
            content_hash=digest,
        )
        item.status = FileStatus.STORED

    async def _fail(
        self, item: IngestItem, project_id: str, seen: set[str], error: str
    ) -> None:
        item.status = FileStatus.FAILED
        item.error = error
        item.chunks_stored = 0
        if item.document_id is not None:
            # Roll back the half-ingested document so its bytes can be retried.
            try:
                await self.memory.delete_document_chunks(project_id, item.document_id)
                self.docstore.delete_document(project_id, item.document_id)
            except Exception:
                log.exception("Could not roll back document %s", item.document_id)
                return
            item.document_id = None
        # Release the claim so a retry of the same bytes is not a duplicate.
        if item.fingerprint:
            seen.discard(item.fingerprint)
