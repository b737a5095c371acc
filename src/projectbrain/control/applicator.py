"""Applies approved changes to stored documents.

Each change is an exact substring replacement, re-located in the working
copy right before it is substituted. A successful document update appends a
version history entry, bumps the version and re-indexes the document.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from projectbrain.errors import StaleChangeError
from projectbrain.ingest.fingerprint import fingerprint
from projectbrain.memory.store import MemoryStore
from projectbrain.models import (
    ApplyReport,
    ChangeFailure,
    ChangeStatus,
    DocumentApplyResult,
    ProposedChange,
    VersionHistoryEntry,
)
from projectbrain.stores.docstore import DocStore

log = logging.getLogger(__name__)

_MAJOR_RE = re.compile(r"\bmajor\b", re.IGNORECASE)


def bump_version(version: str | None, change_notes: str = "") -> str:
    """Next ``major.minor`` version. Notes mentioning "major" bump major."""
    parts = (version or "1.0").split(".")
    try:
        major = int(parts[0])
        minor = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        major, minor = 1, 0
    if _MAJOR_RE.search(change_notes or ""):
        return f"{major + 1}.0"
    return f"{major}.{minor + 1}"


def locate(content: str, change: ProposedChange) -> int:
    """Offset of the change's original text in content. Raises StaleChangeError."""
    original = change.original_text
    start = change.start_index
    if start is not None and content[start : start + len(original)] == original:
        return start
    index = content.find(original)
    if index < 0:
        raise StaleChangeError(change.id)
    return index


def _apply_order(change: ProposedChange) -> tuple[bool, int]:
    # Highest offset first, unknown offsets last.
    return (change.start_index is None, -(change.start_index or 0))


class ChangeApplicator:
    """Writes approved changes back to the docstore and the memory index."""

    def __init__(self, docstore: DocStore, memory: MemoryStore):
        self.docstore = docstore
        self.memory = memory

    async def apply_changes(
        self,
        changes: list[ProposedChange],
        user_id: str,
        project_id: str,
        *,
        change_notes: str | None = None,
    ) -> ApplyReport:
        by_doc: dict[str, list[ProposedChange]] = {}
        for change in changes:
            if change.status == ChangeStatus.APPROVED:
                by_doc.setdefault(change.document_id, []).append(change)

        if not by_doc:
            return ApplyReport(success=False, error="No changes to apply")

        results: list[DocumentApplyResult] = []
        for document_id, doc_changes in by_doc.items():
            try:
                result = await self._apply_to_document(
                    document_id, doc_changes, user_id, project_id, change_notes
                )
            except Exception as e:
                log.exception("Error applying changes to document %s", document_id)
                result = DocumentApplyResult(
                    document_id=document_id,
                    success=False,
                    failures=[
                        ChangeFailure(change_id=c.id, reason="error", error=str(e))
                        for c in doc_changes
                    ],
                    error=str(e),
                )
            results.append(result)

        return ApplyReport(
            success=any(r.success for r in results),
            results=results,
            total_applied=sum(r.changes_applied for r in results if r.success),
        )

    async def _apply_to_document(
        self,
        document_id: str,
        changes: list[ProposedChange],
        user_id: str,
        project_id: str,
        change_notes: str | None,
    ) -> DocumentApplyResult:
        doc = self.docstore.get_document(project_id, document_id)
        if doc is None:
            return self._fail_all(document_id, changes, "not_found", "Document not found")
        if not doc.content:
            return self._fail_all(
                document_id, changes, "no_content", "No document content available"
            )

        working = doc.content
        applied: list[ProposedChange] = []
        failures: list[ChangeFailure] = []

        for change in sorted(changes, key=_apply_order):
            try:
                index = locate(working, change)
            except StaleChangeError as e:
                log.warning("Change %s is stale for %s", change.id, doc.title)
                failures.append(ChangeFailure(change_id=change.id, reason="stale", error=str(e)))
                continue
            working = (
                working[:index]
                + change.replacement_text
                + working[index + len(change.original_text) :]
            )
            applied.append(change)

        if not applied:
            return DocumentApplyResult(
                document_id=document_id,
                document_title=doc.title,
                success=False,
                failures=failures,
                error="No changes could be applied",
            )

        notes = change_notes or "AI-assisted update: " + ", ".join(
            c.section_name or "untitled section" for c in applied
        )
        # Only notes written by the user can ask for a major bump.
        new_version = bump_version(doc.version, change_notes or "")
        doc.version_history.append(
            VersionHistoryEntry(
                version=doc.version,
                content=doc.content,
                file_url=doc.file_url,
                created_by=user_id,
                change_notes=notes,
                content_hash=doc.content_hash or fingerprint(doc.content),
            )
        )
        doc.content = working
        doc.content_hash = fingerprint(working)
        doc.version = new_version
        doc.updated_at = datetime.now(timezone.utc)
        self.docstore.upsert_document(doc)

        for change in applied:
            change.status = ChangeStatus.APPLIED
        log.info("Applied %d changes to %s (v%s)", len(applied), doc.title, new_version)

        result = DocumentApplyResult(
            document_id=document_id,
            document_title=doc.title,
            success=True,
            new_version=new_version,
            applied_change_ids=[c.id for c in applied],
            failures=failures,
            changes_applied=len(applied),
        )
        try:
            result.reindexed_chunks = await self.memory.reindex_document(
                project_id,
                document_id=document_id,
                document_name=doc.title,
                content=working,
                content_hash=doc.content_hash,
            )
        except Exception as e:
            log.exception("Re-index failed for %s", doc.title)
            result.error = f"Re-index failed: {e}"
        return result

    @staticmethod
    def _fail_all(
        document_id: str, changes: list[ProposedChange], reason: str, error: str
    ) -> DocumentApplyResult:
        return DocumentApplyResult(
            document_id=document_id,
            success=False,
            failures=[ChangeFailure(change_id=c.id, reason=reason, error=error) for c in changes],
            error=error,
        )
