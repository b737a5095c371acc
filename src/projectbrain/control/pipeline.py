"""Document control — end-to-end analysis of an upload and change application."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from projectbrain.control.applicator import ChangeApplicator
from projectbrain.control.extractor import FactExtractor
from projectbrain.control.matcher import ScopeBoundedMatcher
from projectbrain.control.proposer import ChangeProposer
from projectbrain.ingest.normalizers import extract_text
from projectbrain.models import (
    AffectedDocument,
    AnalysisSummary,
    ApplyReport,
    ControlAnalysis,
    ProgressEvent,
    ProposedChange,
    UploadedDocumentInfo,
    UploadedFile,
)

log = logging.getLogger(__name__)

ExtractFn = Callable[[UploadedFile], Awaitable[str]]
ProgressFn = Callable[[ProgressEvent], None]

PREVIEW_CHARS = 1000


class DocumentControl:
    """Runs extract → analyze → match → propose, and applies approved changes."""

    def __init__(
        self,
        extractor: FactExtractor,
        matcher: ScopeBoundedMatcher,
        proposer: ChangeProposer,
        applicator: ChangeApplicator,
        *,
        extract: ExtractFn = extract_text,
    ):
        self.extractor = extractor
        self.matcher = matcher
        self.proposer = proposer
        self.applicator = applicator
        self.extract = extract

    async def run_control_analysis(
        self,
        file: UploadedFile,
        project_id: str,
        *,
        on_progress: ProgressFn | None = None,
    ) -> ControlAnalysis:
        """Analyze an upload against a project's documents.

        Never raises: every failure is reported as ``success=False``.
        """

        def progress(step: str, percent: int, message: str) -> None:
            if on_progress:
                on_progress(ProgressEvent(step=step, progress_percent=percent, message=message))

        try:
            progress("extracting", 10, "Extracting document content...")
            content = await self.extract(file)

            progress("analyzing", 30, "Analyzing document content...")
            extraction = await self.extractor.extract_facts(content, file.name)
            if not extraction.success:
                return ControlAnalysis(success=False, error=extraction.error)
            analysis = extraction.content_analysis

            progress("matching", 50, "Finding related documents...")
            matches = await self.matcher.find_matches(analysis, project_id)
            if not matches.success or not matches.matches:
                if not matches.success:
                    log.warning("Matching failed for %s: %s", file.name, matches.error)
                return ControlAnalysis(
                    success=True,
                    no_matches=True,
                    message="No related documents found in this project.",
                    content_analysis=analysis,
                    uploaded_document=UploadedDocumentInfo(
                        file_name=file.name, file_size=file.size, extracted_content=content
                    ),
                )

            progress("generating", 70, "Generating proposed changes...")
            proposals = await self.proposer.propose_changes(analysis, matches.matches, file.name)
            if not proposals.success:
                return ControlAnalysis(success=False, error=proposals.error)

            progress("complete", 100, "Analysis complete")
        except Exception as e:
            log.exception("Document control analysis failed for %s", file.name)
            return ControlAnalysis(success=False, error=str(e) or "Analysis failed")

        affected = group_by_document(proposals.changes)
        policy = self.proposer.policy
        changes = proposals.changes
        preview = content[:PREVIEW_CHARS] + ("..." if len(content) > PREVIEW_CHARS else "")

        return ControlAnalysis(
            success=True,
            uploaded_document=UploadedDocumentInfo(
                file_name=file.name, file_size=file.size, extracted_content=preview
            ),
            content_analysis=analysis,
            affected_documents=affected,
            summary=AnalysisSummary(
                total_documents=len(affected),
                total_changes=len(changes),
                high_confidence_changes=sum(
                    policy.is_high_confidence(c.evidence.confidence.overall) for c in changes
                ),
                low_confidence_changes=sum(
                    policy.is_low_confidence(c.evidence.confidence.overall) for c in changes
                ),
            ),
        )

    async def apply_approved_changes(
        self,
        changes: list[ProposedChange],
        user_id: str,
        project_id: str,
        *,
        change_notes: str | None = None,
    ) -> ApplyReport:
        return await self.applicator.apply_changes(
            changes, user_id, project_id, change_notes=change_notes
        )


def group_by_document(changes: list[ProposedChange]) -> list[AffectedDocument]:
    """Group changes per document with a running average confidence."""
    docs: dict[str, AffectedDocument] = {}
    for change in changes:
        doc = docs.get(change.document_id)
        if doc is None:
            doc = docs[change.document_id] = AffectedDocument(
                document_id=change.document_id, document_title=change.document_title
            )
        doc.changes.append(change)
        doc.total_changes += 1
        doc.overall_confidence = (
            doc.overall_confidence * (doc.total_changes - 1) + change.evidence.confidence.overall
        ) / doc.total_changes
    return list(docs.values())
