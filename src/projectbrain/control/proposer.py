"""Change proposal — surgical edits backed by verbatim evidence."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from projectbrain import llm
from projectbrain.control.prompts import CHANGE_SCHEMA, build_proposal_prompt
from projectbrain.control.scoring import ScoringPolicy
from projectbrain.errors import EvidenceViolation
from projectbrain.models import (
    ContentAnalysis,
    DocumentMatch,
    Evidence,
    ProposalResult,
    ProposedChange,
    ScopeJustification,
)

log = logging.getLogger(__name__)

GenerateFn = Callable[..., Awaitable[str | dict | list]]


def _subject_score(raw) -> float | None:
    if isinstance(raw, bool) or raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _require_evidence(item: dict) -> tuple[str, str, str]:
    """Return (original, proposed, quote) or raise EvidenceViolation."""
    original = item.get("originalText")
    proposed = item.get("proposedText")
    quote = item.get("sourceQuote")
    if not isinstance(original, str) or not original.strip():
        raise EvidenceViolation("Change has no original text")
    if not isinstance(proposed, str):
        raise EvidenceViolation("Change has no proposed text")
    if not isinstance(quote, str) or not quote.strip():
        raise EvidenceViolation("Change has no source quote")
    if original == proposed:
        raise EvidenceViolation("Proposed text is identical to the original")
    return original, proposed, quote


class ChangeProposer:
    """Asks the model for edits per matched document and scores each one."""

    def __init__(
        self,
        generate: GenerateFn = llm.generate,
        policy: ScoringPolicy | None = None,
        *,
        max_chars: int = 8_000,
        system_prompt: str = "",
    ):
        self.generate = generate
        self.policy = policy or ScoringPolicy()
        self.max_chars = max_chars
        self.system_prompt = system_prompt

    async def propose_changes(
        self,
        analysis: ContentAnalysis | None,
        matches: list[DocumentMatch],
        file_name: str,
    ) -> ProposalResult:
        if analysis is None or not matches:
            return ProposalResult(success=False, error="No content or matches to process")

        changes: list[ProposedChange] = []
        for match in matches:
            try:
                changes.extend(await self._propose_for_document(analysis, match, file_name))
            except Exception:
                log.exception("Change generation failed for %s", match.document_name)

        log.info("Proposed %d changes across %d documents", len(changes), len(matches))
        return ProposalResult(success=True, changes=changes, total_changes=len(changes))

    async def _propose_for_document(
        self, analysis: ContentAnalysis, match: DocumentMatch, file_name: str
    ) -> list[ProposedChange]:
        chunks = sorted(match.chunks, key=lambda c: c.chunk_index)
        content = "\n\n".join(c.chunk_text for c in chunks)[: self.max_chars]

        raw = await self.generate(
            build_proposal_prompt(analysis, file_name, match.document_name, content),
            system_prompt=self.system_prompt or None,
            response_schema=CHANGE_SCHEMA,
        )
        if not isinstance(raw, dict):
            log.warning("Proposal response for %s was not a JSON object", match.document_name)
            return []

        items = raw.get("proposedChanges") or []
        if not items and raw.get("noChangesReason"):
            log.info("No changes for %s: %s", match.document_name, raw["noChangesReason"])

        changes: list[ProposedChange] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                original, proposed, quote = _require_evidence(item)
            except EvidenceViolation as e:
                log.debug("Discarding change for %s: %s", match.document_name, e)
                continue

            subject = _subject_score(item.get("subjectMatchScore"))
            confidence = self.policy.score(subject, quote, original, proposed)
            tier = self.policy.tier(confidence.overall)
            if confidence.overall < self.policy.thresholds.do_not_propose:
                log.debug(
                    "Dropping change below threshold (%.2f) for %s",
                    confidence.overall,
                    match.document_name,
                )
                continue

            start = content.find(original)
            changes.append(
                ProposedChange(
                    document_id=match.document_id,
                    document_title=match.document_name,
                    section_name=str(item.get("sectionName") or ""),
                    original_text=original,
                    proposed_text=proposed,
                    start_index=start if start >= 0 else None,
                    end_index=start + len(original) if start >= 0 else None,
                    evidence=Evidence(
                        source_quote=quote,
                        source_location=str(item.get("sourceLocation") or "Uploaded document"),
                        match_reason=(
                            "exact_subject_match"
                            if confidence.subject_match >= 0.9
                            else "related_topic"
                        ),
                        reasoning=str(item.get("reasoning") or ""),
                        confidence=confidence,
                        tier=tier,
                    ),
                    scope_justification=ScopeJustification(
                        within_primary_subject=confidence.subject_match >= 0.8,
                        within_specific_area=confidence.subject_match >= 0.7,
                        within_stated_scope=True,
                        crosses_feature_boundary=False,
                        requires_user_confirmation=self.policy.requires_confirmation(
                            confidence.overall
                        ),
                    ),
                )
            )
        return changes
