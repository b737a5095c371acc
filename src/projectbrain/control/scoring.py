"""Confidence scoring for proposed changes and the threshold policy."""

from __future__ import annotations

from projectbrain.config import ConfidenceThresholds, ConfidenceWeights
from projectbrain.models import ConfidenceScore, ConfidenceTier

EVIDENCE_DIRECT = 0.9
EVIDENCE_INDIRECT = 0.3
DEFAULT_SUBJECT_MATCH = 0.5


def change_minimality(original: str, proposed: str) -> float:
    """How small an edit is, in [0, 1]. Higher means more minimal.

    Blends the length ratio (30%) with the word-set overlap (70%).
    """
    if not original or not proposed:
        return 0.5

    length_ratio = min(len(original), len(proposed)) / max(len(original), len(proposed))
    original_words = set(original.lower().split())
    proposed_words = set(proposed.lower().split())
    largest = max(len(original_words), len(proposed_words))
    word_overlap = len(original_words & proposed_words) / largest if largest else 0.0
    return length_ratio * 0.3 + word_overlap * 0.7


def score_change(
    subject_match: float | None,
    source_quote: str | None,
    original: str,
    proposed: str,
    weights: ConfidenceWeights | None = None,
) -> ConfidenceScore:
    """Weighted four-factor confidence for one proposed change."""
    w = weights or ConfidenceWeights()
    subject = DEFAULT_SUBJECT_MATCH if subject_match is None else min(max(subject_match, 0.0), 1.0)
    evidence = EVIDENCE_DIRECT if source_quote and source_quote.strip() else EVIDENCE_INDIRECT
    scope = 1.0
    minimality = change_minimality(original, proposed)

    overall = (
        subject * w.subject_match
        + evidence * w.evidence_directness
        + scope * w.scope_containment
        + minimality * w.change_minimality
    )
    return ConfidenceScore(
        subject_match=subject,
        factual_alignment=evidence,
        scope_containment=scope,
        change_minimality=minimality,
        overall=min(overall, 1.0),
    )


class ScoringPolicy:
    """Weights plus the thresholds that bucket an overall score."""

    def __init__(
        self,
        weights: ConfidenceWeights | None = None,
        thresholds: ConfidenceThresholds | None = None,
    ):
        self.weights = weights or ConfidenceWeights()
        self.thresholds = thresholds or ConfidenceThresholds()

    def score(
        self, subject_match: float | None, source_quote: str | None, original: str, proposed: str
    ) -> ConfidenceScore:
        return score_change(subject_match, source_quote, original, proposed, self.weights)

    def tier(self, overall: float) -> ConfidenceTier:
        t = self.thresholds
        if overall < t.do_not_propose:
            return ConfidenceTier.DISCARD
        if overall < t.flagged_for_review:
            return ConfidenceTier.FLAGGED
        if overall < t.standard_proposal:
            return ConfidenceTier.NEEDS_CONFIRMATION
        if overall < t.auto_approve_eligible:
            return ConfidenceTier.STANDARD
        return ConfidenceTier.AUTO_APPROVE_ELIGIBLE

    def requires_confirmation(self, overall: float) -> bool:
        return overall < self.thresholds.standard_proposal

    def is_high_confidence(self, overall: float) -> bool:
        return overall >= self.thresholds.standard_proposal

    def is_low_confidence(self, overall: float) -> bool:
        return overall < self.thresholds.flagged_for_review
