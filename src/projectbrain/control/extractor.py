"""Fact extraction — what a new document explicitly states, with quotes."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from pydantic import ValidationError

from projectbrain import llm
from projectbrain.control.prompts import ANALYSIS_SCHEMA, build_extraction_prompt
from projectbrain.errors import EvidenceViolation
from projectbrain.models import ContentAnalysis, ExplicitFact, ExtractionResult, PrimarySubject

log = logging.getLogger(__name__)

GenerateFn = Callable[..., Awaitable[str | dict | list]]


def validate_fact(raw: dict) -> ExplicitFact:
    """Build a fact from a model reply item. Raises EvidenceViolation."""
    statement = str(raw.get("statement") or "").strip()
    quote = str(raw.get("verbatimQuote") or "").strip()
    if not statement:
        raise EvidenceViolation("Fact has no statement")
    if not quote:
        raise EvidenceViolation(f"Fact has no verbatim quote: {statement[:80]}")

    try:
        confidence = float(raw.get("confidence") or 0.0)
    except (TypeError, ValueError):
        confidence = 0.0

    return ExplicitFact(
        statement=statement,
        confidence=min(max(confidence, 0.0), 1.0),
        source_location=str(raw.get("sourceLocation") or ""),
        verbatim_quote=quote,
    )


class FactExtractor:
    """Turns document text into a ContentAnalysis of evidence-backed facts."""

    def __init__(
        self,
        generate: GenerateFn = llm.generate,
        *,
        max_chars: int = 15_000,
        system_prompt: str = "",
    ):
        self.generate = generate
        self.max_chars = max_chars
        self.system_prompt = system_prompt

    async def extract_facts(self, content: str, file_name: str) -> ExtractionResult:
        if not content or not content.strip():
            return ExtractionResult(
                success=False, error="No content to analyze", file_name=file_name
            )

        try:
            raw = await self.generate(
                build_extraction_prompt(content[: self.max_chars], file_name),
                system_prompt=self.system_prompt or None,
                response_schema=ANALYSIS_SCHEMA,
            )
        except Exception as e:
            log.exception("Fact extraction failed for %s", file_name)
            return ExtractionResult(
                success=False, error=str(e) or "Analysis failed", file_name=file_name
            )

        if not isinstance(raw, dict):
            return ExtractionResult(
                success=False,
                error="Analysis response was not a JSON object",
                file_name=file_name,
            )
        if not isinstance(raw.get("primarySubject"), dict):
            return ExtractionResult(
                success=False,
                error="Analysis response has no primary subject",
                file_name=file_name,
            )

        facts: list[ExplicitFact] = []
        discarded = 0
        for item in raw.get("explicitFacts") or []:
            if not isinstance(item, dict):
                discarded += 1
                continue
            try:
                facts.append(validate_fact(item))
            except EvidenceViolation as e:
                discarded += 1
                log.debug("Discarding fact from %s: %s", file_name, e)

        if discarded:
            log.info("Discarded %d facts without evidence from %s", discarded, file_name)

        try:
            analysis = ContentAnalysis(
                primary_subject=PrimarySubject.model_validate(raw["primarySubject"]),
                explicit_facts=facts,
                out_of_scope=[str(s) for s in raw.get("outOfScope") or []],
                stated_boundaries=[str(s) for s in raw.get("statedBoundaries") or []],
            )
        except ValidationError as e:
            return ExtractionResult(
                success=False, error=f"Invalid analysis response: {e}", file_name=file_name
            )

        return ExtractionResult(
            success=True,
            content_analysis=analysis,
            file_name=file_name,
            content_length=len(content),
            discarded_facts=discarded,
        )
