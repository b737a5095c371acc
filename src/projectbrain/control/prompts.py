"""Prompt builders and response schemas for the document control pipeline."""

from __future__ import annotations

from projectbrain.models import ContentAnalysis

ANALYSIS_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "primarySubject": {
            "type": "object",
            "properties": {
                "domain": {
                    "type": "string",
                    "description": (
                        "Category: feature, budget, timeline, technical, policy, "
                        "process, specification, or other"
                    ),
                },
                "specificArea": {
                    "type": "string",
                    "description": "The specific feature, area, or topic being addressed",
                },
                "scope": {
                    "type": "string",
                    "description": "The specific aspect or scope within that area",
                },
            },
            "required": ["domain", "specificArea", "scope"],
        },
        "explicitFacts": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "statement": {"type": "string", "description": "The factual statement"},
                    "confidence": {
                        "type": "number",
                        "description": "Confidence 0.0-1.0 that this is explicitly stated",
                    },
                    "sourceLocation": {
                        "type": "string",
                        "description": 'Where in document (e.g., "Paragraph 2", "Section 3")',
                    },
                    "verbatimQuote": {
                        "type": "string",
                        "description": "Direct quote from document supporting this fact",
                    },
                },
                "required": ["statement", "confidence", "sourceLocation", "verbatimQuote"],
            },
            "description": "Facts EXPLICITLY stated in the document (not inferred)",
        },
        "outOfScope": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Areas/topics NOT addressed by this document",
        },
        "statedBoundaries": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Explicit scope limitations stated in the document",
        },
    },
    "required": ["primarySubject", "explicitFacts", "outOfScope", "statedBoundaries"],
}

CHANGE_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "proposedChanges": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "sectionName": {
                        "type": "string",
                        "description": "Name or description of the section",
                    },
                    "originalText": {
                        "type": "string",
                        "description": "EXACT text from existing document to replace",
                    },
                    "proposedText": {"type": "string", "description": "New text to replace with"},
                    "sourceQuote": {
                        "type": "string",
                        "description": "Verbatim quote from uploaded doc justifying change",
                    },
                    "sourceLocation": {
                        "type": "string",
                        "description": "Where in uploaded doc the evidence is",
                    },
                    "subjectMatchScore": {
                        "type": "number",
                        "description": "How closely subjects match (0.0-1.0)",
                    },
                    "reasoning": {
                        "type": "string",
                        "description": "Brief explanation of why this change",
                    },
                },
                "required": [
                    "sectionName",
                    "originalText",
                    "proposedText",
                    "sourceQuote",
                    "subjectMatchScore",
                    "reasoning",
                ],
            },
        },
        "noChangesReason": {
            "type": "string",
            "description": "If no changes proposed, explain why",
        },
    },
    "required": ["proposedChanges"],
}


def build_extraction_prompt(content: str, file_name: str) -> str:
    return f"""Analyze this document and extract ONLY what is EXPLICITLY stated.

DOCUMENT: "{file_name}"
---
{content}
---

CRITICAL RULES:
1. Only extract facts that are EXPLICITLY stated - no inference
2. Include verbatim quotes as evidence for each fact
3. Identify what this document is specifically about (not broadly)
4. Note what is NOT addressed (helps prevent scope creep later)
5. If the document states any limitations or boundaries, capture them

Return structured analysis."""


def build_proposal_prompt(
    analysis: ContentAnalysis,
    file_name: str,
    document_name: str,
    content: str,
) -> str:
    subject = analysis.primary_subject
    facts = "\n".join(
        f'{i}. "{f.statement}" [Source: {f.verbatim_quote}]'
        for i, f in enumerate(analysis.explicit_facts, 1)
    )
    return f"""Compare the uploaded document facts with this existing document section and propose SURGICAL changes.

UPLOADED DOCUMENT: "{file_name}"
PRIMARY SUBJECT: {subject.domain} > {subject.specific_area} > {subject.scope}

EXPLICIT FACTS FROM UPLOADED DOCUMENT:
{facts}

---

EXISTING DOCUMENT: "{document_name}"
CONTENT TO ANALYZE:
{content}

---

CRITICAL RULES:
1. ONLY propose changes for text that DIRECTLY addresses the same subject as the uploaded document
2. Each change MUST have a verbatim quote from the uploaded document as evidence
3. Make MINIMAL changes - only modify what is explicitly outdated
4. Do NOT modify related topics, adjacent features, or make improvements
5. If the existing text doesn't contradict the new facts, do NOT propose a change
6. originalText must be EXACT text from the existing document (copy-paste precision)

If you cannot find clear evidence for a change, do NOT propose it."""
