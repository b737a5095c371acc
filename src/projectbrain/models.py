"""Shared domain models used across the system."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class CamelModel(BaseModel):
    """Base for shapes exchanged with the LLM and the UI layer (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Memory: documents, chunks, messages
# ---------------------------------------------------------------------------

class TextSpan(BaseModel):
    """One chunker output. start_char/end_char cover the non-overlap part."""

    text: str
    index: int
    start_char: int
    end_char: int


class VersionHistoryEntry(BaseModel):
    """A snapshot of a document taken before it was modified."""

    version: str
    content: str | None = None
    file_url: str | None = None
    created_date: datetime = Field(default_factory=_now)
    created_by: str | None = None
    change_notes: str = ""
    content_hash: str | None = None


class ProjectDocument(BaseModel):
    """A document owned by a project, as stored in the docstore."""

    document_id: str = Field(default_factory=_new_id)
    project_id: str
    title: str
    file_name: str = ""
    file_url: str | None = None
    content: str = ""
    content_hash: str = ""
    version: str = "1.0"
    version_history: list[VersionHistoryEntry] = []
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Chunk(BaseModel):
    """A chunk of a project document, ready for embedding."""

    chunk_id: str = Field(default_factory=_new_id)
    project_id: str
    document_id: str
    document_name: str = ""
    chunk_index: int
    text: str
    content_hash: str | None = None
    start_char: int = 0
    end_char: int = 0
    embed_model: str | None = None
    created_at: datetime = Field(default_factory=_now)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class StoredMessage(BaseModel):
    """A chat message kept verbatim for later recall. Never mutated."""

    message_id: str = Field(default_factory=_new_id)
    project_id: str
    session_id: str | None = None
    role: MessageRole = MessageRole.USER
    content: str
    created_by: str | None = None
    embed_model: str | None = None
    created_at: datetime = Field(default_factory=_now)


class ChunkHit(BaseModel):
    """A document chunk returned by a memory search."""

    chunk_id: str
    document_id: str
    document_name: str = ""
    chunk_index: int
    text: str
    similarity: float


class MessageHit(BaseModel):
    """A chat message returned by a memory search."""

    message_id: str
    session_id: str | None = None
    role: MessageRole
    content: str
    similarity: float


class MemoryStats(BaseModel):
    message_count: int = 0
    document_count: int = 0
    chunk_count: int = 0
    embedded_chunk_count: int = 0


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

class UploadedFile(BaseModel):
    """Raw bytes of an upload plus what object storage told us about it."""

    name: str
    data: bytes
    content_type: str | None = None
    url: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


class FileStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    STORED = "stored"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    FAILED = "failed"


class IngestItem(BaseModel):
    file_name: str
    status: FileStatus = FileStatus.QUEUED
    fingerprint: str | None = None
    document_id: str | None = None
    chunks_stored: int = 0
    error: str | None = None


class IngestReport(BaseModel):
    stored: list[IngestItem] = []
    skipped: list[IngestItem] = []
    failed: list[IngestItem] = []
    total: int = 0


# ---------------------------------------------------------------------------
# Document control: analysis
# ---------------------------------------------------------------------------

class PrimarySubject(CamelModel):
    domain: str = "other"
    specific_area: str = ""
    scope: str = ""


class ExplicitFact(CamelModel):
    statement: str
    confidence: float = 0.0
    source_location: str = ""
    verbatim_quote: str


class ContentAnalysis(CamelModel):
    primary_subject: PrimarySubject
    explicit_facts: list[ExplicitFact] = []
    out_of_scope: list[str] = []
    stated_boundaries: list[str] = []


class ExtractionResult(CamelModel):
    success: bool
    content_analysis: ContentAnalysis | None = None
    error: str | None = None
    file_name: str = ""
    content_length: int = 0
    discarded_facts: int = 0


class MatchedChunk(CamelModel):
    chunk_index: int
    chunk_text: str
    similarity: float
    matched_queries: list[str] = []


class DocumentMatch(CamelModel):
    document_id: str
    document_name: str = ""
    chunks: list[MatchedChunk] = []
    max_similarity: float = 0.0


class MatchResult(CamelModel):
    success: bool
    matches: list[DocumentMatch] = []
    total_chunks_found: int = 0
    error: str | None = None


# ---------------------------------------------------------------------------
# Document control: proposals
# ---------------------------------------------------------------------------

class ChangeStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"


class ConfidenceTier(str, Enum):
    DISCARD = "discard"
    FLAGGED = "flagged"
    NEEDS_CONFIRMATION = "needs_confirmation"
    STANDARD = "standard"
    AUTO_APPROVE_ELIGIBLE = "auto_approve_eligible"


class ConfidenceScore(CamelModel):
    subject_match: float
    factual_alignment: float
    scope_containment: float
    change_minimality: float
    overall: float


class Evidence(CamelModel):
    source_quote: str
    source_location: str = "Uploaded document"
    match_reason: str = "related_topic"
    reasoning: str = ""
    confidence: ConfidenceScore
    tier: ConfidenceTier = ConfidenceTier.STANDARD


class ScopeJustification(CamelModel):
    within_primary_subject: bool = False
    within_specific_area: bool = False
    within_stated_scope: bool = True
    crosses_feature_boundary: bool = False
    requires_user_confirmation: bool = True


class ProposedChange(CamelModel):
    id: str = Field(default_factory=lambda: f"change_{uuid.uuid4().hex[:12]}")
    document_id: str
    document_title: str = ""
    section_name: str = ""
    original_text: str
    proposed_text: str
    user_edited_text: str | None = None
    start_index: int | None = None
    end_index: int | None = None
    status: ChangeStatus = ChangeStatus.PENDING
    evidence: Evidence
    scope_justification: ScopeJustification = ScopeJustification()

    @property
    def replacement_text(self) -> str:
        return self.user_edited_text if self.user_edited_text is not None else self.proposed_text


class ProposalResult(CamelModel):
    success: bool
    changes: list[ProposedChange] = []
    total_changes: int = 0
    error: str | None = None


# ---------------------------------------------------------------------------
# Document control: application
# ---------------------------------------------------------------------------

class ChangeFailure(CamelModel):
    change_id: str
    reason: str  # "stale", "not_found", "no_content", "error"
    error: str


class DocumentApplyResult(CamelModel):
    document_id: str
    document_title: str = ""
    success: bool
    new_version: str | None = None
    applied_change_ids: list[str] = []
    failures: list[ChangeFailure] = []
    changes_applied: int = 0
    reindexed_chunks: int = 0
    error: str | None = None


class ApplyReport(CamelModel):
    success: bool
    results: list[DocumentApplyResult] = []
    total_applied: int = 0
    error: str | None = None


# ---------------------------------------------------------------------------
# Document control: orchestration
# ---------------------------------------------------------------------------

class ProgressEvent(CamelModel):
    step: str  # extracting, analyzing, matching, generating, complete
    progress_percent: int
    message: str


class UploadedDocumentInfo(CamelModel):
    file_name: str
    file_size: int
    extracted_content: str = ""


class AffectedDocument(CamelModel):
    document_id: str
    document_title: str = ""
    changes: list[ProposedChange] = []
    total_changes: int = 0
    overall_confidence: float = 0.0


class AnalysisSummary(CamelModel):
    total_documents: int = 0
    total_changes: int = 0
    high_confidence_changes: int = 0
    low_confidence_changes: int = 0


class ControlAnalysis(CamelModel):
    success: bool
    error: str | None = None
    no_matches: bool = False
    message: str | None = None
    uploaded_document: UploadedDocumentInfo | None = None
    content_analysis: ContentAnalysis | None = None
    affected_documents: list[AffectedDocument] = []
    summary: AnalysisSummary = AnalysisSummary()


class ChatAnswer(BaseModel):
    answer: str
    context: str = ""
