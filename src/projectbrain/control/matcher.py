"""Scope-bounded matching of extracted facts against project documents."""

from __future__ import annotations

import asyncio
import logging

from projectbrain.memory.store import MemoryStore
from projectbrain.models import (
    ChunkHit,
    ContentAnalysis,
    DocumentMatch,
    MatchedChunk,
    MatchResult,
)

log = logging.getLogger(__name__)


def build_queries(analysis: ContentAnalysis, max_fact_queries: int = 5) -> list[str]:
    """Search queries for an analysis: area, scope, then leading facts."""
    candidates = [
        analysis.primary_subject.specific_area,
        analysis.primary_subject.scope,
        *(f.statement for f in analysis.explicit_facts[:max_fact_queries]),
    ]
    queries: list[str] = []
    for q in candidates:
        q = (q or "").strip()
        if q and q not in queries:
            queries.append(q)
    return queries


class ScopeBoundedMatcher:
    """Finds the document chunks a new document's subject and facts touch."""

    def __init__(
        self,
        memory: MemoryStore,
        *,
        max_fact_queries: int = 5,
        query_limit: int = 10,
        query_threshold: float = 0.4,
        max_documents: int = 10,
    ):
        self.memory = memory
        self.max_fact_queries = max_fact_queries
        self.query_limit = query_limit
        self.query_threshold = query_threshold
        self.max_documents = max_documents

    async def find_matches(self, analysis: ContentAnalysis | None, project_id: str) -> MatchResult:
        if analysis is None or not project_id:
            return MatchResult(success=False, error="Missing required parameters")

        queries = build_queries(analysis, self.max_fact_queries)
        if not queries:
            return MatchResult(success=True)

        try:
            per_query = await asyncio.gather(
                *(
                    self.memory.search_documents(
                        q, project_id, limit=self.query_limit, threshold=self.query_threshold
                    )
                    for q in queries
                )
            )
        except Exception as e:
            log.exception("Matching failed for project %s", project_id)
            return MatchResult(success=False, error=str(e))

        # Merge hits from every query, keyed by chunk position.
        merged: dict[tuple[str, int], tuple[ChunkHit, MatchedChunk]] = {}
        for query, hits in zip(queries, per_query):
            for hit in hits:
                key = (hit.document_id, hit.chunk_index)
                if key in merged:
                    chunk = merged[key][1]
                    chunk.similarity = max(chunk.similarity, hit.similarity)
                    chunk.matched_queries.append(query)
                else:
                    merged[key] = (
                        hit,
                        MatchedChunk(
                            chunk_index=hit.chunk_index,
                            chunk_text=hit.text,
                            similarity=hit.similarity,
                            matched_queries=[query],
                        ),
                    )

        documents: dict[str, DocumentMatch] = {}
        for hit, chunk in merged.values():
            doc = documents.get(hit.document_id)
            if doc is None:
                doc = documents[hit.document_id] = DocumentMatch(
                    document_id=hit.document_id, document_name=hit.document_name
                )
            doc.chunks.append(chunk)
            doc.max_similarity = max(doc.max_similarity, chunk.similarity)

        matches = sorted(documents.values(), key=lambda d: d.max_similarity, reverse=True)
        log.info(
            "Matched %d chunks across %d documents from %d queries",
            len(merged),
            len(documents),
            len(queries),
        )
        return MatchResult(
            success=True,
            matches=matches[: self.max_documents],
            total_chunks_found=len(merged),
        )
