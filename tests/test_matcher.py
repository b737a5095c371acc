"""Tests for projectbrain.control.matcher."""

from __future__ import annotations

import pytest

from projectbrain.control.matcher import ScopeBoundedMatcher, build_queries
from projectbrain.models import ChunkHit, ContentAnalysis, ExplicitFact, PrimarySubject


def _analysis(n_facts=2, area="Mobile app launch", scope="Launch date"):
    return ContentAnalysis(
        primary_subject=PrimarySubject(domain="timeline", specific_area=area, scope=scope),
        explicit_facts=[
            ExplicitFact(statement=f"Fact {i}", verbatim_quote=f"quote {i}")
            for i in range(n_facts)
        ],
    )


def _hit(doc, idx, sim, text=None):
    return ChunkHit(
        chunk_id=f"{doc}-{idx}",
        document_id=doc,
        document_name=f"{doc}.md",
        chunk_index=idx,
        text=text or f"{doc} chunk {idx}",
        similarity=sim,
    )


class StubMemory:
    """Returns canned hits per query and records search arguments."""

    def __init__(self, hits_by_query):
        self.hits_by_query = hits_by_query
        self.calls = []

    async def search_documents(self, query, project_id, *, limit=20, threshold=0.5):
        self.calls.append((query, project_id, limit, threshold))
        return list(self.hits_by_query.get(query, []))


def test_build_queries_caps_facts_and_dedupes():
    analysis = _analysis(n_facts=8, scope="Mobile app launch")
    queries = build_queries(analysis, max_fact_queries=5)
    assert queries == ["Mobile app launch", "Fact 0", "Fact 1", "Fact 2", "Fact 3", "Fact 4"]


def test_build_queries_skips_blanks():
    assert build_queries(_analysis(n_facts=0, area="", scope="  ")) == []


@pytest.mark.asyncio
async def test_merges_hits_by_chunk_and_keeps_max_similarity():
    memory = StubMemory(
        {
            "Mobile app launch": [_hit("roadmap", 0, 0.6), _hit("budget", 3, 0.45)],
            "Launch date": [_hit("roadmap", 0, 0.8), _hit("roadmap", 2, 0.5)],
            "Fact 0": [_hit("roadmap", 0, 0.7)],
        }
    )
    matcher = ScopeBoundedMatcher(memory, query_limit=10, query_threshold=0.4)

    result = await matcher.find_matches(_analysis(n_facts=2), "p1")

    assert result.success
    assert result.total_chunks_found == 3
    assert [m.document_id for m in result.matches] == ["roadmap", "budget"]
    roadmap = result.matches[0]
    assert roadmap.max_similarity == 0.8
    first = next(c for c in roadmap.chunks if c.chunk_index == 0)
    assert first.similarity == 0.8
    assert first.matched_queries == ["Mobile app launch", "Launch date", "Fact 0"]
    assert all(call[2:] == (10, 0.4) for call in memory.calls)
    assert {call[1] for call in memory.calls} == {"p1"}


@pytest.mark.asyncio
async def test_caps_number_of_documents():
    memory = StubMemory(
        {"Mobile app launch": [_hit(f"doc{i}", 0, 0.4 + i / 100) for i in range(15)]}
    )
    result = await ScopeBoundedMatcher(memory, max_documents=10).find_matches(
        _analysis(n_facts=0), "p1"
    )
    assert len(result.matches) == 10
    assert result.matches[0].document_id == "doc14"
    assert result.total_chunks_found == 15


@pytest.mark.asyncio
async def test_missing_inputs_fail():
    matcher = ScopeBoundedMatcher(StubMemory({}))
    assert not (await matcher.find_matches(None, "p1")).success
    assert not (await matcher.find_matches(_analysis(), "")).success


@pytest.mark.asyncio
async def test_end_to_end_with_lexical_memory(offline_memory):
    await offline_memory.store_document(
        "p1",
        document_id="roadmap",
        document_name="roadmap.md",
        content="Mobile app launch is planned for March 15.",
    )
    result = await ScopeBoundedMatcher(offline_memory).find_matches(_analysis(n_facts=0), "p1")
    assert [m.document_id for m in result.matches] == ["roadmap"]
    assert result.matches[0].chunks[0].chunk_text.startswith("Mobile app launch")
