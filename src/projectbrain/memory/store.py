"""Project memory — verbatim recall of chat messages and document chunks.

Stores every message and document chunk, embeds them when a provider is
available, and searches them semantically. Without embeddings the store
degrades to case-insensitive substring search, so recall never depends on
the provider being up.
"""

from __future__ import annotations

import asyncio
import logging
import weakref

from projectbrain.embeddings import EmbeddingGateway
from projectbrain.errors import ProviderUnavailable
from projectbrain.ingest.chunker import chunk_text
from projectbrain.ingest.fingerprint import fingerprint
from projectbrain.models import (
    Chunk,
    ChunkHit,
    MemoryStats,
    MessageHit,
    MessageRole,
    StoredMessage,
)
from projectbrain.stores.docstore import DocStore
from projectbrain.stores.vectorstore import KIND_CHUNK, KIND_MESSAGE, VectorStore

log = logging.getLogger(__name__)

# Similarity attached to lexical-fallback hits so consumers see one shape.
FALLBACK_SIMILARITY = 0.5


class MemoryStore:
    """Chat and document index for a set of projects."""

    def __init__(
        self,
        docstore: DocStore,
        vectorstore: VectorStore,
        gateway: EmbeddingGateway,
        *,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
    ):
        self.docstore = docstore
        self.vectorstore = vectorstore
        self.gateway = gateway
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        # Entries vanish once no coroutine holds or awaits the lock.
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, project_id: str, document_id: str) -> asyncio.Lock:
        key = (project_id, document_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # -- Messages ------------------------------------------------------------

    async def store_message(
        self,
        project_id: str,
        role: MessageRole | str,
        content: str,
        *,
        session_id: str | None = None,
        created_by: str | None = None,
    ) -> StoredMessage | None:
        """Persist a chat message, embedding it when possible."""
        if not project_id or not content or not content.strip():
            log.warning("store_message: missing project id or content")
            return None

        embedding = None
        if self.gateway.is_configured:
            try:
                embedding = await self.gateway.embed(content)
            except ProviderUnavailable as e:
                log.warning("Failed to embed message for project %s: %s", project_id, e)

        message = StoredMessage(
            project_id=project_id,
            session_id=session_id,
            role=MessageRole(role),
            content=content,
            created_by=created_by,
            embed_model=self.gateway.model if embedding is not None else None,
        )
        if embedding is not None:
            try:
                self.vectorstore.upsert_message(message, embedding)
            except Exception:
                log.exception("Vector upsert failed for message in project %s", project_id)
                message = message.model_copy(update={"embed_model": None})
        self.docstore.insert_message(message)
        return message

    # -- Documents -----------------------------------------------------------

    async def store_document(
        self,
        project_id: str,
        *,
        document_id: str,
        document_name: str,
        content: str,
        content_hash: str | None = None,
    ) -> int:
        """Chunk, embed and index a document. No-op if it is already indexed.

        Returns the number of chunks stored.
        """
        async with self._lock_for(project_id, document_id):
            return await self._store_document(
                project_id, document_id, document_name, content, content_hash
            )

    async def reindex_document(
        self,
        project_id: str,
        *,
        document_id: str,
        document_name: str,
        content: str,
        content_hash: str | None = None,
    ) -> int:
        """Rebuild a document's chunks if its content hash changed.

        Returns the number of chunks stored (0 when the hash is unchanged).
        """
        content_hash = content_hash or fingerprint(content)
        async with self._lock_for(project_id, document_id):
            existing_hash = self.docstore.get_chunk_hash(project_id, document_id)
            if existing_hash and existing_hash == content_hash:
                log.info("Document %s unchanged, skipping re-index", document_name)
                return 0

            deleted = self.docstore.delete_doc_chunks(project_id, document_id)
            self.vectorstore.delete_document(project_id, document_id)
            log.info("Deleted %d old chunks for %s", deleted, document_name)

            return await self._store_document(
                project_id, document_id, document_name, content, content_hash
            )

    async def _store_document(
        self,
        project_id: str,
        document_id: str,
        document_name: str,
        content: str,
        content_hash: str | None,
    ) -> int:
        if not project_id or not document_id or not content:
            log.warning("store_document: missing project id, document id or content")
            return 0

        if self.docstore.has_chunks(project_id, document_id):
            log.info("Document %s already indexed for project %s", document_name, project_id)
            return 0

        content_hash = content_hash or fingerprint(content)
        spans = chunk_text(
            content, max_chunk_size=self.chunk_size, overlap=self.chunk_overlap
        )
        if not spans:
            log.info("No chunks generated for document %s", document_name)
            return 0

        embeddings: list[list[float] | None] = [None] * len(spans)
        if self.gateway.is_configured:
            try:
                embeddings = await self.gateway.embed_batch([s.text for s in spans])
            except ProviderUnavailable as e:
                log.warning(
                    "Embedding failed for %s, storing %d chunks without vectors: %s",
                    document_name,
                    len(spans),
                    e,
                )

        chunks = [
            Chunk(
                project_id=project_id,
                document_id=document_id,
                document_name=document_name,
                chunk_index=span.index,
                text=span.text,
                content_hash=content_hash,
                start_char=span.start_char,
                end_char=span.end_char,
                embed_model=self.gateway.model if embedding is not None else None,
            )
            for span, embedding in zip(spans, embeddings)
        ]

        try:
            embedded = self.vectorstore.upsert_chunks(chunks, embeddings)
        except Exception:
            log.exception(
                "Vector upsert failed for %s, keeping chunks unembedded", document_name
            )
            for chunk in chunks:
                chunk.embed_model = None
            embedded = 0
        self.docstore.insert_chunks(chunks)
        log.info(
            "Indexed %d chunks (%d embedded) from %s", len(chunks), embedded, document_name
        )
        return len(chunks)

    async def delete_document_chunks(self, project_id: str, document_id: str) -> bool:
        """Remove a document from the index (e.g. when unlinked from a project)."""
        if not project_id or not document_id:
            log.warning("delete_document_chunks: missing project id or document id")
            return False
        async with self._lock_for(project_id, document_id):
            self.docstore.delete_doc_chunks(project_id, document_id)
            self.vectorstore.delete_document(project_id, document_id)
        log.info("Deleted chunks for document %s from project %s", document_id, project_id)
        return True

    # -- Search --------------------------------------------------------------

    async def search_documents(
        self,
        query: str,
        project_id: str,
        *,
        limit: int = 20,
        threshold: float = 0.5,
    ) -> list[ChunkHit]:
        """Semantic chunk search with lexical fallback.

        Chunks that have no vector from the current model (stored during a
        provider outage) are matched lexically and appended after the
        semantic hits.
        """
        if not query or not project_id:
            return []

        results = await self._semantic(query, project_id, KIND_CHUNK, limit, threshold)
        if results is None:
            lexical = self.docstore.search_chunks_text(project_id, query, limit)
            return [_chunk_hit(c) for c in lexical]

        hits = [
            ChunkHit(
                chunk_id=r["id"],
                document_id=r["document_id"],
                document_name=r.get("document_name", ""),
                chunk_index=r.get("chunk_index", 0),
                text=r["text"],
                similarity=r["score"],
            )
            for r in results
        ]
        if len(hits) < limit:
            seen = {h.chunk_id for h in hits}
            unembedded = self.docstore.search_chunks_text(
                project_id, query, limit - len(hits), unembedded_for=self.gateway.model
            )
            hits += [_chunk_hit(c) for c in unembedded if c.chunk_id not in seen]
        return hits

    async def search_chat(
        self,
        query: str,
        project_id: str,
        *,
        limit: int = 30,
        threshold: float = 0.5,
    ) -> list[MessageHit]:
        """Semantic message search with lexical fallback."""
        if not query or not project_id:
            return []

        results = await self._semantic(query, project_id, KIND_MESSAGE, limit, threshold)
        if results is None:
            lexical = self.docstore.search_messages_text(project_id, query, limit)
            return [_message_hit(m) for m in lexical]

        hits = [
            MessageHit(
                message_id=r["id"],
                session_id=r.get("session_id"),
                role=MessageRole(r.get("role", "user")),
                content=r["content"],
                similarity=r["score"],
            )
            for r in results
        ]
        if len(hits) < limit:
            seen = {h.message_id for h in hits}
            unembedded = self.docstore.search_messages_text(
                project_id, query, limit - len(hits), unembedded_for=self.gateway.model
            )
            hits += [_message_hit(m) for m in unembedded if m.message_id not in seen]
        return hits

    async def _semantic(
        self, query: str, project_id: str, kind: str, limit: int, threshold: float
    ) -> list[dict] | None:
        """Run a vector search, or return None when the caller must fall back."""
        if not self.gateway.is_configured:
            return None
        try:
            query_emb = await self.gateway.embed(query)
        except ProviderUnavailable as e:
            log.warning("Query embedding failed, using text search: %s", e)
            return None
        try:
            return self.vectorstore.search(
                query_emb,
                project_id=project_id,
                kind=kind,
                embed_model=self.gateway.model,
                top_k=limit,
                threshold=threshold,
            )
        except Exception:
            log.exception("Vector search failed for project %s, using text search", project_id)
            return None

    # -- Context -------------------------------------------------------------

    async def build_context(
        self,
        query: str,
        project_id: str,
        *,
        chat_limit: int = 20,
        doc_limit: int = 15,
        threshold: float = 0.5,
    ) -> str:
        """Search chat and documents concurrently and render a context block.

        Content is included verbatim; returns "" when nothing matched.
        """
        if not query or not project_id:
            return ""

        chat_hits, doc_hits = await asyncio.gather(
            self.search_chat(query, project_id, limit=chat_limit, threshold=threshold),
            self.search_documents(query, project_id, limit=doc_limit, threshold=threshold),
        )

        context = ""
        if chat_hits:
            context += "\n\n=== RELEVANT PAST CONVERSATIONS ===\n"
            for hit in chat_hits:
                speaker = "User" if hit.role == MessageRole.USER else "Assistant"
                context += f"{speaker}{_relevance(hit.similarity)}: {hit.content}\n\n"

        if doc_hits:
            context += "\n\n=== RELEVANT DOCUMENT CONTENT ===\n"
            for hit in doc_hits:
                name = hit.document_name or "Unknown Document"
                context += f"[From: {name}]{_relevance(hit.similarity)}\n{hit.text}\n\n"

        if context:
            context += "=== END PROJECT MEMORY ===\n"
        return context

    # -- Project-wide --------------------------------------------------------

    def stats(self, project_id: str) -> MemoryStats:
        if not project_id:
            return MemoryStats()
        return MemoryStats(**self.docstore.counts(project_id))

    def clear_project(self, project_id: str) -> bool:
        """Delete every message and chunk of a project (use with caution)."""
        if not project_id:
            return False
        self.docstore.clear_project_memory(project_id)
        self.vectorstore.delete_project(project_id)
        log.info("Cleared project memory for project %s", project_id)
        return True


def _chunk_hit(chunk: Chunk) -> ChunkHit:
    return ChunkHit(
        chunk_id=chunk.chunk_id,
        document_id=chunk.document_id,
        document_name=chunk.document_name,
        chunk_index=chunk.chunk_index,
        text=chunk.text,
        similarity=FALLBACK_SIMILARITY,
    )


def _message_hit(message: StoredMessage) -> MessageHit:
    return MessageHit(
        message_id=message.message_id,
        session_id=message.session_id,
        role=message.role,
        content=message.content,
        similarity=FALLBACK_SIMILARITY,
    )


def _relevance(similarity: float) -> str:
    return f" ({round(similarity * 100)}% relevant)" if similarity else ""
