"""Qdrant embedded-mode vector store for chunk and message embeddings.

Every point carries ``project_id``, ``kind`` ("chunk" or "message") and the
``embed_model`` that produced it; searches filter on all three so vectors
from different projects or embedding models are never compared.
"""

from __future__ import annotations

from pathlib import Path

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PointStruct,
    VectorParams,
)

from projectbrain.config import get_settings
from projectbrain.models import Chunk, StoredMessage

KIND_CHUNK = "chunk"
KIND_MESSAGE = "message"


def _filter(**fields) -> Filter:
    return Filter(
        must=[
            FieldCondition(key=key, match=MatchValue(value=value))
            for key, value in fields.items()
            if value is not None
        ]
    )


class VectorStore:
    """Qdrant vector store — runs in embedded mode (no server needed)."""

    def __init__(
        self,
        path: str | None = None,
        collection: str | None = None,
        *,
        dim: int | None = None,
        in_memory: bool = False,
    ):
        cfg = get_settings().qdrant
        self.collection = collection or cfg.collection
        self.dim = dim or get_settings().llm.embed_dim

        if in_memory:
            self.client = QdrantClient(":memory:")
        else:
            store_path = path or cfg.path
            Path(store_path).mkdir(parents=True, exist_ok=True)
            self.client = QdrantClient(path=store_path)

        self._ensure_collection()

    def _ensure_collection(self) -> None:
        """Create the collection if it doesn't exist."""
        collections = [c.name for c in self.client.get_collections().collections]
        if self.collection not in collections:
            self.client.create_collection(
                collection_name=self.collection,
                vectors_config=VectorParams(
                    size=self.dim,
                    distance=Distance.COSINE,
                ),
            )

    def upsert_chunks(self, chunks: list[Chunk], embeddings: list[list[float] | None]) -> int:
        """Store chunk embeddings with metadata in payload. Skips missing vectors."""
        points = [
            PointStruct(
                id=chunk.chunk_id,
                vector=embedding,
                payload={
                    "kind": KIND_CHUNK,
                    "project_id": chunk.project_id,
                    "document_id": chunk.document_id,
                    "document_name": chunk.document_name,
                    "chunk_index": chunk.chunk_index,
                    "text": chunk.text,
                    "content_hash": chunk.content_hash,
                    "embed_model": chunk.embed_model,
                },
            )
            for chunk, embedding in zip(chunks, embeddings)
            if embedding is not None
        ]
        if points:
            self.client.upsert(collection_name=self.collection, points=points)
        return len(points)

    def upsert_message(self, message: StoredMessage, embedding: list[float]) -> None:
        self.client.upsert(
            collection_name=self.collection,
            points=[
                PointStruct(
                    id=message.message_id,
                    vector=embedding,
                    payload={
                        "kind": KIND_MESSAGE,
                        "project_id": message.project_id,
                        "session_id": message.session_id,
                        "role": message.role.value,
                        "content": message.content,
                        "embed_model": message.embed_model,
                    },
                )
            ],
        )

    def search(
        self,
        query_embedding: list[float],
        *,
        project_id: str,
        kind: str,
        embed_model: str,
        top_k: int = 10,
        threshold: float | None = None,
    ) -> list[dict]:
        """Return up to top_k nearest points of one kind/project/model with scores."""
        results = self.client.query_points(
            collection_name=self.collection,
            query=query_embedding,
            query_filter=_filter(project_id=project_id, kind=kind, embed_model=embed_model),
            limit=top_k,
            score_threshold=threshold,
            with_payload=True,
        )
        return [
            {"id": str(r.id), "score": r.score, **(r.payload or {})}
            for r in results.points
        ]

    def delete_document(self, project_id: str, document_id: str) -> None:
        """Delete all chunk vectors for a given document."""
        self.client.delete(
            collection_name=self.collection,
            points_selector=FilterSelector(
                filter=_filter(project_id=project_id, kind=KIND_CHUNK, document_id=document_id)
            ),
        )

    def delete_project(self, project_id: str) -> None:
        """Delete every vector belonging to a project."""
        self.client.delete(
            collection_name=self.collection,
            points_selector=FilterSelector(filter=_filter(project_id=project_id)),
        )

    def count(self, project_id: str | None = None, kind: str | None = None) -> int:
        """Return the number of vectors, optionally scoped to a project and kind."""
        if project_id is None and kind is None:
            info = self.client.get_collection(self.collection)
            return info.points_count
        return self.client.count(
            collection_name=self.collection,
            count_filter=_filter(project_id=project_id, kind=kind),
            exact=True,
        ).count

    def close(self) -> None:
        self.client.close()
