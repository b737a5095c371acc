"""Composition root — builds every component from Settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from projectbrain import llm
from projectbrain.chat.engine import ProjectChat
from projectbrain.config import Settings, get_settings
from projectbrain.control.applicator import ChangeApplicator
from projectbrain.control.extractor import FactExtractor
from projectbrain.control.matcher import ScopeBoundedMatcher
from projectbrain.control.pipeline import DocumentControl
from projectbrain.control.proposer import ChangeProposer
from projectbrain.control.scoring import ScoringPolicy
from projectbrain.embeddings import EmbeddingGateway
from projectbrain.ingest.pipeline import IngestionPipeline
from projectbrain.memory.store import MemoryStore
from projectbrain.stores.docstore import DocStore
from projectbrain.stores.vectorstore import VectorStore

log = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    docstore: DocStore
    vectorstore: VectorStore
    gateway: EmbeddingGateway
    memory: MemoryStore
    ingestion: IngestionPipeline
    control: DocumentControl
    chat: ProjectChat

    def close(self) -> None:
        self.vectorstore.close()
        self.docstore.close()


def build_services(
    settings: Settings | None = None,
    *,
    in_memory: bool = False,
    embed_fn=None,
    generate=None,
    complete=None,
) -> Services:
    """Wire the stores, gateway and pipelines.

    The LiteLLM functions are the default capabilities. Embedding is only
    enabled when the provider's credentials are present, so a missing key
    degrades search to lexical instead of failing every call.
    """
    settings = settings or get_settings()
    profile = settings.llm

    if embed_fn is None and llm.embedding_available(profile.embed_model):
        embed_fn = llm.embed
    if embed_fn is None:
        log.warning("No embedding credentials for %s, using text search", profile.embed_model)

    docstore = DocStore(":memory:" if in_memory else settings.docstore.path)
    vectorstore = VectorStore(
        settings.qdrant.path,
        settings.qdrant.collection,
        dim=profile.embed_dim,
        in_memory=in_memory,
    )

    ecfg = settings.embedding
    gateway = EmbeddingGateway(
        embed_fn,
        model=profile.embed_model,
        max_chars=ecfg.max_chars,
        batch_size=ecfg.batch_size,
        max_retries=ecfg.max_retries,
        retry_delay=ecfg.retry_delay,
        timeout=ecfg.timeout,
    )
    memory = MemoryStore(
        docstore,
        vectorstore,
        gateway,
        chunk_size=settings.chunker.chunk_size,
        chunk_overlap=settings.chunker.chunk_overlap,
    )

    icfg = settings.ingest
    ingestion = IngestionPipeline(
        docstore,
        memory,
        concurrency=icfg.concurrency,
        file_timeout=icfg.file_timeout,
        max_file_size=icfg.max_file_size,
    )

    ccfg = settings.control
    generate = generate or llm.generate
    control = DocumentControl(
        FactExtractor(
            generate,
            max_chars=ccfg.analysis_max_chars,
            system_prompt=settings.prompts.extraction_system_prompt,
        ),
        ScopeBoundedMatcher(
            memory,
            max_fact_queries=ccfg.max_fact_queries,
            query_limit=ccfg.query_limit,
            query_threshold=ccfg.query_threshold,
            max_documents=ccfg.max_documents,
        ),
        ChangeProposer(
            generate,
            ScoringPolicy(ccfg.weights, ccfg.thresholds),
            max_chars=ccfg.proposal_max_chars,
            system_prompt=settings.prompts.proposal_system_prompt,
        ),
        ChangeApplicator(docstore, memory),
    )

    mcfg = settings.memory
    chat = ProjectChat(
        memory,
        complete or llm.complete,
        system_prompt=settings.prompts.system_prompt,
        chat_limit=mcfg.context_chat_limit,
        doc_limit=mcfg.context_doc_limit,
        threshold=mcfg.threshold,
    )

    return Services(
        settings=settings,
        docstore=docstore,
        vectorstore=vectorstore,
        gateway=gateway,
        memory=memory,
        ingestion=ingestion,
        control=control,
        chat=chat,
    )
