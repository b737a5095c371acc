"""Chat engine — project memory context + completion, remembered both ways."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from projectbrain import llm
from projectbrain.memory.store import MemoryStore
from projectbrain.models import ChatAnswer, MessageRole

log = logging.getLogger(__name__)

CompleteFn = Callable[..., Awaitable[str]]


class ProjectChat:
    """Answers questions from a project's memory and stores the exchange."""

    def __init__(
        self,
        memory: MemoryStore,
        complete: CompleteFn = llm.complete,
        *,
        system_prompt: str = "",
        chat_limit: int = 20,
        doc_limit: int = 15,
        threshold: float = 0.5,
    ):
        self.memory = memory
        self.complete = complete
        self.system_prompt = system_prompt
        self.chat_limit = chat_limit
        self.doc_limit = doc_limit
        self.threshold = threshold

    async def ask(
        self,
        query: str,
        project_id: str,
        *,
        session_id: str | None = None,
        history: list[dict] | None = None,
        user_id: str | None = None,
    ) -> ChatAnswer:
        # Context first so the question doesn't retrieve itself.
        context = await self.memory.build_context(
            query,
            project_id,
            chat_limit=self.chat_limit,
            doc_limit=self.doc_limit,
            threshold=self.threshold,
        )
        await self.memory.store_message(
            project_id, MessageRole.USER, query, session_id=session_id, created_by=user_id
        )

        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        if history:
            messages.extend(history)
        if context:
            content = f"Project memory:\n{context}\n\nQuestion: {query}"
        else:
            content = query
        messages.append({"role": "user", "content": content})

        answer = await self.complete(messages)
        await self.memory.store_message(
            project_id, MessageRole.ASSISTANT, answer, session_id=session_id
        )
        return ChatAnswer(answer=answer, context=context)
