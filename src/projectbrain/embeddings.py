"""Embedding gateway — provider-safe batching, timeouts, and rate-limit backoff.

Wraps an injected embedding callable (``llm.embed`` in production). Every
failure surfaces as ProviderUnavailable (or its RateLimited subclass) so
callers can fall back to lexical search.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from projectbrain.errors import ProviderUnavailable, RateLimited

log = logging.getLogger(__name__)

EmbedFn = Callable[[list[str]], Awaitable[list[list[float]]]]


class EmbeddingGateway:
    """Batches texts for an embedding provider and normalises its failures."""

    def __init__(
        self,
        embed_fn: EmbedFn | None,
        *,
        model: str,
        max_chars: int = 30_000,
        batch_size: int = 100,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 60.0,
    ):
        self._embed_fn = embed_fn
        self.model = model
        self.max_chars = max_chars
        self.batch_size = max(1, batch_size)
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return self._embed_fn is not None

    async def embed(self, text: str) -> list[float]:
        """Embed a single text. Raises ProviderUnavailable on any failure."""
        vectors = await self.embed_batch([text])
        if vectors[0] is None:
            raise ProviderUnavailable("Cannot embed blank text")
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float] | None]:
        """Embed many texts, preserving input order.

        Blank entries are never sent to the provider; their slot in the
        result is None.
        """
        if not self.is_configured:
            raise ProviderUnavailable("Embedding provider not configured")

        prepared = [t[: self.max_chars] for t in texts]
        positions = [i for i, t in enumerate(prepared) if t.strip()]
        results: list[list[float] | None] = [None] * len(texts)
        if not positions:
            return results

        total_batches = -(-len(positions) // self.batch_size)
        for b, start in enumerate(range(0, len(positions), self.batch_size), 1):
            batch_positions = positions[start : start + self.batch_size]
            batch = [prepared[i] for i in batch_positions]
            if total_batches > 1:
                log.debug("Embedding batch %d/%d (%d texts)", b, total_batches, len(batch))
            vectors = await self._embed_with_retry(batch)
            if len(vectors) != len(batch):
                raise ProviderUnavailable(
                    f"Provider returned {len(vectors)} vectors for {len(batch)} texts"
                )
            for pos, vector in zip(batch_positions, vectors):
                results[pos] = list(vector)
        return results

    async def _embed_with_retry(self, batch: list[str]) -> list[list[float]]:
        for attempt in range(1, self.max_retries + 1):
            try:
                return await asyncio.wait_for(self._embed_fn(batch), timeout=self.timeout)
            except RateLimited:
                if attempt >= self.max_retries:
                    log.error(
                        "Embedding rate limit — all %d attempts exhausted", self.max_retries
                    )
                    raise
                delay = self.retry_delay * (2 ** (attempt - 1))
                log.warning(
                    "Embedding rate limit hit (attempt %d/%d). Waiting %.1fs before retry...",
                    attempt,
                    self.max_retries,
                    delay,
                )
                await asyncio.sleep(delay)
            except asyncio.TimeoutError as e:
                raise ProviderUnavailable(
                    f"Embedding request timed out after {self.timeout}s"
                ) from e
            except ProviderUnavailable:
                raise
            except Exception as e:
                raise ProviderUnavailable(f"Embedding provider error: {e}") from e
        raise ProviderUnavailable("Embedding failed")  # unreachable
