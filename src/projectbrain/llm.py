"""Thin LiteLLM wrapper — async functions, no classes.

Reads model strings from config and forwards to LiteLLM. These are the
default text-generation and embedding capabilities; components receive them
as plain callables so tests can inject fakes.
"""

from __future__ import annotations

import base64
import json
import logging
import re
from pathlib import Path
from typing import Any

import litellm

from projectbrain.config import get_settings
from projectbrain.errors import RateLimited

log = logging.getLogger(__name__)

_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")


async def complete(
    messages: list[dict],
    *,
    model: str | None = None,
    **kwargs,
) -> str:
    """Chat completion with the active profile's chat_model. Returns the reply text."""
    cfg = get_settings().llm
    model = model or cfg.chat_model
    temperature = kwargs.pop("temperature", cfg.temperature)
    max_tokens = kwargs.pop("max_tokens", cfg.max_tokens)

    try:
        response = await litellm.acompletion(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )
    except litellm.RateLimitError as e:
        raise RateLimited(str(e)) from e

    return response.choices[0].message.content


def parse_json_response(raw: str) -> dict | list | str:
    """Parse a model reply as JSON, falling back to the first ``{...}`` block.

    Returns the raw string unchanged when nothing parses.
    """
    try:
        return json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        pass
    match = _JSON_BLOCK_RE.search(raw or "")
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass
    log.warning("Could not parse model response as JSON (%d chars)", len(raw or ""))
    return raw


async def generate(
    prompt: str,
    *,
    system_prompt: str | None = None,
    response_schema: dict | None = None,
    model: str | None = None,
) -> str | dict | list:
    """Single-turn generation. With a schema, returns parsed JSON when possible.

    Callers must still validate the shape: providers are not guaranteed to
    follow the schema.
    """
    system = system_prompt or ""
    kwargs: dict[str, Any] = {}
    if response_schema is not None:
        kwargs["response_format"] = {"type": "json_object"}
        system = (
            (system + "\n\n" if system else "")
            + "Respond with valid JSON only, matching this JSON schema:\n"
            + json.dumps(response_schema)
        )

    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    content = await complete(messages, model=model, **kwargs)
    if response_schema is None:
        return content
    return parse_json_response(content)


async def embed(
    texts: list[str], *, model: str | None = None, batch_size: int = 128
) -> list[list[float]]:
    """Embed texts using the active profile's embed_model.

    Automatically batches large inputs to stay within API limits.
    """
    cfg = get_settings().llm
    model = model or cfg.embed_model

    try:
        if len(texts) <= batch_size:
            response = await litellm.aembedding(model=model, input=texts)
            return [item["embedding"] for item in response.data]

        # Batch large inputs
        all_embeddings: list[list[float]] = []
        total_batches = -(-len(texts) // batch_size)  # ceil division
        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            batch_num = i // batch_size + 1
            log.info("Embedding batch %d/%d (%d texts)", batch_num, total_batches, len(batch))
            response = await litellm.aembedding(model=model, input=batch)
            all_embeddings.extend(item["embedding"] for item in response.data)
        return all_embeddings
    except litellm.RateLimitError as e:
        raise RateLimited(str(e)) from e


def embedding_available(model: str | None = None) -> bool:
    """True when credentials for the embedding model are present in the environment."""
    model = model or get_settings().llm.embed_model
    if not model:
        return False
    try:
        env = litellm.validate_environment(model=model)
    except Exception:
        log.exception("Could not validate environment for %s", model)
        return False
    return bool(env.get("keys_in_environment"))


async def transcribe_image(
    image_source: str | bytes | Path,
    *,
    prompt: str = (
        "Transcribe all text and content visible in this image faithfully. "
        "Preserve structure (headings, lists, tables). "
        "Return the transcription as clean text, not a summary."
    ),
    model: str | None = None,
) -> str:
    """Transcribe an image to text using a vision model.

    image_source can be:
      - a base64 string
      - raw bytes
      - a Path to an image file
    """
    cfg = get_settings().llm
    model = model or cfg.vision_model

    # Normalise to base64
    if isinstance(image_source, Path):
        image_source = image_source.read_bytes()
    if isinstance(image_source, bytes):
        image_source = base64.b64encode(image_source).decode("utf-8")

    response = await litellm.acompletion(
        model=model,
        messages=[
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": f"data:image/jpeg;base64,{image_source}",
                            "detail": "high",
                        },
                    },
                ],
            }
        ],
        max_tokens=cfg.max_tokens,
    )
    return response.choices[0].message.content
