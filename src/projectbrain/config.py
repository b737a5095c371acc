"""Pydantic Settings with YAML profile support.

Priority (highest first): env vars > .env > config.yaml > config.default.yaml
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict, YamlConfigSettingsSource


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class LLMProfile(BaseModel):
    """One named LLM configuration profile."""

    chat_model: str = "anthropic/claude-sonnet-4-5-20250929"
    embed_model: str = "openai/text-embedding-3-small"
    embed_dim: int = 1536
    vision_model: str = "anthropic/claude-sonnet-4-5-20250929"
    temperature: float = 0.1
    max_tokens: int = 4096


class QdrantConfig(BaseModel):
    path: str = "./data/qdrant"
    collection: str = "project_memory"


class DocstoreConfig(BaseModel):
    path: str = "./data/docstore.db"


class ChunkerConfig(BaseModel):
    chunk_size: int = 1000
    chunk_overlap: int = 200


class EmbeddingConfig(BaseModel):
    """Provider-safe limits for the embedding gateway."""

    max_chars: int = 30_000  # ~8K tokens for current embedding models
    batch_size: int = 100
    timeout: float = 60.0
    max_retries: int = 3
    retry_delay: float = 1.0  # doubled on every rate-limited attempt


class MemoryConfig(BaseModel):
    """Defaults for memory search and context assembly."""

    chat_limit: int = 30
    doc_limit: int = 20
    threshold: float = 0.5
    context_chat_limit: int = 20
    context_doc_limit: int = 15


class IngestConfig(BaseModel):
    concurrency: int = 3
    file_timeout: float = 300.0
    max_file_size: int = 100 * 1024 * 1024


class ConfidenceWeights(BaseModel):
    """Weights of the four confidence factors. Must sum to 1.0."""

    subject_match: float = 0.3
    evidence_directness: float = 0.3
    scope_containment: float = 0.25
    change_minimality: float = 0.15

    @model_validator(mode="after")
    def _check_sum(self) -> ConfidenceWeights:
        total = (
            self.subject_match
            + self.evidence_directness
            + self.scope_containment
            + self.change_minimality
        )
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Confidence weights must sum to 1.0 (got {total:.3f})")
        return self


class ConfidenceThresholds(BaseModel):
    """Cut-offs on the overall confidence score, lowest first."""

    do_not_propose: float = 0.3
    flagged_for_review: float = 0.5
    standard_proposal: float = 0.7
    auto_approve_eligible: float = 0.9

    @model_validator(mode="after")
    def _check_order(self) -> ConfidenceThresholds:
        ordered = [
            self.do_not_propose,
            self.flagged_for_review,
            self.standard_proposal,
            self.auto_approve_eligible,
        ]
        if ordered != sorted(ordered):
            raise ValueError("Confidence thresholds must be non-decreasing")
        return self


class ControlConfig(BaseModel):
    """Document control pipeline limits."""

    analysis_max_chars: int = 15_000
    proposal_max_chars: int = 8_000
    max_fact_queries: int = 5
    query_limit: int = 10
    query_threshold: float = 0.4
    max_documents: int = 10
    weights: ConfidenceWeights = ConfidenceWeights()
    thresholds: ConfidenceThresholds = ConfidenceThresholds()


class PromptsConfig(BaseModel):
    """System prompts used by the chat engine and the control pipeline."""

    system_prompt: str = (
        "You are a helpful project assistant with access to the project's memory.\n"
        "Answer the user's question based on the provided project memory excerpts.\n"
        "Quote document content exactly when you rely on it.\n"
        "If the memory doesn't contain enough information, say so clearly."
    )
    extraction_system_prompt: str = (
        "You are a precise document analyzer. Your job is to extract ONLY what is "
        "explicitly stated in documents. You must NEVER infer, assume, or extrapolate. "
        "Every fact must have a direct verbatim quote as evidence."
    )
    proposal_system_prompt: str = (
        "You are a surgical document editor. You make ONLY the minimum changes "
        "necessary to update documents based on new information. You NEVER expand "
        "scope, make improvements, or modify anything without explicit evidence. "
        "Every change must trace directly to a fact in the source document."
    )


# ---------------------------------------------------------------------------
# Main settings
# ---------------------------------------------------------------------------

def project_root() -> Path:
    """Directory holding config.default.yaml, config.yaml and .env."""
    return Path(os.environ.get("PROJECTBRAIN_ROOT", "."))


def _yaml_files() -> list[Path]:
    # Later files win, so the user's config.yaml overrides the defaults.
    root = project_root()
    return [p for p in (root / "config.default.yaml", root / "config.yaml") if p.exists()]


class Settings(BaseSettings):
    """Everything configurable, from YAML files and PROJECTBRAIN_* env vars."""

    model_config = SettingsConfigDict(
        env_prefix="PROJECTBRAIN_",
        env_nested_delimiter="__",
    )

    active_profile: str = "default"
    profiles: dict[str, LLMProfile] = {"default": LLMProfile()}
    qdrant: QdrantConfig = QdrantConfig()
    docstore: DocstoreConfig = DocstoreConfig()
    chunker: ChunkerConfig = ChunkerConfig()
    embedding: EmbeddingConfig = EmbeddingConfig()
    memory: MemoryConfig = MemoryConfig()
    ingest: IngestConfig = IngestConfig()
    control: ControlConfig = ControlConfig()
    prompts: PromptsConfig = PromptsConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # .env is loaded into os.environ by get_settings(), so env_settings covers it.
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=_yaml_files()),
        )

    @property
    def llm(self) -> LLMProfile:
        """The active LLM profile. Raises KeyError for an unknown profile name."""
        try:
            return self.profiles[self.active_profile]
        except KeyError:
            names = ", ".join(sorted(self.profiles)) or "(none)"
            raise KeyError(
                f"Unknown profile '{self.active_profile}' (configured: {names})"
            ) from None


@lru_cache(maxsize=1)
def get_settings(**kwargs: Any) -> Settings:
    """Cached settings. reset_settings() forces a reload."""
    load_dotenv(project_root() / ".env", override=False)
    return Settings(**kwargs)


def reset_settings() -> None:
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Writing config.yaml
# ---------------------------------------------------------------------------

def _deep_merge(base: dict, override: dict) -> dict:
    for key, value in override.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _deep_merge(current, value)
        else:
            base[key] = value
    return base


def dotted_to_nested(key: str, value: Any) -> dict:
    """Turn ``"control.thresholds.do_not_propose"`` + value into a nested dict."""
    parts = [p for p in key.split(".") if p]
    if not parts:
        raise ValueError("Empty config key")
    nested: Any = value
    for part in reversed(parts):
        nested = {part: nested}
    return nested


def save_user_config(overrides: dict) -> Path:
    """Merge *overrides* into config.yaml, keeping unrelated keys, and reload.

    Returns the path written.
    """
    import yaml

    path = project_root() / "config.yaml"
    current = yaml.safe_load(path.read_text(encoding="utf-8")) if path.exists() else None
    merged = _deep_merge(current or {}, overrides)
    path.write_text(
        yaml.safe_dump(merged, default_flow_style=False, allow_unicode=True, sort_keys=False),
        encoding="utf-8",
    )
    reset_settings()
    return path
