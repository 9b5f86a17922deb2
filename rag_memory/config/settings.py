"""Engine settings and configuration schema."""

import os
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field


DEFAULT_TRANSIENT_PATTERNS = [
    r"\b(today|tomorrow|yesterday|this week|next week)\b",
    r"\b(help me|can you|what is|how do)\b",
    r"\b(right now|currently)\b",
]

DEFAULT_NOISY_PATTERNS = [
    r"^\s*(ok|okay|thanks|thank you|lol|yes|no|sure|cool|nice|great)\b[\s.!]*$",
    r"^[^A-Za-z]*$",
    r"^\s*https?://\S+\s*$",
    r"\b(as an ai|i am an ai|language model)\b",
    r"\b(lorem ipsum|asdf|test test)\b",
]


class ProviderCfg(BaseModel):
    """A single OpenAI-compatible embedding endpoint."""
    name: str
    base_url: str
    model: str
    api_key: Optional[str] = None
    enabled: bool = True
    send_dimensions: bool = False


class EmbeddingCfg(BaseModel):
    """Embedding chain configuration."""
    dimensions: int = Field(1536, gt=0)
    force_fallback: bool = False
    timeout_seconds: float = Field(2.0, gt=0)
    providers: List[ProviderCfg] = Field(default_factory=lambda: [
        ProviderCfg(
            name="openrouter",
            base_url="https://openrouter.ai/api/v1",
            model="openai/text-embedding-3-small",
        ),
        ProviderCfg(
            name="openai",
            base_url="https://api.openai.com/v1",
            model="text-embedding-3-large",
            send_dimensions=True,
        ),
    ])


class BreakerCfg(BaseModel):
    """Circuit breaker thresholds, shared by every provider."""
    failure_threshold: int = Field(3, ge=1)
    cooldown_seconds: float = Field(60.0, gt=0)


class RetrievalCfg(BaseModel):
    """Ranking and diversity selection."""
    mmr_k: int = Field(10, ge=1)
    mmr_lambda: float = Field(0.7, ge=0.0, le=1.0)
    context_k: int = Field(5, ge=1)
    relevance_floor: float = Field(0.2, ge=-1.0, le=1.0)
    reinforce_step: float = Field(0.05, ge=0.0, le=1.0)


class CompressionCfg(BaseModel):
    """Context compression budget."""
    max_tokens: int = Field(600, gt=0)
    temperature: float = 0.3


class DistillationCfg(BaseModel):
    """Fact extraction and quality gate."""
    batch_min_turns: int = Field(4, ge=1)
    max_tracked_conversations: int = Field(10_000, ge=1)
    window_turns: int = Field(12, ge=1)
    min_content_length: int = Field(15, ge=1)
    min_salience: float = Field(0.6, ge=0.0, le=1.0)
    transient_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_TRANSIENT_PATTERNS))
    noisy_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_NOISY_PATTERNS))
    max_tokens: int = 500
    temperature: float = 0.2


class GeneratorCfg(BaseModel):
    """Chat-completions endpoint used for distillation and compression."""
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "openai/gpt-5-mini"
    api_key: Optional[str] = None
    timeout_seconds: float = Field(20.0, gt=0)


class StoreCfg(BaseModel):
    """Memory store location."""
    db_path: str = "data/memory/memory.db"


class LoggingCfg(BaseModel):
    level: str = "INFO"
    json_logs: bool = True


class Settings(BaseModel):
    """Main engine settings."""
    embedding: EmbeddingCfg = EmbeddingCfg()
    breaker: BreakerCfg = BreakerCfg()
    retrieval: RetrievalCfg = RetrievalCfg()
    compression: CompressionCfg = CompressionCfg()
    distillation: DistillationCfg = DistillationCfg()
    generator: GeneratorCfg = GeneratorCfg()
    store: StoreCfg = StoreCfg()
    logging: LoggingCfg = LoggingCfg()

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Unset variables keep their defaults. Values are validated by pydantic,
        so a malformed number raises ValidationError at startup.

        Args:
            env: Mapping to read from (default: os.environ)
        """
        env = os.environ if env is None else env

        def flag(name: str, default: bool) -> bool:
            raw = env.get(name)
            if raw is None:
                return default
            return raw.strip().lower() in ("1", "true", "yes", "on")

        embedding = EmbeddingCfg()
        keys = {
            "openrouter": (env.get("OPENROUTER_API_KEY"), flag("RAG_PRIMARY_ENABLED", True)),
            "openai": (env.get("OPENAI_API_KEY"), flag("RAG_SECONDARY_ENABLED", True)),
        }
        providers = []
        for provider in embedding.providers:
            api_key, enabled = keys[provider.name]
            providers.append(provider.model_copy(update={"api_key": api_key, "enabled": enabled}))

        data = {
            "embedding": {
                "dimensions": env.get("RAG_EMBED_DIM", embedding.dimensions),
                "force_fallback": flag("RAG_EMBED_DISABLED", False),
                "timeout_seconds": env.get("RAG_EMBED_TIMEOUT", embedding.timeout_seconds),
                "providers": [p.model_dump() for p in providers],
            },
            "breaker": {
                "failure_threshold": env.get("RAG_BREAKER_THRESHOLD", 3),
                "cooldown_seconds": env.get("RAG_BREAKER_COOLDOWN", 60.0),
            },
            "retrieval": {
                "mmr_k": env.get("RAG_MMR_K", 10),
                "mmr_lambda": env.get("RAG_MMR_LAMBDA", 0.7),
                "context_k": env.get("RAG_CONTEXT_K", 5),
                "relevance_floor": env.get("RAG_RELEVANCE_FLOOR", 0.2),
            },
            "compression": {
                "max_tokens": env.get("RAG_CONTEXT_MAX_TOKENS", 600),
            },
            "distillation": {
                "batch_min_turns": env.get("RAG_DISTILL_BATCH", 4),
                "window_turns": env.get("RAG_DISTILL_WINDOW", 12),
                "min_content_length": env.get("RAG_FACT_MIN_LENGTH", 15),
                "min_salience": env.get("RAG_FACT_MIN_SALIENCE", 0.6),
            },
            "generator": {
                "api_key": env.get("OPENROUTER_API_KEY"),
                "model": env.get("RAG_GENERATOR_MODEL", GeneratorCfg().model),
            },
            "store": {
                "db_path": env.get("RAG_MEMORY_DB", StoreCfg().db_path),
            },
            "logging": {
                "level": env.get("RAG_LOG_LEVEL", "INFO"),
                "json_logs": flag("RAG_LOG_JSON", True),
            },
        }
        return cls.model_validate(data)
