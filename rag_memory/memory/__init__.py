"""
Memory subsystem for long-term conversation recall.

Provides:
- Memory record schemas
- Salience reinforcement and decay filtering
- Fact quality policy and distillation batching
- Fact distillation from conversation turns
- Context compression for prompt injection
"""

from .schemas import (
    MEMORY_KINDS,
    ConversationTurn,
    FactCandidate,
    MemoryContext,
    MemoryKind,
    MemoryMetadata,
    MemoryRecord,
    MemorySource,
    MemoryStats,
    as_utc,
    clamp_salience,
    utc_now,
)
from .salience import SalienceModel, decay_at_from_ttl, filter_live, is_live, reinforced
from .policy import DistillationScheduler, FactQualityPolicy
from .distiller import FactDistiller, parse_fact_payload
from .compressor import ContextCompressor, format_memory_block, truncate_to_budget

__all__ = [
    "MEMORY_KINDS",
    "ConversationTurn",
    "FactCandidate",
    "MemoryContext",
    "MemoryKind",
    "MemoryMetadata",
    "MemoryRecord",
    "MemorySource",
    "MemoryStats",
    "as_utc",
    "clamp_salience",
    "utc_now",
    "SalienceModel",
    "decay_at_from_ttl",
    "filter_live",
    "is_live",
    "reinforced",
    "DistillationScheduler",
    "FactQualityPolicy",
    "FactDistiller",
    "parse_fact_payload",
    "ContextCompressor",
    "format_memory_block",
    "truncate_to_budget",
]
