"""
Memory engine facade.

Wires the provider chain, store, ranker, selector, compressor, distiller
and salience model into the two operations the chat backend needs:
building a memory context for a query and learning facts from a
conversation.
"""

from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from rag_memory.config.settings import Settings
from rag_memory.embedding.chain import ProviderChain
from rag_memory.errors import DimensionMismatchError, MemoryStoreError
from rag_memory.generation.generator import BaseGenerator, ChatCompletionGenerator
from rag_memory.memory.compressor import ContextCompressor, format_memory_block
from rag_memory.memory.distiller import FactDistiller, Turn
from rag_memory.memory.policy import DistillationScheduler, FactQualityPolicy
from rag_memory.memory.salience import SalienceModel, filter_live
from rag_memory.memory.schemas import (
    FactCandidate,
    KindStats,
    MemoryContext,
    MemoryKind,
    MemoryMetadata,
    MemoryRecord,
    MemorySource,
    MemoryStats,
    as_utc,
    utc_now,
)
from rag_memory.persist.memory_store import BaseMemoryStore, SQLiteMemoryStore
from rag_memory.retrieval.mmr import apply_relevance_floor, mmr_select
from rag_memory.retrieval.similarity import ScoredMemory, score_by_cosine
from rag_memory.telemetry import get_logger

logger = get_logger(__name__)

MIN_FACT_CHARS = 10


class MemoryEngine:
    """
    Retrieval and learning over one owner's memories at a time.

    Neither ``build_context`` nor the distillation entry points raise to the
    caller: provider, parse and store failures degrade to empty results and
    are only visible in logs.
    """

    def __init__(
        self,
        store: BaseMemoryStore,
        embedder: ProviderChain,
        compressor: ContextCompressor,
        distiller: FactDistiller,
        settings: Optional[Settings] = None,
        scheduler: Optional[DistillationScheduler] = None,
    ):
        """
        Args:
            store: Memory store adapter
            embedder: Shared provider chain (owns the circuit breakers)
            compressor: Context compressor
            distiller: Fact distiller
            settings: Engine settings (defaults if omitted)
            scheduler: Distillation batching state (one per process)
        """
        self.settings = settings or Settings()
        self.store = store
        self.embedder = embedder
        self.compressor = compressor
        self.distiller = distiller
        self.salience = SalienceModel(store, step=self.settings.retrieval.reinforce_step)
        self.scheduler = scheduler or DistillationScheduler(
            self.settings.distillation.batch_min_turns,
            max_tracked=self.settings.distillation.max_tracked_conversations,
        )

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def _live_memories(self, owner: str, now: datetime) -> List[MemoryRecord]:
        try:
            memories = self.store.find_by_owner(owner, live_only=True, now=now)
        except MemoryStoreError as e:
            logger.error("memory_store_unavailable", owner=owner, error=str(e))
            return []
        # The store is external; expired records must never reach ranking.
        return filter_live(memories, now)

    def build_context(self, owner: str, query: str, now: Optional[datetime] = None) -> MemoryContext:
        """
        Build the memory context block for ``query``.

        embed → fetch live → rank → relevance floor → MMR → compress →
        reinforce. Returns an empty MemoryContext when nothing is relevant.
        """
        now = as_utc(now) or utc_now()
        cfg = self.settings.retrieval

        try:
            memories = self._live_memories(owner, now)
            if not memories:
                return MemoryContext()

            query_vector = self.embedder.embed(query)
            scored = score_by_cosine(memories, query_vector)
            relevant = apply_relevance_floor(scored, cfg.relevance_floor)
            if not relevant:
                return MemoryContext()

            selected = mmr_select(relevant, k=min(cfg.context_k, cfg.mmr_k), lambda_=cfg.mmr_lambda)
            texts = [s.memory.content for s in selected]
            compressed = self.compressor.compress(texts, self.settings.compression.max_tokens)

            ids = [s.memory.id for s in selected]
            self.salience.reinforce(ids, now=now)
        except Exception:
            logger.exception("build_context_failed", owner=owner)
            return MemoryContext()

        logger.debug("memory_context_built", owner=owner, selected=len(selected), chars=len(compressed))
        return MemoryContext(
            context=format_memory_block(compressed),
            metadata=MemoryMetadata(
                used_ids=ids,
                used_count=len(selected),
                used_chars=sum(len(t) for t in texts),
                snippets=texts,
                similarities=[s.similarity for s in selected],
            ),
        )

    def search_memories(
        self,
        owner: str,
        query: str,
        limit: int = 10,
        min_similarity: float = 0.6,
        now: Optional[datetime] = None,
    ) -> List[ScoredMemory]:
        """Plain similarity search; no diversity selection, no reinforcement."""
        memories = self._live_memories(owner, as_utc(now) or utc_now())
        if not memories:
            return []
        scored = score_by_cosine(memories, self.embedder.embed(query))
        return apply_relevance_floor(scored, min_similarity)[:limit]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_facts(
        self,
        owner: str,
        facts: Sequence[Union[FactCandidate, Dict[str, Any]]],
        source: Optional[MemorySource] = None,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """
        Embed and upsert facts; one failing fact never drops the others.

        Returns:
            IDs of the records written
        """
        now = as_utc(now) or utc_now()
        written = []

        for fact in facts:
            try:
                candidate = fact if isinstance(fact, FactCandidate) else FactCandidate.model_validate(fact)
            except ValueError as e:
                logger.warning("fact_invalid", error=str(e))
                continue
            if len(candidate.content) < MIN_FACT_CHARS:
                continue

            fields: Dict[str, Any] = {
                "kind": candidate.kind,
                "tags": candidate.tags,
                "salience": candidate.salience,
                "embedding": self.embedder.embed(candidate.content),
            }
            if source is not None:
                fields["source"] = source
            try:
                record = self.store.upsert_by_owner_and_content(owner, candidate.content, fields, now=now)
            except (MemoryStoreError, DimensionMismatchError, ValueError) as e:
                logger.error("fact_upsert_failed", owner=owner, error_type=type(e).__name__, error=str(e))
                continue
            written.append(record.id)

        logger.debug("facts_upserted", owner=owner, count=len(written))
        return written

    def store_memory(
        self,
        owner: str,
        content: str,
        kind: MemoryKind = "fact",
        tags: Optional[List[str]] = None,
        salience: float = 0.7,
        origin: str = "manual",
        decay_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
        **metadata: Any,
    ) -> Optional[MemoryRecord]:
        """
        Store one memory directly (no quality gate).

        Returns:
            The stored record, or None if it could not be written
        """
        fields = {
            "kind": kind,
            "tags": tags or [],
            "salience": salience,
            "decay_at": decay_at,
            "source": MemorySource(origin=origin, **metadata),
            "embedding": self.embedder.embed(content),
        }
        try:
            return self.store.upsert_by_owner_and_content(owner, content, fields, now=now)
        except (MemoryStoreError, DimensionMismatchError, ValueError) as e:
            logger.error("store_memory_failed", owner=owner, error_type=type(e).__name__, error=str(e))
            return None

    # ------------------------------------------------------------------
    # Distillation
    # ------------------------------------------------------------------

    def distill_and_store(
        self,
        owner: str,
        conversation_id: str,
        turns: Sequence[Turn],
        now: Optional[datetime] = None,
    ) -> int:
        """
        Distill facts from ``turns`` and upsert the accepted ones.

        Returns:
            Number of facts stored
        """
        now = as_utc(now) or utc_now()
        facts = self.distiller.distill(turns)
        if not facts:
            return 0

        source = MemorySource(
            origin="conversation",
            conversation_id=conversation_id,
            extracted_at=now,
            provenance=f"auto-distilled from conversation {conversation_id}",
        )
        stored = self.upsert_facts(owner, facts, source=source, now=now)
        logger.info("conversation_distilled", owner=owner, conversation_id=conversation_id, stored=len(stored))
        return len(stored)

    def maybe_distill(
        self,
        owner: str,
        conversation_id: str,
        turns: Sequence[Turn],
        now: Optional[datetime] = None,
    ) -> int:
        """
        Distill only if enough new turns arrived and no distillation of this
        conversation is already running.
        """
        with self.scheduler.attempt(conversation_id, len(turns)) as due:
            if not due:
                return 0
            try:
                return self.distill_and_store(owner, conversation_id, turns, now=now)
            except Exception:
                logger.exception("distillation_failed", owner=owner, conversation_id=conversation_id)
                return 0

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clear_memories(self, owner: str) -> int:
        """Delete every memory of ``owner``. Returns count deleted."""
        try:
            count = self.store.delete_by_owner(owner)
        except MemoryStoreError as e:
            logger.error("clear_memories_failed", owner=owner, error=str(e))
            return 0
        logger.info("memories_cleared", owner=owner, count=count)
        return count

    def get_memory_stats(self, owner: str) -> MemoryStats:
        """Counts and average salience per kind, expired records included."""
        try:
            memories = self.store.find_by_owner(owner, live_only=False)
        except MemoryStoreError as e:
            logger.error("memory_stats_failed", owner=owner, error=str(e))
            return MemoryStats()

        grouped: Dict[str, List[float]] = defaultdict(list)
        for memory in memories:
            grouped[memory.kind].append(memory.salience)

        return MemoryStats(
            total=len(memories),
            by_kind={
                kind: KindStats(count=len(values), avg_salience=sum(values) / len(values))
                for kind, values in grouped.items()
            },
        )

    def close(self) -> None:
        self.embedder.close()
        self.store.close()
        if self.compressor.generator is not None:
            self.compressor.generator.close()


def create_memory_engine(
    settings: Optional[Settings] = None,
    store: Optional[BaseMemoryStore] = None,
    generator: Optional[BaseGenerator] = None,
    embedder: Optional[ProviderChain] = None,
) -> MemoryEngine:
    """
    Factory wiring a MemoryEngine from settings.

    Args:
        settings: Engine settings (default: from environment)
        store: Memory store (default: SQLite at settings.store.db_path)
        generator: Text generator (default: chat completions endpoint)
        embedder: Provider chain (default: built from settings)
    """
    settings = settings or Settings.from_env()
    dims = settings.embedding.dimensions

    if store is None:
        store = SQLiteMemoryStore(Path(settings.store.db_path), dimensions=dims)
    if generator is None:
        generator = ChatCompletionGenerator.from_config(settings.generator)
    if embedder is None:
        embedder = ProviderChain.from_settings(settings)

    distill_cfg = settings.distillation
    distiller = FactDistiller(
        generator,
        policy=FactQualityPolicy.from_config(distill_cfg),
        window_turns=distill_cfg.window_turns,
        max_tokens=distill_cfg.max_tokens,
        temperature=distill_cfg.temperature,
    )
    compressor = ContextCompressor(generator, temperature=settings.compression.temperature)

    return MemoryEngine(store, embedder, compressor, distiller, settings=settings)
