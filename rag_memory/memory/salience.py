"""
Salience and lifecycle model.

Salience rises by a fixed step each time a memory is surfaced to a caller
and is always clamped to [0, 1]. Expired memories (``decay_at`` passed) are
filtered out before ranking so they never consume selection budget.
"""

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence

from rag_memory.errors import MemoryStoreError
from rag_memory.telemetry import get_logger
from .schemas import MemoryRecord, as_utc, clamp_salience, utc_now

if TYPE_CHECKING:
    from rag_memory.persist.memory_store import BaseMemoryStore

logger = get_logger(__name__)

REINFORCE_STEP = 0.05


def is_live(memory: MemoryRecord, now: Optional[datetime] = None) -> bool:
    """False if ``decay_at`` exists and is at or before ``now``."""
    return memory.is_live(now)


def filter_live(memories: Iterable[MemoryRecord], now: Optional[datetime] = None) -> List[MemoryRecord]:
    now = as_utc(now) or utc_now()
    return [m for m in memories if m.is_live(now)]


def reinforced(salience: float, step: float = REINFORCE_STEP) -> float:
    """Salience after one use: 0.98 -> 1.0, never above."""
    return clamp_salience(salience + step)


def decay_at_from_ttl(ttl: timedelta, now: Optional[datetime] = None) -> datetime:
    """Expiry timestamp for a memory that should stop surfacing after ``ttl``."""
    return (as_utc(now) or utc_now()) + ttl


class SalienceModel:
    """Applies usage reinforcement through the memory store."""

    def __init__(self, store: "BaseMemoryStore", step: float = REINFORCE_STEP):
        self.store = store
        self.step = step

    def reinforce(self, memory_ids: Sequence[str], now: Optional[datetime] = None) -> int:
        """
        Bump salience of every surfaced memory and refresh ``updated_at``.

        Store failures are logged and reported as zero updates; reinforcement
        is never allowed to fail a retrieval.
        """
        ids = list(dict.fromkeys(memory_ids))
        if not ids:
            return 0
        try:
            return self.store.update_salience(ids, self.step, now=now)
        except MemoryStoreError as e:
            logger.error("salience_reinforce_failed", count=len(ids), error=str(e))
            return 0
