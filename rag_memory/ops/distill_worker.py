"""
Background distillation runner.

Keeps distillation off the chat request path: ``submit`` hands the work to
a thread pool and returns immediately with a Future.
"""

import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Sequence

from rag_memory.engine import MemoryEngine
from rag_memory.memory.distiller import Turn
from rag_memory.telemetry import get_logger

logger = get_logger(__name__)


@dataclass
class DistillJob:
    """Status of one background distillation."""

    id: str
    owner: str
    conversation_id: str
    state: Literal["queued", "running", "succeeded", "failed"] = "queued"
    stored: int = 0
    message: str = ""
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DistillationRunner:
    """
    In-process job runner for fire-and-forget distillation.

    Batching and per-conversation exclusion are enforced by the engine's
    scheduler, so submitting on every turn is safe.
    """

    def __init__(self, engine: MemoryEngine, max_workers: int = 2, history_limit: int = 200):
        """
        Args:
            engine: Memory engine doing the work
            max_workers: Max concurrent distillations
            history_limit: Finished jobs kept for ``jobs()``
        """
        self.engine = engine
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="distill")
        self.history_limit = history_limit
        self._jobs: Dict[str, DistillJob] = {}
        self._lock = threading.Lock()

    def submit(self, owner: str, conversation_id: str, turns: Sequence[Turn]) -> Future:
        """
        Queue a distillation; returns a Future resolving to the stored count.

        The turn list is copied so later mutation by the caller is harmless.
        """
        job = DistillJob(id=f"job_{uuid.uuid4().hex[:12]}", owner=owner, conversation_id=conversation_id)
        with self._lock:
            self._jobs[job.id] = job
            self._trim()
        return self.executor.submit(self._run, job, list(turns))

    def _run(self, job: DistillJob, turns: List[Turn]) -> int:
        start = time.time()
        self._update(job, state="running", started_at=_now_iso())
        try:
            stored = self.engine.maybe_distill(job.owner, job.conversation_id, turns)
        except Exception as e:
            self._update(job, state="failed", message=str(e), finished_at=_now_iso())
            logger.exception("distill_job_failed", job_id=job.id)
            return 0

        self._update(job, state="succeeded", stored=stored, finished_at=_now_iso())
        logger.debug("distill_job_done", job_id=job.id, stored=stored, ms=round((time.time() - start) * 1000, 1))
        return stored

    def _update(self, job: DistillJob, **changes) -> None:
        with self._lock:
            for key, value in changes.items():
                setattr(job, key, value)

    def _trim(self) -> None:
        finished = [j for j in self._jobs.values() if j.state in ("succeeded", "failed")]
        overflow = len(self._jobs) - self.history_limit
        for job in finished[:max(0, overflow)]:
            del self._jobs[job.id]

    def get(self, job_id: str) -> Optional[DistillJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return DistillJob(**asdict(job)) if job else None

    def jobs(self) -> List[DistillJob]:
        with self._lock:
            return [DistillJob(**asdict(j)) for j in self._jobs.values()]

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
