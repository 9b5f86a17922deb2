"""
Fact quality policy.

Decides which distilled candidates are durable enough to become memories
and when a conversation has accumulated enough new turns to distill.
"""

import re
import threading
from collections import OrderedDict
from contextlib import contextmanager
from typing import Iterator, List, Optional, Pattern, Sequence, Tuple

from rag_memory.config.settings import (
    DEFAULT_NOISY_PATTERNS,
    DEFAULT_TRANSIENT_PATTERNS,
    DistillationCfg,
)
from .schemas import FactCandidate


def _compile(patterns: Sequence[str]) -> List[Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


class FactQualityPolicy:
    """
    Quality gate for distilled facts.

    A candidate is rejected when its content is too short, its salience is
    too low, or it matches a transience or noise pattern. Both pattern lists
    are configuration, not code.
    """

    def __init__(
        self,
        min_content_length: int = 15,
        min_salience: float = 0.6,
        transient_patterns: Optional[Sequence[str]] = None,
        noisy_patterns: Optional[Sequence[str]] = None,
    ):
        self.min_content_length = min_content_length
        self.min_salience = min_salience
        self.transient_patterns = _compile(
            DEFAULT_TRANSIENT_PATTERNS if transient_patterns is None else transient_patterns
        )
        self.noisy_patterns = _compile(
            DEFAULT_NOISY_PATTERNS if noisy_patterns is None else noisy_patterns
        )

    @classmethod
    def from_config(cls, cfg: DistillationCfg) -> "FactQualityPolicy":
        return cls(
            min_content_length=cfg.min_content_length,
            min_salience=cfg.min_salience,
            transient_patterns=cfg.transient_patterns,
            noisy_patterns=cfg.noisy_patterns,
        )

    def is_transient(self, content: str) -> bool:
        return any(p.search(content) for p in self.transient_patterns)

    def is_noisy(self, content: str) -> bool:
        return any(p.search(content) for p in self.noisy_patterns)

    def evaluate(self, candidate: FactCandidate) -> Tuple[bool, str]:
        """
        Check one candidate.

        Returns:
            (accepted, reason) where reason is "ok" or the first failed check
        """
        content = candidate.content
        if len(content) < self.min_content_length:
            return False, "too_short"
        if candidate.salience < self.min_salience:
            return False, "low_salience"
        if self.is_transient(content):
            return False, "transient"
        if self.is_noisy(content):
            return False, "noisy"
        return True, "ok"

    def accepts(self, candidate: FactCandidate) -> bool:
        return self.evaluate(candidate)[0]


class DistillationScheduler:
    """
    Per-conversation batching and mutual exclusion for distillation.

    A conversation is due once ``batch_min_turns`` turns arrived since the
    last attempt. Only one distillation per conversation runs at a time; a
    concurrent attempt is skipped rather than queued.

    Only the ``max_tracked`` most recently distilled conversations are
    remembered; an evicted conversation is treated as new.
    """

    def __init__(self, batch_min_turns: int = 4, max_tracked: int = 10_000):
        self.batch_min_turns = batch_min_turns
        self.max_tracked = max(1, max_tracked)
        self._last_attempt: "OrderedDict[str, int]" = OrderedDict()
        self._running: set = set()
        self._lock = threading.Lock()

    def is_due(self, conversation_id: str, turn_count: int) -> bool:
        with self._lock:
            seen = self._last_attempt.get(conversation_id, 0)
            # A shorter history than last time means the conversation was reset.
            if turn_count < seen:
                seen = 0
            return turn_count - seen >= self.batch_min_turns

    @contextmanager
    def attempt(self, conversation_id: str, turn_count: int) -> Iterator[bool]:
        """
        Claim a distillation slot.

        Yields True when the caller should distill now. The attempt is
        recorded on entry so a failing distillation still waits for the next
        batch of turns.
        """
        with self._lock:
            seen = self._last_attempt.get(conversation_id, 0)
            if turn_count < seen:
                seen = 0
            claimed = (
                conversation_id not in self._running
                and turn_count - seen >= self.batch_min_turns
            )
            if claimed:
                self._running.add(conversation_id)
                self._last_attempt[conversation_id] = turn_count
                self._last_attempt.move_to_end(conversation_id)
                while len(self._last_attempt) > self.max_tracked:
                    self._last_attempt.popitem(last=False)
        try:
            yield claimed
        finally:
            if claimed:
                with self._lock:
                    self._running.discard(conversation_id)

    def is_running(self, conversation_id: str) -> bool:
        with self._lock:
            return conversation_id in self._running

    def forget(self, conversation_id: str) -> None:
        with self._lock:
            self._last_attempt.pop(conversation_id, None)

    def tracked(self) -> int:
        with self._lock:
            return len(self._last_attempt)
