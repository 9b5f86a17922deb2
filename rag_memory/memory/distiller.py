"""
Fact distillation from conversation turns.

Asks the generator for durable facts as a JSON array, validates each item
as an untrusted payload and keeps the ones passing the quality gate.
"""

import json
import re
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from rag_memory.errors import GenerationError
from rag_memory.generation.generator import BaseGenerator, GenerationConfig
from rag_memory.telemetry import get_logger
from .policy import FactQualityPolicy
from .schemas import ConversationTurn, FactCandidate, MEMORY_KINDS

logger = get_logger(__name__)

Turn = Union[ConversationTurn, Dict[str, Any]]

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_ARRAY = re.compile(r"\[.*\]", re.DOTALL)

DISTILL_PROMPT = """Extract durable user facts from this dialog. Focus on stable preferences, identity, long-term projects, and skills. Avoid transient requests or time-bound details.

Return only a JSON array: [{{"kind": "{kinds}", "content": "clear factual statement", "tags": ["tag1"], "salience": 0.0-1.0}}]
Return [] if there is nothing durable.

Dialog:
{dialog}"""


def _as_turn(turn: Turn) -> ConversationTurn:
    if isinstance(turn, ConversationTurn):
        return turn
    return ConversationTurn(role=str(turn.get("role", "user")), content=str(turn.get("content", "")))


def parse_fact_payload(text: str) -> List[Any]:
    """
    Pull the JSON array out of a model reply.

    Tolerates code fences and prose around the array. Raises ValueError when
    no array can be decoded.
    """
    cleaned = _FENCE.sub("", text.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        match = _ARRAY.search(cleaned)
        if not match:
            raise ValueError("no JSON array in model output")
        data = json.loads(match.group(0))

    if isinstance(data, dict) and isinstance(data.get("facts"), list):
        data = data["facts"]
    if not isinstance(data, list):
        raise ValueError(f"expected a JSON array, got {type(data).__name__}")
    return data


class FactDistiller:
    """
    Converts recent conversation turns into quality-checked fact candidates.

    ``distill`` never raises: generator errors and unparseable output are
    logged and produce an empty list.
    """

    def __init__(
        self,
        generator: BaseGenerator,
        policy: Optional[FactQualityPolicy] = None,
        window_turns: int = 12,
        max_tokens: int = 500,
        temperature: float = 0.2,
    ):
        """
        Args:
            generator: LLM generator used for extraction
            policy: Quality gate (default thresholds if omitted)
            window_turns: How many of the most recent turns to show the model
            max_tokens: Generation budget for the reply
            temperature: Sampling temperature
        """
        self.generator = generator
        self.policy = policy or FactQualityPolicy()
        self.window_turns = window_turns
        self.config = GenerationConfig(max_new_tokens=max_tokens, temperature=temperature)

    def build_prompt(self, turns: Sequence[Turn]) -> str:
        recent = [_as_turn(t) for t in list(turns)[-self.window_turns:]]
        dialog = "\n".join(f"{t.role}: {t.content}" for t in recent)
        return DISTILL_PROMPT.format(kinds="|".join(MEMORY_KINDS), dialog=dialog)

    def extract(self, turns: Sequence[Turn]) -> List[FactCandidate]:
        """
        Ask the model for facts and validate each item.

        Items that fail validation are dropped one by one; the quality gate
        is not applied here.
        """
        if not turns:
            return []

        messages = [{"role": "user", "content": self.build_prompt(turns)}]
        try:
            response = self.generator.generate(messages, self.config)
        except GenerationError as e:
            logger.warning("distill_generation_failed", error=str(e))
            return []

        try:
            items = parse_fact_payload(response.text)
        except ValueError as e:
            logger.warning("distill_parse_failed", error=str(e), reply_chars=len(response.text))
            return []

        candidates = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                candidates.append(FactCandidate.model_validate(item))
            except ValidationError as e:
                logger.debug("distill_candidate_invalid", errors=e.error_count())
        return candidates

    def distill(self, turns: Sequence[Turn]) -> List[FactCandidate]:
        """Extract candidates and keep the ones the quality gate accepts."""
        accepted = []
        for candidate in self.extract(turns):
            ok, reason = self.policy.evaluate(candidate)
            if ok:
                accepted.append(candidate)
            else:
                logger.debug("distill_candidate_rejected", reason=reason, content=candidate.content[:80])

        logger.info("facts_distilled", turns=len(turns), accepted=len(accepted))
        return accepted
