"""
Memory system data models.

Defines MemoryRecord and the payloads that flow around it.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator


MemoryKind = Literal["profile", "preference", "project", "fact", "task", "contact", "custom"]
MEMORY_KINDS = get_args(MemoryKind)

MIN_CONTENT_CHARS = 10
MAX_CONTENT_CHARS = 2000


def utc_now() -> datetime:
    """Timezone-aware current time; every stored timestamp is UTC."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def clamp_salience(value: float) -> float:
    """Clamp a salience score to [0.0, 1.0]. NaN and infinities are rejected."""
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"salience must be a finite number, got {value}")
    return max(0.0, min(1.0, value))


class MemorySource(BaseModel):
    """Provenance of a memory."""

    model_config = ConfigDict(extra="allow")

    origin: str = Field("manual", description="'conversation', 'manual', ...")
    conversation_id: Optional[str] = None
    extracted_at: Optional[datetime] = None
    provenance: Optional[str] = None

    @field_validator("extracted_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class MemoryRecord(BaseModel):
    """
    A durable unit of recall owned by exactly one user.

    ``(owner, content)`` is the natural dedupe key; the store refreshes
    ``updated_at`` instead of creating a second record for the same pair.
    """

    id: str = Field(..., description="Store-assigned identifier")
    owner: str = Field(..., min_length=1)
    kind: MemoryKind = "fact"
    content: str = Field(..., min_length=MIN_CONTENT_CHARS, max_length=MAX_CONTENT_CHARS)
    embedding: List[float] = Field(default_factory=list)
    salience: float = 0.5
    decay_at: Optional[datetime] = None
    source: MemorySource = Field(default_factory=MemorySource)
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "mem_3f9a1c0b2d4e",
                "owner": "user_42",
                "kind": "preference",
                "content": "Prefers jazz and ambient music while coding.",
                "salience": 0.75,
                "source": {"origin": "conversation", "conversation_id": "conv_7"},
                "tags": ["music"],
            }
        }
    )

    @field_validator("salience")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return clamp_salience(value)

    @field_validator("decay_at", "created_at", "updated_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    def is_live(self, now: Optional[datetime] = None) -> bool:
        """False once ``decay_at`` has passed."""
        if self.decay_at is None:
            return True
        return self.decay_at > (as_utc(now) or utc_now())

    def to_storage_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_storage_dict(cls, data: Dict[str, Any]) -> "MemoryRecord":
        return cls.model_validate(data)

    def snippet(self, max_chars: int = 100) -> str:
        """Get truncated content for display."""
        if len(self.content) <= max_chars:
            return self.content
        return self.content[:max_chars - 3] + "..."


class ConversationTurn(BaseModel):
    """One role-tagged message of a conversation."""
    role: str = "user"
    content: str = ""


class FactCandidate(BaseModel):
    """
    A fact proposed by the distillation model.

    Parsed from untrusted generator output, so fields are coerced where the
    intent is clear (unknown kind becomes ``fact``, tags become strings).
    """

    kind: MemoryKind = "fact"
    content: str
    tags: List[str] = Field(default_factory=list)
    salience: float = Field(0.5, allow_inf_nan=False)

    @field_validator("kind", mode="before")
    @classmethod
    def _known_kind(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip().lower() in MEMORY_KINDS:
            return value.strip().lower()
        return "fact"

    @field_validator("content", mode="before")
    @classmethod
    def _strip_content(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("content must be a string")
        return value.strip()

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_as_strings(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            raise ValueError("tags must be a list")
        return [str(tag).strip() for tag in value if str(tag).strip()]


class MemoryMetadata(BaseModel):
    """Metadata about memory usage in a response."""

    used_ids: List[str] = Field(default_factory=list, description="Memory IDs surfaced")
    used_count: int = 0
    used_chars: int = 0
    snippets: List[str] = Field(default_factory=list)
    similarities: List[float] = Field(default_factory=list)


class MemoryContext(BaseModel):
    """Framed context block plus what went into it."""

    context: str = ""
    metadata: MemoryMetadata = Field(default_factory=MemoryMetadata)

    @property
    def is_empty(self) -> bool:
        return not self.metadata.used_ids


class KindStats(BaseModel):
    count: int = 0
    avg_salience: float = 0.0


class MemoryStats(BaseModel):
    """Per-owner memory counts grouped by kind."""

    total: int = 0
    by_kind: Dict[str, KindStats] = Field(default_factory=dict)
