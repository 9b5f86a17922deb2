"""
Memory persistence adapters.

``BaseMemoryStore`` is the only boundary the engine uses to reach the
document store. Two implementations ship with the package: a SQLite-backed
store built on ``KVStore`` and a process-local in-memory store.
"""

import json
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from rag_memory.errors import DimensionMismatchError, MemoryStoreError
from rag_memory.memory.schemas import MemoryRecord, MemorySource, as_utc, clamp_salience, utc_now
from rag_memory.telemetry import get_logger
from .hashing import memory_key, owner_prefix
from .sqlite_store import KVStore

logger = get_logger(__name__)

UPDATABLE_FIELDS = {"kind", "embedding", "salience", "decay_at", "source", "tags"}


def new_memory_id() -> str:
    return f"mem_{uuid.uuid4().hex[:12]}"


class BaseMemoryStore(ABC):
    """
    Document store contract required by the engine.

    Implementations raise ``MemoryStoreError`` when the backend is
    unavailable and ``DimensionMismatchError`` when a write carries an
    embedding of the wrong length.
    """

    def __init__(self, dimensions: Optional[int] = None):
        """
        Args:
            dimensions: Required embedding length; None disables the check
        """
        self.dimensions = dimensions

    @abstractmethod
    def find_by_owner(
        self,
        owner: str,
        live_only: bool = True,
        now: Optional[datetime] = None
    ) -> List[MemoryRecord]:
        """Return the owner's records, oldest first."""

    @abstractmethod
    def upsert_by_owner_and_content(
        self,
        owner: str,
        content: str,
        fields: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> MemoryRecord:
        """Create the record or update the one already holding this content."""

    @abstractmethod
    def update_salience(
        self,
        ids: Iterable[str],
        delta: float,
        now: Optional[datetime] = None
    ) -> int:
        """Add ``delta`` to each record's salience (clamped). Returns records touched."""

    @abstractmethod
    def delete_by_owner(self, owner: str) -> int:
        """Delete every record of ``owner``. Returns count deleted."""

    @abstractmethod
    def get(self, memory_id: str) -> Optional[MemoryRecord]:
        """Fetch one record by id."""

    @abstractmethod
    def delete(self, memory_id: str) -> bool:
        """Delete one record by id."""

    def close(self) -> None:
        """Release backend resources."""

    def count(self, owner: str) -> int:
        return len(self.find_by_owner(owner, live_only=False))

    def _check_dimensions(self, embedding: Optional[List[float]]) -> None:
        if self.dimensions is None or embedding is None:
            return
        if len(embedding) != self.dimensions:
            raise DimensionMismatchError(self.dimensions, len(embedding))

    def _merge(
        self,
        existing: Optional[MemoryRecord],
        owner: str,
        content: str,
        fields: Dict[str, Any],
        now: datetime
    ) -> MemoryRecord:
        """Build the record to persist for an upsert."""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported memory fields: {sorted(unknown)}")

        self._check_dimensions(fields.get("embedding"))

        updates = dict(fields)
        if isinstance(updates.get("source"), dict):
            updates["source"] = MemorySource(**updates["source"])
        if "salience" in updates:
            updates["salience"] = clamp_salience(updates["salience"])

        if existing is not None:
            data = existing.model_dump()
            data.update(updates)
            data["updated_at"] = now
            return MemoryRecord.model_validate(data)

        return MemoryRecord(
            id=new_memory_id(),
            owner=owner,
            content=content,
            created_at=now,
            updated_at=now,
            **updates
        )


class SQLiteMemoryStore(BaseMemoryStore):
    """
    Memory store backed by the SQLite ``KVStore``.

    Keys:
    - memories: ``<owner hash>:<content hash>`` → record JSON
    - memory_ids: ``<memory id>`` → memories key
    """

    def __init__(self, db_path: Optional[Path] = None, dimensions: Optional[int] = None):
        """
        Initialize memory store.

        Args:
            db_path: Path to SQLite database (default: data/memory/memory.db)
            dimensions: Required embedding length
        """
        super().__init__(dimensions)
        if db_path is None:
            db_path = Path("data/memory/memory.db")
        self.kv = KVStore(db_path)

    def _load(self, raw: bytes) -> Optional[MemoryRecord]:
        try:
            return MemoryRecord.from_storage_dict(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("memory_record_unreadable", error=str(e))
            return None

    def _save(self, key: str, record: MemoryRecord) -> None:
        self.kv.set("memories", key, json.dumps(record.to_storage_dict()).encode("utf-8"))
        self.kv.set("memory_ids", record.id, key.encode("utf-8"))

    def find_by_owner(self, owner, live_only=True, now=None):
        now = as_utc(now) or utc_now()
        try:
            rows = self.kv.scan("memories", owner_prefix(owner))
        except sqlite3.Error as e:
            raise MemoryStoreError(f"find_by_owner failed: {e}") from e

        records = []
        for _, raw in rows:
            record = self._load(raw)
            if record is None or record.owner != owner:
                continue
            if live_only and not record.is_live(now):
                continue
            records.append(record)
        return records

    def upsert_by_owner_and_content(self, owner, content, fields=None, now=None):
        now = as_utc(now) or utc_now()
        key = memory_key(owner, content)
        try:
            with self.kv.transaction():
                raw = self.kv.get("memories", key)
                existing = self._load(raw) if raw is not None else None
                record = self._merge(existing, owner, content, fields or {}, now)
                self._save(key, record)
        except sqlite3.Error as e:
            raise MemoryStoreError(f"upsert failed: {e}") from e
        return record

    def update_salience(self, ids, delta, now=None):
        now = as_utc(now) or utc_now()
        touched = 0
        try:
            with self.kv.transaction():
                for memory_id in ids:
                    key_raw = self.kv.get("memory_ids", memory_id)
                    if key_raw is None:
                        continue
                    key = key_raw.decode("utf-8")
                    raw = self.kv.get("memories", key)
                    record = self._load(raw) if raw is not None else None
                    if record is None:
                        continue
                    record.salience = clamp_salience(record.salience + delta)
                    record.updated_at = now
                    self._save(key, record)
                    touched += 1
        except sqlite3.Error as e:
            raise MemoryStoreError(f"update_salience failed: {e}") from e
        return touched

    def delete_by_owner(self, owner):
        try:
            with self.kv.transaction():
                records = self.find_by_owner(owner, live_only=False)
                for record in records:
                    self.kv.delete("memory_ids", record.id)
                return self.kv.delete_prefix("memories", owner_prefix(owner))
        except sqlite3.Error as e:
            raise MemoryStoreError(f"delete_by_owner failed: {e}") from e

    def get(self, memory_id):
        try:
            key_raw = self.kv.get("memory_ids", memory_id)
            if key_raw is None:
                return None
            raw = self.kv.get("memories", key_raw.decode("utf-8"))
        except sqlite3.Error as e:
            raise MemoryStoreError(f"get failed: {e}") from e
        return self._load(raw) if raw is not None else None

    def delete(self, memory_id):
        try:
            with self.kv.transaction():
                key_raw = self.kv.get("memory_ids", memory_id)
                if key_raw is None:
                    return False
                self.kv.delete("memory_ids", memory_id)
                return self.kv.delete("memories", key_raw.decode("utf-8"))
        except sqlite3.Error as e:
            raise MemoryStoreError(f"delete failed: {e}") from e

    def close(self) -> None:
        self.kv.close()


class InMemoryMemoryStore(BaseMemoryStore):
    """Process-local store for tests and ephemeral deployments."""

    def __init__(self, dimensions: Optional[int] = None):
        super().__init__(dimensions)
        self._records: Dict[str, MemoryRecord] = {}
        self._keys: Dict[str, str] = {}
        self._lock = threading.Lock()

    def find_by_owner(self, owner, live_only=True, now=None):
        now = as_utc(now) or utc_now()
        with self._lock:
            records = [r.model_copy(deep=True) for r in self._records.values() if r.owner == owner]
        if live_only:
            records = [r for r in records if r.is_live(now)]
        return records

    def upsert_by_owner_and_content(self, owner, content, fields=None, now=None):
        now = as_utc(now) or utc_now()
        key = memory_key(owner, content)
        with self._lock:
            record = self._merge(self._records.get(key), owner, content, fields or {}, now)
            self._records[key] = record
            self._keys[record.id] = key
            return record.model_copy(deep=True)

    def update_salience(self, ids, delta, now=None):
        now = as_utc(now) or utc_now()
        touched = 0
        with self._lock:
            for memory_id in ids:
                record = self._records.get(self._keys.get(memory_id, ""))
                if record is None:
                    continue
                record.salience = clamp_salience(record.salience + delta)
                record.updated_at = now
                touched += 1
        return touched

    def delete_by_owner(self, owner):
        with self._lock:
            doomed = [k for k, r in self._records.items() if r.owner == owner]
            for key in doomed:
                self._keys.pop(self._records.pop(key).id, None)
        return len(doomed)

    def get(self, memory_id):
        with self._lock:
            record = self._records.get(self._keys.get(memory_id, ""))
            return record.model_copy(deep=True) if record else None

    def delete(self, memory_id):
        with self._lock:
            key = self._keys.pop(memory_id, None)
            if key is None:
                return False
            self._records.pop(key, None)
            return True
