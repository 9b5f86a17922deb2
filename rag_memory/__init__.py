"""
rag_memory: semantic memory engine for an AI chat backend.

Turns conversation into durable, vector-indexed facts and retrieves a
relevant, diverse, token-bounded subset for each new query.
"""

from .config import Settings
from .engine import MemoryEngine, create_memory_engine
from .embedding import ProviderChain
from .memory import MemoryContext, MemoryRecord
from .telemetry import configure_logging, get_logger

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "MemoryEngine",
    "create_memory_engine",
    "ProviderChain",
    "MemoryContext",
    "MemoryRecord",
    "configure_logging",
    "get_logger",
]
