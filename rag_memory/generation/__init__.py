"""Text generation used for fact distillation and context compression."""

from .generator import (
    BaseGenerator,
    ChatCompletionGenerator,
    GeneratedResponse,
    GenerationConfig,
    MockGenerator,
)

__all__ = [
    "BaseGenerator",
    "ChatCompletionGenerator",
    "GeneratedResponse",
    "GenerationConfig",
    "MockGenerator",
]
