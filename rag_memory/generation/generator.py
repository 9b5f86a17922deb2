"""
Text-generation collaborator boundary.

The memory engine only asks a model to distill facts or compress context;
it never holds conversation state. Any error, timeout or empty body is
raised as GenerationError and callers fall back to their offline path.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Union
import time

import httpx

from rag_memory.config.settings import GeneratorCfg
from rag_memory.errors import GenerationError
from rag_memory.telemetry import get_logger

logger = get_logger(__name__)

Message = Dict[str, str]


@dataclass
class GenerationConfig:
    """Configuration for one generation request."""
    max_new_tokens: int = 500
    temperature: float = 0.2


@dataclass
class GeneratedResponse:
    """Container for generated text with metadata."""
    text: str
    model_used: str
    prompt_length: int
    response_length: int
    processing_time: float = 0.0


class BaseGenerator(ABC):
    """Abstract base class for text generators."""

    @abstractmethod
    def generate(self, messages: List[Message], config: Optional[GenerationConfig] = None) -> GeneratedResponse:
        """Generate text for role-tagged ``messages`` or raise GenerationError."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the generator is configured and ready to use."""

    def close(self) -> None:
        """Release network resources."""


class MockGenerator(BaseGenerator):
    """
    Offline generator for tests and keyless deployments.

    Responses are taken from ``responses`` in order (the last one repeats),
    or computed by a callable receiving the messages. An Exception instance
    in the list is raised instead of returned.
    """

    def __init__(
        self,
        responses: Union[Sequence[Union[str, Exception]], Callable[[List[Message]], str], None] = None,
        available: bool = True,
    ):
        self.responses = responses if responses is not None else [""]
        self.available = available
        self.calls: List[List[Message]] = []

    def generate(self, messages, config=None):
        self.calls.append(messages)
        if callable(self.responses):
            text = self.responses(messages)
        else:
            index = min(len(self.calls) - 1, len(self.responses) - 1)
            text = self.responses[index]
        if isinstance(text, Exception):
            raise text

        prompt_length = sum(len(m.get("content", "")) for m in messages)
        return GeneratedResponse(
            text=text,
            model_used="mock_generator",
            prompt_length=prompt_length,
            response_length=len(text),
        )

    def is_available(self) -> bool:
        return self.available


class ChatCompletionGenerator(BaseGenerator):
    """Generator for OpenAI-compatible ``/chat/completions`` endpoints."""

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: Optional[str] = None,
        timeout: float = 20.0,
        client: Optional[httpx.Client] = None,
    ):
        """
        Args:
            base_url: API base, e.g. https://openrouter.ai/api/v1
            model: Model identifier
            api_key: Bearer token; without one the generator is unavailable
            timeout: Request timeout in seconds
            client: Optional preconfigured httpx client
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_config(cls, cfg: GeneratorCfg) -> "ChatCompletionGenerator":
        return cls(cfg.base_url, cfg.model, cfg.api_key, cfg.timeout_seconds)

    def is_available(self) -> bool:
        return bool(self.api_key)

    def generate(self, messages, config=None):
        if not self.is_available():
            raise GenerationError("No API key configured for chat completions")

        gen_config = config or GenerationConfig()
        start_time = time.time()
        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": gen_config.max_new_tokens,
            "temperature": gen_config.temperature,
        }

        try:
            response = self._client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise GenerationError(f"Chat completion timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise GenerationError(f"Chat completion transport error: {e}") from e

        if not response.is_success:
            raise GenerationError(f"Chat completion returned status {response.status_code}")

        try:
            text = response.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerationError(f"Malformed chat completion body: {e}") from e

        text = text.strip()
        if not text:
            raise GenerationError("Chat completion returned empty content")

        return GeneratedResponse(
            text=text,
            model_used=self.model,
            prompt_length=sum(len(m.get("content", "")) for m in messages),
            response_length=len(text),
            processing_time=time.time() - start_time,
        )

    def close(self) -> None:
        self._client.close()
