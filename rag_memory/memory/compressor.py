"""
Context compression.

Collapses selected memory texts into a token-bounded block framed for a
downstream prompt.
"""

from typing import Optional, Sequence

from rag_memory.errors import GenerationError
from rag_memory.generation.generator import BaseGenerator, GenerationConfig
from rag_memory.telemetry import get_logger

logger = get_logger(__name__)

CHARS_PER_TOKEN = 4

COMPRESS_PROMPT = """Summarize this user memory context into key facts. Keep under {words} words. Focus on preferences, identity, projects, and stable traits; drop incidental detail.

{text}"""


def format_memory_block(content: str) -> str:
    """Wrap compressed memories in the frame the chat prompt expects."""
    return (
        "<memory_context>\n"
        "Guidelines:\n"
        "- Use these facts only if relevant\n"
        "- Do NOT invent details not present\n"
        "\n"
        f"{content}\n"
        "</memory_context>"
    )


def truncate_to_budget(text: str, max_tokens: int) -> str:
    """Hard cut at ``max_tokens * 4`` characters with an ellipsis marker."""
    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


class ContextCompressor:
    """Summarizes memory texts with the generator, truncating when it is unavailable."""

    def __init__(self, generator: Optional[BaseGenerator] = None, temperature: float = 0.3):
        self.generator = generator
        self.temperature = temperature

    def compress(self, texts: Sequence[str], max_tokens: int = 600) -> str:
        """
        Compress ``texts`` into roughly ``max_tokens // 4`` words.

        Returns:
            Compressed text (unframed). Empty input gives an empty string.
        """
        joined = "\n".join(t.strip() for t in texts if t and t.strip())
        if not joined:
            return ""

        if self.generator is None or not self.generator.is_available():
            return truncate_to_budget(joined, max_tokens)

        prompt = COMPRESS_PROMPT.format(words=max(1, max_tokens // 4), text=joined)
        config = GenerationConfig(max_new_tokens=max_tokens, temperature=self.temperature)
        try:
            response = self.generator.generate([{"role": "user", "content": prompt}], config)
        except GenerationError as e:
            logger.warning("compress_generation_failed", error=str(e))
            return truncate_to_budget(joined, max_tokens)

        text = response.text.strip()
        if not text:
            return truncate_to_budget(joined, max_tokens)
        return truncate_to_budget(text, max_tokens)

    def compress_block(self, texts: Sequence[str], max_tokens: int = 600) -> str:
        """Compressed texts wrapped in the memory frame."""
        return format_memory_block(self.compress(texts, max_tokens))
