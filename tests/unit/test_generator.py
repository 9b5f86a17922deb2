"""
Unit tests for rag_memory/generation/generator.py
"""
import json

import httpx
import pytest

from rag_memory.config.settings import GeneratorCfg
from rag_memory.errors import GenerationError
from rag_memory.generation.generator import (
    ChatCompletionGenerator,
    GenerationConfig,
    MockGenerator,
)

MESSAGES = [{"role": "user", "content": "Summarize: likes jazz"}]


def make_generator(handler, api_key="sk-test"):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return ChatCompletionGenerator("https://openrouter.ai/api/v1", "openai/gpt-5-mini", api_key, client=client)


def completion(content):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


# ============================================================================
# MockGenerator
# ============================================================================

def test_mock_generator_sequence():
    generator = MockGenerator(["first", "second"])
    assert generator.generate(MESSAGES).text == "first"
    assert generator.generate(MESSAGES).text == "second"
    assert generator.generate(MESSAGES).text == "second"
    assert len(generator.calls) == 3


def test_mock_generator_callable():
    generator = MockGenerator(lambda messages: messages[-1]["content"].upper())
    assert generator.generate(MESSAGES).text == "SUMMARIZE: LIKES JAZZ"


def test_mock_generator_raises_exceptions():
    generator = MockGenerator([GenerationError("down")])
    with pytest.raises(GenerationError):
        generator.generate(MESSAGES)


# ============================================================================
# ChatCompletionGenerator
# ============================================================================

def test_chat_completion_success():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return completion("  Jazz fan.  ")

    generator = make_generator(handler)
    response = generator.generate(MESSAGES, GenerationConfig(max_new_tokens=120, temperature=0.3))

    assert response.text == "Jazz fan."
    assert response.model_used == "openai/gpt-5-mini"
    assert seen["url"] == "https://openrouter.ai/api/v1/chat/completions"
    assert seen["body"]["messages"] == MESSAGES
    assert seen["body"]["max_tokens"] == 120
    assert seen["body"]["temperature"] == 0.3


def test_without_key_unavailable():
    generator = make_generator(lambda r: completion("unused"), api_key=None)
    assert not generator.is_available()
    with pytest.raises(GenerationError):
        generator.generate(MESSAGES)


@pytest.mark.parametrize("response", [
    httpx.Response(500, text="server error"),
    httpx.Response(200, text="not json"),
    httpx.Response(200, json={"choices": []}),
    httpx.Response(200, json={"choices": [{"message": {"content": None}}]}),
    httpx.Response(200, json={"choices": [{"message": {"content": "   "}}]}),
])
def test_bad_responses_raise_generation_error(response):
    generator = make_generator(lambda r: response)
    with pytest.raises(GenerationError):
        generator.generate(MESSAGES)


def test_timeout_raises_generation_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(GenerationError):
        make_generator(handler).generate(MESSAGES)


def test_from_config():
    generator = ChatCompletionGenerator.from_config(GeneratorCfg(api_key="k", model="m", timeout_seconds=5))
    try:
        assert generator.model == "m"
        assert generator.timeout == 5
        assert generator.is_available()
    finally:
        generator.close()
