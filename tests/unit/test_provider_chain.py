"""
Unit tests for rag_memory/embedding/chain.py and the HTTP provider.

Tests failover order, circuit breaking, call deadlines and the
OpenAI-compatible request/response handling.
"""
import json

import httpx
import pytest

from rag_memory.config.settings import EmbeddingCfg, ProviderCfg, Settings
from rag_memory.embedding.chain import ProviderChain
from rag_memory.embedding.providers import HTTPEmbeddingProvider, hash_embedding
from rag_memory.errors import (
    ProviderError,
    ProviderHTTPError,
    ProviderResponseError,
    ProviderTimeoutError,
)

from .conftest import FakeProvider

DIM = 16


@pytest.fixture
def make_chain(clock):
    chains = []

    def _make(providers, **kwargs):
        kwargs.setdefault("failure_threshold", 3)
        kwargs.setdefault("cooldown_seconds", 60)
        chain = ProviderChain(providers, dimensions=DIM, clock=clock, **kwargs)
        chains.append(chain)
        return chain

    yield _make
    for chain in chains:
        chain.close()


# ============================================================================
# Failover
# ============================================================================

def test_primary_result_is_used(make_chain):
    primary = FakeProvider("primary", DIM, vector=lambda t: [0.5] * DIM)
    secondary = FakeProvider("secondary", DIM)
    chain = make_chain([primary, secondary])

    assert chain.embed("hello world") == [0.5] * DIM
    assert primary.calls == 1
    assert secondary.calls == 0


def test_falls_through_to_secondary(make_chain):
    primary = FakeProvider("primary", DIM, fail=True)
    secondary = FakeProvider("secondary", DIM, vector=lambda t: [0.25] * DIM)
    chain = make_chain([primary, secondary])

    assert chain.embed("hello") == [0.25] * DIM
    assert chain.stats()["primary"]["failure"] == 1
    assert chain.stats()["secondary"]["success"] == 1


def test_all_failing_uses_hash_fallback(make_chain):
    chain = make_chain([FakeProvider("a", DIM, fail=True), FakeProvider("b", DIM, fail=True)])

    vector = chain.embed("the quick fox")
    assert vector == hash_embedding("the quick fox", DIM)
    assert chain.stats()["fallback"]["success"] == 1


def test_force_fallback_skips_live_providers(make_chain):
    primary = FakeProvider("primary", DIM)
    chain = make_chain([primary], force_fallback=True)

    assert chain.embed("offline mode") == hash_embedding("offline mode", DIM)
    assert primary.calls == 0


def test_wrong_dimension_counts_as_failure(make_chain):
    """A provider returning the wrong length must not poison the store."""
    bad = FakeProvider("bad", DIM, vector=lambda t: [1.0, 0.0])
    chain = make_chain([bad])

    vector = chain.embed("text")
    assert len(vector) == DIM
    assert chain.breakers["bad"].state.consecutive_failures == 1


def test_unexpected_exception_is_contained(make_chain):
    def boom(text):
        raise RuntimeError("bug in provider")

    chain = make_chain([FakeProvider("weird", DIM, vector=boom)])
    assert len(chain.embed("still works")) == DIM


def test_fallback_and_live_share_dimensions(make_chain):
    live = FakeProvider("live", DIM, vector=lambda t: [0.1] * DIM)
    chain = make_chain([live])
    assert len(chain.embed("x y z")) == len(chain.fallback_embed("x y z")) == DIM


# ============================================================================
# Circuit breaking
# ============================================================================

def test_breaker_trips_after_three_failures_and_recovers(make_chain, clock):
    primary = FakeProvider("primary", DIM, fail=True)
    secondary = FakeProvider("secondary", DIM)
    chain = make_chain([primary, secondary])

    for _ in range(3):
        chain.embed("query")
    assert primary.calls == 3
    assert chain.breakers["primary"].is_open

    # 4th call inside the cool-down skips primary entirely
    chain.embed("query")
    assert primary.calls == 3
    assert secondary.calls == 4
    assert chain.stats()["primary"]["skipped"] == 1

    # After the cool-down the provider is attempted again
    clock.advance(61)
    primary.fail = False
    chain.embed("query")
    assert primary.calls == 4
    assert not chain.breakers["primary"].is_open


def test_reset_reopens_provider(make_chain):
    primary = FakeProvider("primary", DIM, fail=True)
    chain = make_chain([primary], failure_threshold=1)
    chain.embed("q")
    assert chain.breakers["primary"].is_open

    chain.reset("primary")
    chain.embed("q")
    assert primary.calls == 2


def test_slow_provider_is_abandoned(make_chain):
    slow = FakeProvider("slow", DIM, delay=0.5)
    chain = make_chain([slow], timeout_seconds=0.05)

    vector = chain.embed("hurry up")
    assert vector == hash_embedding("hurry up", DIM)
    assert chain.breakers["slow"].state.consecutive_failures == 1


def test_duplicate_provider_names_rejected():
    with pytest.raises(ValueError):
        ProviderChain([FakeProvider("x", DIM), FakeProvider("x", DIM)], dimensions=DIM)


def test_from_settings_skips_keyless_and_disabled():
    settings = Settings(embedding=EmbeddingCfg(
        dimensions=DIM,
        providers=[
            ProviderCfg(name="a", base_url="http://a", model="m", api_key="k"),
            ProviderCfg(name="b", base_url="http://b", model="m"),
            ProviderCfg(name="c", base_url="http://c", model="m", api_key="k", enabled=False),
        ],
    ))
    chain = ProviderChain.from_settings(settings)
    try:
        assert [p.name for p in chain.providers] == ["a"]
        assert chain.dimensions == DIM
    finally:
        chain.close()


# ============================================================================
# HTTP provider
# ============================================================================

def _provider(handler, **kwargs):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HTTPEmbeddingProvider(
        name="openai",
        base_url="https://api.example.com/v1/",
        model="text-embedding-3-small",
        api_key="sk-test",
        dimensions=4,
        client=client,
        **kwargs
    )


def test_http_provider_parses_embedding():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2, 0.3, 0.4]}]})

    provider = _provider(handler, send_dimensions=True)
    assert provider.embed("hello") == [0.1, 0.2, 0.3, 0.4]
    assert seen["url"] == "https://api.example.com/v1/embeddings"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"] == {"model": "text-embedding-3-small", "input": "hello", "dimensions": 4}


def test_http_provider_status_error():
    provider = _provider(lambda r: httpx.Response(429, text="slow down"))
    with pytest.raises(ProviderHTTPError) as exc:
        provider.embed("hello")
    assert exc.value.status_code == 429


def test_http_provider_html_error_page():
    provider = _provider(lambda r: httpx.Response(502, text="<!DOCTYPE html><html>oops</html>"))
    with pytest.raises(ProviderHTTPError, match="HTML error page"):
        provider.embed("hello")


@pytest.mark.parametrize("body", [
    {"data": []},
    {"nope": True},
    {"data": [{"embedding": "not a list"}]},
    {"data": [{"embedding": ["a", "b"]}]},
])
def test_http_provider_malformed_body(body):
    provider = _provider(lambda r: httpx.Response(200, json=body))
    with pytest.raises(ProviderResponseError):
        provider.embed("hello")


def test_http_provider_non_json_body():
    provider = _provider(lambda r: httpx.Response(200, text="definitely not json"))
    with pytest.raises(ProviderResponseError):
        provider.embed("hello")


def test_http_provider_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ProviderTimeoutError):
        _provider(handler).embed("hello")


def test_http_provider_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderError):
        _provider(handler).embed("hello")
