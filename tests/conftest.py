"""Shared fixtures for meshbot tests."""

import asyncio

import pytest

from meshbot.agent.fallback import CompletionClient
from meshbot.agent.router import MessageRouter
from meshbot.config.schema import LLMConfig, MemoryConfig
from meshbot.memory.learning import create_learning_manager
from meshbot.memory.store import InMemoryMemoryStore, SQLiteMemoryStore
from meshbot.providers.base import LLMProvider, LLMResponse
from meshbot.skills.registry import create_default_registry


class FakeProvider(LLMProvider):
    """Provider that returns a canned response and records calls."""

    def __init__(self, content="Resposta do modelo", finish_reason="stop", delay=0.0, exc=None):
        super().__init__()
        self.content = content
        self.finish_reason = finish_reason
        self.delay = delay
        self.exc = exc
        self.calls = []

    async def chat(self, messages, model=None, max_tokens=800, temperature=0.7):
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc:
            raise self.exc
        return LLMResponse(content=self.content, finish_reason=self.finish_reason)

    def get_default_model(self):
        return "fake"


@pytest.fixture
def memory_config():
    """Memory config with default limits."""
    return MemoryConfig()


@pytest.fixture
def store(memory_config):
    """In-memory store."""
    return InMemoryMemoryStore(memory_config)


@pytest.fixture
def sqlite_store(memory_config, tmp_path):
    """SQLite store in a temporary directory."""
    s = SQLiteMemoryStore(memory_config, db_path=tmp_path / "memory.db")
    yield s
    s.close()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, memory_config, tmp_path):
    """Run a test against both backends."""
    if request.param == "memory":
        yield InMemoryMemoryStore(memory_config)
    else:
        s = SQLiteMemoryStore(memory_config, db_path=tmp_path / "memory.db")
        yield s
        s.close()


@pytest.fixture
def provider():
    """Fake completion provider."""
    return FakeProvider()


@pytest.fixture
def completion(provider):
    """Completion client backed by the fake provider."""
    return CompletionClient([("openai", provider)], llm=LLMConfig(timeout_seconds=0.5))


@pytest.fixture
def learning(store):
    """Learning manager on the in-memory store."""
    return create_learning_manager(store)


@pytest.fixture
def router(store, completion, learning):
    """Router with the built-in skills."""
    return MessageRouter(
        registry=create_default_registry(),
        completion=completion,
        store=store,
        learning=learning,
        request_timeout=2.0,
    )


@pytest.fixture
def make_provider():
    """Factory for fake providers with custom behaviour."""
    return FakeProvider
