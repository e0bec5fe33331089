"""Shared fixtures for Recollect tests."""

from __future__ import annotations

from typing import Any

import pytest
import pytest_asyncio

from recollect.events.bus import EventBus
from recollect.memory import MemoryLayer
from recollect.models.config import MemoryConfig, StoreConfig
from recollect.models.message import Message
from recollect.models.session import SessionEvent
from recollect.store.memory import InMemoryStorageAdapter
from recollect.store.sqlite import SQLiteStorageAdapter


def word_counter(text: str) -> int:
    """Deterministic token counter: one token per whitespace-separated word."""
    return len(text.split())


class FakeSummarizer:
    """Async summarizer returning a fixed text and recording every call."""

    def __init__(self, text: str = "condensed summary") -> None:
        self.text = text
        self.calls: list[dict[str, Any]] = []

    async def __call__(
        self,
        transcript: str,
        prior_summary: str | None = None,
        reason: str | None = None,
    ) -> str:
        self.calls.append(
            {"transcript": transcript, "prior_summary": prior_summary, "reason": reason}
        )
        return self.text


def user(text: str) -> Message:
    return Message(role="user", content=text)


def assistant(text: str) -> Message:
    return Message(role="assistant", content=text)


def system(text: str) -> Message:
    return Message(role="system", content=text)


def tool_call_message(*calls: tuple[str, str], text: str = "") -> dict[str, Any]:
    """Assistant wire message with one inline tool-call part per ``(call_id, tool_name)``."""
    content: list[dict[str, Any]] = [{"type": "text", "text": text}] if text else []
    content += [
        {"type": "tool-call", "toolCallId": call_id, "toolName": name, "input": {"q": call_id}}
        for call_id, name in calls
    ]
    return {"role": "assistant", "content": content}


def tool_result_message(call_id: str, tool_name: str, output: Any = "ok") -> dict[str, Any]:
    return {
        "role": "tool",
        "content": [
            {"type": "tool-result", "toolCallId": call_id, "toolName": tool_name, "output": output}
        ],
    }


@pytest.fixture
def config() -> MemoryConfig:
    """Small budget with permissive retention so short test sessions can compact."""
    return MemoryConfig(
        max_tokens=50,
        threshold=0.5,
        keep_recent_user_turns=1,
        keep_recent_messages_min=2,
        minimum_messages_to_compact=2,
    )


@pytest.fixture
def summarizer() -> FakeSummarizer:
    return FakeSummarizer()


@pytest.fixture
def event_bus() -> EventBus:
    """EventBus with a .collected list for asserting events."""
    bus = EventBus()
    collected: list[SessionEvent] = []
    bus.subscribe_all(collected.append)
    bus.collected = collected  # type: ignore[attr-defined]
    return bus


@pytest_asyncio.fixture
async def memory_storage():
    """Initialized in-memory storage adapter."""
    storage = InMemoryStorageAdapter()
    await storage.initialize()
    yield storage
    await storage.dispose()


@pytest_asyncio.fixture
async def sqlite_storage(tmp_path):
    """Initialized SQLite storage adapter on a temp database."""
    storage = SQLiteStorageAdapter(StoreConfig(db_path=str(tmp_path / "test.db")))
    await storage.initialize()
    yield storage
    await storage.dispose()


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def storage(request, tmp_path):
    """Each shipped storage adapter, initialized."""
    if request.param == "memory":
        adapter = InMemoryStorageAdapter()
    else:
        adapter = SQLiteStorageAdapter(StoreConfig(db_path=str(tmp_path / "param.db")))
    await adapter.initialize()
    yield adapter
    await adapter.dispose()


@pytest_asyncio.fixture
async def memory(config, memory_storage, summarizer, event_bus):
    """MemoryLayer over in-memory storage, the fake summarizer and the word counter."""
    layer = await MemoryLayer.create(
        config,
        storage=memory_storage,
        summarizer=summarizer,
        token_counter=word_counter,
        event_bus=event_bus,
    )
    yield layer
    await layer.dispose()
