"""
Core pytest configuration and fixtures for chatterm testing.

Provides sample data, store implementations, a fake Ollama server built on
``httpx.MockTransport`` and a scripted LLM whose replies can be held back to
force a particular completion order.
"""

import json
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional
from unittest.mock import MagicMock

import httpx
import ollama
import pytest
from chatterm.engine import InteractionLoop
from chatterm.llm import LLM, Ollama
from chatterm.models import ASSISTANT_ROLE, USER_ROLE, Turn
from chatterm.session import ConversationSession
from chatterm.store import InMemory, SQLite

# ===== TEST DATA FIXTURES =====


@pytest.fixture
def sample_turns() -> List[Turn]:
    """Sample conversation turns for testing."""
    return [
        Turn(role=USER_ROLE, content="Hello, how are you?"),
        Turn(role=ASSISTANT_ROLE, content="I'm doing well, thank you!"),
        Turn(role=USER_ROLE, content="Can you explain quantum computing?"),
        Turn(role=ASSISTANT_ROLE, content="Quantum computing uses qubits..."),
    ]


def fragment(content: str, done: bool = False) -> Dict:
    """One streamed chat chunk in the server's wire shape."""
    return {
        "model": "llama3.2",
        "created_at": "2024-05-01T12:00:00Z",
        "message": {"role": ASSISTANT_ROLE, "content": content},
        "done": done,
    }


def ndjson(records: List) -> bytes:
    lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
    return ("\n".join(lines) + "\n").encode()


# ===== DIRECTORY FIXTURES =====


@pytest.fixture
def temp_dir():
    """Temporary directory for file-based tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ===== STORE FIXTURES =====


@pytest.fixture
def memory_store():
    return InMemory()


@pytest.fixture
def sqlite_store(temp_dir):
    store = SQLite(temp_dir / "chat_history.db")
    yield store
    store.close()


@pytest.fixture(params=["InMemory", "SQLite"])
def any_store(request, temp_dir):
    """Each store implementation, for contract testing."""
    if request.param == "InMemory":
        yield InMemory()
    else:
        store = SQLite(temp_dir / "contract.db")
        yield store
        store.close()


# ===== LLM FIXTURES =====


class FakeOllamaServer:
    """Answers /api/chat with canned NDJSON bodies and records requests."""

    def __init__(self):
        self.requests: List[Dict] = []
        self.responses: List[Callable[[httpx.Request], httpx.Response]] = []

    def reply_with(self, records: List, status_code: int = 200) -> None:
        body = ndjson(records)
        self.responses.append(lambda request: httpx.Response(status_code, content=body))

    def fail_with(self, exc: Exception) -> None:
        def raise_exc(request):
            raise exc

        self.responses.append(raise_exc)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        return self.responses.pop(0)(request)

    @property
    def last_request(self) -> Dict:
        return self.requests[-1]


@pytest.fixture
def fake_server() -> FakeOllamaServer:
    return FakeOllamaServer()


@pytest.fixture
def ollama_llm(fake_server) -> Ollama:
    """Ollama provider talking to the fake server."""
    client = ollama.Client(
        host="http://ollama.test:11434",
        transport=httpx.MockTransport(fake_server.handler),
    )
    return Ollama(default_model="llama3.2", client=client)


class ScriptedLLM(LLM):
    """Replies ``reply to <prompt>`` unless scripted otherwise.

    ``hold(prompt)`` returns an event; the reply to that prompt is not returned
    until the event is set.
    """

    def __init__(self, replies: Optional[Dict] = None, model: str = "scripted"):
        self.model = model
        self.replies = replies or {}
        self.gates: Dict[str, threading.Event] = {}
        self.requests: List = []

    def hold(self, prompt: str) -> threading.Event:
        gate = threading.Event()
        self.gates[prompt] = gate
        return gate

    def complete_chat(self, model, history):
        prompt = history[-1].content
        self.requests.append(tuple(history))
        gate = self.gates.get(prompt)
        if gate is not None and not gate.wait(timeout=5):
            raise RuntimeError(f"gate for {prompt!r} never opened")
        reply = self.replies.get(prompt, f"reply to {prompt}")
        if isinstance(reply, Exception):
            raise reply
        return Turn(role=ASSISTANT_ROLE, content=reply)


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    return ScriptedLLM()


# ===== ENGINE FIXTURES =====


@pytest.fixture
def mock_layout():
    """Mock presentation surface for testing."""
    return MagicMock()


@pytest.fixture
def session(memory_store) -> ConversationSession:
    return ConversationSession(memory_store)


@pytest.fixture
def loop(session, scripted_llm, mock_layout):
    """An interaction loop driven step by step by the test."""
    interaction_loop = InteractionLoop(session, scripted_llm, mock_layout)
    interaction_loop.running = True
    yield interaction_loop
    for gate in scripted_llm.gates.values():
        gate.set()
    interaction_loop.shutdown()


def rendered_turns(layout) -> List:
    """The (role, content) pairs passed to ``layout.render_turn``, in order."""
    return [tuple(call.args) for call in layout.render_turn.call_args_list]


def rendered_notices(layout) -> List[str]:
    return [call.args[0] for call in layout.render_notice.call_args_list]


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
