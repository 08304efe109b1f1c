import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessageChunk, ToolMessage

from chat_agent.auth import AuthError, Identity, get_current_user, get_verifier
from chat_agent.main import app, get_store, get_submit_question
from chat_agent.store import MemoryChatStore, MemoryDatabase

GOOD_TOKEN = "good-token"
AUTH_HEADERS = {"Authorization": f"Bearer {GOOD_TOKEN}"}


class FakeVerifier:
    def verify(self, token):
        if token != GOOD_TOKEN:
            raise AuthError("bad token")
        return Identity(subject="user_1", token=token, claims={"sub": "user_1"})


class FakeAgent:
    """Replays a fixed list of v2 events and records what it was asked."""

    def __init__(self, events=None, fail_after=None):
        self.events = events if events is not None else default_events()
        self.fail_after = fail_after
        self.calls = []

    async def submit_question(self, messages, chat_id):
        self.calls.append((list(messages), chat_id))
        for i, event in enumerate(self.events):
            if self.fail_after is not None and i == self.fail_after:
                raise RuntimeError("model exploded")
            yield event


def default_events():
    return [
        {"event": "on_chat_model_start", "name": "ChatGoogleGenerativeAI", "data": {}},
        {"event": "on_chat_model_stream", "data": {"chunk": AIMessageChunk(content="Hello")}},
        {"event": "on_tool_start", "name": "google_books", "data": {"input": {"q": "dune"}}},
        {"event": "on_tool_end", "name": "google_books", "data": {"output": ToolMessage(content='[{"title": "Dune"}]', tool_call_id="call_1")}},
        {"event": "on_chat_model_stream", "data": {"chunk": AIMessageChunk(content="")}},
        {"event": "on_chat_model_stream", "data": {"chunk": AIMessageChunk(content=[{"type": "text", "text": " world"}])}},
    ]


@pytest.fixture
def db():
    return MemoryDatabase()


@pytest.fixture
def agent():
    return FakeAgent()


@pytest.fixture
def client(db, agent):
    def memory_store(user: Identity = Depends(get_current_user)):
        return MemoryChatStore(db, user)

    app.dependency_overrides[get_verifier] = lambda: FakeVerifier()
    app.dependency_overrides[get_store] = memory_store
    app.dependency_overrides[get_submit_question] = lambda: agent.submit_question
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
