import asyncio
import json

import httpx
import pytest

from chat_agent.config import Settings
from chat_agent.tools import GraphQLClient, ToolError, create_tools, load_tools

ENDPOINT = "https://example.stepzen.net/api/toolbox/__graphql"


def _tools(handler, apikey="secret"):
    client = GraphQLClient(ENDPOINT, apikey, transport=httpx.MockTransport(handler))
    return {t.name: t for t in create_tools(client)}


def test_google_books_queries_endpoint():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"data": {"books": [{"volumeId": "v1", "title": "Dune", "authors": ["Frank Herbert"]}]}})

    tools = _tools(handler)
    result = asyncio.run(tools["google_books"].ainvoke({"q": "dune", "maxResults": 2}))

    assert json.loads(result) == [{"volumeId": "v1", "title": "Dune", "authors": ["Frank Herbert"]}]
    request = seen[0]
    assert str(request.url) == ENDPOINT
    assert request.headers["authorization"] == "apikey secret"
    payload = json.loads(request.content)
    assert payload["variables"] == {"q": "dune", "maxResults": 2}
    assert "books(q: $q, maxResults: $maxResults)" in payload["query"]


def test_youtube_transcript_defaults_language():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"data": {"transcript": {"title": "Talk", "captions": []}}})

    tools = _tools(handler)
    result = asyncio.run(tools["youtube_transcript"].ainvoke({"videoUrl": "https://youtube.com/watch?v=abc"}))

    assert json.loads(result)["title"] == "Talk"
    assert seen[0]["variables"] == {"videoUrl": "https://youtube.com/watch?v=abc", "langCode": "en"}


def test_graphql_errors_raise_tool_error():
    def handler(request):
        return httpx.Response(200, json={"errors": [{"message": "bad query"}]})

    client = GraphQLClient(ENDPOINT, transport=httpx.MockTransport(handler))
    with pytest.raises(ToolError, match="bad query"):
        asyncio.run(client.execute("{ x }", {}))


def test_http_errors_raise_tool_error():
    def handler(request):
        return httpx.Response(503, text="unavailable")

    client = GraphQLClient(ENDPOINT, transport=httpx.MockTransport(handler))
    with pytest.raises(ToolError):
        asyncio.run(client.execute("{ x }", {}))


def test_load_tools_needs_endpoint():
    assert load_tools(Settings(wxflows_endpoint="")) == []
    names = [t.name for t in load_tools(Settings(wxflows_endpoint=ENDPOINT))]
    assert names == ["youtube_transcript", "google_books"]
