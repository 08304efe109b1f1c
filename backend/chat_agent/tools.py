"""
Agent tools served by a wxflows GraphQL endpoint.

Each tool sends one GraphQL query to WXFLOWS_ENDPOINT and hands the JSON
result back to the model. Failures raise ToolError; the ToolNode turns them
into a tool message so the model can retry with adjusted parameters.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from chat_agent.config import Settings

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30

YOUTUBE_TRANSCRIPT_QUERY = """
query ($videoUrl: String!, $langCode: String) {
  transcript(videoUrl: $videoUrl, langCode: $langCode) {
    title
    captions { text start }
  }
}
"""

GOOGLE_BOOKS_QUERY = """
query ($q: String!, $maxResults: Int) {
  books(q: $q, maxResults: $maxResults) {
    volumeId
    title
    authors
  }
}
"""


class ToolError(Exception):
    """A tool backend call failed."""


class GraphQLClient:
    def __init__(self, endpoint: str, apikey: str = "", transport: Optional[httpx.AsyncBaseTransport] = None):
        self.endpoint = endpoint
        self.apikey = apikey
        self.transport = transport

    async def execute(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.apikey:
            headers["Authorization"] = f"apikey {self.apikey}"
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS, transport=self.transport) as client:
                response = await client.post(
                    self.endpoint, json={"query": query, "variables": variables}, headers=headers
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise ToolError(f"GraphQL request failed: {str(e)}") from e

        if payload.get("errors"):
            messages = "; ".join(str(err.get("message", err)) for err in payload["errors"])
            raise ToolError(f"GraphQL error: {messages}")
        return payload.get("data") or {}


class YoutubeTranscriptInput(BaseModel):
    videoUrl: str = Field(description="Full YouTube video URL, e.g. https://youtube.com/watch?v=VIDEO_ID")
    langCode: str = Field(default="en", description="Caption language code.")


class GoogleBooksInput(BaseModel):
    q: str = Field(description="Search terms for the book lookup.")
    maxResults: int = Field(default=3, description="Number of books to return. Keep small.")


def create_tools(client: GraphQLClient) -> List[BaseTool]:
    """Build the tools bound to one GraphQL client."""

    @tool("youtube_transcript", args_schema=YoutubeTranscriptInput)
    async def youtube_transcript(videoUrl: str, langCode: str = "en") -> str:
        """Fetch the title and captions of a YouTube video."""
        logger.info(f"youtube_transcript: {videoUrl} ({langCode})")
        data = await client.execute(YOUTUBE_TRANSCRIPT_QUERY, {"videoUrl": videoUrl, "langCode": langCode})
        return json.dumps(data.get("transcript"), ensure_ascii=False)

    @tool("google_books", args_schema=GoogleBooksInput)
    async def google_books(q: str, maxResults: int = 3) -> str:
        """Search Google Books and return volume ids, titles and authors."""
        logger.info(f"google_books: {q!r} (max {maxResults})")
        data = await client.execute(GOOGLE_BOOKS_QUERY, {"q": q, "maxResults": maxResults})
        return json.dumps(data.get("books") or [], ensure_ascii=False)

    return [youtube_transcript, google_books]


def load_tools(settings: Settings) -> List[BaseTool]:
    """Tools for the configured endpoint, or none when no endpoint is set."""
    if not settings.wxflows_endpoint:
        logger.warning("WXFLOWS_ENDPOINT not set; agent will run without tools")
        return []
    return create_tools(GraphQLClient(settings.wxflows_endpoint, settings.wxflows_apikey))
