"""
Streaming client for the chat API.

Usage:
    python -m chat_agent.client                 # interactive REPL, new chat
    python -m chat_agent.client "hello"         # single prompt
    python -m chat_agent.client --chat-id ID    # continue an existing chat

The session token is read from --token or CHAT_AGENT_TOKEN.
"""

import argparse
import json
import logging
import os
import sys
import time
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from chat_agent.schemas import (
    SSE_DONE_MESSAGE,
    SSE_LINE_DELIMITER,
    ChatRequestBody,
    ConnectedMessage,
    DoneMessage,
    ErrorMessage,
    Messages,
    StreamMessage,
    TokenMessage,
    ToolEndMessage,
    ToolStartMessage,
    parse_stream_message,
)

logger = logging.getLogger(__name__)

SERVER = "http://localhost:8887"

ParsedEvent = Union[StreamMessage, str]


class StreamError(Exception):
    """The server reported an error or the stream ended early."""


class SSEParser:
    """Incremental SSE decoder; frames may be split across chunks."""

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk: str) -> List[ParsedEvent]:
        self._buffer += chunk.replace("\r\n", "\n")
        frames = self._buffer.split(SSE_LINE_DELIMITER)
        self._buffer = frames.pop()

        events: List[ParsedEvent] = []
        for frame in frames:
            for line in frame.split("\n"):
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):]
                if data.startswith(" "):
                    data = data[1:]
                if not data:
                    continue
                if data == SSE_DONE_MESSAGE:
                    events.append(SSE_DONE_MESSAGE)
                    continue
                try:
                    message = parse_stream_message(data)
                except (json.JSONDecodeError, ValueError) as e:
                    logger.warning(f"Skipping malformed SSE payload: {str(e)}")
                    continue
                if message is not None:
                    events.append(message)
        return events


def _now_ms() -> int:
    return int(time.time() * 1000)


class ChatSession:
    """Local view of one chat with optimistic sends and rollback on failure."""

    def __init__(
        self,
        chat_id: str,
        messages: Optional[List[Dict[str, Any]]] = None,
        base_url: str = SERVER,
        token: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.chat_id = chat_id
        self.messages: List[Dict[str, Any]] = list(messages or [])
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.transport = transport

        self.is_loading = False
        self.streamed_response = ""
        self.current_tool: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None

    def _client(self) -> httpx.Client:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        return httpx.Client(base_url=self.base_url, headers=headers, timeout=None, transport=self.transport)

    def _apply(self, message: StreamMessage) -> None:
        if isinstance(message, TokenMessage):
            self.streamed_response += message.token
        elif isinstance(message, ToolStartMessage):
            self.current_tool = {"name": message.tool, "input": message.input}
        elif isinstance(message, ToolEndMessage):
            self.current_tool = None
        elif isinstance(message, ErrorMessage):
            raise StreamError(message.error)

    def send(self, text: str, on_event: Optional[Callable[[StreamMessage], None]] = None) -> Optional[str]:
        """Send one message and stream the reply.

        Returns the reply, or None when nothing was sent or the send failed.
        """
        trimmed = text.strip()
        if not trimmed or self.is_loading:
            return None

        self.is_loading = True
        self.streamed_response = ""
        self.current_tool = None
        self.error = None

        body = ChatRequestBody(
            messages=[Messages(content=m["content"], role=m["role"]) for m in self.messages],
            newMessage=trimmed,
            chatId=self.chat_id,
        )
        optimistic = {
            "_id": f"temp_{_now_ms()}",
            "chatId": self.chat_id,
            "content": trimmed,
            "role": "user",
            "createdAt": _now_ms(),
        }
        self.messages.append(optimistic)

        succeeded = False
        try:
            finished = False
            parser = SSEParser()
            with self._client() as client:
                with client.stream("POST", "/api/chat/stream", json=body.model_dump()) as response:
                    response.raise_for_status()
                    for chunk in response.iter_text():
                        for event in parser.feed(chunk):
                            if event == SSE_DONE_MESSAGE or isinstance(event, DoneMessage):
                                finished = True
                                break
                            if isinstance(event, ConnectedMessage):
                                continue
                            self._apply(event)
                            if on_event is not None:
                                on_event(event)
                        if finished:
                            break
            if not finished:
                raise StreamError("Stream ended before completion")
            succeeded = True
        except (httpx.HTTPError, StreamError) as e:
            logger.error(f"Error sending message: {str(e)}")
            self.error = str(e)
            return None
        finally:
            self.is_loading = False
            if not succeeded:
                self.messages = [m for m in self.messages if m["_id"] != optimistic["_id"]]
                self.current_tool = None

        if self.streamed_response:
            self.messages.append(
                {
                    "_id": f"temp_{_now_ms()}_bot",
                    "chatId": self.chat_id,
                    "content": self.streamed_response,
                    "role": "bot",
                    "createdAt": _now_ms(),
                }
            )
        return self.streamed_response

    @classmethod
    def open(
        cls,
        chat_id: Optional[str] = None,
        title: str = "New chat",
        base_url: str = SERVER,
        token: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> "ChatSession":
        """Load an existing chat, or create one when no id is given."""
        session = cls(chat_id or "", base_url=base_url, token=token, transport=transport)
        with session._client() as client:
            if not chat_id:
                response = client.post("/api/chats", json={"title": title})
                response.raise_for_status()
                session.chat_id = response.json()["id"]
            else:
                response = client.get(f"/api/chats/{chat_id}/messages")
                response.raise_for_status()
                session.messages = response.json()
        return session


def _print_event(event: StreamMessage) -> None:
    if isinstance(event, TokenMessage):
        print(event.token, end="", flush=True)
    elif isinstance(event, ToolStartMessage):
        print(f"\n🔧 {event.tool}({json.dumps(event.input, ensure_ascii=False)})", flush=True)
    elif isinstance(event, ToolEndMessage):
        print(f"✅ {event.tool} done", flush=True)


def stream_once(session: ChatSession, prompt: str) -> None:
    session.send(prompt, on_event=_print_event)
    if session.error:
        print(f"\n❌ {session.error}", file=sys.stderr)
    print()  # newline


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Chat with the AI agent from the terminal.")
    parser.add_argument("prompt", nargs="*", help="Send a single prompt and exit.")
    parser.add_argument("--url", default=os.environ.get("CHAT_AGENT_URL", SERVER))
    parser.add_argument("--token", default=os.environ.get("CHAT_AGENT_TOKEN"))
    parser.add_argument("--chat-id", default=None)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING)
    session = ChatSession.open(args.chat_id, base_url=args.url, token=args.token)

    if args.prompt:
        stream_once(session, " ".join(args.prompt))
        return

    print(f"💬 Chat {session.chat_id} ({len(session.messages)} earlier messages)")
    try:
        while True:
            prompt = input("You: ").strip()
            if prompt.lower() in {"exit", "quit"}:
                break
            stream_once(session, prompt)
    except (KeyboardInterrupt, EOFError):
        pass


if __name__ == "__main__":
    main()
