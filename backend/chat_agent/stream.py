"""
The chat streaming pipeline.

One request: persist the user's message, run the agent over the history, and
relay its events to the browser as SSE frames. Whatever goes wrong after the
stream has started is reported as an ``error`` event, never as an HTTP status.
"""

import json
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Callable, Dict, List, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from starlette.concurrency import run_in_threadpool

from chat_agent.schemas import (
    ChatRequestBody,
    ConnectedMessage,
    DoneMessage,
    ErrorMessage,
    Messages,
    TokenMessage,
    ToolEndMessage,
    ToolStartMessage,
    format_sse,
)
from chat_agent.store import ChatStore

logger = logging.getLogger(__name__)

STREAM_ERROR_MESSAGE = "Error processing chat"

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

SubmitQuestion = Callable[[Sequence[BaseMessage], str], AsyncIterator[Dict[str, Any]]]


def to_langchain_messages(history: Sequence[Messages], new_message: str) -> List[BaseMessage]:
    """Client history plus the new question, as LangChain messages."""
    messages: List[BaseMessage] = [
        HumanMessage(content=m.content) if m.role == "user" else AIMessage(content=m.content)
        for m in history
    ]
    messages.append(HumanMessage(content=new_message))
    return messages


def chunk_text(content: Any) -> str:
    """Text of a streamed model chunk; content may be a string or a list of parts."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return ""


def to_jsonable(value: Any) -> Any:
    """Tool inputs/outputs as something json.dumps accepts."""
    if isinstance(value, BaseMessage):
        return to_jsonable(value.content)
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        if isinstance(value, dict):
            return {str(k): to_jsonable(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [to_jsonable(v) for v in value]
        return str(value)


async def chat_stream_generator(
    body: ChatRequestBody,
    store: ChatStore,
    submit_question: SubmitQuestion,
) -> AsyncGenerator[str, None]:
    """Generate the SSE frames for one chat turn."""
    try:
        yield format_sse(ConnectedMessage())

        await run_in_threadpool(store.send_message, body.chatId, body.newMessage)

        messages = to_langchain_messages(body.messages, body.newMessage)
        reply: List[str] = []

        async for event in submit_question(messages, body.chatId):
            kind = event.get("event")

            if kind == "on_chat_model_stream":
                token = chunk_text(getattr(event["data"].get("chunk"), "content", ""))
                if token:
                    reply.append(token)
                    yield format_sse(TokenMessage(token=token))

            elif kind == "on_tool_start":
                yield format_sse(
                    ToolStartMessage(tool=event.get("name", ""), input=to_jsonable(event["data"].get("input")))
                )

            elif kind == "on_tool_end":
                yield format_sse(
                    ToolEndMessage(tool=event.get("name", ""), output=to_jsonable(event["data"].get("output")))
                )

        response_text = "".join(reply)
        if response_text:
            await run_in_threadpool(store.store_message, body.chatId, response_text, "bot")

        logger.info(f"Chat {body.chatId}: streamed {len(response_text)} characters")
        yield format_sse(DoneMessage())

    except Exception as e:
        logger.error(f"Error during streaming: {str(e)}")
        yield format_sse(ErrorMessage(error=STREAM_ERROR_MESSAGE))
