"""Wire types shared by the streaming endpoint and the client."""

import json
from enum import Enum
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field

MessageRole = Literal["user", "bot"]

SSE_DATA_PREFIX = "data: "
SSE_DONE_MESSAGE = "[DONE]"
SSE_LINE_DELIMITER = "\n\n"


class Messages(BaseModel):
    """One prior turn of the conversation as sent by the client."""
    content: str
    role: MessageRole


class ChatRequestBody(BaseModel):
    """Body of POST /api/chat/stream."""
    messages: List[Messages] = Field(default_factory=list)
    newMessage: str
    chatId: str


class CreateChatRequest(BaseModel):
    title: str


class StreamMessageType(str, Enum):
    TOKEN = "token"
    ERROR = "error"
    CONNECTED = "connected"
    DONE = "done"
    TOOL_START = "tool_start"
    TOOL_END = "tool_end"


class TokenMessage(BaseModel):
    type: Literal["token"] = "token"
    token: str


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    error: str


class ConnectedMessage(BaseModel):
    type: Literal["connected"] = "connected"


class DoneMessage(BaseModel):
    type: Literal["done"] = "done"


class ToolStartMessage(BaseModel):
    type: Literal["tool_start"] = "tool_start"
    tool: str
    input: Any = None


class ToolEndMessage(BaseModel):
    type: Literal["tool_end"] = "tool_end"
    tool: str
    output: Any = None


StreamMessage = Union[
    TokenMessage,
    ErrorMessage,
    ConnectedMessage,
    DoneMessage,
    ToolStartMessage,
    ToolEndMessage,
]

_MESSAGE_MODELS = {
    StreamMessageType.TOKEN: TokenMessage,
    StreamMessageType.ERROR: ErrorMessage,
    StreamMessageType.CONNECTED: ConnectedMessage,
    StreamMessageType.DONE: DoneMessage,
    StreamMessageType.TOOL_START: ToolStartMessage,
    StreamMessageType.TOOL_END: ToolEndMessage,
}


def format_sse(message: StreamMessage) -> str:
    """Frame a stream message as a single SSE ``data:`` event."""
    payload = json.dumps(message.model_dump(mode="json"), ensure_ascii=False)
    return f"{SSE_DATA_PREFIX}{payload}{SSE_LINE_DELIMITER}"


def parse_stream_message(data: str) -> Optional[StreamMessage]:
    """Decode the JSON payload of one SSE event, or None for unknown types."""
    raw = json.loads(data)
    if not isinstance(raw, dict):
        return None
    try:
        model = _MESSAGE_MODELS[StreamMessageType(raw.get("type"))]
    except ValueError:
        return None
    return model.model_validate(raw)
