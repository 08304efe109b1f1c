import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from chat_agent.schemas import MessageRole

ChatDoc = Dict[str, Any]
MessageDoc = Dict[str, Any]

_TAG_PATTERN = re.compile(r"</?([a-z][a-z0-9]*)\b[^>]*>", re.IGNORECASE)


class StoreError(Exception):
    """A persistence call failed."""


class NotAuthenticatedError(StoreError):
    """The call needs a signed-in user and none was supplied."""


def sanitize_content(content: str) -> str:
    """Replace every HTML-like tag with a newline before the content is stored."""
    return _TAG_PATTERN.sub("\n", content)


class ChatStore(ABC):
    """Chat and message persistence, bound to the identity of one caller."""

    @abstractmethod
    def create_chat(self, title: str) -> str:
        ...

    @abstractmethod
    def delete_chat(self, chat_id: str) -> None:
        ...

    @abstractmethod
    def chat_list(self) -> List[ChatDoc]:
        """The caller's chats, newest first."""

    @abstractmethod
    def message_list(self, chat_id: str) -> List[MessageDoc]:
        """All messages of a chat, oldest first."""

    @abstractmethod
    def send_message(self, chat_id: str, content: str) -> str:
        """Store a user message and return its id."""

    @abstractmethod
    def store_message(self, chat_id: str, content: str, role: MessageRole) -> str:
        ...

    @abstractmethod
    def get_last_message(self, chat_id: str) -> Optional[MessageDoc]:
        ...
