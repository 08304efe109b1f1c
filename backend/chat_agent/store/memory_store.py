"""In-process chat store with the same semantics as the Convex functions."""

import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional

from chat_agent.auth import Identity
from chat_agent.schemas import MessageRole
from chat_agent.store.base import (
    ChatDoc,
    ChatStore,
    MessageDoc,
    NotAuthenticatedError,
    StoreError,
    sanitize_content,
)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class MemoryDatabase:
    """Tables shared by every MemoryChatStore view."""
    chats: List[ChatDoc] = field(default_factory=list)
    messages: List[MessageDoc] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def next_id(self, table: str) -> str:
        return f"{table}_{next(self._ids)}"


class MemoryChatStore(ChatStore):
    def __init__(self, db: MemoryDatabase, identity: Optional[Identity] = None):
        self.db = db
        self.identity = identity

    def _user(self) -> Identity:
        if self.identity is None:
            raise NotAuthenticatedError("Unauthenticated call to function")
        return self.identity

    def create_chat(self, title: str) -> str:
        user = self._user()
        with self.db.lock:
            chat_id = self.db.next_id("chats")
            self.db.chats.append(
                {"_id": chat_id, "title": title, "userId": user.subject, "createdAt": _now_ms()}
            )
        return chat_id

    def delete_chat(self, chat_id: str) -> None:
        self._user()
        with self.db.lock:
            before = len(self.db.chats)
            self.db.chats = [c for c in self.db.chats if c["_id"] != chat_id]
            if len(self.db.chats) == before:
                raise StoreError(f"Chat not found: {chat_id}")

    def chat_list(self) -> List[ChatDoc]:
        user = self._user()
        with self.db.lock:
            # Insertion order breaks ties between chats created in the same millisecond.
            owned = [(i, c) for i, c in enumerate(self.db.chats) if c["userId"] == user.subject]
        owned.sort(key=lambda pair: (pair[1]["createdAt"], pair[0]), reverse=True)
        return [dict(c) for _, c in owned]

    def message_list(self, chat_id: str) -> List[MessageDoc]:
        with self.db.lock:
            return [dict(m) for m in self.db.messages if m["chatId"] == chat_id]

    def send_message(self, chat_id: str, content: str) -> str:
        return self.store_message(chat_id, content, "user")

    def store_message(self, chat_id: str, content: str, role: MessageRole) -> str:
        self._user()
        if role not in ("user", "bot"):
            raise StoreError(f"Invalid message role: {role}")
        with self.db.lock:
            message_id = self.db.next_id("messages")
            self.db.messages.append(
                {
                    "_id": message_id,
                    "chatId": chat_id,
                    "content": sanitize_content(content),
                    "role": role,
                    "createdAt": _now_ms(),
                }
            )
        return message_id

    def get_last_message(self, chat_id: str) -> Optional[MessageDoc]:
        self._user()
        messages = self.message_list(chat_id)
        return messages[-1] if messages else None
