from chat_agent.store.base import (
    ChatStore,
    NotAuthenticatedError,
    StoreError,
    sanitize_content,
)
from chat_agent.store.convex_store import ConvexChatStore
from chat_agent.store.memory_store import MemoryChatStore, MemoryDatabase

__all__ = [
    "ChatStore",
    "ConvexChatStore",
    "MemoryChatStore",
    "MemoryDatabase",
    "NotAuthenticatedError",
    "StoreError",
    "sanitize_content",
]
