"""Chat store backed by the deployed Convex functions in convex/chats.ts and convex/messages.ts."""

import logging
from typing import Any, Dict, List, Optional

from convex.http_client import ConvexHttpClient

from chat_agent.auth import Identity
from chat_agent.schemas import MessageRole
from chat_agent.store.base import (
    ChatDoc,
    ChatStore,
    MessageDoc,
    NotAuthenticatedError,
    StoreError,
)

logger = logging.getLogger(__name__)

_AUTH_FAILURES = ("Unauthenticated call to function", "Not Authenticated")


class ConvexChatStore(ChatStore):
    def __init__(self, client: ConvexHttpClient, identity: Optional[Identity] = None):
        self.client = client
        self.identity = identity
        if identity is not None:
            # Convex validates the Clerk token itself (see convex/auth.config.ts).
            client.set_auth(identity.token)

    @classmethod
    def connect(cls, url: str, identity: Optional[Identity] = None) -> "ConvexChatStore":
        if not url:
            raise StoreError("CONVEX_URL is not configured")
        return cls(ConvexHttpClient(url), identity)

    def _require_auth(self) -> None:
        if self.identity is None:
            raise NotAuthenticatedError("Unauthenticated call to function")

    def _call(self, kind: str, name: str, args: Dict[str, Any], needs_auth: bool = True) -> Any:
        if needs_auth:
            self._require_auth()
        call = self.client.mutation if kind == "mutation" else self.client.query
        try:
            return call(name, args)
        except Exception as e:
            if any(marker in str(e) for marker in _AUTH_FAILURES):
                raise NotAuthenticatedError(str(e)) from e
            logger.error(f"Convex {kind} {name} failed: {str(e)}")
            raise StoreError(f"Convex {kind} {name} failed: {str(e)}") from e

    def create_chat(self, title: str) -> str:
        return self._call("mutation", "chats:createChat", {"title": title})

    def delete_chat(self, chat_id: str) -> None:
        self._call("mutation", "chats:deleteChat", {"id": chat_id})

    def chat_list(self) -> List[ChatDoc]:
        return self._call("query", "chats:chatList", {})

    def message_list(self, chat_id: str) -> List[MessageDoc]:
        return self._call("query", "messages:messageList", {"chatId": chat_id}, needs_auth=False)

    def send_message(self, chat_id: str, content: str) -> str:
        return self._call("mutation", "messages:sendMessages", {"chatId": chat_id, "content": content})

    def store_message(self, chat_id: str, content: str, role: MessageRole) -> str:
        if role not in ("user", "bot"):
            raise StoreError(f"Invalid message role: {role}")
        return self._call(
            "mutation", "messages:store", {"chatId": chat_id, "content": content, "role": role}
        )

    def get_last_message(self, chat_id: str) -> Optional[MessageDoc]:
        return self._call("mutation", "messages:getLastMessage", {"chatId": chat_id})
