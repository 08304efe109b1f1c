import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, StreamingResponse

from chat_agent import __version__
from chat_agent.auth import UNAUTHORIZED_DETAIL, Identity, get_current_user
from chat_agent.config import Settings, get_settings
from chat_agent.graph import get_agent
from chat_agent.schemas import ChatRequestBody, CreateChatRequest
from chat_agent.store import (
    ChatStore,
    ConvexChatStore,
    MemoryChatStore,
    MemoryDatabase,
    NotAuthenticatedError,
    StoreError,
)
from chat_agent.stream import STREAM_HEADERS, SubmitQuestion, chat_stream_generator

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="AI Chat Agent API", description="LangGraph-powered chat with Convex persistence", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache
def _memory_database() -> MemoryDatabase:
    return MemoryDatabase()


def get_store(
    user: Identity = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> ChatStore:
    """Chat store acting on behalf of the authenticated caller."""
    if settings.store_backend == "memory":
        return MemoryChatStore(_memory_database(), user)
    try:
        return ConvexChatStore.connect(settings.convex_url, user)
    except StoreError as e:
        logger.error(f"Chat store unavailable: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal Server Error")


def get_submit_question() -> SubmitQuestion:
    return get_agent().submit_question


def _store_failure(action: str, e: StoreError) -> HTTPException:
    if isinstance(e, NotAuthenticatedError):
        return HTTPException(status_code=401, detail=UNAUTHORIZED_DETAIL)
    logger.error(f"Error in {action}: {str(e)}")
    return HTTPException(status_code=500, detail=f"{action} failed: {str(e)}")


@app.get("/")
def read_index():
    """Health check endpoint."""
    return {"message": "AI Chat Agent API is running", "status": "healthy"}


@app.get("/health")
def health_check(settings: Settings = Depends(get_settings)):
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "AI Chat Agent",
        "version": __version__,
        "model": settings.model_name,
        "store_backend": settings.store_backend,
        "tools_configured": bool(settings.wxflows_endpoint),
    }


@app.post("/api/chat/stream")
async def chat_stream(
    body: ChatRequestBody,
    store: ChatStore = Depends(get_store),
    submit_question: SubmitQuestion = Depends(get_submit_question),
):
    """Streaming chat endpoint using Server-Sent Events."""
    try:
        logger.info(f"Received chat request for chat {body.chatId}")
        return StreamingResponse(
            chat_stream_generator(body, store, submit_question),
            media_type="text/event-stream",
            headers=STREAM_HEADERS,
        )
    except Exception as e:
        logger.error(f"Server Error: {str(e)}")
        return PlainTextResponse("Internal Server Error", status_code=500)


@app.post("/api/chats")
def create_chat(request: CreateChatRequest, store: ChatStore = Depends(get_store)) -> Dict[str, str]:
    try:
        chat_id = store.create_chat(request.title)
    except StoreError as e:
        raise _store_failure("Create chat", e)
    logger.info(f"Created chat {chat_id}")
    return {"id": chat_id}


@app.get("/api/chats")
def list_chats(store: ChatStore = Depends(get_store)) -> List[Dict[str, Any]]:
    try:
        return store.chat_list()
    except StoreError as e:
        raise _store_failure("List chats", e)


@app.delete("/api/chats/{chat_id}")
def delete_chat(chat_id: str, store: ChatStore = Depends(get_store)) -> Dict[str, bool]:
    try:
        store.delete_chat(chat_id)
    except StoreError as e:
        raise _store_failure("Delete chat", e)
    logger.info(f"Deleted chat {chat_id}")
    return {"ok": True}


@app.get("/api/chats/{chat_id}/messages")
def list_messages(chat_id: str, store: ChatStore = Depends(get_store)) -> List[Dict[str, Any]]:
    try:
        return store.message_list(chat_id)
    except StoreError as e:
        raise _store_failure("List messages", e)


@app.get("/api/chats/{chat_id}/messages/last")
def last_message(chat_id: str, store: ChatStore = Depends(get_store)) -> Optional[Dict[str, Any]]:
    try:
        return store.get_last_message(chat_id)
    except StoreError as e:
        raise _store_failure("Get last message", e)


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    logger.info(f"🚀 Starting AI Chat Agent on http://{settings.host}:{settings.port} (docs at /docs)")
    uvicorn.run(app, host=settings.host, port=settings.port, reload=False, log_level="info")


# Direct run without uvicorn CLI
if __name__ == "__main__":
    run()
