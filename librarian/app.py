from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .catalog_seed import load_seed_books
from .catalog_store import CatalogStore
from .categories import load_vocabulary
from .config import Settings, load_settings
from .conversation_log import ConversationLog
from .exceptions import LibrarianError
from .gemini_client import GeminiClient, TextGenerator
from .models import BookRecord, ChatRequest, ChatResponse
from .router import MessageRouter

BASE_DIR = Path(__file__).resolve().parent

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("librarian").setLevel(log_level)
logger = logging.getLogger("librarian.app")

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)


def create_app(settings: Optional[Settings] = None, generator: Optional[TextGenerator] = None) -> FastAPI:
    """Purpose: Build the FastAPI app with its catalog, conversation log, and router.
    Inputs/Outputs: Optional Settings and TextGenerator (defaults: environment settings and
        a GeminiClient); returns a FastAPI instance.
    Side Effects / State: Loads the catalog and seeds it when empty and a seed file exists.
    Dependencies: CatalogStore, ConversationLog, MessageRouter, load_seed_books.
    Failure Modes: A corrupt catalog file raises CatalogStoreError at startup.
    If Removed: There is no HTTP entrypoint for the chatbot.
    Testing Notes: Build with tmp paths and a fake generator; use fastapi TestClient.
    """
    settings = settings or load_settings()
    vocabulary = load_vocabulary(settings.category_rules_path)
    catalog = CatalogStore(settings.catalog_path)
    if settings.seed_path and settings.seed_path.exists():
        rows = load_seed_books(settings.seed_path, vocabulary=vocabulary, capacity=settings.shelf_capacity)
        catalog.seed_if_empty(rows)
    conversations = ConversationLog(settings.conversations_path, max_sessions=settings.max_sessions)
    router = MessageRouter(
        catalog=catalog,
        conversation_log=conversations,
        generator=generator if generator is not None else GeminiClient(settings),
        prompts_dir=settings.prompts_dir,
        vocabulary=vocabulary,
        shelf_capacity=settings.shelf_capacity,
        history_window=settings.history_window,
        chitchat_mode=settings.chitchat_mode,
        recommend_max_candidates=settings.recommend_max_candidates,
        model=settings.gemini_model,
    )

    application = FastAPI(title="Library Chatbot")

    @application.exception_handler(LibrarianError)
    def handle_librarian_error(request: Request, exc: LibrarianError) -> JSONResponse:
        """Map business errors (store failures in practice) to JSON error responses."""
        logger.error("request=%s error=%s detail=%s", request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.http_status, content={"error": exc.message, "code": exc.code})

    @application.post("/chat", response_model=ChatResponse)
    def chat(request: ChatRequest) -> ChatResponse:
        """Purpose: Route one chat message and return the reply.
        Inputs/Outputs: Input is ChatRequest; output is ChatResponse with reply/intent/logs.
        Side Effects / State: Appends both turns to the session log; add/delete mutate
            the catalog.
        Dependencies: MessageRouter.handle_message.
        Failure Modes: Blank message -> 400; CatalogStoreError -> 500 via the handler.
        If Removed: Core chat functionality is unavailable.
        Testing Notes: Post an add command and verify the reply and /books contents.
        """
        if not request.message or not request.message.strip():
            raise HTTPException(status_code=400, detail="Thiếu field 'message' trong body")
        context = router.handle_message(request.session_id, request.message)
        return ChatResponse(
            reply=context.reply,
            intent=context.intent.value,
            session_id=context.session_id,
            thinking_logs=context.thinking_logs,
        )

    @application.get("/books", response_model=List[BookRecord])
    def list_books() -> List[BookRecord]:
        return catalog.list_all()

    @application.get("/sessions")
    def list_sessions() -> List[dict]:
        return [summary.model_dump() for summary in conversations.list_sessions()]

    @application.get("/sessions/{session_id}")
    def get_session(session_id: str) -> dict:
        """Return every turn of one session, oldest first (unknown ids give an empty list)."""
        return {
            "session_id": session_id,
            "turns": [turn.model_dump() for turn in conversations.get_turns(session_id)],
        }

    application.state.catalog = catalog
    application.state.conversations = conversations
    application.state.router = router
    return application


app = create_app()
