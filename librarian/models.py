from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Request payload for chat API."""
    session_id: Optional[str] = Field(default=None)
    message: str


class ChatResponse(BaseModel):
    """Response payload returned by the chat API."""
    reply: str
    intent: str
    session_id: str
    thinking_logs: List[Dict[str, str]] = Field(default_factory=list)


class BookRecord(BaseModel):
    """Catalog row as stored and returned by the catalog store."""
    id: int
    title: str
    author: str
    category: str
    shelf_position: str
    summary: Optional[str] = None
    created_at: float


class ConversationTurn(BaseModel):
    """One persisted message of a chat session."""
    role: str
    message: str
    timestamp: float


class SessionSummary(BaseModel):
    """Lightweight session summary for listing."""
    session_id: str
    title: str
    updated_at: float
