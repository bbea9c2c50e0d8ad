from __future__ import annotations

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

from .models import ConversationTurn, SessionSummary

logger = logging.getLogger("librarian.conversation")

ROLES = {"user", "assistant"}
TITLE_LENGTH = 48


class ConversationLog:
    """Session-scoped, append-only conversation turns with optional JSON persistence."""

    def __init__(self, path: Optional[Path] = None, max_sessions: Optional[int] = None) -> None:
        """Purpose: Create the log, restoring earlier sessions from disk.
        Inputs/Outputs: Inputs are an optional JSON file path (None keeps the log in
            memory) and a cap on stored sessions; no return value.
        Side Effects / State: Reads the file once; may rewrite it when the cap trims
            sessions.
        Dependencies: _restore, ConversationTurn and SessionSummary.
        Failure Modes: A corrupt log file is logged and ignored.
        If Removed: Generative calls lose conversational context and recaps cannot scan
            earlier turns.
        Testing Notes: Append with a temp path, build a second log on the same file, compare.
        """
        self._path = path
        self._max_sessions = max_sessions
        self._lock = threading.Lock()
        self._sessions: Dict[str, List[ConversationTurn]] = {}
        self._summaries: Dict[str, SessionSummary] = {}
        self._restore()

    def _restore(self) -> None:
        if not self._path or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            sessions = {
                session_id: [ConversationTurn(**turn) for turn in turns]
                for session_id, turns in data.get("sessions", {}).items()
            }
            summaries = {
                session_id: SessionSummary(**summary)
                for session_id, summary in data.get("summaries", {}).items()
            }
        except (ValueError, TypeError, AttributeError):
            logger.warning("Ignoring unreadable conversation log %s", self._path, exc_info=True)
            return
        self._sessions = sessions
        self._summaries = summaries
        if self._trim():
            self._write()

    def _write(self) -> None:
        """Purpose: Save every session and summary to the log file.
        Inputs/Outputs: No inputs; no return value.
        Side Effects / State: Replaces self._path through a temporary sibling file.
        Dependencies: json.dumps, os.replace.
        Failure Modes: OSError propagates to the caller.
        If Removed: Turns are lost on restart.
        Testing Notes: The file holds "sessions" and "summaries" keyed by session id.
        """
        if not self._path:
            return
        payload = {
            "sessions": {sid: [turn.model_dump() for turn in turns] for sid, turns in self._sessions.items()},
            "summaries": {sid: summary.model_dump() for sid, summary in self._summaries.items()},
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)

    def append(self, session_id: str, role: str, message: str) -> ConversationTurn:
        """Purpose: Append one turn to a session and update its summary metadata.
        Inputs/Outputs: Inputs are session_id, role ("user"/"assistant"), and message;
            output is the stored ConversationTurn.
        Side Effects / State: Mutates the in-memory sessions and rewrites the file.
        Dependencies: ConversationTurn, SessionSummary, _trim, _write.
        Failure Modes: Unknown roles raise ValueError; write errors propagate.
        If Removed: Chat history is not recorded and context windows stay empty.
        Testing Notes: Append user then assistant and verify recent() order.
        """
        if role not in ROLES:
            raise ValueError(f"Unknown conversation role: {role}")
        turn = ConversationTurn(role=role, message=message, timestamp=time.time())
        with self._lock:
            self._sessions.setdefault(session_id, []).append(turn)
            summary = self._summaries.get(session_id)
            if summary is None:
                lines = message.strip().splitlines()
                title = lines[0][:TITLE_LENGTH] if lines else ""
                self._summaries[session_id] = SessionSummary(
                    session_id=session_id,
                    title=title or "New Chat",
                    updated_at=turn.timestamp,
                )
            else:
                summary.updated_at = turn.timestamp
            self._trim()
            self._write()
        return turn

    def recent(self, session_id: str, n: int) -> List[ConversationTurn]:
        """Return the last n turns of a session, most recent first."""
        if n <= 0:
            return []
        with self._lock:
            turns = self._sessions.get(session_id, [])
            return list(reversed(turns[-n:]))

    def context(self, session_id: str, n: int) -> List[dict]:
        """Return the last n turns oldest first, as plain dicts for prompt building."""
        return [turn.model_dump() for turn in reversed(self.recent(session_id, n))]

    def get_turns(self, session_id: str) -> List[ConversationTurn]:
        with self._lock:
            return list(self._sessions.get(session_id, []))

    def list_sessions(self) -> List[SessionSummary]:
        """Session summaries sorted by most recent activity."""
        with self._lock:
            return self._by_activity()

    def clear(self) -> None:
        with self._lock:
            self._sessions = {}
            self._summaries = {}
            self._write()

    def _by_activity(self) -> List[SessionSummary]:
        return sorted(self._summaries.values(), key=lambda summary: summary.updated_at, reverse=True)

    def _trim(self) -> bool:
        """Drop the least recently active sessions above max_sessions; True if any went."""
        if not self._max_sessions or self._max_sessions < 1 or len(self._summaries) <= self._max_sessions:
            return False
        for summary in self._by_activity()[self._max_sessions:]:
            self._summaries.pop(summary.session_id, None)
            self._sessions.pop(summary.session_id, None)
        return True
