import json

import pytest

from librarian.conversation_log import ConversationLog


def test_recent_is_most_recent_first_and_context_oldest_first():
    log = ConversationLog()
    log.append("s1", "user", "xin chào")
    log.append("s1", "assistant", "chào bạn")
    log.append("s1", "user", "gợi ý sách")

    assert [turn.message for turn in log.recent("s1", 2)] == ["gợi ý sách", "chào bạn"]
    assert [turn["message"] for turn in log.context("s1", 2)] == ["chào bạn", "gợi ý sách"]
    assert log.recent("s1", 0) == []


def test_sessions_are_isolated():
    log = ConversationLog()
    log.append("a", "user", "một")
    log.append("b", "user", "hai")
    assert [turn.message for turn in log.get_turns("a")] == ["một"]
    assert log.recent("unknown", 5) == []


def test_unknown_role_is_rejected():
    log = ConversationLog()
    with pytest.raises(ValueError):
        log.append("s1", "system", "hello")


def test_persistence(tmp_dir):
    path = tmp_dir / "conversations.json"
    log = ConversationLog(path)
    log.append("s1", "user", "add book: bn: A; at: B")
    log.append("s1", "assistant", "ok")

    reloaded = ConversationLog(path)
    assert [turn.role for turn in reloaded.get_turns("s1")] == ["user", "assistant"]
    summaries = reloaded.list_sessions()
    assert summaries[0].title == "add book: bn: A; at: B"
    assert "sessions" in json.loads(path.read_text(encoding="utf-8"))


def test_corrupt_file_starts_empty(tmp_dir):
    path = tmp_dir / "conversations.json"
    path.write_text("not json", encoding="utf-8")
    assert ConversationLog(path).list_sessions() == []


def test_max_sessions_prunes_oldest():
    log = ConversationLog(max_sessions=2)
    for session_id in ("a", "b", "c"):
        log.append(session_id, "user", "hi")
    assert len(log.list_sessions()) == 2


def test_clear():
    log = ConversationLog()
    log.append("s1", "user", "hi")
    log.clear()
    assert log.get_turns("s1") == []
