import os
import tempfile

# Keep the module-level app in librarian.app away from the package data directory.
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="librarian-test-"))

from pathlib import Path

import pytest

from librarian.catalog_store import CatalogStore
from librarian.config import BASE_DIR
from librarian.conversation_log import ConversationLog
from librarian.router import MessageRouter

PROMPTS_DIR = BASE_DIR / "prompts"

CATEGORY_MARKER = "phân loại sách"
INTENT_MARKER = "bộ định tuyến ý định"
RECAP_MARKER = "Hãy tóm tắt"
RECOMMEND_MARKER = "sách ứng viên"


class FakeGenerator:
    """Scripted text generator: maps prompt markers to replies or exceptions."""

    def __init__(self, replies=None, chat_reply="", fail=False):
        self.replies = replies or {}
        self.chat_reply = chat_reply
        self.fail = fail
        self.prompts = []
        self.contents = []

    def generate_text(self, prompt, model=None, temperature=0.2, max_output_tokens=2048):
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("generation unavailable")
        for marker, reply in self.replies.items():
            if marker in prompt:
                if isinstance(reply, Exception):
                    raise reply
                return reply
        return ""

    def generate_content(self, contents, model=None, system_instruction=None, temperature=0.4, max_output_tokens=2048):
        self.contents.append(contents)
        if self.fail:
            raise RuntimeError("generation unavailable")
        return self.chat_reply

    def calls_with(self, marker):
        return [prompt for prompt in self.prompts if marker in prompt]


@pytest.fixture
def catalog():
    return CatalogStore()


@pytest.fixture
def conversation_log():
    return ConversationLog()


@pytest.fixture
def make_router(catalog, conversation_log):
    def _make(generator=None, **kwargs):
        return MessageRouter(
            catalog=catalog,
            conversation_log=conversation_log,
            generator=generator,
            prompts_dir=PROMPTS_DIR,
            **kwargs,
        )

    return _make


@pytest.fixture
def tmp_dir():
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)
