"""Operation outcomes produced by the router and their user-facing rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union

from .models import BookRecord

ADD_USAGE = "add book: bn: <Tên sách>; at: <Tác giả>"
DELETE_USAGE = "delete book: bn: <Tên sách>; at: <Tác giả>"
POSITION_USAGE = "vị trí <Chữ cái><Số> (ví dụ: vị trí H1)"
RECAP_USAGE = "tóm tắt <Tên sách>"

OUT_OF_SCOPE_REPLY = (
    "Mình là trợ lý thư viện, mình có thể thêm/xóa sách, cho biết vị trí kệ, tóm tắt "
    "hoặc gợi ý sách trong thư viện. Bạn cần mình giúp gì nào?"
)
RECAP_UNAVAILABLE_REPLY = "Hiện mình chưa thể tóm tắt quyển này, bạn thử lại sau nhé."


@dataclass
class Added:
    book: BookRecord


@dataclass
class Duplicate:
    title: str
    author: str


@dataclass
class Deleted:
    title: str
    author: str


@dataclass
class NotFound:
    """Nothing in the catalog matched; `kind` is delete, recap, or search."""
    kind: str
    query: str


@dataclass
class PositionFound:
    shelf: str
    books: List[BookRecord] = field(default_factory=list)


@dataclass
class PositionEmpty:
    shelf: str


@dataclass
class Recap:
    """Summary for a resolved book; summary is None when none could be produced."""
    book: BookRecord
    summary: Optional[str] = None

    @property
    def available(self) -> bool:
        return bool(self.summary)


@dataclass
class Recommendation:
    book: BookRecord
    reason: str = ""
    candidates: int = 1


@dataclass
class ParseError:
    usage: str
    detail: str = ""


@dataclass
class Passthrough:
    text: str


Outcome = Union[
    Added,
    Duplicate,
    Deleted,
    NotFound,
    PositionFound,
    PositionEmpty,
    Recap,
    Recommendation,
    ParseError,
    Passthrough,
]


def describe_book(book: BookRecord) -> str:
    return f"📖 {book.title} - {book.author} | Thể loại: {book.category} | Vị trí: {book.shelf_position}"


def format_reply(outcome: Outcome) -> str:
    """Purpose: Render an operation outcome into the reply text shown to the user.
    Inputs/Outputs: Input is one Outcome variant; output is a (possibly multi-line) string.
    Side Effects / State: None; pure function.
    Dependencies: describe_book and the reply constants above.
    Failure Modes: Unknown outcome types raise TypeError.
    If Removed: The router has no way to answer the user.
    Testing Notes: Each variant renders its key fields (title, shelf code, usage hint).
    """
    if isinstance(outcome, Added):
        book = outcome.book
        return (
            "✅ Đã thêm sách:\n"
            f"Tên sách: {book.title}\n"
            f"Tác giả: {book.author}\n"
            f"Thể loại: {book.category}\n"
            f"Vị trí: {book.shelf_position}"
        )
    if isinstance(outcome, Duplicate):
        return f"⚠️ Sách \"{outcome.title}\" của {outcome.author} đã có trong thư viện, không thêm lại."
    if isinstance(outcome, Deleted):
        return f"🗑️ Đã xóa sách: {outcome.title} - {outcome.author}"
    if isinstance(outcome, NotFound):
        if outcome.kind == "delete":
            return f"❌ Không tìm thấy sách để xóa: {outcome.query}"
        if outcome.kind == "recap":
            return f"❌ Không tìm thấy sách \"{outcome.query}\" trong thư viện để tóm tắt."
        return "Xin lỗi, hiện không tìm thấy sách nào phù hợp."
    if isinstance(outcome, PositionFound):
        lines = [f"📚 Kệ {outcome.shelf} có {len(outcome.books)} cuốn:"]
        lines.extend(f"- {book.title} - {book.author}" for book in outcome.books)
        return "\n".join(lines)
    if isinstance(outcome, PositionEmpty):
        return f"📭 Kệ {outcome.shelf} đang trống."
    if isinstance(outcome, Recap):
        if not outcome.available:
            return f"{RECAP_UNAVAILABLE_REPLY}\n{describe_book(outcome.book)}"
        return f"{describe_book(outcome.book)}\nRecap: {outcome.summary}"
    if isinstance(outcome, Recommendation):
        book = outcome.book
        lines = [
            f"Tên sách: {book.title}",
            f"Tác giả: {book.author}",
            f"Vị trí: {book.shelf_position}",
        ]
        if outcome.reason:
            lines.append(f"Lý do: {outcome.reason}")
        return "\n".join(lines)
    if isinstance(outcome, ParseError):
        reply = f"❌ Sai cú pháp. Hãy dùng: {outcome.usage}"
        if outcome.detail:
            reply = f"{reply}\n{outcome.detail}"
        return reply
    if isinstance(outcome, Passthrough):
        return outcome.text
    raise TypeError(f"Unsupported outcome: {type(outcome).__name__}")
