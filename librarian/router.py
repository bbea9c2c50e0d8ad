"""Message-intent router for the library chatbot.

Role:
    Turns one inbound chat message into one reply plus catalog side effects. The
    deterministic prefix rules always run first; the model is only consulted when no
    rule matched, and every model call inside an enrichment step (category, recap,
    recommendation, small talk) has a deterministic fallback.

Route context contract (fields passed across steps):
    - decision: IntentDecision set by prefix rules or by classification.
    - title/author: book parameters for add/delete.
    - outcome: Outcome variant set by parameter extraction (usage errors) or dispatch.
    - reply: rendered text of the outcome.

Step contracts:
    Prefix Rules:
        Reads message; sets decision when a command prefix matches.
    Intent Classification:
        Runs only without a decision; asks the model, defaults to OTHER.
    Parameter Extraction:
        Fills title/author/shelf/query, or sets a ParseError outcome.
    Dispatch:
        Runs the catalog operation for the intent; sets outcome.
    Render:
        Formats outcome into reply.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .catalog_store import CatalogStore
from .categories import DEFAULT_VOCABULARY, CategoryVocabulary
from .category_inference import CategoryInferencer
from .conversation_log import ConversationLog
from .exceptions import DuplicateBookError
from .gemini_client import TextGenerator, build_history_contents
from .intents import Intent, IntentDecision, classify_intent, extract_shelf_code, match_prefix, parse_book_command
from .models import BookRecord
from .pipeline import PipelineStep, StepPipeline
from .prompt_loader import load_prompt, render_prompt
from .replies import (
    ADD_USAGE,
    DELETE_USAGE,
    OUT_OF_SCOPE_REPLY,
    POSITION_USAGE,
    Added,
    Deleted,
    Duplicate,
    NotFound,
    Outcome,
    ParseError,
    Passthrough,
    PositionEmpty,
    PositionFound,
    Recap,
    Recommendation,
    format_reply,
)
from .shelving import SHELF_CAPACITY, allocate_shelf
from .utils import extract_json_object, normalize_text, tokenize

logger = logging.getLogger("librarian.router")

PLACEHOLDER_SUMMARIES = {"", "chua co", "none", "n/a"}
QUERY_FILLER_WORDS = {
    "sach", "cuon", "quyen", "cua", "ve", "noi", "dung", "giup", "minh", "toi", "cho", "hay",
    "of", "the", "book", "about", "please", "me",
}
RECAP_STOPWORDS = QUERY_FILLER_WORDS | {
    "do", "nay", "ay", "kia", "that", "this", "it", "nhe", "di", "voi", "a",
}
SEARCH_STOPWORDS = QUERY_FILLER_WORDS | {
    "tim", "kiem", "goi", "muon", "doc", "co", "khong", "nao", "gi", "la", "mot", "nhung",
    "cac", "va", "voi", "de", "thi", "nhe", "oi", "duoc", "em", "anh", "chi", "ban", "nay",
    "find", "search", "recommend", "suggest", "want", "read", "some", "any", "a", "an",
    "i", "to", "for", "is", "and", "or", "with", "thu", "vien", "library",
}


@dataclass
class RouteContext:
    """Mutable context passed through each routing step."""
    session_id: str
    message: str
    history: List[dict] = field(default_factory=list)
    decision: Optional[IntentDecision] = None
    title: str = ""
    author: str = ""
    outcome: Optional[Outcome] = None
    reply: str = ""
    route: str = ""
    steps: List[str] = field(default_factory=list)
    thinking_logs: List[Dict[str, str]] = field(default_factory=list)

    @property
    def intent(self) -> Intent:
        return self.decision.intent if self.decision else Intent.OTHER

    def log(self, event: str, detail: str, status: str = "success") -> None:
        """Append a UI-facing trace entry for this turn."""
        self.thinking_logs.append({"event": event, "detail": detail, "status": status})


class MessageRouter:
    def __init__(
        self,
        catalog: CatalogStore,
        conversation_log: ConversationLog,
        generator: Optional[TextGenerator],
        prompts_dir: Path,
        vocabulary: CategoryVocabulary = DEFAULT_VOCABULARY,
        shelf_capacity: int = SHELF_CAPACITY,
        history_window: int = 6,
        chitchat_mode: str = "generative",
        recommend_max_candidates: int = 30,
        model: Optional[str] = None,
    ) -> None:
        """Purpose: Wire the catalog, conversation log, and generator into the pipeline.
        Inputs/Outputs: Collaborators plus routing limits; no return value.
        Side Effects / State: Builds a CategoryInferencer and a StepPipeline.
        Dependencies: CatalogStore, ConversationLog, a TextGenerator (may be None).
        Failure Modes: None at init.
        If Removed: The chat endpoint has nothing to route messages with.
        Testing Notes: Construct with an in-memory store and a fake generator.
        """
        self._catalog = catalog
        self._log = conversation_log
        self._generator = generator
        self._prompts_dir = prompts_dir
        self._vocabulary = vocabulary
        self._shelf_capacity = shelf_capacity
        self._history_window = history_window
        self._chitchat_mode = chitchat_mode
        self._max_candidates = max(recommend_max_candidates, 1)
        self._model = model
        self._inferencer = CategoryInferencer(generator, prompts_dir, vocabulary=vocabulary, model=model)
        self._pipeline = StepPipeline(
            steps=[
                PipelineStep("prefix_rules", self._step_prefix_rules),
                PipelineStep(
                    "intent_classification",
                    self._step_intent_classification,
                    skip_if=lambda ctx: ctx.decision is not None,
                ),
                PipelineStep("parameter_extraction", self._step_parameter_extraction),
                PipelineStep("dispatch", self._step_dispatch, skip_if=lambda ctx: ctx.outcome is not None),
                PipelineStep("render", self._step_render),
            ]
        )

    def handle_message(self, session_id: Optional[str], message: str) -> RouteContext:
        """Purpose: Route one message end to end and record both turns.
        Inputs/Outputs: Inputs are an optional session id and the raw message; output is
            the populated RouteContext (reply, intent, outcome, logs).
        Side Effects / State: Appends the user turn before routing and the assistant turn
            after; catalog mutations for add/delete.
        Dependencies: StepPipeline.run and ConversationLog.
        Failure Modes: CatalogStoreError propagates; the assistant turn is then not logged.
        If Removed: No chat turn is ever answered.
        Testing Notes: Handle "add book: bn: X; at: Y" and check reply and log turns.
        """
        session_id = session_id or uuid.uuid4().hex
        context = RouteContext(
            session_id=session_id,
            message=message,
            history=self._log.context(session_id, self._history_window),
        )
        self._log.append(session_id, "user", message)
        logger.info("session=%s question=%s", session_id, message)
        context.steps = self._pipeline.run(context)
        self._log.append(session_id, "assistant", context.reply)
        logger.info(
            "session=%s intent=%s source=%s route=%s",
            session_id,
            context.intent.value,
            context.decision.source if context.decision else "none",
            context.route,
        )
        return context

    def _step_prefix_rules(self, context: RouteContext) -> None:
        decision = match_prefix(context.message)
        if decision:
            context.decision = decision
            context.log("Prefix Rules", f"matched {decision.intent.value}")
        else:
            context.log("Prefix Rules", "no command prefix", status="skipped")

    def _step_intent_classification(self, context: RouteContext) -> None:
        context.decision = classify_intent(
            self._generator,
            self._prompts_dir,
            context.message,
            context.history,
            model=self._model,
        )
        context.log("Intent Classification", f"{context.decision.intent.value} via {context.decision.source}")

    def _step_parameter_extraction(self, context: RouteContext) -> None:
        """Purpose: Fill intent parameters or flag a usage error.
        Inputs/Outputs: Input is the RouteContext; mutates title/author/decision fields or
            sets a ParseError outcome.
        Side Effects / State: None beyond the context.
        Dependencies: parse_book_command, extract_shelf_code.
        Failure Modes: Malformed add/delete/position commands become ParseError outcomes;
            the catalog is never touched for them.
        If Removed: Dispatch would run with empty titles and shelf codes.
        Testing Notes: "add book Foo by Bar" -> ParseError with the add usage hint.
        """
        decision = context.decision
        if decision.intent in (Intent.ADD_BOOK, Intent.DELETE_BOOK):
            params = parse_book_command(context.message)
            if not params:
                usage = ADD_USAGE if decision.intent == Intent.ADD_BOOK else DELETE_USAGE
                context.outcome = ParseError(usage=usage)
                context.route = "usage_error"
                context.log("Parameter Extraction", "book command malformed", status="error")
                return
            context.title, context.author = params
        elif decision.intent == Intent.ASK_POSITION:
            if not decision.shelf:
                decision.shelf = extract_shelf_code(context.message)
            if not decision.shelf:
                context.outcome = ParseError(usage=POSITION_USAGE)
                context.route = "usage_error"
                context.log("Parameter Extraction", "shelf code missing", status="error")
                return
        elif decision.intent == Intent.ASK_RECAP and not decision.query and decision.source != "prefix":
            decision.query = context.message
        context.log("Parameter Extraction", "ok")

    def _step_dispatch(self, context: RouteContext) -> None:
        intent = context.intent
        if intent == Intent.ADD_BOOK:
            context.outcome = self._add_book(context)
        elif intent == Intent.DELETE_BOOK:
            context.outcome = self._delete_book(context)
        elif intent == Intent.ASK_POSITION:
            context.outcome = self._ask_position(context)
        elif intent == Intent.ASK_RECAP:
            context.outcome = self._ask_recap(context)
        elif intent in (Intent.SEARCH_BOOK, Intent.RECOMMEND_BOOK):
            context.outcome = self._search_or_recommend(context, recommend=intent == Intent.RECOMMEND_BOOK)
        else:
            context.outcome = self._passthrough(context)
        logger.info("session=%s step=dispatch route=%s", context.session_id, context.route)
        context.log("Dispatch", context.route)

    def _step_render(self, context: RouteContext) -> None:
        context.reply = format_reply(context.outcome)

    def _allocate(self, category: str, count: int) -> str:
        return allocate_shelf(category, count, capacity=self._shelf_capacity, vocabulary=self._vocabulary)

    def _add_book(self, context: RouteContext) -> Outcome:
        # Reject duplicates before spending a model call on them.
        if self._catalog.find_by_title_author(context.title, context.author):
            context.route = "add_duplicate"
            return Duplicate(context.title, context.author)
        category = self._inferencer.infer(context.title, context.author)
        try:
            book = self._catalog.add_book(context.title, context.author, category, allocate=self._allocate)
        except DuplicateBookError:
            context.route = "add_duplicate"
            return Duplicate(context.title, context.author)
        context.route = "add_book"
        return Added(book)

    def _delete_book(self, context: RouteContext) -> Outcome:
        removed = self._catalog.delete_by_title_author(context.title, context.author)
        if not removed:
            context.route = "delete_not_found"
            return NotFound("delete", f"{context.title} - {context.author}")
        context.route = "delete_book"
        return Deleted(context.title, context.author)

    def _ask_position(self, context: RouteContext) -> Outcome:
        shelf = context.decision.shelf
        books = self._catalog.find_by_shelf_code(shelf)
        if not books:
            context.route = "position_empty"
            return PositionEmpty(shelf)
        context.route = "position_found"
        return PositionFound(shelf, books)

    def _ask_recap(self, context: RouteContext) -> Outcome:
        query = context.decision.query
        book = resolve_book(self._catalog.list_all(), query, context.history)
        if not book:
            context.route = "recap_not_found"
            return NotFound("recap", query or context.message)
        if normalize_text(book.summary or "") not in PLACEHOLDER_SUMMARIES:
            context.route = "recap_stored"
            return Recap(book, book.summary)
        summary = self._generate_recap(book)
        context.route = "recap_generated" if summary else "recap_unavailable"
        return Recap(book, summary)

    def _generate_recap(self, book: BookRecord) -> Optional[str]:
        if self._generator is None:
            return None
        try:
            prompt = render_prompt(self._prompts_dir / "recap.txt", title=book.title, author=book.author)
            text = self._generator.generate_text(prompt, model=self._model, temperature=0.3)
        except Exception:
            logger.warning("recap generation failed title=%s", book.title, exc_info=True)
            return None
        text = (text or "").strip()
        if not text or text.upper().startswith("UNKNOWN"):
            return None
        return text

    def _search_or_recommend(self, context: RouteContext, recommend: bool) -> Outcome:
        """Purpose: Answer search/recommend requests from the catalog only.
        Inputs/Outputs: Input is the RouteContext; output is Recommendation or NotFound.
        Side Effects / State: At most one generation call to pick among candidates.
        Dependencies: filter_candidates, _pick_candidate.
        Failure Modes: No keyword overlap: search -> NotFound, recommend -> whole catalog
            (capped) as candidates. Model failure or a title outside the candidates ->
            first candidate.
        If Removed: Free-text requests for books go unanswered.
        Testing Notes: A model that names a book outside the candidates never leaks it.
        """
        books = self._catalog.list_all()
        query = " ".join(part for part in (context.message, context.decision.query) if part)
        candidates = filter_candidates(books, query, self._vocabulary)
        if not candidates and recommend:
            candidates = books
        candidates = candidates[: self._max_candidates]
        if not candidates:
            context.route = "search_not_found"
            return NotFound("search", query)
        if len(candidates) == 1:
            context.route = "search_single"
            return Recommendation(candidates[0], candidates=1)
        book, reason = self._pick_candidate(context.message, candidates)
        context.route = "recommend_model" if reason else "recommend_fallback"
        return Recommendation(book, reason=reason, candidates=len(candidates))

    def _pick_candidate(self, message: str, candidates: List[BookRecord]) -> Tuple[BookRecord, str]:
        fallback = (candidates[0], "")
        if self._generator is None:
            return fallback
        listing = "\n".join(
            f"{index}. {book.title} - {book.author} ({book.category}, kệ {book.shelf_position})"
            for index, book in enumerate(candidates, start=1)
        )
        try:
            prompt = render_prompt(self._prompts_dir / "recommendation.txt", message=message, candidates=listing)
            raw = self._generator.generate_text(prompt, model=self._model, temperature=0.2)
        except Exception:
            logger.warning("recommendation generation failed", exc_info=True)
            return fallback
        parsed = extract_json_object(raw)
        wanted = normalize_text(parsed.get_str("title"))
        for book in candidates:
            if wanted and normalize_text(book.title) == wanted:
                return book, parsed.get_str("reason")
        logger.warning("recommendation outside candidate set title=%r", parsed.get_str("title"))
        return fallback

    def _passthrough(self, context: RouteContext) -> Outcome:
        if self._chitchat_mode != "generative" or self._generator is None:
            context.route = "out_of_scope"
            return Passthrough(OUT_OF_SCOPE_REPLY)
        contents = build_history_contents(context.history)
        contents.append({"role": "user", "parts": [{"text": context.message}]})
        try:
            text = self._generator.generate_content(
                contents,
                model=self._model,
                system_instruction=load_prompt(self._prompts_dir / "chitchat.txt"),
            )
        except Exception:
            logger.warning("small talk generation failed session=%s", context.session_id, exc_info=True)
            text = ""
        if not text.strip():
            context.route = "out_of_scope"
            return Passthrough(OUT_OF_SCOPE_REPLY)
        context.route = "chitchat"
        return Passthrough(text.strip())


def clean_query(query: str) -> str:
    """Normalize a recap target and drop filler and demonstrative words ("cuốn đó", "of the")."""
    return " ".join(word for word in normalize_text(query).split() if word not in RECAP_STOPWORDS)


def _contains_phrase(text: str, phrase: str) -> bool:
    """True when phrase occurs in text on whole-word boundaries."""
    return bool(phrase) and f" {phrase} " in f" {text} "


def resolve_book(books: List[BookRecord], query: str, history: List[dict]) -> Optional[BookRecord]:
    """Purpose: Find the book a recap request is about.
    Inputs/Outputs: Inputs are catalog books, the free-text target, and oldest-first
        history turns; output is a BookRecord or None.
    Side Effects / State: None; pure function.
    Dependencies: clean_query, normalize_text.
    Failure Modes: Returns None when neither the catalog nor the history resolves it.
    If Removed: Recaps cannot find their book.
    Testing Notes: Exact title beats a partial match; "cuốn đó" resolves the title most
        recently mentioned in history even when an author name starts with "do".
    """
    # Exact title/author, then whole-word containment either way, then history.
    target = clean_query(query)
    if target:
        keyed = [(book, clean_query(book.title), clean_query(book.author)) for book in books]
        for book, title, author in keyed:
            if target in (title, author):
                return book
        partial = [
            book
            for book, title, author in keyed
            if _contains_phrase(title, target)
            or _contains_phrase(author, target)
            or _contains_phrase(target, title)
        ]
        if partial:
            return max(partial, key=lambda book: len(normalize_text(book.title)))
    for turn in reversed(history):
        text = normalize_text(turn.get("message", ""))
        mentioned = [book for book in books if _contains_phrase(text, normalize_text(book.title))]
        if mentioned:
            return max(mentioned, key=lambda book: len(normalize_text(book.title)))
    return None


def filter_candidates(
    books: List[BookRecord],
    query: str,
    vocabulary: CategoryVocabulary = DEFAULT_VOCABULARY,
) -> List[BookRecord]:
    """Purpose: Rank catalog books by keyword overlap with a request.
    Inputs/Outputs: Inputs are books and request text; output is the books with at least
        one shared keyword, best overlap first, catalog order on ties.
    Side Effects / State: None; pure function.
    Dependencies: tokenize, CategoryVocabulary aliases so "lịch sử" hits History books.
    Failure Modes: Requests made only of stopwords return an empty list.
    If Removed: Search and recommendation have no candidate set to stay inside.
    Testing Notes: "tìm sách của Nguyễn Du" ranks Truyện Kiều first.
    """
    terms = {token for token in tokenize(query) if len(token) >= 2 and token not in SEARCH_STOPWORDS}
    if not terms:
        return []
    scored = []
    for position, book in enumerate(books):
        aliases = " ".join(vocabulary.aliases_for(book.category))
        haystack = f"{book.title} {book.author} {book.category} {aliases}"
        score = len(terms & set(tokenize(haystack)))
        if score:
            scored.append((-score, position, book))
    scored.sort(key=lambda item: (item[0], item[1]))
    return [book for _, _, book in scored]