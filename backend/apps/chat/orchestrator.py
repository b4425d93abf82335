"""
Per-turn pipeline.

A turn runs through these stages in order:

    rate limit -> ingest attachments -> navigate -> search decision
        -> generate (with retry) -> persist -> respond

A rate-limited turn is rejected before anything else happens. Ingestion
failures degrade to a fallback document, search failures to no
augmentation, and generation or store failures to a single apologetic
message. Raw internal errors never reach the user.
"""
import time
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from django.conf import settings

from apps.authn.audit import audit_ratelimit_exceeded, audit_turn_completed, audit_turn_failed
from apps.authn.ratelimit import RateLimiter, RateLimitResult, get_limiter
from apps.chat import prompts
from apps.chat.llm_client import BaseLLMClient, LLMError, get_llm_client
from apps.chat.search import SearchResponse, format_search_context, needs_web_search, search_web
from apps.docs.extractor import extract_text
from apps.docs.ingest import IngestionResult, ingest_document
from apps.docs.repository import DocumentRepository
from apps.store.client import KeyValueStore, StoreError, get_store
from apps.store.retry import GENERATION_RETRY_CONFIG, RetryExhausted, retry_with_backoff
from apps.tutor.history import ROLE_ASSISTANT, ROLE_USER, ChatHistoryStore, Message
from apps.tutor.intent import NavigationIntent, classify_navigation
from apps.tutor.navigation import (
    NavigationMarker,
    NavigationResult,
    PageNavigator,
    parse_navigation_marker,
)
from apps.tutor.session import SessionStateManager

logger = logging.getLogger(__name__)

DEFAULT_TURN_TIME_BUDGET = 60

STATUS_OK = "ok"
STATUS_RATE_LIMITED = "rate_limited"


@dataclass
class Attachment:
    """An uploaded document carried by a turn."""
    filename: str
    data: bytes
    content_type: Optional[str] = None


@dataclass
class TurnResult:
    """What the boundary API returns for one turn."""
    response: str
    status: str = STATUS_OK
    navigation: Optional[NavigationMarker] = None
    rate_limit: Optional[RateLimitResult] = None
    ingested: List[IngestionResult] = field(default_factory=list)

    @property
    def is_rate_limited(self) -> bool:
        return self.status == STATUS_RATE_LIMITED

    def to_dict(self) -> dict:
        return {
            "response": self.response,
            "navigation": self.navigation.to_dict() if self.navigation else None,
        }


def last_user_message(turns: Sequence[dict]) -> Optional[dict]:
    """Return the most recent turn with role "user"."""
    for turn in reversed(turns or []):
        if isinstance(turn, dict) and turn.get("role") == ROLE_USER:
            return turn
    return None


def ensure_marker(text: str, navigation: Optional[NavigationResult]) -> str:
    """
    Make sure a response that used page content ends up carrying that page's marker.

    The last marker in the text is the one callers parse, so ours is
    appended whenever the model omitted it or quoted a different one.
    """
    if navigation is None or not navigation.page_included:
        return text

    expected = parse_navigation_marker(navigation.marker)
    if parse_navigation_marker(text) == expected:
        return text
    return f"{text}\n\n{navigation.marker}"


class TurnOrchestrator:
    """
    Runs one conversational turn end to end.

    Collaborators are injected so the pipeline can run against the memory
    store, a fake LLM and a fake search provider.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        limiter: Optional[RateLimiter] = None,
        llm_client: Optional[BaseLLMClient] = None,
        search: Callable[[str], SearchResponse] = search_web,
        extractor=extract_text,
        clock: Callable[[], float] = time.monotonic,
        time_budget: Optional[float] = None,
    ):
        self.store = store or get_store()
        self.limiter = limiter or get_limiter()
        self._llm_client = llm_client
        self.search = search
        self.extractor = extractor
        self.clock = clock
        self.time_budget = time_budget or float(
            getattr(settings, 'TURN_TIME_BUDGET_SECONDS', DEFAULT_TURN_TIME_BUDGET)
        )

        self.sessions = SessionStateManager(self.store)
        self.history = ChatHistoryStore(self.store)
        self.repository = DocumentRepository(self.store)
        self.navigator = PageNavigator(self.sessions, self.repository)

    @property
    def llm_client(self) -> BaseLLMClient:
        if self._llm_client is None:
            self._llm_client = get_llm_client()
        return self._llm_client

    def check_rate_limit(self, client_ip: str) -> RateLimitResult:
        """
        Record this request in the caller's window and report whether it may proceed.

        Runs before the request body is read so a limited caller costs nothing else.
        """
        limit = self.limiter.check(client_ip)
        if not limit.allowed:
            logger.warning(f"Rate limit exceeded for {client_ip}")
            audit_ratelimit_exceeded(client_ip, limit.limit, int(getattr(self.limiter, 'window_seconds', 0)))
        return limit

    def handle_turn(
        self,
        user_id: str,
        client_ip: str,
        turns: Sequence[dict],
        attachments: Sequence[Attachment] = (),
        request=None,
        rate_limit: Optional[RateLimitResult] = None,
    ) -> TurnResult:
        """
        Process one turn.

        Args:
            user_id: Stable opaque caller id
            client_ip: Rate limiting key
            turns: Prior turns as {"role", "content"} dicts; the last user turn is answered
            attachments: Documents uploaded with this turn
            request: Originating HttpRequest, used for audit context
            rate_limit: Result of an earlier check_rate_limit() call; checked here when None

        Returns:
            TurnResult (status "rate_limited" when rejected)
        """
        limit = rate_limit if rate_limit is not None else self.check_rate_limit(client_ip)
        if not limit.allowed:
            return TurnResult(
                response=prompts.RATE_LIMITED,
                status=STATUS_RATE_LIMITED,
                rate_limit=limit,
            )

        user_turn = last_user_message(turns)
        if user_turn is None:
            return TurnResult(response=prompts.NO_USER_MESSAGE, rate_limit=limit)

        message = str(user_turn.get("content") or "").strip() or prompts.DEFAULT_USER_MESSAGE
        deadline = self.clock() + self.time_budget

        try:
            return self._run(user_id, message, attachments, deadline, limit, request)
        except StoreError as e:
            logger.error(f"Store unavailable during turn for user {user_id}: {e}")
            if request is not None:
                audit_turn_failed(request, 'store', str(e))
            return TurnResult(response=prompts.SERVICE_UNAVAILABLE, rate_limit=limit)

    def _ingest(self, user_id: str, attachments: Sequence[Attachment]) -> List[IngestionResult]:
        results = []
        for attachment in attachments:
            result = ingest_document(
                attachment.data,
                attachment.filename,
                owner_user_id=user_id,
                content_type=attachment.content_type,
                repository=self.repository,
                extractor=self.extractor,
            )
            logger.info(
                f"Ingested {attachment.filename}: {result.document.total_pages} pages"
                f"{' (fallback)' if result.fallback else ''}"
            )
            results.append(result)

        if results:
            self.sessions.set_active_document(user_id, results[-1].document.id)
        return results

    def _navigate(self, user_id: str, intent: NavigationIntent, uploaded: bool) -> Optional[NavigationResult]:
        """
        Resolve the page context for this turn.

        Navigation commands move the session; otherwise the current page of
        the active document (if any) is included so the model always sees it.
        """
        if uploaded:
            return self.navigator.current_page(user_id)

        if intent.is_navigation:
            logger.info(f"Navigation intent {intent.kind.value} for user {user_id}")
            return self.navigator.apply(user_id, intent)

        state = self.sessions.get_state(user_id)
        if state.has_active_document:
            return self.navigator.current_page(user_id)
        return None

    def _augment(self, message: str) -> Optional[str]:
        if not needs_web_search(message):
            return None
        response = self.search(message)
        if not response.results:
            return None
        return format_search_context(response)

    def _generate(self, history: List[Message], prompt: str, deadline: float) -> str:
        pairs = [(m.role, m.content) for m in history]
        return retry_with_backoff(
            func=lambda: self.llm_client.generate(prompts.SYSTEM_INSTRUCTION, pairs, prompt),
            config=GENERATION_RETRY_CONFIG,
            exceptions=(LLMError,),
            on_retry=lambda attempt, err, backoff: logger.warning(
                f"LLM generation retry {attempt + 1}: {err}. Waiting {backoff:.1f}s"
            ),
            deadline=deadline,
        )

    def _run(
        self,
        user_id: str,
        message: str,
        attachments: Sequence[Attachment],
        deadline: float,
        limit: RateLimitResult,
        request,
    ) -> TurnResult:
        ingested = self._ingest(user_id, attachments)
        uploaded = bool(ingested)

        intent = classify_navigation(message)
        navigation = self._navigate(user_id, intent, uploaded)
        navigated = (
            not uploaded
            and intent.is_navigation
            and navigation is not None
            and navigation.document is not None
        )

        search_context = self._augment(message)
        searched = search_context is not None

        # Context is read before this turn's message is written
        history = self.history.fetch(user_id)
        self.history.save(user_id, Message.create(ROLE_USER, message))

        prompt = prompts.build_turn_prompt(
            message,
            page_text=navigation.text if navigation else None,
            search_context=search_context,
            uploaded=uploaded,
        )

        try:
            text = self._generate(history, prompt, deadline)
        except RetryExhausted as e:
            logger.error(f"LLM generation failed after {e.attempts} attempts: {e.last_exception}")
            if request is not None:
                audit_turn_failed(request, 'generation', str(e.last_exception))
            return TurnResult(response=prompts.GENERATION_FAILED, rate_limit=limit, ingested=ingested)
        except LLMError as e:
            logger.error(f"LLM generation failed: {e}")
            if request is not None:
                audit_turn_failed(request, 'generation', str(e))
            return TurnResult(response=prompts.GENERATION_FAILED, rate_limit=limit, ingested=ingested)

        text = ensure_marker(text, navigation)
        text = prompts.add_footers(text, searched=searched, navigated=navigated)

        self.history.save(user_id, Message.create(ROLE_ASSISTANT, text))

        if request is not None:
            audit_turn_completed(
                request,
                message_length=len(message),
                page_included=bool(navigation and navigation.page_included),
                search_used=searched,
                documents_ingested=len(ingested),
            )

        return TurnResult(
            response=text,
            navigation=parse_navigation_marker(text),
            rate_limit=limit,
            ingested=ingested,
        )
