"""
Confirmation Poller

Drives reconciliation after the gateway redirects the browser back.

- Article reference: URL parameter, then local persistence, then session
  persistence ("lastArticleId" is written when checkout starts)
- One attempt immediately, then one per interval, up to max_attempts
- Stops on unlocked, on an explicit decline/expiry, or when the budget
  is spent ("exhausted": status unknown, refresh manually or contact support)
- refresh() resets the budget and reconciles at once
- close() cancels the pending retry; nothing keeps running afterwards
- An attempt that outlives a start/refresh/close is discarded, so only one
  retry chain exists at a time

Timers go through an injected Scheduler so tests can advance time by hand.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Literal, Mapping, Optional, Protocol

from ..models.payments import ReconcileResult

logger = logging.getLogger(__name__)

LAST_ARTICLE_KEY = "lastArticleId"

PollerState = Literal[
    "idle",               # not started
    "missing_reference",  # no article id could be recovered
    "polling",            # waiting for the gateway
    "unlocked",           # access granted
    "failed",             # gateway declined / expired the payment
    "locked",             # nothing to confirm (no transaction, unknown article)
    "exhausted",          # attempt budget spent, status still unknown
    "closed",             # torn down
]

ReconcileFn = Callable[[str, str], Awaitable[ReconcileResult]]
StateListener = Callable[[PollerState, Optional[ReconcileResult]], None]


# ============================================================================
# Scheduling
# ============================================================================

class ScheduledTask(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], Awaitable[None]]) -> ScheduledTask:
        ...


class AsyncioTask:
    """Handle for a callback scheduled on the running event loop."""

    def __init__(self):
        self.timer: Optional[asyncio.TimerHandle] = None
        self.task: Optional[asyncio.Task] = None
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        if self.timer is not None:
            self.timer.cancel()
        if self.task is not None and not self.task.done():
            self.task.cancel()


class AsyncioScheduler:
    """Scheduler backed by loop.call_later."""

    def call_later(self, delay: float, callback: Callable[[], Awaitable[None]]) -> AsyncioTask:
        loop = asyncio.get_running_loop()
        handle = AsyncioTask()

        def _fire() -> None:
            if not handle.cancelled:
                handle.task = loop.create_task(callback())

        handle.timer = loop.call_later(delay, _fire)
        return handle


# ============================================================================
# Client Persistence
# ============================================================================

class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStorage:
    """Dict-backed KeyValueStorage (local or session persistence)."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


def remember_article(article_id: str, local: KeyValueStorage, session: Optional[KeyValueStorage] = None) -> None:
    """Persist the article being bought, right before redirecting to checkout."""
    local.set(LAST_ARTICLE_KEY, article_id)
    if session is not None:
        session.set(LAST_ARTICLE_KEY, article_id)


def recover_article_id(
    params: Mapping[str, str],
    local: Optional[KeyValueStorage] = None,
    session: Optional[KeyValueStorage] = None
) -> Optional[str]:
    """
    Find the article reference after redirect-back.

    Priority: article_id URL parameter, local persistence, session persistence.
    Blank values are skipped.
    """
    candidates = [params.get("article_id")]
    if local is not None:
        candidates.append(local.get(LAST_ARTICLE_KEY))
    if session is not None:
        candidates.append(session.get(LAST_ARTICLE_KEY))

    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    return None


# ============================================================================
# Poller
# ============================================================================

class ConfirmationPoller:
    """
    Bounded polling of reconcile() for one article.

    Args:
        reconcile: async callable (article_id, user_id) -> ReconcileResult
        user_id: Authenticated viewer
        scheduler: Scheduler used for the retry timer
        interval: Seconds between attempts
        max_attempts: Attempt budget per start()/refresh()
    """

    def __init__(
        self,
        reconcile: ReconcileFn,
        user_id: str,
        scheduler: Optional[Scheduler] = None,
        interval: float = 5.0,
        max_attempts: int = 12
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._reconcile = reconcile
        self.user_id = user_id
        self._scheduler = scheduler or AsyncioScheduler()
        self.interval = interval
        self.max_attempts = max_attempts

        self.article_id: Optional[str] = None
        self.state: PollerState = "idle"
        self.attempts = 0
        self.last_result: Optional[ReconcileResult] = None
        self._pending: Optional[ScheduledTask] = None
        self._generation = 0  # bumped by start/refresh/close; stale attempts drop out
        self._listeners: List[StateListener] = []

    # ------------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; returns the unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: PollerState) -> None:
        if state == self.state:
            return
        self.state = state
        for listener in list(self._listeners):
            try:
                listener(state, self.last_result)
            except Exception as e:
                logger.error(f"Poller listener failed: {e}", exc_info=True)

    # ------------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------------

    async def start_from_redirect(
        self,
        params: Mapping[str, str],
        local: Optional[KeyValueStorage] = None,
        session: Optional[KeyValueStorage] = None
    ) -> Optional[str]:
        """
        Recover the article reference and start polling it.

        Returns:
            The recovered article id, or None (state "missing_reference")
        """
        article_id = recover_article_id(params, local, session)
        if article_id is None:
            logger.warning("Redirect-back without an article reference")
            self._set_state("missing_reference")
            return None
        await self.start(article_id)
        return article_id

    async def start(self, article_id: str) -> None:
        if self.state == "closed":
            raise RuntimeError("Poller is closed")
        self._cancel_pending()
        self._generation += 1
        self.article_id = article_id
        self.attempts = 0
        self._set_state("polling")
        await self._attempt()

    async def refresh(self) -> None:
        """Manual "refresh now": reset the budget and reconcile immediately."""
        if self.state == "closed" or self.article_id is None:
            return
        self._cancel_pending()
        self._generation += 1
        self.attempts = 0
        self._set_state("polling")
        await self._attempt()

    def close(self) -> None:
        """Tear down: cancel any scheduled retry."""
        self._cancel_pending()
        self._generation += 1
        self._set_state("closed")
        self._listeners.clear()

    @property
    def active(self) -> bool:
        return self._pending is not None

    # ------------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------------

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    async def _scheduled_attempt(self) -> None:
        self._pending = None
        await self._attempt()

    async def _attempt(self) -> None:
        if self.state != "polling" or self.article_id is None:
            return

        generation = self._generation
        self.attempts += 1
        try:
            result = await self._reconcile(self.article_id, self.user_id)
        except Exception as e:
            # Transport trouble is an unknown outcome, never a failed payment
            logger.warning(
                f"Reconcile attempt {self.attempts} for {self.article_id} errored: {e}"
            )
            result = None

        if self.state != "polling" or generation != self._generation:
            return  # closed, restarted or refreshed while in flight
        self.last_result = result

        if result is not None and result.unlocked:
            logger.info(f"Article {self.article_id} unlocked after {self.attempts} attempt(s)")
            self._set_state("unlocked")
            return
        if result is not None and not result.retry:
            self._set_state("failed" if result.failed else "locked")
            return
        if self.attempts >= self.max_attempts:
            logger.info(
                f"Gave up on {self.article_id} after {self.attempts} attempts; "
                f"status unknown"
            )
            self._set_state("exhausted")
            return

        self._cancel_pending()
        self._pending = self._scheduler.call_later(self.interval, self._scheduled_attempt)
