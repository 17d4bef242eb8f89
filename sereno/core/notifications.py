"""Notification fan-out: a queue handoff consumed by a background worker.

Write paths call ``NotificationDispatcher.enqueue`` and return immediately.
The worker resolves recipients (running companion matching when the job asks
for it), pushes through a transport and retries each recipient a bounded
number of times. Nothing raised here ever reaches the request that enqueued
the job.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy.orm import Session

from sereno.core.config import settings
from sereno.core.errors import DeliveryFailure
from sereno.core.ws_manager import ConnectionManager, ws_manager
from sereno.services.matching_service import find_eligible_companions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchRequest:
    """Deliver to every companion eligible for this location at job time."""

    latitude: float | None = None
    longitude: float | None = None


@dataclass
class NotificationJob:
    event: str
    data: dict[str, Any]
    user_ids: list[int] = field(default_factory=list)
    match: MatchRequest | None = None
    exclude_user_ids: frozenset[int] = frozenset()
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class DispatcherStats:
    jobs_queued: int = 0
    jobs_processed: int = 0
    deliveries_sent: int = 0
    deliveries_failed: int = 0
    retries: int = 0


class PushTransport(Protocol):
    def send(self, user_id: int, event: str, data: dict[str, Any]) -> None:
        """Deliver one event to one user or raise DeliveryFailure."""


class WebSocketTransport:
    """Pushes through the websocket connection manager on the app's event loop.

    Users without an open socket are skipped; /ws sends them a session.state
    snapshot when they reconnect.
    """

    def __init__(self, manager: ConnectionManager = ws_manager, timeout: float | None = None) -> None:
        self.manager = manager
        self.loop: asyncio.AbstractEventLoop | None = None
        self.timeout = timeout if timeout is not None else settings.notification_send_timeout_seconds

    def bind_loop(self, loop: asyncio.AbstractEventLoop | None) -> None:
        self.loop = loop

    def send(self, user_id: int, event: str, data: dict[str, Any]) -> None:
        if self.loop is None or self.loop.is_closed():
            raise DeliveryFailure("No running event loop for websocket delivery")
        if not self.manager.is_connected(user_id):
            logger.debug("User %s has no open socket; skipping %s", user_id, event)
            return
        future = asyncio.run_coroutine_threadsafe(
            self.manager.send_to_user(user_id, event, data),
            self.loop,
        )
        try:
            future.result(timeout=self.timeout)
        except Exception as exc:
            future.cancel()
            raise DeliveryFailure(f"Websocket push to user {user_id} failed: {exc}") from exc


_STOP = object()


class NotificationDispatcher:
    """Queue plus worker thread delivering ``NotificationJob`` objects."""

    def __init__(
        self,
        transport: PushTransport,
        session_factory: Callable[[], Session] | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self.transport = transport
        self.session_factory = session_factory
        self.max_attempts = max_attempts or settings.notification_max_attempts
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.notification_retry_backoff_seconds
        )
        self.stats = DispatcherStats()
        self._queue: queue.Queue = queue.Queue()
        self._worker: threading.Thread | None = None

    # ---------- producer side ----------

    def enqueue(self, job: NotificationJob) -> None:
        """Hand a job to the worker. Never raises."""
        try:
            self._queue.put_nowait(job)
            self.stats.jobs_queued += 1
        except Exception:
            logger.exception("Could not enqueue notification %s", job.event)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # ---------- worker lifecycle ----------

    def start(self) -> None:
        if self._worker and self._worker.is_alive():
            return
        self._worker = threading.Thread(target=self._run, name="notification-worker", daemon=True)
        self._worker.start()
        logger.info("Notification worker started")

    def stop(self, timeout: float = 5.0) -> None:
        if not self._worker:
            return
        self._queue.put(_STOP)
        self._worker.join(timeout)
        self._worker = None
        logger.info("Notification worker stopped")

    def drain(self) -> int:
        """Process every queued job on the calling thread. Returns jobs processed."""
        processed = 0
        while True:
            try:
                job = self._queue.get_nowait()
            except queue.Empty:
                return processed
            if job is _STOP:
                continue
            self.process(job)
            processed += 1

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            if job is _STOP:
                return
            self.process(job)

    # ---------- delivery ----------

    def process(self, job: NotificationJob) -> None:
        try:
            recipients = self._resolve_recipients(job)
        except Exception:
            logger.exception("Recipient resolution failed for %s", job.event)
            recipients = []
        for user_id in recipients:
            self._deliver(user_id, job)
        self.stats.jobs_processed += 1
        logger.info("Notification %s processed for %d recipient(s)", job.event, len(recipients))

    def _resolve_recipients(self, job: NotificationJob) -> list[int]:
        recipients = list(dict.fromkeys(job.user_ids))
        if job.match is not None:
            if self.session_factory is None:
                raise RuntimeError("Dispatcher has no session factory for companion matching")
            db = self.session_factory()
            try:
                matches = find_eligible_companions(
                    db,
                    latitude=job.match.latitude,
                    longitude=job.match.longitude,
                    now=job.created_at,
                )
            finally:
                db.close()
            for m in matches:
                if m.companion_id not in recipients:
                    recipients.append(m.companion_id)
        return [uid for uid in recipients if uid not in job.exclude_user_ids]

    def _deliver(self, user_id: int, job: NotificationJob) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                self.transport.send(user_id, job.event, job.data)
                self.stats.deliveries_sent += 1
                return True
            except Exception as exc:
                failure = exc if isinstance(exc, DeliveryFailure) else DeliveryFailure(str(exc))
                if attempt < self.max_attempts:
                    self.stats.retries += 1
                    logger.warning(
                        "Delivery of %s to user %s failed (attempt %d/%d): %s",
                        job.event, user_id, attempt, self.max_attempts, failure,
                    )
                    if self.backoff_seconds:
                        time.sleep(self.backoff_seconds * attempt)
                else:
                    logger.error(
                        "Giving up delivering %s to user %s after %d attempts: %s",
                        job.event, user_id, self.max_attempts, failure,
                    )
        self.stats.deliveries_failed += 1
        return False


def _default_session_factory() -> Session:
    from sereno.db.session import SessionLocal

    return SessionLocal()


# App-wide instances; tests override the get_notifier dependency
websocket_transport = WebSocketTransport()
notification_dispatcher = NotificationDispatcher(websocket_transport, session_factory=_default_session_factory)
