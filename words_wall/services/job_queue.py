"""
In-process, single-lane job queue with bounded retry.

Decouples "word created" from "word enriched" so the request path stays
fast.  Jobs run strictly one at a time because the downstream model
backend cannot handle concurrent load.  The queue is not durable: pending
jobs are lost on restart.

Usage
-----
    queue = JobQueue()
    queue.register(JobKind.ENRICH_WORD, handler, on_exhausted=mark_failed)
    queue.start()
    queue.enqueue(JobKind.ENRICH_WORD, EnrichWordPayload(word_id=1, word_text="run"))
    ...
    await queue.shutdown()

Job lifecycle: queued -> processing -> done | requeued (front) | abandoned
"""
from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Set

from words_wall.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job kinds and payloads
# ---------------------------------------------------------------------------

class JobKind(str, enum.Enum):
    ENRICH_WORD = "enrich-word"


@dataclasses.dataclass(frozen=True)
class EnrichWordPayload:
    word_id: int
    word_text: str


# Payload type each kind expects; enqueue rejects mismatches early
PAYLOAD_TYPES: Dict[JobKind, type] = {
    JobKind.ENRICH_WORD: EnrichWordPayload,
}


class QueueUnavailableError(RuntimeError):
    """Raised by enqueue when the queue is not accepting work."""


# ---------------------------------------------------------------------------
# Job (mutable dataclass shared between the queue and its handler)
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class Job:
    kind: JobKind
    payload: Any
    id: str = dataclasses.field(default_factory=lambda: uuid.uuid4().hex[:12])
    attempts: int = 0
    max_attempts: int = 3
    created_at: datetime = dataclasses.field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    processing: bool = False
    # monotonic timestamp before which the job must not start
    not_before: float = 0.0
    progress: float = 0.0

    def report_progress(self, percent: float) -> None:
        self.progress = max(0.0, min(100.0, float(percent)))
        logger.info("Job %s (%s) progress: %.0f%%", self.id, self.kind.value, self.progress)

    @property
    def is_ready(self) -> bool:
        return time.monotonic() >= self.not_before


JobHandler = Callable[[Job], Awaitable[None]]
ExhaustedHook = Callable[[Job, BaseException], Awaitable[None]]


@dataclasses.dataclass
class QueueStatus:
    running: bool
    processing: bool
    queue_size: int
    current_job: Optional[str] = None
    current_progress: Optional[float] = None


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------

class JobQueue:
    """
    Time-sliced FIFO queue processed by a background ticker.

    ``process_next`` is the only place jobs run.  It is entered from the
    periodic ticker and from the trigger fired by ``enqueue``; the
    ``_busy`` flag guarantees the two never overlap.
    """

    def __init__(
        self,
        tick_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        self.tick_interval = (
            tick_interval if tick_interval is not None else settings.QUEUE_TICK_INTERVAL
        )
        self.default_max_attempts = (
            max_attempts if max_attempts is not None else settings.QUEUE_MAX_ATTEMPTS
        )
        self._jobs: Deque[Job] = deque()
        self._handlers: Dict[JobKind, JobHandler] = {}
        self._exhausted_hooks: Dict[JobKind, ExhaustedHook] = {}
        self._busy = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._current: Optional[Job] = None
        self._running = False
        self._ticker: Optional[asyncio.Task] = None
        self._triggers: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def register(
        self,
        kind: JobKind,
        handler: JobHandler,
        on_exhausted: Optional[ExhaustedHook] = None,
    ) -> None:
        """Bind *handler* (and optionally a retry-exhaustion hook) to *kind*."""
        self._handlers[kind] = handler
        if on_exhausted is not None:
            self._exhausted_hooks[kind] = on_exhausted

    def start(self) -> None:
        """Start accepting jobs and launch the periodic ticker."""
        if self._running:
            return
        self._running = True
        self._ticker = asyncio.create_task(self._tick_forever())
        logger.info("Job queue started (tick every %.1fs)", self.tick_interval)

    @property
    def is_running(self) -> bool:
        return self._running

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop accepting jobs, stop the ticker and wait for the in-flight job.

        Jobs still queued are dropped (the queue is not durable).
        """
        self._running = False
        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None

        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Job queue shutdown: in-flight job still running after %.1fs", timeout)

        if self._jobs:
            logger.warning("Job queue shutdown: dropping %d pending job(s)", len(self._jobs))
            self._jobs.clear()
        logger.info("Job queue stopped")

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def enqueue(
        self,
        kind: JobKind,
        payload: Any,
        delay: float = 0.0,
        max_attempts: Optional[int] = None,
    ) -> Job:
        """
        Append a job and trigger processing.  Never blocks.

        Raises:
            QueueUnavailableError: If the queue is not running.
            TypeError: If *payload* is not the type registered for *kind*.
        """
        if not self._running:
            raise QueueUnavailableError("Job queue is not running")

        expected = PAYLOAD_TYPES.get(kind)
        if expected is not None and not isinstance(payload, expected):
            raise TypeError(
                f"Job kind {kind.value!r} expects {expected.__name__}, "
                f"got {type(payload).__name__}"
            )

        job = Job(
            kind=kind,
            payload=payload,
            max_attempts=max_attempts or self.default_max_attempts,
            not_before=time.monotonic() + max(0.0, delay),
        )
        self._jobs.append(job)
        logger.info(
            "Added job %s (%s) to queue. Queue size: %d", job.id, kind.value, len(self._jobs)
        )

        self._trigger()
        return job

    def _trigger(self) -> None:
        task = asyncio.create_task(self.process_next())
        # Keep a reference until done so the task is not garbage collected
        self._triggers.add(task)
        task.add_done_callback(self._triggers.discard)

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def _tick_forever(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            try:
                await self.process_next()
            except Exception as exc:
                logger.error("Error in job processing tick: %s", exc, exc_info=True)

    async def process_next(self) -> bool:
        """
        Dequeue and run at most one ready job.

        Returns True if a job was run (successfully or not), False if the
        queue was busy, empty, or the head job is still delayed.
        """
        if self._busy or not self._jobs or not self._jobs[0].is_ready:
            return False

        self._busy = True
        self._idle.clear()
        job = self._jobs.popleft()
        self._current = job
        try:
            job.processing = True
            job.attempts += 1
            logger.info(
                "Processing job %s (%s), attempt %d/%d",
                job.id, job.kind.value, job.attempts, job.max_attempts,
            )

            handler = self._handlers.get(job.kind)
            if handler is None:
                logger.warning("No handler for job kind %s — dropping job %s", job.kind.value, job.id)
                return True

            try:
                await handler(job)
            except Exception as exc:
                await self._handle_failure(job, exc)
            else:
                logger.info("Job %s (%s) completed successfully", job.id, job.kind.value)
            return True
        finally:
            job.processing = False
            self._current = None
            self._busy = False
            self._idle.set()

    async def _handle_failure(self, job: Job, exc: Exception) -> None:
        logger.error(
            "Job %s (%s) failed on attempt %d: %s",
            job.id, job.kind.value, job.attempts, exc,
            exc_info=True,
        )
        if job.attempts < job.max_attempts:
            logger.info(
                "Retrying job %s (attempt %d/%d)", job.id, job.attempts + 1, job.max_attempts
            )
            # Front of the queue: retries take priority over newer work
            self._jobs.appendleft(job)
            return

        logger.error(
            "Job %s (%s) failed after %d attempts. Giving up.",
            job.id, job.kind.value, job.attempts,
        )
        hook = self._exhausted_hooks.get(job.kind)
        if hook is None:
            return
        try:
            await hook(job, exc)
        except Exception as hook_exc:
            logger.error(
                "Exhaustion hook for job %s failed: %s", job.id, hook_exc, exc_info=True
            )

    async def drain(self) -> None:
        """Process jobs until the queue is empty and nothing is in flight."""
        while True:
            await self._idle.wait()
            if not self._jobs:
                return
            head = self._jobs[0]
            if not head.is_ready:
                await asyncio.sleep(max(0.0, head.not_before - time.monotonic()))
            await self.process_next()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._jobs)

    def status(self) -> QueueStatus:
        current = self._current
        return QueueStatus(
            running=self._running,
            processing=self._busy,
            queue_size=len(self._jobs),
            current_job=f"{current.kind.value}:{current.id}" if current else None,
            current_progress=current.progress if current else None,
        )
