"""Operation tracker — drive one remote operation to a terminal state.

State machine::

    start ──► PENDING ──► IN_PROGRESS* ──► SUCCEEDED | FAILED

Algorithm:
    1. ``start(request)`` exactly once. Any error here (transport or
       validation) is fatal: ``FAILED(StartError)``, no retry.
    2. Loop: wait ``scheduler.next(attempt, hint)``, ``poll(handle)``,
       classify:
       - succeeded → resolve the artifact (if any) through the cache,
         retrying dropped transfers like polls, then ``SUCCEEDED``; an
         artifact failure keeps the result and artifact on ``FAILED``;
       - failed    → ``FAILED`` with an expired/rejected/permanent reason;
       - pending   → ``IN_PROGRESS``, hint feeds the scheduler;
       - rate-limited → slow-down fed to the scheduler, ``IN_PROGRESS``.
       Transport errors are retried with the scheduler's delay until
       ``max_transport_retries`` consecutive failures, then
       ``FAILED(ExhaustedRetries)``. The polling budget (configured
       timeout, or the handle's ``expires_in``) ends in
       ``FAILED(DeadlineExceeded)``.
    3. ``cancel()`` interrupts the wait or the outstanding call within
       one ``cancel_check_seconds`` tick and yields ``FAILED(Cancelled)``.

Remote calls run on a single-worker thread pool owned by the run, so
polls are strictly sequential; the run thread only waits on the call's
future and the cancellation event. An abandoned call finishes on the
worker and its result is discarded.

The tracker never raises ``TrackerError`` to its caller: every failure
is returned as the terminal ``FAILED`` state.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
import uuid
from typing import TYPE_CHECKING, TypeVar

from op_tracker.activities.poll_operation import poll_operation
from op_tracker.core.config import TrackerConfig
from op_tracker.core.exceptions import (
    Cancelled,
    DeadlineExceeded,
    ExhaustedRetries,
    ExpiredOrInvalidGrant,
    FailureKind,
    PermanentFailure,
    RejectedError,
    StartError,
    TrackerError,
)
from op_tracker.models.operation import (
    OperationState,
    OperationStatus,
    PollHint,
    PollOutcome,
    ProgressObservation,
)
from op_tracker.orchestrators.scheduler import PollScheduler
from op_tracker.providers.base import build_call_context

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from op_tracker.cache.artifact_cache import ArtifactCache
    from op_tracker.models.artifact import CacheEntry
    from op_tracker.models.operation import PollResult, StartResponse
    from op_tracker.providers.base import CredentialContext, RemoteOperationClient

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_STATUS_RANK = {
    OperationStatus.PENDING: 0,
    OperationStatus.IN_PROGRESS: 1,
    OperationStatus.SUCCEEDED: 2,
    OperationStatus.FAILED: 2,
}

_REMOTE_FAILURES: dict[FailureKind, type[TrackerError]] = {
    FailureKind.EXPIRED: ExpiredOrInvalidGrant,
    FailureKind.REJECTED: RejectedError,
    FailureKind.PERMANENT: PermanentFailure,
}


class OperationTracker:
    """Track one remote asynchronous operation to completion.

    Args:
        client: Remote operation client issuing ``start``/``poll``.
        config: Poll cadence, retry ceiling and budget.
        credentials: Credential context consulted before each call.
        cache: Artifact cache for results that reference a remote artifact.
        sink: Callable receiving a ``ProgressObservation`` per transition.
        clock: Monotonic clock (seconds).
        wait: Replacement for the inter-poll wait; receives the delay and
            returns ``True`` when the run should stop. Defaults to waiting
            on the cancellation event.
    """

    def __init__(
        self,
        client: RemoteOperationClient,
        *,
        config: TrackerConfig | None = None,
        credentials: CredentialContext | None = None,
        cache: ArtifactCache | None = None,
        sink: Callable[[ProgressObservation], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        wait: Callable[[float], bool] | None = None,
    ) -> None:
        self._client = client
        self._config = config or TrackerConfig()
        self._credentials = credentials
        self._cache = cache
        self._sink = sink
        self._clock = clock
        self._wait_override = wait

        self._run_lock = threading.Lock()
        self._cancel_guard = threading.Lock()
        self._cancel_event = threading.Event()
        self._reset()

    def _reset(self) -> None:
        self._scheduler = PollScheduler.from_config(self._config)
        self._state: OperationState | None = None
        self._start_response: StartResponse | None = None
        self._attempt = 0
        self._started_at = 0.0
        self._correlation_id = uuid.uuid4().hex

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> OperationState | None:
        """Latest state, or ``None`` before the first run."""
        return self._state

    @property
    def handle(self) -> str:
        return self._start_response.handle if self._start_response else ""

    @property
    def start_response(self) -> StartResponse | None:
        return self._start_response

    @property
    def attempt(self) -> int:
        """Number of polls issued in the current run."""
        return self._attempt

    @property
    def scheduler(self) -> PollScheduler:
        return self._scheduler

    @property
    def correlation_id(self) -> str:
        return self._correlation_id

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Request cancellation of the running operation.

        The remote operation itself is not cancelled server-side. A request
        made while no run is active applies to the next run.
        """
        with self._cancel_guard:
            if not self._cancel_event.is_set():
                logger.info(
                    "Cancellation requested | client=%s | correlation_id=%s | handle_set=%s",
                    self._client.name,
                    self._correlation_id,
                    bool(self.handle),
                )
            self._cancel_event.set()

    def run(self, request: object) -> OperationState:
        """Run the operation to completion and return its terminal state."""
        state: OperationState | None = None
        for state in self.iter_states(request):
            pass
        if state is None or not state.is_terminal:
            msg = "tracker finished without a terminal state"
            raise RuntimeError(msg)
        return state

    def iter_states(self, request: object) -> Iterator[OperationState]:
        """Run the operation, yielding each state as it is reached.

        Yields ``PENDING`` once, ``IN_PROGRESS`` after every non-terminal
        poll response, and exactly one terminal state last. Closing the
        iterator early stops polling.

        Raises:
            RuntimeError: If this tracker already has an active operation.
        """
        if not self._run_lock.acquire(blocking=False):
            msg = "OperationTracker already has an active operation"
            raise RuntimeError(msg)

        self._reset()

        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix=f"op-tracker-{self._client.name}",
        )
        try:
            yield from self._drive(request, executor)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
            # Abandoned work keeps observing the old event.
            with self._cancel_guard:
                self._cancel_event = threading.Event()
            self._run_lock.release()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _drive(
        self,
        request: object,
        executor: concurrent.futures.Executor,
    ) -> Iterator[OperationState]:
        cid = self._correlation_id
        self._started_at = self._clock()
        logger.info("Operation run started | client=%s | correlation_id=%s", self._client.name, cid)

        try:
            started = self._call(executor, "start", self._start, request)
        except Cancelled as exc:
            yield self._fail(exc)
            return
        except TrackerError as exc:
            reason = exc if isinstance(exc, StartError) else _start_error(self._client.name, exc)
            yield self._fail(reason)
            return

        self._start_response = started
        yield self._transition(OperationState.pending())

        deadline = self._deadline(started)
        hint = started.hint
        consecutive_failures = 0

        while True:
            delay = self._scheduler.next(self._attempt, hint)
            hint = None

            if deadline is not None and self._clock() + delay > deadline:
                msg = (
                    f"Operation did not complete within its polling budget "
                    f"({self._attempt} polls, {self._elapsed():.0f}s elapsed)"
                )
                yield self._fail(DeadlineExceeded(msg))
                return

            if self._wait(delay):
                yield self._fail(Cancelled("Operation cancelled while waiting to poll"))
                return

            try:
                result = self._call(executor, "poll", self._poll, started.handle)
            except Cancelled as exc:
                self._attempt += 1
                yield self._fail(exc)
                return
            except TrackerError as exc:
                self._attempt += 1
                if not exc.retryable:
                    yield self._fail(exc)
                    return
                consecutive_failures += 1
                if consecutive_failures > self._config.max_transport_retries:
                    yield self._fail(self._exhausted("Poll", "poll", consecutive_failures, exc))
                    return
                self._log_retry("Poll", consecutive_failures, exc)
                continue

            self._attempt += 1
            consecutive_failures = 0

            if result.outcome is PollOutcome.SUCCEEDED:
                yield self._succeed(executor, result)
                return

            if result.outcome is PollOutcome.FAILED:
                yield self._fail(_remote_failure(result))
                return

            if result.outcome is PollOutcome.RATE_LIMITED:
                suggested = result.hint.suggested_interval_seconds if result.hint else None
                hint = PollHint(suggested_interval_seconds=suggested, slow_down=True)
                logger.info(
                    "Slow-down requested | client=%s | correlation_id=%s | attempt=%d",
                    self._client.name,
                    cid,
                    self._attempt,
                )
            else:
                hint = result.hint

            yield self._transition(OperationState.in_progress())

    def _succeed(
        self,
        executor: concurrent.futures.Executor,
        result: PollResult,
    ) -> OperationState:
        entry: CacheEntry | None = None
        if result.artifact and self._cache is not None:
            consecutive_failures = 0
            while True:
                try:
                    entry = self._call(executor, "resolve", self._resolve, result.artifact)
                    break
                except TrackerError as exc:
                    failure = exc
                if not failure.retryable:
                    return self._fail(failure, result)
                consecutive_failures += 1
                if consecutive_failures > self._config.max_transport_retries:
                    exhausted = self._exhausted(
                        "Artifact fetch", "resolve_artifact", consecutive_failures, failure
                    )
                    return self._fail(exhausted, result)
                self._log_retry("Artifact fetch", consecutive_failures, failure)
                if self._wait(self._scheduler.next(self._attempt)):
                    msg = "Operation cancelled while waiting to fetch the artifact"
                    return self._fail(Cancelled(msg, stage="resolve_artifact"), result)

        return self._transition(
            OperationState.succeeded(result.result, artifact=result.artifact, entry=entry)
        )

    # ------------------------------------------------------------------
    # Remote calls (run on the worker thread)
    # ------------------------------------------------------------------

    def _start(self, request: object) -> StartResponse:
        context = build_call_context(
            self._credentials,
            requires_credentials=self._client.requires_credentials,
            correlation_id=self._correlation_id,
        )
        return self._client.start(request, context)

    def _poll(self, handle: str) -> PollResult:
        context = build_call_context(
            self._credentials,
            requires_credentials=self._client.requires_credentials,
            correlation_id=self._correlation_id,
        )
        return poll_operation(self._client, handle, context)

    def _resolve(self, artifact: str) -> CacheEntry:
        assert self._cache is not None
        return self._cache.resolve(
            artifact,
            cancel_event=self._cancel_event,
            correlation_id=self._correlation_id,
        )

    def _call(
        self,
        executor: concurrent.futures.Executor,
        what: str,
        fn: Callable[..., _T],
        *args: object,
    ) -> _T:
        """Run *fn* on the worker and wait for it, observing cancellation."""
        if self._cancel_event.is_set():
            msg = f"Operation cancelled before {what}"
            raise Cancelled(msg, stage=what)

        future = executor.submit(fn, *args)
        while True:
            done, _ = concurrent.futures.wait([future], timeout=self._config.cancel_check_seconds)
            if done:
                return future.result()
            if self._cancel_event.is_set():
                future.cancel()
                msg = f"Operation cancelled during {what}"
                raise Cancelled(msg, stage=what)

    def _wait(self, delay: float) -> bool:
        if self._wait_override is not None:
            return self._wait_override(delay) or self._cancel_event.is_set()
        return self._cancel_event.wait(delay)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _deadline(self, started: StartResponse) -> float | None:
        budgets = []
        if self._config.poll_timeout_seconds > 0:
            budgets.append(self._config.poll_timeout_seconds)
        if started.expires_in_seconds is not None:
            budgets.append(started.expires_in_seconds)
        return self._started_at + min(budgets) if budgets else None

    def _elapsed(self) -> float:
        return self._clock() - self._started_at

    def _fail(self, reason: TrackerError, result: PollResult | None = None) -> OperationState:
        """Fail the run; *result* keeps a succeeded poll's payload and artifact."""
        if not reason.correlation_id:
            reason.correlation_id = self._correlation_id
        if result is None:
            return self._transition(OperationState.failed(reason))
        return self._transition(
            OperationState.failed(reason, result=result.result, artifact=result.artifact)
        )

    def _log_retry(self, what: str, failures: int, exc: TrackerError) -> None:
        logger.warning(
            "%s error (retry %d/%d) | client=%s | correlation_id=%s | error=%s",
            what,
            failures,
            self._config.max_transport_retries,
            self._client.name,
            self._correlation_id,
            exc,
        )

    def _exhausted(
        self,
        what: str,
        stage: str,
        failures: int,
        exc: TrackerError,
    ) -> ExhaustedRetries:
        logger.error(
            "%s retries exhausted | client=%s | correlation_id=%s | attempts=%d | error=%s",
            what,
            self._client.name,
            self._correlation_id,
            failures,
            exc,
        )
        exhausted = ExhaustedRetries(
            f"{what} failed {failures} times in a row: {exc.message}",
            attempts=failures,
            stage=stage,
        )
        exhausted.__cause__ = exc
        return exhausted

    def _transition(self, new_state: OperationState) -> OperationState:
        current = self._state
        if current is not None and (
            current.is_terminal or _STATUS_RANK[new_state.status] < _STATUS_RANK[current.status]
        ):
            msg = f"Illegal transition {current.status.value} -> {new_state.status.value}"
            raise RuntimeError(msg)

        self._state = new_state
        if new_state.is_terminal:
            logger.info(
                "Operation run completed | client=%s | correlation_id=%s | status=%s | "
                "kind=%s | polls=%d | slow_downs=%d | elapsed=%.2fs",
                self._client.name,
                self._correlation_id,
                new_state.status.value,
                new_state.failure_kind.value if new_state.failure_kind else "",
                self._attempt,
                self._scheduler.slow_down_count,
                self._elapsed(),
            )
        self._emit(new_state)
        return new_state

    def _emit(self, state: OperationState) -> None:
        if self._sink is None:
            return
        observation = ProgressObservation(
            state=state,
            attempt=self._attempt,
            elapsed_seconds=self._elapsed(),
            handle=self.handle,
            correlation_id=self._correlation_id,
            details=dict(self._start_response.details) if self._start_response else {},
        )
        try:
            self._sink(observation)
        except Exception:
            logger.warning(
                "Progress sink raised; ignoring | correlation_id=%s | status=%s",
                self._correlation_id,
                state.status.value,
                exc_info=True,
            )


def _start_error(client_name: str, cause: TrackerError) -> StartError:
    err = StartError(f"Failed to start {client_name} operation: {cause.message}", cause=cause)
    err.__cause__ = cause
    return err


def _remote_failure(result: PollResult) -> TrackerError:
    kind = result.failure_kind or FailureKind.PERMANENT
    error_cls = _REMOTE_FAILURES.get(kind, PermanentFailure)
    return error_cls(result.reason or f"Operation failed ({kind.value})")
