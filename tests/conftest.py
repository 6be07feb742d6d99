"""Shared pytest fixtures for the operation tracker test suite.

The fakes here stand in for the remote collaborators: a scripted
start/poll client, an in-memory artifact transport and a recording
progress sink. No test touches the network or sleeps for real beyond
sub-second ticks.
"""

from __future__ import annotations

import contextlib
import threading
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path

import pytest

from op_tracker.core.config import TrackerConfig
from op_tracker.core.exceptions import TrackerError, TransferError
from op_tracker.models.artifact import ArtifactReference
from op_tracker.models.operation import (
    CallContext,
    PollResult,
    ProgressObservation,
    StartResponse,
)
from op_tracker.providers.base import ArtifactTransport, FetchedArtifact, RemoteOperationClient

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

#: One scripted poll step: a result, an error to raise, or a callable.
PollStep = PollResult | TrackerError | Callable[[], PollResult]


class ScriptedClient(RemoteOperationClient):
    """Client replaying scripted poll responses in order.

    The last step repeats once the script is exhausted.
    """

    name = "scripted"

    def __init__(
        self,
        steps: Sequence[PollStep],
        *,
        start_response: StartResponse | None = None,
        start_error: TrackerError | None = None,
    ) -> None:
        self._steps = list(steps)
        self._start_response = start_response or StartResponse(handle="op-123")
        self._start_error = start_error
        self.start_calls = 0
        self.poll_calls = 0
        self.contexts: list[CallContext] = []

    def start(self, request: object, context: CallContext) -> StartResponse:
        self.start_calls += 1
        self.contexts.append(context)
        if self._start_error is not None:
            raise self._start_error
        return self._start_response

    def poll(self, handle: str, context: CallContext) -> PollResult:
        self.poll_calls += 1
        self.contexts.append(context)
        step = self._steps.pop(0) if len(self._steps) > 1 else self._steps[0]
        if isinstance(step, TrackerError):
            raise step
        if callable(step):
            return step()
        return step


class MemoryTransport(ArtifactTransport):
    """Artifact transport serving bytes from a dict.

    Args:
        objects: Body bytes per reference URI.
        declared_sizes: Size to announce per URI (defaults to the real size).
        chunk_size: Bytes per yielded chunk.
        gate: When given, every fetch blocks on it before yielding bytes.
        failures: Number of leading fetches per URI that drop with a
            retryable ``TransferError``.
    """

    def __init__(
        self,
        objects: dict[str, bytes] | None = None,
        *,
        declared_sizes: dict[str, int | None] | None = None,
        chunk_size: int = 4,
        gate: threading.Event | None = None,
        failures: dict[str, int] | None = None,
    ) -> None:
        self.objects = dict(objects or {})
        self._declared_sizes = dict(declared_sizes or {})
        self._chunk_size = chunk_size
        self._gate = gate
        self._failures = dict(failures or {})
        self._lock = threading.Lock()
        self.fetch_calls = 0

    @contextlib.contextmanager
    def fetch(self, reference: ArtifactReference, context: CallContext) -> Iterator[FetchedArtifact]:
        with self._lock:
            self.fetch_calls += 1
        if reference.uri not in self.objects:
            msg = f"Remote artifact not found: {reference.uri}"
            raise TransferError(msg, missing=True)
        with self._lock:
            remaining = self._failures.get(reference.uri, 0)
            self._failures[reference.uri] = max(remaining - 1, 0)
        if remaining:
            msg = "connection reset"
            raise TransferError(msg)
        if self._gate is not None:
            self._gate.wait(5)

        data = self.objects[reference.uri]
        size = self._declared_sizes.get(reference.uri, len(data))
        yield FetchedArtifact(chunks=self._chunks(data), size_bytes=size)

    def _chunks(self, data: bytes) -> Iterator[bytes]:
        for offset in range(0, len(data), self._chunk_size):
            yield data[offset : offset + self._chunk_size]


class RecordingSink:
    """Progress sink recording every observation."""

    def __init__(self) -> None:
        self.observations: list[ProgressObservation] = []

    def __call__(self, observation: ProgressObservation) -> None:
        self.observations.append(observation)

    @property
    def statuses(self) -> list[str]:
        return [o.state.status.value for o in self.observations]


class RecordingWait:
    """Inter-poll wait replacement recording requested delays without sleeping."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, delay: float) -> bool:
        self.delays.append(delay)
        return False


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fast_config(tmp_path: Path) -> TrackerConfig:
    """Tracker configuration with sub-second cadence and a temp cache dir."""
    return TrackerConfig(
        poll_interval_seconds=0.01,
        slow_down_step_seconds=0.01,
        max_poll_interval_seconds=0.05,
        max_transport_retries=3,
        poll_timeout_seconds=0,
        cancel_check_seconds=0.01,
        cache_dir=str(tmp_path / "cache"),
    )


@pytest.fixture()
def scripted_client() -> type[ScriptedClient]:
    """Return the scripted client class."""
    return ScriptedClient


@pytest.fixture()
def memory_transport() -> type[MemoryTransport]:
    """Return the in-memory transport class."""
    return MemoryTransport


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def recording_wait() -> RecordingWait:
    return RecordingWait()
