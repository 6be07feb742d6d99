"""Typed models for a tracked remote operation.

Defines the data structures exchanged between the tracker and the
remote operation clients:

- ``PollHint``: Server guidance on poll cadence (interval, slow-down)
- ``PollResult``: Tagged variant classifying one poll response
- ``StartResponse``: Handle and initial guidance returned by ``start``
- ``OperationState``: Tracker state (pending / in progress / terminal)
- ``ProgressObservation``: What the tracker reports to a progress sink
- ``Credentials`` / ``CallContext``: Per-call authorisation context

Design notes:
- All models are frozen dataclasses for immutability.
- Operation handles are plain strings and are never parsed.
- No magic strings: states and poll outcomes are enums.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from op_tracker.core.exceptions import FailureKind, TrackerError
from op_tracker.models.validation import ModelValidationError, check_min, check_non_empty

if TYPE_CHECKING:
    from datetime import datetime

    from op_tracker.models.artifact import CacheEntry


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OperationStatus(enum.Enum):
    """Lifecycle state of a tracked operation.

    Values:
        PENDING:     ``start`` succeeded, no poll issued yet.
        IN_PROGRESS: At least one non-terminal poll response.
        SUCCEEDED:   Terminal success.
        FAILED:      Terminal failure (carries a ``TrackerError`` reason).
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PollOutcome(enum.Enum):
    """Classification of a single poll response."""

    PENDING = "pending"
    RATE_LIMITED = "rate_limited"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


#: Failure kinds a remote service can report for an operation.
REMOTE_FAILURE_KINDS = frozenset(
    {FailureKind.EXPIRED, FailureKind.REJECTED, FailureKind.PERMANENT}
)


# ---------------------------------------------------------------------------
# Poll models
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PollHint:
    """Per-poll server guidance.

    Attributes:
        suggested_interval_seconds: Server-directed poll interval. ``None``
            keeps the current interval.
        slow_down: Whether the server asked the client to poll slower.
    """

    suggested_interval_seconds: int | None = None
    slow_down: bool = False

    def __post_init__(self) -> None:
        if self.suggested_interval_seconds is not None:
            check_min("PollHint", "suggested_interval_seconds", self.suggested_interval_seconds, 0)


@dataclass(frozen=True, slots=True)
class PollResult:
    """Tagged result of one ``poll`` call.

    Build instances through the ``pending``, ``rate_limited``,
    ``succeeded`` and ``failed`` constructors.

    Attributes:
        outcome: The classification tag.
        hint: Optional cadence guidance (pending / rate-limited).
        result: Operation result payload (succeeded).
        artifact: Remote artifact locator produced by the operation (succeeded).
        reason: Failure description from the remote service (failed).
        failure_kind: Kind of remote failure (failed).
    """

    outcome: PollOutcome
    hint: PollHint | None = None
    result: object = None
    artifact: str | None = None
    reason: str = ""
    failure_kind: FailureKind | None = None

    def __post_init__(self) -> None:
        if self.outcome is PollOutcome.FAILED and self.failure_kind not in REMOTE_FAILURE_KINDS:
            raise ModelValidationError(
                "PollResult",
                "failure_kind",
                self.failure_kind,
                "must be one of expired, rejected, permanent for a failed poll",
            )

    @classmethod
    def pending(cls, hint: PollHint | None = None) -> PollResult:
        return cls(PollOutcome.PENDING, hint=hint)

    @classmethod
    def rate_limited(cls, hint: PollHint | None = None) -> PollResult:
        return cls(PollOutcome.RATE_LIMITED, hint=hint)

    @classmethod
    def succeeded(cls, result: object = None, artifact: str | None = None) -> PollResult:
        return cls(PollOutcome.SUCCEEDED, result=result, artifact=artifact)

    @classmethod
    def failed(cls, reason: str, kind: FailureKind = FailureKind.PERMANENT) -> PollResult:
        return cls(PollOutcome.FAILED, reason=reason, failure_kind=kind)

    @property
    def is_terminal(self) -> bool:
        return self.outcome in (PollOutcome.SUCCEEDED, PollOutcome.FAILED)


@dataclass(frozen=True, slots=True)
class StartResponse:
    """Response to a successful ``start`` call.

    Attributes:
        handle: Opaque operation handle (device code, invocation id).
        hint: Initial cadence guidance, if the service sent any.
        expires_in_seconds: Lifetime of the handle; bounds the polling budget.
        details: Caller-facing extras (e.g. user code, verification URI).
    """

    handle: str
    hint: PollHint | None = None
    expires_in_seconds: float | None = None
    details: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        check_non_empty("StartResponse", "handle", self.handle)
        if self.expires_in_seconds is not None:
            check_min("StartResponse", "expires_in_seconds", self.expires_in_seconds, 0)


# ---------------------------------------------------------------------------
# Tracker state
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class OperationState:
    """Observable state of a tracked operation.

    Attributes:
        status: Lifecycle status.
        result: Result payload. Set on ``SUCCEEDED``, and on ``FAILED`` when
            the remote operation succeeded but its artifact could not be
            resolved.
        artifact: Remote artifact locator of the result, if any. Kept on
            artifact failures so the caller can retry the download.
        entry: Local cache entry for ``artifact`` once resolved.
        reason: The failure (``FAILED`` only).
    """

    status: OperationStatus
    result: object = None
    artifact: str | None = None
    entry: CacheEntry | None = None
    reason: TrackerError | None = None

    def __post_init__(self) -> None:
        if self.status is OperationStatus.FAILED and self.reason is None:
            raise ModelValidationError("OperationState", "reason", None, "required when failed")

    @classmethod
    def pending(cls) -> OperationState:
        return cls(OperationStatus.PENDING)

    @classmethod
    def in_progress(cls) -> OperationState:
        return cls(OperationStatus.IN_PROGRESS)

    @classmethod
    def succeeded(
        cls,
        result: object = None,
        *,
        artifact: str | None = None,
        entry: CacheEntry | None = None,
    ) -> OperationState:
        return cls(OperationStatus.SUCCEEDED, result=result, artifact=artifact, entry=entry)

    @classmethod
    def failed(
        cls,
        reason: TrackerError,
        *,
        result: object = None,
        artifact: str | None = None,
    ) -> OperationState:
        return cls(OperationStatus.FAILED, result=result, artifact=artifact, reason=reason)

    @property
    def is_terminal(self) -> bool:
        """Whether no further polling can occur from this state."""
        return self.status in (OperationStatus.SUCCEEDED, OperationStatus.FAILED)

    @property
    def failure_kind(self) -> FailureKind | None:
        return self.reason.kind if self.reason is not None else None

    def to_dict(self) -> dict[str, object]:
        """Serialise to a plain dict for logging or display."""
        payload: dict[str, object] = {
            "status": self.status.value,
            "is_terminal": self.is_terminal,
            "artifact": self.artifact,
        }
        if self.entry is not None:
            payload["local_path"] = str(self.entry.path)
            payload["local_key"] = self.entry.local_key
        if self.reason is not None:
            payload["error"] = self.reason.to_error_dict()
        return payload


@dataclass(frozen=True, slots=True)
class ProgressObservation:
    """One progress report emitted to a caller-registered sink.

    Attributes:
        state: State after the transition.
        attempt: Number of polls issued so far.
        elapsed_seconds: Seconds since ``start`` was issued.
        handle: Operation handle (empty before ``start`` returns).
        correlation_id: Run correlation identifier.
        details: Caller-facing extras from ``start`` (e.g. user code).
    """

    state: OperationState
    attempt: int
    elapsed_seconds: float
    handle: str = ""
    correlation_id: str = ""
    details: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Call context
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Credentials:
    """Short-lived credentials supplied by a credential context.

    Attributes:
        access_token: Bearer token (or equivalent secret).
        token_type: Authorisation scheme for the token.
        expires_at: Expiry time, if known.
    """

    access_token: str
    token_type: str = "Bearer"
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        check_non_empty("Credentials", "access_token", self.access_token)

    def __repr__(self) -> str:
        return f"Credentials(token_type={self.token_type!r}, expires_at={self.expires_at!r})"

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"


@dataclass(frozen=True, slots=True)
class CallContext:
    """Authorisation context passed to every remote call.

    Attributes:
        credentials: Current credentials, or ``None`` for anonymous calls.
        region: Service region (empty when not applicable).
        correlation_id: Run correlation identifier.
    """

    credentials: Credentials | None = None
    region: str = ""
    correlation_id: str = ""
