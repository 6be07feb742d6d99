"""Unified tracker exception taxonomy.

Provides a shared base exception hierarchy for the operation tracker,
its remote clients and the artifact cache. Every domain exception
inherits from ``TrackerError`` and carries structured context fields
that enable consistent retry decisions and an actionable, per-kind
message in the surrounding application.

Taxonomy categories
-------------------
- ``ValidationError``   — input/contract violations, never retryable.
- ``TransientError``    — temporary failures (network, dropped transfer), retryable.
- ``PermanentError``    — unrecoverable failures, not retryable.
- ``ContractError``     — malformed remote responses, never retryable.

Concrete failures also carry a ``FailureKind`` so that callers can tell
"network" from "expired" from "rejected" from "storage" without
inspecting exception classes.

Every exception exposes ``to_error_dict()`` for a stable structured
error payload suitable for logging and display.
"""

from __future__ import annotations

import enum


class FailureKind(enum.Enum):
    """User-facing failure category of a terminal ``Failed`` state."""

    START = "start"
    NETWORK = "network"
    EXPIRED = "expired"
    REJECTED = "rejected"
    PERMANENT = "permanent"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    INVALID_REFERENCE = "invalid_reference"
    TRANSFER = "transfer"
    STORAGE = "storage"
    CREDENTIALS = "credentials"
    CONTRACT = "contract"
    VALIDATION = "validation"


class TrackerError(Exception):
    """Base exception for all tracker-domain errors.

    Attributes:
        message: Human-readable error description.
        stage: Stage where the error occurred
            (e.g. ``"start"``, ``"poll"``, ``"resolve_artifact"``).
        code: Machine-readable error code (e.g. ``"START_FAILED"``).
        retryable: Whether the tracker may retry the call.
        correlation_id: Run correlation identifier.
    """

    #: Default stage for subclasses (override via class attribute or kwarg).
    default_stage: str = ""
    #: Default code for subclasses (override via class attribute or kwarg).
    default_code: str = ""
    #: Failure kind reported to the application.
    kind: FailureKind = FailureKind.PERMANENT

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool = False,
        correlation_id: str = "",
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = retryable
        self.correlation_id = correlation_id
        super().__init__(message)

    @property
    def category(self) -> str:
        """Return the error category based on concrete class."""
        if isinstance(self, ContractError):
            return "contract"
        if isinstance(self, ValidationError):
            return "validation"
        if isinstance(self, TransientError):
            return "transient"
        if isinstance(self, PermanentError):
            return "permanent"
        return "transient" if self.retryable else "permanent"

    def to_error_dict(self) -> dict[str, object]:
        """Return a structured error payload with stable keys."""
        return {
            "category": self.category,
            "kind": self.kind.value,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "retryable": self.retryable,
            "correlation_id": self.correlation_id,
        }


# ---------------------------------------------------------------------------
# Category base classes
# ---------------------------------------------------------------------------


class ValidationError(TrackerError):
    """Input or domain-model validation failure. Never retryable."""

    kind = FailureKind.VALIDATION

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class TransientError(TrackerError):
    """Temporary failure that may succeed on retry."""

    kind = FailureKind.NETWORK

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class PermanentError(TrackerError):
    """Unrecoverable failure. Not retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class ContractError(TrackerError):
    """Malformed or unexpected remote response. Never retryable."""

    kind = FailureKind.CONTRACT

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Operation failures
# ---------------------------------------------------------------------------


class StartError(PermanentError):
    """The ``start`` call failed; the operation never began.

    Attributes:
        cause: The underlying error raised by the client, if any.
    """

    default_stage = "start"
    default_code = "START_FAILED"
    kind = FailureKind.START

    def __init__(self, message: str, *, cause: TrackerError | None = None) -> None:
        self.cause = cause
        super().__init__(message)

    @property
    def cause_kind(self) -> FailureKind | None:
        """Kind of the underlying error (e.g. ``NETWORK`` for an unreachable service)."""
        return self.cause.kind if self.cause is not None else None


class TransportError(TransientError):
    """Network-level failure talking to the remote service."""

    default_stage = "poll"
    default_code = "TRANSPORT_FAILED"


class ExpiredOrInvalidGrant(PermanentError):
    """The grant or operation handle expired or is no longer valid."""

    default_stage = "poll"
    default_code = "GRANT_EXPIRED"
    kind = FailureKind.EXPIRED


class RejectedError(PermanentError):
    """The remote side rejected the operation (e.g. consent denied)."""

    default_stage = "poll"
    default_code = "OPERATION_REJECTED"
    kind = FailureKind.REJECTED


class PermanentFailure(PermanentError):
    """The remote operation reached a permanent failure state."""

    default_stage = "poll"
    default_code = "OPERATION_FAILED"


class ExhaustedRetries(PermanentError):
    """Consecutive transport failures exceeded the retry ceiling.

    Attributes:
        attempts: Number of consecutive failed attempts (polls or artifact
            fetches, per ``stage``).
    """

    default_stage = "poll"
    default_code = "RETRIES_EXHAUSTED"
    kind = FailureKind.NETWORK

    def __init__(self, message: str, *, attempts: int, stage: str = "") -> None:
        self.attempts = attempts
        super().__init__(message, stage=stage)


class DeadlineExceeded(PermanentError):
    """The polling budget ran out before a terminal response."""

    default_stage = "poll"
    default_code = "DEADLINE_EXCEEDED"
    kind = FailureKind.TIMEOUT


class Cancelled(PermanentError):
    """The caller cancelled the operation."""

    default_stage = "run"
    default_code = "CANCELLED"
    kind = FailureKind.CANCELLED


class CredentialError(PermanentError):
    """Credentials could not be obtained from the credential context."""

    default_stage = "credentials"
    default_code = "CREDENTIALS_UNAVAILABLE"
    kind = FailureKind.CREDENTIALS


class ResponseContractError(ContractError):
    """A remote response could not be decoded or violated its schema."""

    default_code = "RESPONSE_CONTRACT_VIOLATION"


# ---------------------------------------------------------------------------
# Artifact resolution failures
# ---------------------------------------------------------------------------


class InvalidReference(ValidationError):
    """An artifact reference could not be parsed. Never retried.

    Attributes:
        uri: The offending reference string.
    """

    default_stage = "resolve_artifact"
    default_code = "INVALID_REFERENCE"
    kind = FailureKind.INVALID_REFERENCE

    def __init__(self, uri: str, message: str) -> None:
        self.uri = uri
        super().__init__(f"Invalid artifact reference {uri!r}: {message}")


class TransferError(TransientError):
    """Fetching the remote artifact failed or returned an incomplete body.

    Attributes:
        missing: ``True`` when the remote object does not exist.
    """

    default_stage = "resolve_artifact"
    default_code = "TRANSFER_FAILED"
    kind = FailureKind.TRANSFER

    def __init__(self, message: str, *, missing: bool = False) -> None:
        self.missing = missing
        super().__init__(message, retryable=not missing)

    def to_error_dict(self) -> dict[str, object]:
        payload = super().to_error_dict()
        payload["missing"] = self.missing
        return payload


class StorageError(PermanentError):
    """The artifact could not be written to local storage."""

    default_stage = "resolve_artifact"
    default_code = "STORAGE_FAILED"
    kind = FailureKind.STORAGE
