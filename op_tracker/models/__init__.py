"""Data models and schemas.

Defines the data structures used throughout the tracker:
- OperationState / PollResult / PollHint: the polling state machine
- ArtifactReference / CacheEntry: artifact resolution
- DeviceAuthorization / TokenGrant: OAuth2 device-flow responses
"""

from op_tracker.models.artifact import ArtifactReference, CacheEntry
from op_tracker.models.auth import DeviceAuthorization, OAuthErrorBody, TokenGrant
from op_tracker.models.operation import (
    CallContext,
    Credentials,
    OperationState,
    OperationStatus,
    PollHint,
    PollOutcome,
    PollResult,
    ProgressObservation,
    StartResponse,
)
from op_tracker.models.validation import ModelValidationError

__all__ = [
    "ArtifactReference",
    "CacheEntry",
    "CallContext",
    "Credentials",
    "DeviceAuthorization",
    "ModelValidationError",
    "OAuthErrorBody",
    "OperationState",
    "OperationStatus",
    "PollHint",
    "PollOutcome",
    "PollResult",
    "ProgressObservation",
    "StartResponse",
    "TokenGrant",
]
