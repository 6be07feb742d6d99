"""Abstract collaborators consumed by the tracker and the artifact cache.

The tracker interacts exclusively with these interfaces; it never
knows (or cares) which concrete service is behind them.

Lifecycle:
    1. ``RemoteOperationClient.start(request, context)`` — begin the operation.
    2. ``RemoteOperationClient.poll(handle, context)``   — classify its status.
    3. ``ArtifactTransport.fetch(reference, context)``   — stream the artifact.

``CredentialContext`` supplies short-lived credentials and the region
before each of those calls; the core never caches or refreshes them.

Concrete clients report failures by raising ``TrackerError``
subclasses: ``TransportError`` for network faults (retried by the
tracker), anything else for permanent failures.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import TYPE_CHECKING

from op_tracker.core.exceptions import CredentialError
from op_tracker.models.operation import CallContext

if TYPE_CHECKING:
    from collections.abc import Iterator
    from contextlib import AbstractContextManager

    from op_tracker.models.artifact import ArtifactReference
    from op_tracker.models.operation import (
        Credentials,
        PollResult,
        StartResponse,
    )


class RemoteOperationClient(abc.ABC):
    """Abstract base class for remote asynchronous operation clients.

    Example usage::

        client = DeviceAuthorizationClient(device_url, token_url, client_id="app")
        started = client.start(DeviceLoginRequest(scopes=("openid",)), CallContext())
        result = client.poll(started.handle, CallContext())
    """

    #: Short name used in logs.
    name: str = "remote"

    #: Whether ``start``/``poll`` need credentials from the credential context.
    requires_credentials: bool = False

    @abc.abstractmethod
    def start(self, request: object, context: CallContext) -> StartResponse:
        """Begin the remote operation described by *request*.

        Returns:
            A ``StartResponse`` carrying the opaque operation handle.

        Raises:
            TrackerError: If the request is malformed, rejected, or the
                service is unreachable.
        """

    @abc.abstractmethod
    def poll(self, handle: str, context: CallContext) -> PollResult:
        """Query the status of the operation identified by *handle*.

        Returns:
            A classified ``PollResult``.

        Raises:
            TransportError: On network failure (retryable).
            TrackerError: On any other failure (terminal).
        """


@dataclass(frozen=True, slots=True)
class FetchedArtifact:
    """An open artifact body being streamed from remote storage.

    Attributes:
        chunks: Iterator over the body bytes.
        size_bytes: Expected total size, when the remote side declares it.
        content_type: MIME type reported by the remote side.
    """

    chunks: Iterator[bytes]
    size_bytes: int | None = None
    content_type: str = "application/octet-stream"


class ArtifactTransport(abc.ABC):
    """Fetches artifact bytes from remote storage."""

    #: Whether ``fetch`` needs credentials from the credential context.
    requires_credentials: bool = False

    @abc.abstractmethod
    def fetch(
        self,
        reference: ArtifactReference,
        context: CallContext,
    ) -> AbstractContextManager[FetchedArtifact]:
        """Open *reference* for streaming.

        The returned context manager releases the underlying connection
        on exit; iterating ``chunks`` may raise ``TransferError``.

        Raises:
            TransferError: If the object is missing or the transfer fails.
            InvalidReference: If the reference scheme is not supported.
        """


class CredentialContext(abc.ABC):
    """Supplies credentials and region for authorised calls."""

    @abc.abstractmethod
    def current_credentials(self) -> Credentials:
        """Return currently valid credentials.

        Raises:
            CredentialError: If no credentials are available.
        """

    @abc.abstractmethod
    def region(self) -> str:
        """Return the service region."""


class StaticCredentialContext(CredentialContext):
    """Credential context with fixed credentials and region."""

    def __init__(self, credentials: Credentials | None, region: str = "") -> None:
        self._credentials = credentials
        self._region = region

    def current_credentials(self) -> Credentials:
        if self._credentials is None:
            msg = "No credentials configured"
            raise CredentialError(msg)
        return self._credentials

    def region(self) -> str:
        return self._region


def build_call_context(
    credential_context: CredentialContext | None,
    *,
    requires_credentials: bool,
    correlation_id: str = "",
) -> CallContext:
    """Build the ``CallContext`` for one remote call.

    Credentials are fetched fresh on every call and only when the
    collaborator needs them.

    Raises:
        CredentialError: If credentials are required but unavailable.
    """
    if credential_context is None:
        if requires_credentials:
            msg = "Credentials required but no credential context configured"
            raise CredentialError(msg, correlation_id=correlation_id)
        return CallContext(correlation_id=correlation_id)

    credentials = credential_context.current_credentials() if requires_credentials else None
    return CallContext(
        credentials=credentials,
        region=credential_context.region(),
        correlation_id=correlation_id,
    )
