"""Pipeline entry points shared by the login and generation-job flows.

- ``track_operation``: build an ``OperationTracker`` from explicit
  dependencies and run one operation to its terminal state.
- ``resolve_artifact``: resolve an artifact reference outside a tracked
  run (e.g. re-opening the output of a job found with ``list_jobs``).

Both are thin: all policy lives in the tracker, the scheduler and the
cache. They exist so that the application has a single place where the
collaborators are wired together.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from op_tracker.orchestrators.tracker import OperationTracker

if TYPE_CHECKING:
    from collections.abc import Callable

    from op_tracker.cache.artifact_cache import ArtifactCache
    from op_tracker.core.config import TrackerConfig
    from op_tracker.models.artifact import CacheEntry
    from op_tracker.models.operation import OperationState, ProgressObservation
    from op_tracker.providers.base import CredentialContext, RemoteOperationClient

logger = logging.getLogger(__name__)


def track_operation(
    client: RemoteOperationClient,
    request: object,
    *,
    config: TrackerConfig | None = None,
    cache: ArtifactCache | None = None,
    credentials: CredentialContext | None = None,
    sink: Callable[[ProgressObservation], None] | None = None,
    tracker: OperationTracker | None = None,
) -> OperationState:
    """Run one remote operation to completion.

    Args:
        client: Remote operation client.
        request: Client-specific request (``DeviceLoginRequest``,
            ``GenerationRequest``).
        config: Tracker configuration; defaults apply when omitted.
        cache: Artifact cache for results that reference an artifact.
        credentials: Credential context for authorised calls.
        sink: Optional progress sink.
        tracker: Pre-built tracker, so the caller can keep a reference
            for ``cancel()``. The other collaborator arguments are ignored
            when given.

    Returns:
        The terminal ``OperationState``. Failures are returned, not raised.
    """
    if tracker is None:
        tracker = OperationTracker(
            client,
            config=config,
            credentials=credentials,
            cache=cache,
            sink=sink,
        )

    state = tracker.run(request)
    logger.info(
        "track_operation finished | client=%s | correlation_id=%s | status=%s",
        client.name,
        tracker.correlation_id,
        state.status.value,
    )
    return state


def resolve_artifact(cache: ArtifactCache, uri: str, *, correlation_id: str = "") -> CacheEntry:
    """Resolve *uri* into a local cache entry.

    Raises:
        InvalidReference: If *uri* cannot be parsed.
        TransferError: If the remote fetch fails or is incomplete.
        StorageError: If the local write fails.
    """
    return cache.resolve(uri, correlation_id=correlation_id)
