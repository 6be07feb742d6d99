"""Poll operation activity — one classified status query.

The tracker calls this once per loop iteration. It validates the
handle, asks the client for the current status and logs the classified
outcome. Client errors propagate unchanged; the tracker decides whether
they are retried.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from op_tracker.core.exceptions import ResponseContractError, ValidationError
from op_tracker.models.operation import PollResult

if TYPE_CHECKING:
    from op_tracker.models.operation import CallContext
    from op_tracker.providers.base import RemoteOperationClient

logger = logging.getLogger(__name__)


class PollError(ValidationError):
    """Raised when a poll cannot be issued (e.g. missing handle)."""

    default_stage = "poll"
    default_code = "POLL_REJECTED"


def poll_operation(
    client: RemoteOperationClient,
    handle: str,
    context: CallContext,
) -> PollResult:
    """Check the current status of a remote operation.

    Args:
        client: The remote operation client.
        handle: Opaque handle returned by ``start``.
        context: Credentials/region for this call.

    Returns:
        The client's ``PollResult``.

    Raises:
        PollError: If *handle* is empty.
        ResponseContractError: If the client returned something other
            than a ``PollResult``.
        TrackerError: Whatever the client raised.
    """
    if not handle:
        msg = "poll_operation: operation handle is missing"
        raise PollError(msg, correlation_id=context.correlation_id)

    result = client.poll(handle, context)
    if not isinstance(result, PollResult):
        msg = f"{client.name}.poll returned {type(result).__name__}, expected PollResult"
        raise ResponseContractError(msg, stage="poll", correlation_id=context.correlation_id)

    logger.debug(
        "poll_operation completed | client=%s | correlation_id=%s | outcome=%s | terminal=%s",
        client.name,
        context.correlation_id,
        result.outcome.value,
        result.is_terminal,
    )
    return result
