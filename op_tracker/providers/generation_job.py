"""Asynchronous generation-job client.

Wraps an asynchronous-invocation service (the SDK stub is injected as an
``AsyncInvokeService``) behind the ``RemoteOperationClient`` contract:

- ``start`` submits the model input with an output location and returns
  the invocation identifier as the operation handle.
- ``poll`` maps the job status: ``InProgress`` (and any status the
  service adds later) is still running, ``Completed`` succeeds with the
  artifact ``<output_uri>/<artifact_name>``, ``Failed`` is a permanent
  failure carrying the service's failure message.
- ``list_jobs`` lists recent jobs, optionally filtered by status, so an
  application can re-open the artifact of an earlier job.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from op_tracker.core.constants import (
    DEFAULT_JOB_ARTIFACT_NAME,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_IN_PROGRESS,
)
from op_tracker.core.exceptions import FailureKind, ResponseContractError, ValidationError
from op_tracker.models.artifact import ArtifactReference
from op_tracker.models.operation import PollResult, StartResponse
from op_tracker.models.validation import check_non_empty
from op_tracker.providers.base import RemoteOperationClient

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from op_tracker.models.operation import CallContext

logger = logging.getLogger(__name__)

#: Job statuses accepted as ``list_jobs`` filters.
JOB_STATUSES = (JOB_STATUS_IN_PROGRESS, JOB_STATUS_COMPLETED, JOB_STATUS_FAILED)


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """Parameters of one generation job.

    Attributes:
        model_id: Identifier of the generating model.
        model_input: Model-specific input document (opaque to the tracker).
        output_uri: Storage location the service writes results under
            (e.g. ``s3://bucket/videos``).
    """

    model_id: str
    model_input: Mapping[str, Any] = field(default_factory=dict)
    output_uri: str = ""

    def __post_init__(self) -> None:
        check_non_empty("GenerationRequest", "model_id", self.model_id)
        check_non_empty("GenerationRequest", "output_uri", self.output_uri)


@dataclass(frozen=True, slots=True)
class JobInfo:
    """Status of one generation job as reported by the service.

    Attributes:
        invocation_id: Service-assigned job identifier.
        status: Raw status string (``InProgress``, ``Completed``, ``Failed``).
        output_uri: Output location of the job, if known.
        submitted_at: Submission time, if known.
        failure_message: Service failure message for failed jobs.
    """

    invocation_id: str
    status: str
    output_uri: str | None = None
    submitted_at: datetime | None = None
    failure_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JOB_STATUS_COMPLETED, JOB_STATUS_FAILED)


class AsyncInvokeService(abc.ABC):
    """Asynchronous-invocation RPC stub (implemented by an SDK adapter)."""

    @abc.abstractmethod
    def start_async_invoke(
        self,
        model_id: str,
        model_input: Mapping[str, Any],
        output_uri: str,
        context: CallContext,
    ) -> str:
        """Submit a job and return its invocation identifier."""

    @abc.abstractmethod
    def get_async_invoke(self, invocation_id: str, context: CallContext) -> JobInfo:
        """Return the current status of a job."""

    @abc.abstractmethod
    def list_async_invokes(
        self,
        max_results: int,
        status: str | None,
        context: CallContext,
    ) -> list[JobInfo]:
        """List recent jobs, newest first."""


class GenerationJobClient(RemoteOperationClient):
    """Track asynchronous generation jobs.

    Args:
        service: The asynchronous-invocation RPC stub.
        artifact_name: Object name the service writes under the output
            location on success.
    """

    name = "generation_job"
    requires_credentials = True

    def __init__(
        self,
        service: AsyncInvokeService,
        *,
        artifact_name: str = DEFAULT_JOB_ARTIFACT_NAME,
    ) -> None:
        self._service = service
        self._artifact_name = artifact_name

    def start(self, request: object, context: CallContext) -> StartResponse:
        """Submit a generation job.

        Raises:
            ValidationError: If *request* is not a ``GenerationRequest``.
            InvalidReference: If the output location cannot be parsed.
            ResponseContractError: If the service returns no identifier.
        """
        if not isinstance(request, GenerationRequest):
            msg = f"Expected GenerationRequest, got {type(request).__name__}"
            raise ValidationError(msg, stage="start", correlation_id=context.correlation_id)

        # The artifact locator is derived from the output location, so an
        # unusable location must fail before any job is submitted.
        ArtifactReference.parse(self.artifact_uri(request.output_uri))

        invocation_id = self._service.start_async_invoke(
            request.model_id,
            request.model_input,
            request.output_uri,
            context,
        )
        if not invocation_id:
            msg = "Generation service returned no invocation identifier"
            raise ResponseContractError(msg, stage="start", correlation_id=context.correlation_id)

        logger.info(
            "Generation job started | correlation_id=%s | model=%s | invocation_id=%s",
            context.correlation_id,
            request.model_id,
            invocation_id,
        )
        return StartResponse(handle=invocation_id)

    def poll(self, handle: str, context: CallContext) -> PollResult:
        """Map the job status onto a ``PollResult``."""
        info = self._service.get_async_invoke(handle, context)

        if info.status == JOB_STATUS_FAILED:
            return PollResult.failed(
                info.failure_message or "Generation job failed",
                FailureKind.PERMANENT,
            )

        if info.status == JOB_STATUS_COMPLETED:
            if not info.output_uri:
                msg = f"Completed job {handle!r} reported no output location"
                raise ResponseContractError(msg, stage="poll", correlation_id=context.correlation_id)
            return PollResult.succeeded(info, artifact=self.artifact_uri(info.output_uri))

        if info.status != JOB_STATUS_IN_PROGRESS:
            logger.warning(
                "Unknown job status treated as in progress | invocation_id=%s | status=%s",
                handle,
                info.status,
            )
        return PollResult.pending()

    def list_jobs(
        self,
        context: CallContext,
        *,
        max_results: int = 10,
        status: str | None = None,
    ) -> list[JobInfo]:
        """List recent generation jobs.

        Args:
            context: Credentials/region for the call.
            max_results: Maximum number of jobs to return (>= 1).
            status: Optional status filter (one of ``JOB_STATUSES``).

        Raises:
            ValidationError: If the arguments are out of range.
        """
        if max_results < 1:
            msg = f"max_results must be >= 1, got {max_results}"
            raise ValidationError(msg, stage="list_jobs")
        if status is not None and status not in JOB_STATUSES:
            msg = f"Unknown job status filter {status!r}; expected one of {JOB_STATUSES}"
            raise ValidationError(msg, stage="list_jobs")
        return self._service.list_async_invokes(max_results, status, context)

    def artifact_uri(self, output_uri: str) -> str:
        """Return the artifact locator the service writes for *output_uri*."""
        return f"{output_uri.rstrip('/')}/{self._artifact_name}"
