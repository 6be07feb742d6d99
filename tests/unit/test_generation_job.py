"""Tests for the asynchronous generation-job client.

The RPC stub is a ``MagicMock`` specced on ``AsyncInvokeService``.
"""

from __future__ import annotations

import unittest
from datetime import UTC, datetime
from unittest.mock import MagicMock

from op_tracker.core.exceptions import (
    FailureKind,
    InvalidReference,
    ResponseContractError,
    ValidationError,
)
from op_tracker.models.operation import CallContext, Credentials, PollOutcome
from op_tracker.models.validation import ModelValidationError
from op_tracker.providers.generation_job import (
    AsyncInvokeService,
    GenerationJobClient,
    GenerationRequest,
    JobInfo,
)

_CONTEXT = CallContext(credentials=Credentials(access_token="tok"), region="us-east-1")


def _make_client(**kwargs: object) -> tuple[GenerationJobClient, MagicMock]:
    service = MagicMock(spec=AsyncInvokeService)
    return GenerationJobClient(service, **kwargs), service  # type: ignore[arg-type]


def _request(output_uri: str = "s3://media-bucket/videos") -> GenerationRequest:
    return GenerationRequest(
        model_id="video-model-v1",
        model_input={"taskType": "TEXT_VIDEO", "text": "a lighthouse at dusk"},
        output_uri=output_uri,
    )


class TestGenerationRequest(unittest.TestCase):
    def test_model_id_required(self) -> None:
        with self.assertRaises(ModelValidationError):
            GenerationRequest(model_id="", output_uri="s3://b/videos")

    def test_output_uri_required(self) -> None:
        with self.assertRaises(ModelValidationError):
            GenerationRequest(model_id="m")


class TestStart(unittest.TestCase):
    def test_start_returns_invocation_id(self) -> None:
        client, service = _make_client()
        service.start_async_invoke.return_value = "arn:job/abc123"

        started = client.start(_request(), _CONTEXT)

        assert started.handle == "arn:job/abc123"
        service.start_async_invoke.assert_called_once_with(
            "video-model-v1",
            {"taskType": "TEXT_VIDEO", "text": "a lighthouse at dusk"},
            "s3://media-bucket/videos",
            _CONTEXT,
        )

    def test_invalid_output_location_rejected_before_submit(self) -> None:
        client, service = _make_client()
        with self.assertRaises(InvalidReference):
            client.start(_request(output_uri="media-bucket/videos"), _CONTEXT)
        service.start_async_invoke.assert_not_called()

    def test_empty_invocation_id_is_contract_error(self) -> None:
        client, service = _make_client()
        service.start_async_invoke.return_value = ""
        with self.assertRaises(ResponseContractError):
            client.start(_request(), _CONTEXT)

    def test_wrong_request_type(self) -> None:
        client, service = _make_client()
        with self.assertRaises(ValidationError):
            client.start({"model_id": "m"}, _CONTEXT)
        service.start_async_invoke.assert_not_called()

    def test_requires_credentials(self) -> None:
        client, _ = _make_client()
        assert client.requires_credentials is True


class TestPoll(unittest.TestCase):
    def test_in_progress_is_pending(self) -> None:
        client, service = _make_client()
        service.get_async_invoke.return_value = JobInfo("id-1", "InProgress")
        result = client.poll("id-1", _CONTEXT)
        assert result.outcome is PollOutcome.PENDING

    def test_unknown_status_is_pending(self) -> None:
        client, service = _make_client()
        service.get_async_invoke.return_value = JobInfo("id-1", "Queued")
        with self.assertLogs("op_tracker.providers.generation_job", level="WARNING") as logs:
            result = client.poll("id-1", _CONTEXT)
        assert result.outcome is PollOutcome.PENDING
        assert "Unknown job status" in logs.output[0]

    def test_completed_yields_artifact(self) -> None:
        client, service = _make_client()
        info = JobInfo(
            "id-1",
            "Completed",
            output_uri="s3://media-bucket/videos/id-1/",
            submitted_at=datetime(2026, 3, 1, tzinfo=UTC),
        )
        service.get_async_invoke.return_value = info

        result = client.poll("id-1", _CONTEXT)

        assert result.outcome is PollOutcome.SUCCEEDED
        assert result.result is info
        assert result.artifact == "s3://media-bucket/videos/id-1/output.mp4"

    def test_custom_artifact_name(self) -> None:
        client, service = _make_client(artifact_name="video.mp4")
        service.get_async_invoke.return_value = JobInfo("id-1", "Completed", output_uri="s3://b/v")
        assert client.poll("id-1", _CONTEXT).artifact == "s3://b/v/video.mp4"

    def test_completed_without_output_is_contract_error(self) -> None:
        client, service = _make_client()
        service.get_async_invoke.return_value = JobInfo("id-1", "Completed")
        with self.assertRaises(ResponseContractError):
            client.poll("id-1", _CONTEXT)

    def test_failed_is_permanent(self) -> None:
        client, service = _make_client()
        service.get_async_invoke.return_value = JobInfo(
            "id-1", "Failed", failure_message="content policy violation"
        )
        result = client.poll("id-1", _CONTEXT)
        assert result.outcome is PollOutcome.FAILED
        assert result.failure_kind is FailureKind.PERMANENT
        assert result.reason == "content policy violation"

    def test_failed_without_message(self) -> None:
        client, service = _make_client()
        service.get_async_invoke.return_value = JobInfo("id-1", "Failed")
        assert client.poll("id-1", _CONTEXT).reason == "Generation job failed"


class TestListJobs(unittest.TestCase):
    def test_passes_through(self) -> None:
        client, service = _make_client()
        jobs = [JobInfo("a", "Completed", output_uri="s3://b/a"), JobInfo("b", "InProgress")]
        service.list_async_invokes.return_value = jobs

        listed = client.list_jobs(_CONTEXT, max_results=5, status="Completed")

        assert listed == jobs
        service.list_async_invokes.assert_called_once_with(5, "Completed", _CONTEXT)

    def test_defaults(self) -> None:
        client, service = _make_client()
        service.list_async_invokes.return_value = []
        client.list_jobs(_CONTEXT)
        service.list_async_invokes.assert_called_once_with(10, None, _CONTEXT)

    def test_invalid_max_results(self) -> None:
        client, _ = _make_client()
        with self.assertRaises(ValidationError):
            client.list_jobs(_CONTEXT, max_results=0)

    def test_invalid_status(self) -> None:
        client, _ = _make_client()
        with self.assertRaises(ValidationError):
            client.list_jobs(_CONTEXT, status="Cancelled")

    def test_job_info_terminal(self) -> None:
        assert JobInfo("a", "Completed").is_terminal is True
        assert JobInfo("a", "Failed").is_terminal is True
        assert JobInfo("a", "InProgress").is_terminal is False
