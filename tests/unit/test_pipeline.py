"""Tests for the pipeline entry points.

Runs the generation-job flow end to end with a mocked RPC stub, an
in-memory transport and a real on-disk cache.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from op_tracker.cache.artifact_cache import ArtifactCache, local_key_for
from op_tracker.core.exceptions import InvalidReference, StartError
from op_tracker.models.operation import Credentials, OperationStatus, PollResult
from op_tracker.orchestrators.pipeline import resolve_artifact, track_operation
from op_tracker.orchestrators.tracker import OperationTracker
from op_tracker.providers.base import StaticCredentialContext
from op_tracker.providers.generation_job import (
    AsyncInvokeService,
    GenerationJobClient,
    GenerationRequest,
    JobInfo,
)


class TestTrackOperation:
    def test_generation_job_flow(self, fast_config, memory_transport, sink, tmp_path: Path) -> None:
        service = MagicMock(spec=AsyncInvokeService)
        service.start_async_invoke.return_value = "job-42"
        service.get_async_invoke.side_effect = [
            JobInfo("job-42", "InProgress"),
            JobInfo("job-42", "Completed", output_uri="s3://media/videos/job-42"),
        ]
        artifact = "s3://media/videos/job-42/output.mp4"
        transport = memory_transport({artifact: b"mp4-bytes"})
        cache = ArtifactCache(tmp_path / "cache", transport)
        credentials = StaticCredentialContext(Credentials(access_token="tok"), region="us-east-1")

        state = track_operation(
            GenerationJobClient(service),
            GenerationRequest(model_id="video-v1", output_uri="s3://media/videos"),
            config=fast_config,
            cache=cache,
            credentials=credentials,
            sink=sink,
        )

        assert state.status is OperationStatus.SUCCEEDED
        assert state.artifact == artifact
        assert state.entry is not None
        assert state.entry.local_key == local_key_for(artifact)
        assert state.entry.path.read_bytes() == b"mp4-bytes"
        assert sink.statuses == ["pending", "in_progress", "succeeded"]
        assert service.get_async_invoke.call_count == 2

    def test_missing_credentials_fail_start(self, fast_config) -> None:
        service = MagicMock(spec=AsyncInvokeService)

        state = track_operation(
            GenerationJobClient(service),
            GenerationRequest(model_id="video-v1", output_uri="s3://media/videos"),
            config=fast_config,
        )

        assert isinstance(state.reason, StartError)
        service.start_async_invoke.assert_not_called()

    def test_prebuilt_tracker_is_used(self, scripted_client, fast_config) -> None:
        client = scripted_client([PollResult.succeeded("T")])
        tracker = OperationTracker(client, config=fast_config, wait=lambda _: False)

        state = track_operation(client, object(), tracker=tracker)

        assert state.result == "T"
        assert tracker.state is state


class TestResolveArtifact:
    def test_resolves_listed_job_output(self, memory_transport, tmp_path: Path) -> None:
        uri = "s3://media/videos/job-7/output.mp4"
        transport = memory_transport({uri: b"old-video"})
        cache = ArtifactCache(tmp_path, transport)

        entry = resolve_artifact(cache, uri)
        again = resolve_artifact(cache, uri)

        assert entry == again
        assert transport.fetch_calls == 1

    def test_invalid_reference_raises(self, memory_transport, tmp_path: Path) -> None:
        cache = ArtifactCache(tmp_path, memory_transport())
        with pytest.raises(InvalidReference):
            resolve_artifact(cache, "videos/job-7/output.mp4")
