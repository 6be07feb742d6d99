"""Tests for the tracker domain models.

Covers:
- PollHint / PollResult / StartResponse invariants
- OperationState transitions helpers and ``to_dict``
- Credentials redaction
- ArtifactReference parsing (valid and malformed references)
- pydantic device-flow response models
"""

from __future__ import annotations

import unittest
from datetime import UTC, datetime
from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from op_tracker.core.exceptions import FailureKind, InvalidReference, RejectedError
from op_tracker.models.artifact import ArtifactReference, CacheEntry
from op_tracker.models.auth import DeviceAuthorization, OAuthErrorBody, TokenGrant
from op_tracker.models.operation import (
    Credentials,
    OperationState,
    OperationStatus,
    PollHint,
    PollOutcome,
    PollResult,
    StartResponse,
)
from op_tracker.models.validation import ModelValidationError


class TestPollModels(unittest.TestCase):
    def test_hint_defaults(self) -> None:
        hint = PollHint()
        assert hint.suggested_interval_seconds is None
        assert hint.slow_down is False

    def test_hint_negative_interval_rejected(self) -> None:
        with self.assertRaises(ModelValidationError):
            PollHint(suggested_interval_seconds=-1)

    def test_pending_is_not_terminal(self) -> None:
        result = PollResult.pending(PollHint(suggested_interval_seconds=10))
        assert result.outcome is PollOutcome.PENDING
        assert result.hint == PollHint(suggested_interval_seconds=10)
        assert result.is_terminal is False

    def test_rate_limited_is_not_terminal(self) -> None:
        assert PollResult.rate_limited(PollHint(slow_down=True)).is_terminal is False

    def test_succeeded_carries_result_and_artifact(self) -> None:
        result = PollResult.succeeded("T", artifact="s3://b/k.mp4")
        assert result.is_terminal is True
        assert result.result == "T"
        assert result.artifact == "s3://b/k.mp4"

    def test_failed_defaults_to_permanent(self) -> None:
        result = PollResult.failed("boom")
        assert result.is_terminal is True
        assert result.failure_kind is FailureKind.PERMANENT

    def test_failed_rejects_non_remote_kind(self) -> None:
        with self.assertRaises(ModelValidationError):
            PollResult.failed("boom", FailureKind.NETWORK)

    def test_start_response_requires_handle(self) -> None:
        with self.assertRaises(ModelValidationError):
            StartResponse(handle="")

    def test_start_response_negative_expiry_rejected(self) -> None:
        with self.assertRaises(ModelValidationError):
            StartResponse(handle="h", expires_in_seconds=-1)


class TestOperationState(unittest.TestCase):
    def test_pending_and_in_progress_not_terminal(self) -> None:
        assert OperationState.pending().is_terminal is False
        assert OperationState.in_progress().is_terminal is False

    def test_succeeded_is_terminal(self) -> None:
        state = OperationState.succeeded("T")
        assert state.status is OperationStatus.SUCCEEDED
        assert state.is_terminal is True
        assert state.failure_kind is None

    def test_failed_requires_reason(self) -> None:
        with self.assertRaises(ModelValidationError):
            OperationState(OperationStatus.FAILED)

    def test_failed_exposes_kind(self) -> None:
        state = OperationState.failed(RejectedError("denied"))
        assert state.is_terminal is True
        assert state.failure_kind is FailureKind.REJECTED

    def test_to_dict_failed(self) -> None:
        payload = OperationState.failed(RejectedError("denied", correlation_id="cid")).to_dict()
        assert payload["status"] == "failed"
        assert payload["is_terminal"] is True
        error = payload["error"]
        assert isinstance(error, dict)
        assert error["kind"] == "rejected"
        assert error["correlation_id"] == "cid"

    def test_to_dict_with_entry(self) -> None:
        entry = CacheEntry(
            local_key="abc",
            path=Path("/tmp/abc.mp4"),
            size_bytes=3,
            written_at=datetime(2026, 1, 1, tzinfo=UTC),
            reference="s3://b/k.mp4",
        )
        payload = OperationState.succeeded("r", artifact="s3://b/k.mp4", entry=entry).to_dict()
        assert payload["local_key"] == "abc"
        assert payload["local_path"] == str(Path("/tmp/abc.mp4"))
        assert "error" not in payload


class TestCredentials:
    def test_repr_hides_token(self) -> None:
        creds = Credentials(access_token="super-secret")
        assert "super-secret" not in repr(creds)

    def test_authorization_header(self) -> None:
        assert Credentials(access_token="abc").authorization_header == "Bearer abc"

    def test_empty_token_rejected(self) -> None:
        with pytest.raises(ModelValidationError):
            Credentials(access_token="")


class TestArtifactReference:
    def test_parse_s3(self) -> None:
        ref = ArtifactReference.parse("s3://bucket/videos/output.mp4")
        assert ref.scheme == "s3"
        assert ref.bucket == "bucket"
        assert ref.key == "videos/output.mp4"
        assert ref.uri == "s3://bucket/videos/output.mp4"
        assert ref.suffix == ".mp4"

    def test_scheme_lowercased_uri_kept(self) -> None:
        ref = ArtifactReference.parse("S3://bucket/k")
        assert ref.scheme == "s3"
        assert ref.uri == "S3://bucket/k"

    def test_suffix_absent(self) -> None:
        assert ArtifactReference.parse("s3://b/dir/output").suffix == ""

    def test_suffix_ignores_dotfile(self) -> None:
        assert ArtifactReference.parse("s3://b/dir/.hidden").suffix == ""

    def test_suffix_uses_last_segment(self) -> None:
        assert ArtifactReference.parse("s3://b/v1.2/output").suffix == ""

    @pytest.mark.parametrize(
        "uri",
        [
            "",
            "not a reference",
            "s3://",
            "s3://bucket",
            "s3://bucket/",
            "s3:///key",
            "s3://bucket/dir/",
            "://bucket/key",
            "1s3://bucket/key",
            " s3://bucket/key",
        ],
    )
    def test_malformed_rejected(self, uri: str) -> None:
        with pytest.raises(InvalidReference) as exc_info:
            ArtifactReference.parse(uri)
        assert exc_info.value.retryable is False
        assert exc_info.value.uri == uri


class TestDeviceFlowModels:
    def test_device_authorization_parses(self) -> None:
        auth = DeviceAuthorization.model_validate(
            {
                "device_code": "dev",
                "user_code": "ABCD-EFGH",
                "verification_uri": "https://example.com/device",
                "expires_in": 600,
                "interval": 10,
                "vendor_field": "ignored",
            }
        )
        assert auth.interval == 10
        assert auth.verification_uri_complete is None

    def test_device_authorization_default_interval(self) -> None:
        auth = DeviceAuthorization.model_validate(
            {
                "device_code": "dev",
                "user_code": "U",
                "verification_uri": "https://example.com/device",
                "expires_in": 600,
            }
        )
        assert auth.interval == 5

    def test_device_authorization_requires_device_code(self) -> None:
        with pytest.raises(PydanticValidationError):
            DeviceAuthorization.model_validate(
                {"user_code": "U", "verification_uri": "https://x", "expires_in": 600}
            )

    def test_token_grant_repr_hides_token(self) -> None:
        grant = TokenGrant.model_validate({"access_token": "secret-token", "expires_in": 3600})
        assert "secret-token" not in repr(grant)
        assert grant.token_type == "Bearer"

    def test_error_body(self) -> None:
        body = OAuthErrorBody.model_validate_json(b'{"error": "slow_down"}')
        assert body.error == "slow_down"
        assert body.error_description is None
