"""Pydantic models for OAuth2 device-authorization responses (RFC 8628).

Validates the JSON bodies returned by the device authorization and
token endpoints before the login client classifies them. Unknown
fields are ignored so that provider-specific extensions do not break
decoding.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from op_tracker.core.constants import DEFAULT_POLL_INTERVAL_SECONDS


class DeviceAuthorization(BaseModel):
    """Device authorization response (RFC 8628 §3.2).

    Attributes:
        device_code: Opaque code the client polls the token endpoint with.
        user_code: Code the user enters at the verification URI.
        verification_uri: Where the user completes consent.
        verification_uri_complete: Verification URI with the user code embedded.
        expires_in: Lifetime of the device and user codes in seconds.
        interval: Minimum seconds between token requests.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    device_code: str = Field(min_length=1)
    user_code: str = Field(min_length=1)
    verification_uri: str = Field(min_length=1)
    verification_uri_complete: str | None = None
    expires_in: int = Field(gt=0)
    interval: int = Field(default=int(DEFAULT_POLL_INTERVAL_SECONDS), ge=0)


class TokenGrant(BaseModel):
    """Successful token response (RFC 6749 §5.1)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    access_token: str = Field(min_length=1)
    token_type: str = "Bearer"
    expires_in: int | None = Field(default=None, ge=0)
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None

    def __repr__(self) -> str:
        return f"TokenGrant(token_type={self.token_type!r}, expires_in={self.expires_in!r})"


class OAuthErrorBody(BaseModel):
    """Error response from the token endpoint (RFC 6749 §5.2)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    error: str = Field(min_length=1)
    error_description: str | None = None
    error_uri: str | None = None
