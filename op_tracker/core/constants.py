"""Shared tracker constants — single source of truth.

Defaults for the poll cadence, retry ceiling and cache location, plus
the wire-level literals of the OAuth2 device-authorization grant.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Poll cadence
# ---------------------------------------------------------------------------

DEFAULT_POLL_INTERVAL_SECONDS: float = 5.0
"""Base delay between polls when the server gives no interval."""

DEFAULT_SLOW_DOWN_STEP_SECONDS: float = 5.0
"""Increase applied to the interval on every slow-down signal (RFC 8628 §3.5)."""

DEFAULT_MAX_POLL_INTERVAL_SECONDS: float = 60.0
"""Upper bound on the effective poll interval."""

DEFAULT_MAX_TRANSPORT_RETRIES: int = 3
"""Consecutive transport failures tolerated before giving up."""

DEFAULT_POLL_TIMEOUT_SECONDS: float = 1800.0
"""Total polling budget per operation (0 disables the budget)."""

DEFAULT_CANCEL_CHECK_SECONDS: float = 0.1
"""Granularity at which an outstanding remote call checks for cancellation."""

DEFAULT_HTTP_TIMEOUT_SECONDS: float = 60.0

# ---------------------------------------------------------------------------
# Artifact cache
# ---------------------------------------------------------------------------

DEFAULT_CACHE_DIR: str = "~/.cache/op_tracker/artifacts"

PART_FILE_SUFFIX: str = ".part"
"""Suffix of in-flight temp files; never a valid cache entry."""

# ---------------------------------------------------------------------------
# OAuth2 device authorization grant (RFC 8628)
# ---------------------------------------------------------------------------

DEVICE_CODE_GRANT_TYPE: str = "urn:ietf:params:oauth:grant-type:device_code"

OAUTH_AUTHORIZATION_PENDING: str = "authorization_pending"
OAUTH_SLOW_DOWN: str = "slow_down"
OAUTH_EXPIRED_TOKEN: str = "expired_token"
OAUTH_INVALID_GRANT: str = "invalid_grant"
OAUTH_ACCESS_DENIED: str = "access_denied"

# ---------------------------------------------------------------------------
# Asynchronous generation jobs
# ---------------------------------------------------------------------------

JOB_STATUS_IN_PROGRESS: str = "InProgress"
JOB_STATUS_COMPLETED: str = "Completed"
JOB_STATUS_FAILED: str = "Failed"

DEFAULT_JOB_ARTIFACT_NAME: str = "output.mp4"
"""Object name the generation service writes under the output location."""
