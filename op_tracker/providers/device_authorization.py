"""OAuth2 device-authorization login client (RFC 8628 over ``httpx``).

``start`` requests a device code from the device authorization endpoint;
the user then completes consent in a browser at the returned
verification URI. ``poll`` exchanges the device code at the token
endpoint and classifies the response for the tracker:

=====================================  ==============================
Token endpoint response                ``PollResult``
=====================================  ==============================
200 + token body                       ``succeeded(TokenGrant)``
``authorization_pending``              ``pending()``
``slow_down`` / HTTP 429               ``rate_limited(slow_down=True)``
``expired_token`` / ``invalid_grant``  ``failed(EXPIRED)``
``access_denied``                      ``failed(REJECTED)``
any other OAuth error                  ``failed(PERMANENT)``
HTTP 5xx / network failure             raises ``TransportError``
undecodable body                       raises ``ResponseContractError``
=====================================  ==============================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from op_tracker.core.constants import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEVICE_CODE_GRANT_TYPE,
    OAUTH_ACCESS_DENIED,
    OAUTH_AUTHORIZATION_PENDING,
    OAUTH_EXPIRED_TOKEN,
    OAUTH_INVALID_GRANT,
    OAUTH_SLOW_DOWN,
)
from op_tracker.core.exceptions import (
    FailureKind,
    RejectedError,
    ResponseContractError,
    TransportError,
    ValidationError,
)
from op_tracker.models.auth import DeviceAuthorization, OAuthErrorBody, TokenGrant
from op_tracker.models.operation import PollHint, PollResult, StartResponse
from op_tracker.providers.base import RemoteOperationClient

if TYPE_CHECKING:
    from op_tracker.core.config import TrackerConfig
    from op_tracker.models.operation import CallContext

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)

_FAILURE_KINDS: dict[str, FailureKind] = {
    OAUTH_EXPIRED_TOKEN: FailureKind.EXPIRED,
    OAUTH_INVALID_GRANT: FailureKind.EXPIRED,
    OAUTH_ACCESS_DENIED: FailureKind.REJECTED,
}


@dataclass(frozen=True, slots=True)
class DeviceLoginRequest:
    """Parameters of one device-authorization login.

    Attributes:
        scopes: OAuth scopes to request.
        extra_params: Provider-specific form fields (e.g. ``start_url``).
    """

    scopes: tuple[str, ...] = ()
    extra_params: dict[str, str] = field(default_factory=dict)


class DeviceAuthorizationClient(RemoteOperationClient):
    """RFC 8628 device-authorization grant client.

    Args:
        device_authorization_url: Device authorization endpoint.
        token_url: Token endpoint.
        client_id: Registered public client identifier.
        client_secret: Client secret, for confidential clients.
        client: Optional pre-configured ``httpx.Client``.
        timeout: Request timeout in seconds when no client is given.
    """

    name = "device_authorization"

    def __init__(
        self,
        device_authorization_url: str,
        token_url: str,
        *,
        client_id: str,
        client_secret: str = "",
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    ) -> None:
        if not client_id:
            msg = "client_id must be non-empty"
            raise ValueError(msg)
        self._device_authorization_url = device_authorization_url
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._http = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_config(
        cls,
        config: TrackerConfig,
        device_authorization_url: str,
        token_url: str,
        *,
        client_id: str,
        client_secret: str = "",
    ) -> DeviceAuthorizationClient:
        """Build a client whose request timeout comes from *config*."""
        return cls(
            device_authorization_url,
            token_url,
            client_id=client_id,
            client_secret=client_secret,
            timeout=config.http_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # start
    # ------------------------------------------------------------------

    def start(self, request: object, context: CallContext) -> StartResponse:
        """Request a device code and user code.

        Returns:
            ``StartResponse`` whose handle is the device code and whose
            details carry ``user_code``, ``verification_uri`` and
            ``verification_uri_complete`` for display.

        Raises:
            ValidationError: If *request* is not a ``DeviceLoginRequest``.
            RejectedError: If the endpoint rejects the client.
            TransportError: On network or server failure.
        """
        if not isinstance(request, DeviceLoginRequest):
            msg = f"Expected DeviceLoginRequest, got {type(request).__name__}"
            raise ValidationError(msg, stage="start", correlation_id=context.correlation_id)

        form = {"client_id": self._client_id, **request.extra_params}
        if request.scopes:
            form["scope"] = " ".join(request.scopes)
        if self._client_secret:
            form["client_secret"] = self._client_secret

        response = self._post(self._device_authorization_url, form, context)
        if response.status_code != httpx.codes.OK:
            body = _decode(response, OAuthErrorBody, context)
            msg = f"Device authorization rejected: {body.error} ({body.error_description or ''})"
            raise RejectedError(msg, stage="start", correlation_id=context.correlation_id)

        authorization = _decode(response, DeviceAuthorization, context)
        logger.info(
            "Device authorization started | correlation_id=%s | verification_uri=%s | "
            "interval=%ds | expires_in=%ds",
            context.correlation_id,
            authorization.verification_uri,
            authorization.interval,
            authorization.expires_in,
        )

        details = {
            "user_code": authorization.user_code,
            "verification_uri": authorization.verification_uri,
        }
        if authorization.verification_uri_complete:
            details["verification_uri_complete"] = authorization.verification_uri_complete

        return StartResponse(
            handle=authorization.device_code,
            hint=PollHint(suggested_interval_seconds=authorization.interval),
            expires_in_seconds=float(authorization.expires_in),
            details=details,
        )

    # ------------------------------------------------------------------
    # poll
    # ------------------------------------------------------------------

    def poll(self, handle: str, context: CallContext) -> PollResult:
        """Exchange the device code at the token endpoint and classify the reply."""
        form = {
            "grant_type": DEVICE_CODE_GRANT_TYPE,
            "device_code": handle,
            "client_id": self._client_id,
        }
        if self._client_secret:
            form["client_secret"] = self._client_secret

        response = self._post(self._token_url, form, context)

        if response.status_code == httpx.codes.OK:
            return PollResult.succeeded(_decode(response, TokenGrant, context))

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            return PollResult.rate_limited(PollHint(slow_down=True))

        body = _decode(response, OAuthErrorBody, context)
        if body.error == OAUTH_AUTHORIZATION_PENDING:
            return PollResult.pending()
        if body.error == OAUTH_SLOW_DOWN:
            return PollResult.rate_limited(PollHint(slow_down=True))

        kind = _FAILURE_KINDS.get(body.error, FailureKind.PERMANENT)
        reason = body.error if not body.error_description else f"{body.error}: {body.error_description}"
        return PollResult.failed(reason, kind)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _post(self, url: str, form: dict[str, str], context: CallContext) -> httpx.Response:
        try:
            response = self._http.post(url, data=form, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            msg = f"Request to {url} failed: {exc}"
            raise TransportError(msg, correlation_id=context.correlation_id) from exc

        if response.status_code >= httpx.codes.INTERNAL_SERVER_ERROR:
            msg = f"Request to {url} failed with HTTP {response.status_code}"
            raise TransportError(msg, correlation_id=context.correlation_id)
        return response

    def close(self) -> None:
        self._http.close()


def _decode(response: httpx.Response, model: type[_M], context: CallContext) -> _M:
    """Validate the JSON body of *response* as *model*."""
    try:
        return model.model_validate_json(response.content)
    except PydanticValidationError as exc:
        msg = (
            f"Undecodable {model.__name__} response (HTTP {response.status_code}): "
            f"{exc.error_count()} validation error(s)"
        )
        raise ResponseContractError(msg, correlation_id=context.correlation_id) from exc
