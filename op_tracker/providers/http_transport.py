"""HTTP artifact transport (``httpx`` streaming).

Fetches artifact bytes for the cache. ``http``/``https`` references are
requested as-is; any other scheme (``s3://bucket/key``,
``store://bucket/key``) is mapped to a URL through an endpoint template
with ``{scheme}``, ``{bucket}``, ``{key}`` and ``{region}`` placeholders,
for example ``https://{bucket}.s3.{region}.amazonaws.com/{key}``.

Responses are streamed so large artifacts (generated videos) are never
held in memory; the declared ``Content-Length`` is reported so that the
cache can reject truncated bodies.
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

import httpx

from op_tracker.core.constants import DEFAULT_HTTP_TIMEOUT_SECONDS
from op_tracker.core.exceptions import InvalidReference, TransferError
from op_tracker.providers.base import ArtifactTransport, FetchedArtifact

if TYPE_CHECKING:
    from collections.abc import Iterator

    from op_tracker.core.config import TrackerConfig
    from op_tracker.models.artifact import ArtifactReference
    from op_tracker.models.operation import CallContext

logger = logging.getLogger(__name__)

_DIRECT_SCHEMES = frozenset({"http", "https"})

# Chunk size for streamed downloads.
_CHUNK_SIZE = 1024 * 1024


class HttpArtifactTransport(ArtifactTransport):
    """Stream artifacts over HTTP(S).

    Args:
        endpoint_template: URL template for non-HTTP schemes. When empty,
            only ``http``/``https`` references are accepted.
        client: Optional pre-configured ``httpx.Client`` (tests inject one
            backed by ``httpx.MockTransport``).
        timeout: Request timeout in seconds when no client is given.
        send_credentials: Whether to send ``Authorization`` from the
            call context.
    """

    def __init__(
        self,
        endpoint_template: str = "",
        *,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        send_credentials: bool = False,
    ) -> None:
        self._endpoint_template = endpoint_template
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self.requires_credentials = send_credentials

    @classmethod
    def from_config(
        cls,
        config: TrackerConfig,
        endpoint_template: str = "",
        *,
        send_credentials: bool = False,
    ) -> HttpArtifactTransport:
        """Build a transport whose request timeout comes from *config*."""
        return cls(
            endpoint_template,
            timeout=config.http_timeout_seconds,
            send_credentials=send_credentials,
        )

    def url_for(self, reference: ArtifactReference, region: str = "") -> str:
        """Return the URL that *reference* is fetched from.

        Raises:
            InvalidReference: If the scheme has no URL mapping.
        """
        if reference.scheme in _DIRECT_SCHEMES:
            return reference.uri
        if not self._endpoint_template:
            msg = f"no endpoint template configured for scheme {reference.scheme!r}"
            raise InvalidReference(reference.uri, msg)
        return self._endpoint_template.format(
            scheme=reference.scheme,
            bucket=reference.bucket,
            key=reference.key,
            region=region,
        )

    @contextlib.contextmanager
    def fetch(
        self,
        reference: ArtifactReference,
        context: CallContext,
    ) -> Iterator[FetchedArtifact]:
        url = self.url_for(reference, context.region)
        headers: dict[str, str] = {}
        if self.requires_credentials and context.credentials is not None:
            headers["Authorization"] = context.credentials.authorization_header

        try:
            with self._client.stream("GET", url, headers=headers) as response:
                if response.status_code == httpx.codes.NOT_FOUND:
                    msg = f"Remote artifact not found: {reference.uri}"
                    raise TransferError(msg, missing=True)
                try:
                    response.raise_for_status()
                except httpx.HTTPStatusError as exc:
                    msg = f"Fetch of {reference.uri} failed with HTTP {response.status_code}"
                    raise TransferError(msg) from exc

                logger.debug(
                    "Artifact stream opened | url=%s | status=%d | length=%s",
                    url,
                    response.status_code,
                    response.headers.get("Content-Length", "unknown"),
                )
                yield FetchedArtifact(
                    chunks=_iter_chunks(response, reference.uri),
                    size_bytes=_content_length(response),
                    content_type=response.headers.get("Content-Type", "application/octet-stream"),
                )
        except httpx.HTTPError as exc:
            msg = f"Fetch of {reference.uri} failed: {exc}"
            raise TransferError(msg) from exc

    def close(self) -> None:
        self._client.close()


def _iter_chunks(response: httpx.Response, uri: str) -> Iterator[bytes]:
    try:
        yield from response.iter_bytes(chunk_size=_CHUNK_SIZE)
    except httpx.HTTPError as exc:
        msg = f"Transfer of {uri} interrupted: {exc}"
        raise TransferError(msg) from exc


def _content_length(response: httpx.Response) -> int | None:
    value = response.headers.get("Content-Length")
    if value is None or "Content-Encoding" in response.headers:
        return None
    try:
        return int(value)
    except ValueError:
        return None
