"""Artifact reference and cache entry models.

``ArtifactReference`` is the parsed form of a remote locator such as
``s3://bucket/videos/output.mp4``. Parsing is strict: a reference that
does not split into ``scheme``, ``bucket`` and ``key`` is a permanent
``InvalidReference`` failure, never a retryable one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from op_tracker.core.exceptions import InvalidReference
from op_tracker.models.validation import check_min, check_non_empty

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

_SCHEME_SEPARATOR = "://"
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")


@dataclass(frozen=True, slots=True)
class ArtifactReference:
    """A remote artifact locator split into its components.

    Attributes:
        uri: The full reference string, exactly as received.
        scheme: Locator scheme (e.g. ``"s3"``, ``"https"``).
        bucket: Bucket or host component.
        key: Object key or path within the bucket (no leading slash).
    """

    uri: str
    scheme: str
    bucket: str
    key: str

    @classmethod
    def parse(cls, uri: str) -> ArtifactReference:
        """Parse ``scheme://bucket/key`` into an ``ArtifactReference``.

        Raises:
            InvalidReference: If any component is missing or malformed.
        """
        if not uri or uri != uri.strip():
            raise InvalidReference(uri, "must be non-empty without surrounding whitespace")

        scheme, sep, rest = uri.partition(_SCHEME_SEPARATOR)
        if not sep:
            raise InvalidReference(uri, f"missing {_SCHEME_SEPARATOR!r} separator")
        if not _SCHEME_RE.match(scheme):
            raise InvalidReference(uri, f"malformed scheme {scheme!r}")

        bucket, slash, key = rest.partition("/")
        if not bucket:
            raise InvalidReference(uri, "missing bucket")
        if not slash or not key or key.endswith("/"):
            raise InvalidReference(uri, "missing object key")

        return cls(uri=uri, scheme=scheme.lower(), bucket=bucket, key=key)

    @property
    def suffix(self) -> str:
        """File extension of the object key (e.g. ``".mp4"``), or ``""``."""
        name = self.key.rsplit("/", 1)[-1]
        stem, dot, ext = name.rpartition(".")
        if not dot or not stem or not ext.isalnum():
            return ""
        return f".{ext.lower()}"


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A fully written artifact in the local cache.

    Attributes:
        local_key: Deterministic key derived from the reference.
        path: Location of the artifact on local storage.
        size_bytes: Size of the stored artifact.
        written_at: When the artifact was committed (file mtime, UTC).
        reference: The reference string the entry was resolved from.
    """

    local_key: str
    path: Path
    size_bytes: int
    written_at: datetime
    reference: str

    def __post_init__(self) -> None:
        check_non_empty("CacheEntry", "local_key", self.local_key)
        check_min("CacheEntry", "size_bytes", self.size_bytes, 0)
