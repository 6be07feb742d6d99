"""Artifact cache — resolve remote artifacts into local files exactly once.

Given the artifact locator of a finished operation, the cache derives a
stable local key (SHA-256 of the full reference string), returns the
existing file when present, and otherwise streams the remote bytes into
a temp file beside the final path and renames it into place.

Guarantees:
    - Same reference ⇒ same key and path; a second ``resolve`` never
      fetches again (trust-on-first-write, no integrity re-check).
    - Readers never observe a partial file at the final path: bytes go
      to ``.<key>.<random>.part`` first and are committed by ``os.replace``.
    - Writers of one key are serialised by a per-key lock, so two
      concurrent resolves of the same reference perform one fetch.
    - Any failure or cancellation removes the temp file.

Failures:
    ``InvalidReference`` (unparseable reference), ``TransferError`` (remote
    missing, dropped or truncated), ``StorageError`` (local write failed),
    ``Cancelled`` (caller aborted mid-transfer).
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import tempfile
import threading
import time
import weakref
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from op_tracker.core.constants import PART_FILE_SUFFIX
from op_tracker.core.exceptions import Cancelled, StorageError, TransferError
from op_tracker.models.artifact import ArtifactReference, CacheEntry
from op_tracker.providers.base import build_call_context

if TYPE_CHECKING:
    from op_tracker.core.config import TrackerConfig
    from op_tracker.providers.base import ArtifactTransport, CredentialContext

logger = logging.getLogger(__name__)


def local_key_for(reference: ArtifactReference | str) -> str:
    """Return the deterministic cache key for *reference*."""
    uri = reference.uri if isinstance(reference, ArtifactReference) else reference
    return hashlib.sha256(uri.encode("utf-8")).hexdigest()


class ArtifactCache:
    """Content-addressed local store for operation artifacts.

    Args:
        root: Directory holding committed artifacts.
        transport: Fetches remote bytes on a cache miss.
        credentials: Credential context consulted before each fetch.
    """

    def __init__(
        self,
        root: Path | str,
        transport: ArtifactTransport,
        *,
        credentials: CredentialContext | None = None,
    ) -> None:
        self._root = Path(root)
        self._transport = transport
        self._credentials = credentials
        # A key's lock lives only while some resolver holds or waits on it.
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: TrackerConfig,
        transport: ArtifactTransport,
        *,
        credentials: CredentialContext | None = None,
    ) -> ArtifactCache:
        return cls(config.cache_path, transport, credentials=credentials)

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def path_for(self, reference: ArtifactReference) -> Path:
        """Final on-disk location for *reference*."""
        return self._root / f"{local_key_for(reference)}{reference.suffix}"

    def lookup(self, uri: str) -> CacheEntry | None:
        """Return the committed entry for *uri*, or ``None`` on a miss.

        Raises:
            InvalidReference: If *uri* cannot be parsed.
        """
        reference = ArtifactReference.parse(uri)
        return self._existing(reference)

    def resolve(
        self,
        uri: str,
        *,
        cancel_event: threading.Event | None = None,
        correlation_id: str = "",
    ) -> CacheEntry:
        """Return the local entry for *uri*, fetching it on a miss.

        Args:
            uri: Remote artifact locator (``scheme://bucket/key``).
            cancel_event: When set, an in-flight fetch is abandoned.
            correlation_id: Run correlation identifier for logs and errors.

        Raises:
            InvalidReference: If *uri* cannot be parsed.
            TransferError: If the remote fetch fails or is incomplete.
            StorageError: If the local write fails.
            Cancelled: If *cancel_event* is set during the fetch.
        """
        reference = ArtifactReference.parse(uri)

        entry = self._existing(reference)
        if entry is not None:
            logger.info(
                "Artifact cache hit | key=%s | path=%s | correlation_id=%s",
                entry.local_key,
                entry.path,
                correlation_id,
            )
            return entry

        key = local_key_for(reference)
        with self._lock_for(key):
            # Another resolver may have committed while we waited.
            entry = self._existing(reference)
            if entry is not None:
                logger.info(
                    "Artifact committed by concurrent resolver | key=%s | correlation_id=%s",
                    key,
                    correlation_id,
                )
                return entry

            self._fetch_and_commit(reference, cancel_event, correlation_id)

        entry = self._existing(reference)
        if entry is None:
            msg = f"Artifact vanished after commit: {self.path_for(reference)}"
            raise StorageError(msg, correlation_id=correlation_id)
        return entry

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def _existing(self, reference: ArtifactReference) -> CacheEntry | None:
        path = self.path_for(reference)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        except OSError as exc:
            msg = f"Cannot stat cached artifact {path}: {exc}"
            raise StorageError(msg) from exc

        return CacheEntry(
            local_key=local_key_for(reference),
            path=path,
            size_bytes=stat.st_size,
            written_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
            reference=reference.uri,
        )

    def _fetch_and_commit(
        self,
        reference: ArtifactReference,
        cancel_event: threading.Event | None,
        correlation_id: str,
    ) -> None:
        """Stream *reference* into a temp file and atomically rename it into place."""
        key = local_key_for(reference)
        final_path = self.path_for(reference)
        context = build_call_context(
            self._credentials,
            requires_credentials=self._transport.requires_credentials,
            correlation_id=correlation_id,
        )

        try:
            self._root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._root,
                prefix=f".{key}.",
                suffix=PART_FILE_SUFFIX,
            )
        except OSError as exc:
            msg = f"Cannot create temp file in {self._root}: {exc}"
            raise StorageError(msg, correlation_id=correlation_id) from exc

        tmp_path = Path(tmp_name)
        committed = False
        start_time = time.monotonic()
        logger.info(
            "Artifact fetch started | key=%s | reference=%s | correlation_id=%s",
            key,
            reference.uri,
            correlation_id,
        )

        try:
            with (
                os.fdopen(fd, "wb") as out,
                self._transport.fetch(reference, context) as fetched,
            ):
                written = 0
                content_type = fetched.content_type
                for chunk in fetched.chunks:
                    if cancel_event is not None and cancel_event.is_set():
                        msg = f"Artifact fetch cancelled: {reference.uri}"
                        raise Cancelled(msg, stage="resolve_artifact", correlation_id=correlation_id)
                    _write(out, chunk, tmp_path, correlation_id)
                    written += len(chunk)

                if written == 0:
                    msg = f"Empty response body for {reference.uri}"
                    raise TransferError(msg)
                if fetched.size_bytes is not None and written != fetched.size_bytes:
                    msg = (
                        f"Incomplete body for {reference.uri}: "
                        f"received {written} of {fetched.size_bytes} bytes"
                    )
                    raise TransferError(msg)

                _sync(out, tmp_path, correlation_id)

            try:
                os.replace(tmp_path, final_path)
            except OSError as exc:
                msg = f"Cannot commit artifact to {final_path}: {exc}"
                raise StorageError(msg, correlation_id=correlation_id) from exc
            committed = True
        finally:
            if not committed:
                with contextlib.suppress(FileNotFoundError):
                    tmp_path.unlink()

        logger.info(
            "Artifact fetch committed | key=%s | path=%s | size=%d bytes | content_type=%s | "
            "duration=%.2fs",
            key,
            final_path,
            written,
            content_type,
            time.monotonic() - start_time,
        )


def _write(out: BinaryIO, chunk: bytes, tmp_path: Path, correlation_id: str) -> None:
    try:
        out.write(chunk)
    except OSError as exc:
        msg = f"Cannot write artifact bytes to {tmp_path}: {exc}"
        raise StorageError(msg, correlation_id=correlation_id) from exc


def _sync(out: BinaryIO, tmp_path: Path, correlation_id: str) -> None:
    try:
        out.flush()
        os.fsync(out.fileno())
    except OSError as exc:
        msg = f"Cannot flush artifact bytes to {tmp_path}: {exc}"
        raise StorageError(msg, correlation_id=correlation_id) from exc
