"""Local artifact cache.

- ArtifactCache: Resolve remote artifact references into local files once
- local_key_for: Deterministic cache key of a reference
"""

from op_tracker.cache.artifact_cache import ArtifactCache, local_key_for

__all__ = [
    "ArtifactCache",
    "local_key_for",
]
