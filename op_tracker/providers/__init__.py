"""Remote operation clients and artifact transports.

Implements the adapter pattern behind the tracker's collaborator interfaces:
- RemoteOperationClient: Abstract base class for start/poll clients
- DeviceAuthorizationClient: OAuth2 device-authorization login (RFC 8628)
- GenerationJobClient: Asynchronous generation jobs over an RPC stub
- ArtifactTransport / HttpArtifactTransport: Stream artifact bytes
- CredentialContext / StaticCredentialContext: Per-call credentials

The tracker only sees the abstract interfaces, so a new service needs a
new client and nothing else.
"""

from op_tracker.providers.base import (
    ArtifactTransport,
    CredentialContext,
    FetchedArtifact,
    RemoteOperationClient,
    StaticCredentialContext,
    build_call_context,
)
from op_tracker.providers.device_authorization import (
    DeviceAuthorizationClient,
    DeviceLoginRequest,
)
from op_tracker.providers.generation_job import (
    AsyncInvokeService,
    GenerationJobClient,
    GenerationRequest,
    JobInfo,
)
from op_tracker.providers.http_transport import HttpArtifactTransport

__all__ = [
    "ArtifactTransport",
    "AsyncInvokeService",
    "CredentialContext",
    "DeviceAuthorizationClient",
    "DeviceLoginRequest",
    "FetchedArtifact",
    "GenerationJobClient",
    "GenerationRequest",
    "HttpArtifactTransport",
    "JobInfo",
    "RemoteOperationClient",
    "StaticCredentialContext",
    "build_call_context",
]
