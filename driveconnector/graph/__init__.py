from driveconnector.graph.client import GraphClient
from driveconnector.graph.credentials import Credential, CredentialCache
from driveconnector.graph.errors import (
    UpstreamAuthError,
    UpstreamConnectionError,
    UpstreamError,
    UpstreamRateLimited,
    UpstreamRequestError,
    UpstreamServerError,
)
from driveconnector.graph.models import DriveItem
from driveconnector.graph.retry import RetryPolicy

__all__ = [
    "GraphClient",
    "Credential",
    "CredentialCache",
    "RetryPolicy",
    "DriveItem",
    "UpstreamError",
    "UpstreamAuthError",
    "UpstreamConnectionError",
    "UpstreamRequestError",
    "UpstreamRateLimited",
    "UpstreamServerError",
]
