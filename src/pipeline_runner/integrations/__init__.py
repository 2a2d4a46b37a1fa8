"""Clients for the remote pipeline service."""

from .azure_devops import (
    ApiRequestError,
    AuthenticationError,
    AzureDevOpsClient,
    MalformedResponseError,
    NotFoundError,
    PipelineServiceError,
    TransportError,
    build_client,
)

__all__ = [
    "ApiRequestError",
    "AuthenticationError",
    "AzureDevOpsClient",
    "MalformedResponseError",
    "NotFoundError",
    "PipelineServiceError",
    "TransportError",
    "build_client",
]
