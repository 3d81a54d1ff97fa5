"""GitHub API access for runner registration."""

from .client import GitHubAPIError, GitHubClient
from .registration import (
    AppInstallationBroker,
    AuthorizationContext,
    RegistrationToken,
    RegistrationTokenBroker,
    RegistrationTokenError,
    StaticTokenBroker,
    create_app_jwt,
)

__all__ = [
    "AppInstallationBroker",
    "AuthorizationContext",
    "GitHubAPIError",
    "GitHubClient",
    "RegistrationToken",
    "RegistrationTokenBroker",
    "RegistrationTokenError",
    "StaticTokenBroker",
    "create_app_jwt",
]
