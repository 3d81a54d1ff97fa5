"""Runner registration tokens.

A registration token lets a new runner process join an organization's (or a
repository's) runner pool. GitHub issues it from
``POST /orgs/{org}/actions/runners/registration-token`` or
``POST /repos/{owner}/{repo}/actions/runners/registration-token`` and it
expires after about an hour.

Two brokers exist, and a deployment is configured for exactly one:

- AppInstallationBroker authenticates as a GitHub App. The organization is
  looked up in a static organization -> installation ID mapping, an app JWT
  is exchanged for an installation access token, and the registration token
  is requested for the organization.
- StaticTokenBroker uses one long-lived token and requests a token for the
  repository that queued the job.
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Protocol

import jwt
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from ..config import ConfigurationError
from .client import GitHubClient

logger = logging.getLogger(__name__)

# GitHub rejects app JWTs that live longer than 10 minutes; iat is
# backdated to tolerate clock drift.
APP_JWT_BACKDATE_SECONDS = 60
APP_JWT_LIFETIME_SECONDS = 9 * 60


class RegistrationTokenError(Exception):
    """Raised when GitHub returns an unusable registration token response."""


class AuthorizationContext(BaseModel):
    """Which runner pool a registration token is requested for.

    Attributes:
        organization: Organization (or user) login that owns the repository.
        repository: Repository name, for repository-scoped tokens.
        installation_id: GitHub App installation ID, for the app flow.
    """

    model_config = ConfigDict(frozen=True)

    organization: str = Field(..., min_length=1)
    repository: Optional[str] = None
    installation_id: Optional[int] = None


class RegistrationToken(BaseModel):
    """A single-use runner registration token.

    The token value is a SecretStr so it never appears in repr or logs.
    """

    model_config = ConfigDict(frozen=True)

    token: SecretStr
    expires_at: datetime

    @classmethod
    def from_response(cls, body: Dict[str, Any]) -> "RegistrationToken":
        """Build a token from a registration-token response body.

        Raises:
            RegistrationTokenError: If token or expires_at is missing or invalid.
        """
        token = body.get("token")
        if not isinstance(token, str) or not token:
            raise RegistrationTokenError("registration token response has no token")
        try:
            return cls(token=token, expires_at=body.get("expires_at"))
        except ValidationError as e:
            raise RegistrationTokenError(
                "registration token response has no valid expires_at"
            ) from e

    def reveal(self) -> str:
        return self.token.get_secret_value()


class RegistrationTokenBroker(Protocol):
    """Exchanges an AuthorizationContext for a RegistrationToken."""

    async def issue(self, context: AuthorizationContext) -> RegistrationToken:
        ...

    async def close(self) -> None:
        ...


def create_app_jwt(app_id: str, private_key: str, now: Optional[int] = None) -> str:
    """Create a GitHub App JWT signed with the app's private key.

    Args:
        app_id: The GitHub App ID (JWT issuer).
        private_key: PEM encoded RSA private key.
        now: Current Unix time, for testing.

    Returns:
        str: The RS256-signed JWT.
    """
    issued_at = int(time.time()) if now is None else now
    payload = {
        "iat": issued_at - APP_JWT_BACKDATE_SECONDS,
        "exp": issued_at + APP_JWT_LIFETIME_SECONDS,
        "iss": str(app_id),
    }
    return jwt.encode(payload, private_key, algorithm="RS256")


class AppInstallationBroker:
    """Issues organization-scoped tokens as a GitHub App installation.

    Attributes:
        app_id: The GitHub App ID.
        installations: Organization login -> installation ID.
        github: GitHub API client.
    """

    def __init__(
        self,
        app_id: str,
        private_key: str,
        installations: Mapping[str, int],
        github: GitHubClient,
    ) -> None:
        self.app_id = app_id
        self._private_key = private_key
        self.installations = dict(installations)
        self.github = github

    def installation_for(self, organization: str) -> int:
        """Look up the installation ID for an organization.

        Raises:
            ConfigurationError: If the organization has no installation ID.
        """
        installation_id = self.installations.get(organization)
        if installation_id is None:
            raise ConfigurationError(
                f"no installation ID configured for organization: {organization}"
            )
        return installation_id

    async def issue(self, context: AuthorizationContext) -> RegistrationToken:
        """Request an organization registration token.

        Args:
            context: The organization; installation_id overrides the mapping.

        Returns:
            RegistrationToken for the organization's runner pool.

        Raises:
            ConfigurationError: If the organization has no installation ID.
            GitHubAPIError: If either GitHub call fails.
            RegistrationTokenError: If a response has no usable token.
        """
        installation_id = context.installation_id
        if installation_id is None:
            installation_id = self.installation_for(context.organization)

        installation_token = await self._installation_token(installation_id)

        body = await self.github.post_json(
            f"/orgs/{context.organization}/actions/runners/registration-token",
            installation_token,
        )
        token = RegistrationToken.from_response(body)

        logger.info(
            "Issued registration token: organization=%s, installation=%s, expires_at=%s",
            context.organization,
            installation_id,
            token.expires_at.isoformat(),
        )
        return token

    async def _installation_token(self, installation_id: int) -> str:
        app_jwt = create_app_jwt(self.app_id, self._private_key)
        body = await self.github.post_json(
            f"/app/installations/{installation_id}/access_tokens",
            app_jwt,
        )
        token = body.get("token")
        if not isinstance(token, str) or not token:
            raise RegistrationTokenError(
                f"installation {installation_id} access token response has no token"
            )
        return token

    async def close(self) -> None:
        await self.github.close()


class StaticTokenBroker:
    """Issues tokens with a single long-lived credential.

    Tokens are repository-scoped when the context names a repository and
    organization-scoped otherwise.
    """

    def __init__(self, token: str, github: GitHubClient) -> None:
        self._token = token
        self.github = github

    async def issue(self, context: AuthorizationContext) -> RegistrationToken:
        """Request a registration token with the static credential.

        Raises:
            GitHubAPIError: If the GitHub call fails.
            RegistrationTokenError: If the response has no usable token.
        """
        if context.repository:
            path = (
                f"/repos/{context.organization}/{context.repository}"
                "/actions/runners/registration-token"
            )
        else:
            path = f"/orgs/{context.organization}/actions/runners/registration-token"

        body = await self.github.post_json(path, self._token)
        token = RegistrationToken.from_response(body)

        logger.info(
            "Issued registration token: organization=%s, repository=%s, expires_at=%s",
            context.organization,
            context.repository,
            token.expires_at.isoformat(),
        )
        return token

    async def close(self) -> None:
        await self.github.close()
