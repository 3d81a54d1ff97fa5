"""GitHub REST API client used for runner registration.

A thin async wrapper around httpx that applies the GitHub REST headers and
turns every non-success response or transport failure into GitHubAPIError.
Requests are not retried: a registration token is requested once per
webhook, and a failure aborts that webhook.
"""

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "webhook-runners/1.0"


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response, if any.
        response_body: Response body from GitHub API, if any.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class GitHubClient:
    """Async GitHub API client.

    Credentials are passed per request because the app-installation flow
    uses a different bearer token for each call.

    Attributes:
        base_url: Base URL for GitHub API (default: https://api.github.com).
        timeout: Request timeout in seconds.

    Example:
        >>> client = GitHubClient()
        >>> async with client:
        ...     body = await client.post_json("/orgs/acme/actions/runners/registration-token", token)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (for testing).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": USER_AGENT,
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def post_json(self, path: str, token: str) -> Dict[str, Any]:
        """POST to an API path with a bearer token and decode the JSON body.

        Args:
            path: API path (e.g., /orgs/acme/actions/runners/registration-token).
            token: Bearer token for this request.

        Returns:
            The decoded JSON object.

        Raises:
            GitHubAPIError: On transport failure, a non-2xx status, or a
                body that is not a JSON object.
        """
        try:
            response = await self.client.post(
                path,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            logger.error("GitHub API request timed out", extra={"path": path})
            raise GitHubAPIError(
                message=f"GitHub API request timed out: {path}",
                request_url=path,
            ) from e
        except httpx.RequestError as e:
            logger.error(
                "GitHub API request failed",
                extra={"path": path, "error": str(e)},
            )
            raise GitHubAPIError(
                message=f"GitHub API request failed: {e}",
                request_url=path,
            ) from e

        if not response.is_success:
            error_body = response.text
            logger.error(
                "GitHub API error",
                extra={
                    "status_code": response.status_code,
                    "path": path,
                    "response_body": error_body[:500],
                },
            )
            raise GitHubAPIError(
                message=f"GitHub API error: {response.status_code}",
                status_code=response.status_code,
                response_body=error_body,
                request_url=str(response.url),
            )

        try:
            body = response.json()
        except ValueError as e:
            raise GitHubAPIError(
                message="GitHub API returned invalid JSON",
                status_code=response.status_code,
                response_body=response.text[:500],
                request_url=str(response.url),
            ) from e

        if not isinstance(body, dict):
            raise GitHubAPIError(
                message="GitHub API returned unexpected JSON",
                status_code=response.status_code,
                request_url=str(response.url),
            )
        return body
