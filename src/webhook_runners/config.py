"""Service configuration using pydantic-settings.

This module defines the RunnerSettings class that reads configuration from
environment variables. The variable names carry no prefix so they match the
names provisioned by the deployment (GITHUB_WEBHOOK_SECRET, CLUSTER_ARN,
SUBNET_ID, ...). Settings with no deployed name are read from RUNNER_*
variables (RUNNER_CONTAINER_NAME, RUNNER_PORT, ...) so that generic host
variables such as CONTAINER_NAME or PORT never change them.

Exactly one GitHub authentication flow must be configured:

- App installation: GITHUB_APP_ID, GITHUB_APP_PRIVATE_KEY and a
  GITHUB_INSTALLATIONS mapping of organization login to installation ID.
- Static credential: GITHUB_PAT.
"""

from enum import Enum
from typing import Dict, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when required configuration is missing or unusable.

    This is an operator-actionable defect and is always surfaced as an
    internal error, never silently defaulted.
    """


class AuthMode(str, Enum):
    """GitHub credential exchange flows.

    Attributes:
        APP: Authenticate as an installed GitHub App, one installation
             per organization.
        STATIC: Authenticate with a single long-lived token scoped to the
                repository that queued the job.
    """

    APP = "app"
    STATIC = "static"


class RunnerSettings(BaseSettings):
    """Runner launcher configuration from environment variables.

    Required fields (must be set via environment variables):
    - github_webhook_secret: Secret for validating webhook signatures
    - cluster_arn: ECS cluster that runs the runner tasks
    - subnet_id: Subnet the runner tasks are placed in
    - either github_app_id + github_app_private_key, or github_pat
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        frozen=True,
    )

    # -------------------------------------------------------------------------
    # Webhook Configuration
    # -------------------------------------------------------------------------
    github_webhook_secret: SecretStr

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    github_app_id: Optional[str] = None

    # PEM encoded; literal "\n" sequences are accepted for single-line env vars
    github_app_private_key: Optional[SecretStr] = None

    # JSON object mapping organization login to installation ID
    github_installations: Dict[str, int] = {}

    github_pat: Optional[SecretStr] = None

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_api_url: str = "https://api.github.com"

    github_timeout_seconds: float = 30.0

    # -------------------------------------------------------------------------
    # ECS Configuration
    # -------------------------------------------------------------------------
    cluster_arn: str
    subnet_id: str
    # Read from RUNNER_* variables, not the generic CONTAINER_NAME, AWS_REGION, ...
    task_definition: str = Field(
        default="github-actions-runner",
        validation_alias="RUNNER_TASK_DEFINITION",
    )
    container_name: str = Field(
        default="github-actions-runner",
        validation_alias="RUNNER_CONTAINER_NAME",
    )
    aws_region: str = Field(default="eu-central-1", validation_alias="RUNNER_AWS_REGION")

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    log_level: str = Field(default="INFO", validation_alias="RUNNER_LOG_LEVEL")
    host: str = Field(default="0.0.0.0", validation_alias="RUNNER_HOST")
    port: int = Field(default=3000, validation_alias="RUNNER_PORT")

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_webhook_secret")
    @classmethod
    def validate_webhook_secret(cls, v: SecretStr) -> SecretStr:
        """Validate that webhook secret is not empty."""
        if not v.get_secret_value().strip():
            raise ValueError("github_webhook_secret cannot be empty")
        return v

    @field_validator("cluster_arn", "subnet_id", "task_definition", "container_name")
    @classmethod
    def validate_not_empty(cls, v: str, info) -> str:
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty")
        return v.strip()

    @field_validator("github_api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Validate that the GitHub API URL is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("github_api_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("github_installations")
    @classmethod
    def validate_installations(cls, v: Dict[str, int]) -> Dict[str, int]:
        for org, installation_id in v.items():
            if installation_id <= 0:
                raise ValueError(
                    f"installation ID for organization {org} must be positive"
                )
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @model_validator(mode="after")
    def validate_auth_mode(self) -> "RunnerSettings":
        """Require exactly one GitHub authentication flow."""
        app_configured = bool(self.github_app_id) or self.github_app_private_key is not None
        static_configured = self.github_pat is not None

        if app_configured and static_configured:
            raise ValueError(
                "configure either the GitHub App (github_app_id, "
                "github_app_private_key) or github_pat, not both"
            )
        if not app_configured and not static_configured:
            raise ValueError(
                "no GitHub credentials configured: set github_app_id and "
                "github_app_private_key, or github_pat"
            )
        if app_configured and not (self.github_app_id and self.github_app_private_key):
            raise ValueError(
                "github_app_id and github_app_private_key must be set together"
            )
        return self

    @property
    def auth_mode(self) -> AuthMode:
        """The credential exchange flow selected by this configuration."""
        if self.github_pat is not None:
            return AuthMode.STATIC
        return AuthMode.APP

    @property
    def app_private_key(self) -> str:
        """The GitHub App private key as PEM text.

        Raises:
            ConfigurationError: If the key is not configured or is not PEM.
        """
        if self.github_app_private_key is None:
            raise ConfigurationError("github_app_private_key is not configured")
        key = self.github_app_private_key.get_secret_value().replace("\\n", "\n").strip()
        if not key.startswith("-----BEGIN") or "PRIVATE KEY" not in key:
            raise ConfigurationError("github_app_private_key is not a PEM private key")
        return key


def get_settings() -> RunnerSettings:
    """Create and return RunnerSettings instance.

    Returns:
        RunnerSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return RunnerSettings()
