"""Runtime wiring for the webhook handler.

The RunnerContext is built once at startup from validated settings and passed
to the handler. It is never mutated; tests build their own with fakes.
"""

from dataclasses import dataclass, field

from .config import AuthMode, RunnerSettings
from .ecs.launcher import RunnerLauncher, RunnerScope
from .github.client import GitHubClient
from .github.registration import (
    AppInstallationBroker,
    RegistrationTokenBroker,
    StaticTokenBroker,
)
from .metrics import RunnerMetrics
from .webhook.classifier import EventClassifier


@dataclass(frozen=True)
class RunnerContext:
    """Everything a webhook invocation needs.

    Attributes:
        webhook_secret: Secret for verifying webhook signatures.
        broker: Issues runner registration tokens.
        launcher: Starts runner tasks.
        scope: Runner pool the broker's tokens are issued for.
        classifier: Decides event eligibility.
        metrics: Prometheus metrics.
    """

    webhook_secret: str
    broker: RegistrationTokenBroker
    launcher: RunnerLauncher
    scope: RunnerScope = RunnerScope.ORG
    classifier: EventClassifier = field(default_factory=EventClassifier)
    metrics: RunnerMetrics = field(default_factory=RunnerMetrics)

    async def close(self) -> None:
        await self.broker.close()


def build_broker(settings: RunnerSettings) -> RegistrationTokenBroker:
    """Create the registration token broker for the configured auth mode."""
    github = GitHubClient(
        base_url=settings.github_api_url,
        timeout=settings.github_timeout_seconds,
    )
    if settings.auth_mode == AuthMode.STATIC:
        return StaticTokenBroker(
            token=settings.github_pat.get_secret_value(),
            github=github,
        )
    return AppInstallationBroker(
        app_id=settings.github_app_id,
        private_key=settings.app_private_key,
        installations=settings.github_installations,
        github=github,
    )


def build_context(settings: RunnerSettings, ecs_client=None) -> RunnerContext:
    """Wire settings into a RunnerContext.

    Args:
        settings: Validated settings.
        ecs_client: Optional boto3 ECS client (for testing).

    Returns:
        RunnerContext ready for the handler.
    """
    launcher = RunnerLauncher(
        cluster=settings.cluster_arn,
        subnet=settings.subnet_id,
        task_definition=settings.task_definition,
        container_name=settings.container_name,
        ecs_client=ecs_client,
        region=settings.aws_region,
    )
    # App installations issue org tokens; the static token is repo-scoped
    scope = RunnerScope.REPO if settings.auth_mode == AuthMode.STATIC else RunnerScope.ORG

    return RunnerContext(
        webhook_secret=settings.github_webhook_secret.get_secret_value(),
        broker=build_broker(settings),
        launcher=launcher,
        scope=scope,
    )
