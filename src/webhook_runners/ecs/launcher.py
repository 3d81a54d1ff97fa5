"""Ephemeral runner tasks on ECS.

Each eligible job gets one ECS task started from a pre-provisioned task
definition. The task is sized through overrides and configured for the
runner image through container environment variables:

- RUNNER_NAME_PREFIX: "aws-ecs-fargate-<size signature>"
- RUNNER_TOKEN: the registration token
- RUNNER_SCOPE: "org" or "repo"
- ORG_NAME (org scope) or REPO_URL (repo scope)
- LABELS: the job's labels joined with ","
- EPHEMERAL, START_DOCKER_SERVICE: always "true"
- TIMEOUT: job timeout, e.g. "30m"

Failed launches are reported, never retried.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, ConfigDict

from ..github.registration import RegistrationToken
from ..webhook.models import LaunchDecision

logger = logging.getLogger(__name__)

DEFAULT_TASK_DEFINITION = "github-actions-runner"
DEFAULT_CONTAINER_NAME = "github-actions-runner"
RUNNER_NAME_PREFIX = "aws-ecs-fargate-"

# Fargate documents 20 GiB as the minimum ephemeral storage override, but
# requests for 20 GiB are rejected. 21 is the smallest accepted size.
MIN_EPHEMERAL_STORAGE_GIB = 21


class LaunchError(Exception):
    """Raised when a runner task could not be started.

    Attributes:
        message: Human-readable error description.
        failures: Failure entries reported by ECS, if any.
    """

    def __init__(self, message: str, failures: Optional[List["LaunchFailure"]] = None):
        self.message = message
        self.failures = failures or []
        super().__init__(message)


class RunnerScope(str, Enum):
    """Which runner pool the runner registers with."""

    ORG = "org"
    REPO = "repo"


class LaunchFailure(BaseModel):
    """One failure entry from an ECS RunTask response."""

    model_config = ConfigDict(frozen=True)

    arn: Optional[str] = None
    reason: Optional[str] = None
    detail: Optional[str] = None


class LaunchOutcome(BaseModel):
    """Result of a RunTask call.

    ECS may report failure entries alongside started tasks; they are kept
    here so the caller can surface them.

    Attributes:
        task_arns: ARNs of started tasks.
        failures: Failure entries reported by ECS.
    """

    model_config = ConfigDict(frozen=True)

    task_arns: List[str] = []
    failures: List[LaunchFailure] = []

    @property
    def started(self) -> bool:
        return bool(self.task_arns)


def needs_ephemeral_storage_override(disk: int) -> bool:
    """Check whether a disk size must be sent as an override.

    Sizes at or below the Fargate minimum are left to the task default.
    """
    return disk > MIN_EPHEMERAL_STORAGE_GIB


def _env(name: str, value: str) -> Dict[str, str]:
    return {"name": name, "value": value}


def _tag(key: str, value: str) -> Dict[str, str]:
    return {"key": key, "value": value}


class RunnerLauncher:
    """Starts ephemeral runner tasks on an ECS cluster.

    Attributes:
        cluster: ECS cluster ARN or name.
        subnet: Subnet for the task's awsvpc network configuration.
        task_definition: Task definition family (or family:revision).
        container_name: Container in the task definition to override.
    """

    def __init__(
        self,
        cluster: str,
        subnet: str,
        task_definition: str = DEFAULT_TASK_DEFINITION,
        container_name: str = DEFAULT_CONTAINER_NAME,
        ecs_client=None,
        region: Optional[str] = None,
    ):
        """Initialize the launcher.

        Args:
            cluster: ECS cluster ARN or name.
            subnet: Subnet ID for the runner tasks.
            task_definition: Task definition family.
            container_name: Name of the runner container.
            ecs_client: Optional boto3 ECS client (for testing).
            region: AWS region, used when no client is given.
        """
        self.cluster = cluster
        self.subnet = subnet
        self.task_definition = task_definition
        self.container_name = container_name
        self._ecs = ecs_client or boto3.client("ecs", region_name=region)

    def build_launch_request(
        self,
        token: RegistrationToken,
        decision: LaunchDecision,
        scope: RunnerScope = RunnerScope.ORG,
    ) -> Dict[str, Any]:
        """Build the RunTask keyword arguments for one runner.

        Args:
            token: Registration token for the runner.
            decision: Job metadata and resource profile from the classifier.
            scope: Runner pool the token was issued for.

        Returns:
            Keyword arguments for ecs.run_task.

        Raises:
            AssertionError: If the job has no labels. The classifier only
                lets through jobs with exactly two labels.
        """
        labels: Sequence[str] = decision.labels
        if not labels:
            raise AssertionError("labels must not be empty")
        profile = decision.profile

        environment = [
            _env("RUNNER_NAME_PREFIX", RUNNER_NAME_PREFIX + profile.size_signature),
            _env("RUNNER_TOKEN", token.reveal()),
            _env("RUNNER_SCOPE", scope.value),
        ]
        if scope == RunnerScope.REPO:
            environment.append(
                _env(
                    "REPO_URL",
                    f"https://github.com/{decision.organization}/{decision.repository}",
                )
            )
        else:
            environment.append(_env("ORG_NAME", decision.organization))
        environment.extend(
            [
                _env("LABELS", ",".join(labels)),
                _env("EPHEMERAL", "true"),
                _env("START_DOCKER_SERVICE", "true"),
                _env("TIMEOUT", profile.timeout_value),
            ]
        )

        overrides: Dict[str, Any] = {
            "cpu": str(profile.cpu),
            "memory": str(profile.memory),
            "containerOverrides": [
                {
                    "name": self.container_name,
                    "cpu": profile.cpu,
                    "memory": profile.memory,
                    "environment": environment,
                }
            ],
        }
        if needs_ephemeral_storage_override(profile.disk):
            overrides["ephemeralStorage"] = {"sizeInGiB": profile.disk}

        return {
            "cluster": self.cluster,
            "taskDefinition": self.task_definition,
            "count": 1,
            "networkConfiguration": {
                "awsvpcConfiguration": {"subnets": [self.subnet]},
            },
            "tags": [
                _tag("Repository", decision.repository_url),
                _tag("Size", profile.size_signature),
                _tag("Job", decision.job_url),
            ],
            "overrides": overrides,
        }

    async def launch(
        self,
        token: RegistrationToken,
        decision: LaunchDecision,
        scope: RunnerScope = RunnerScope.ORG,
    ) -> LaunchOutcome:
        """Start a runner task for an eligible job.

        The boto3 call blocks, so it runs in a worker thread.

        Args:
            token: Registration token for the runner.
            decision: Job metadata and resource profile.
            scope: Runner pool the token was issued for.

        Returns:
            LaunchOutcome with started task ARNs and any failure entries.

        Raises:
            AssertionError: If the job has no labels.
            LaunchError: If the RunTask call fails or starts no task.
        """
        request = self.build_launch_request(token, decision, scope)

        try:
            response = await asyncio.to_thread(self._ecs.run_task, **request)
        except ClientError as e:
            error = e.response.get("Error", {})
            logger.error(
                "ECS RunTask failed: %s - %s (job %s)",
                error.get("Code", ""),
                error.get("Message", str(e)),
                decision.job_url,
            )
            raise LaunchError(f"failed to spawn runner: {error.get('Code', e)}") from e
        except BotoCoreError as e:
            logger.error("ECS RunTask failed: %s (job %s)", e, decision.job_url)
            raise LaunchError(f"failed to spawn runner: {e}") from e

        outcome = LaunchOutcome(
            task_arns=[
                task["taskArn"]
                for task in response.get("tasks", [])
                if task.get("taskArn")
            ],
            failures=[
                LaunchFailure(
                    arn=failure.get("arn"),
                    reason=failure.get("reason"),
                    detail=failure.get("detail"),
                )
                for failure in response.get("failures", [])
            ],
        )

        for failure in outcome.failures:
            logger.warning(
                "ECS reported failure: arn=%s, reason=%s, detail=%s (job %s)",
                failure.arn,
                failure.reason,
                failure.detail,
                decision.job_url,
            )

        if not outcome.started:
            raise LaunchError("ECS started no runner task", failures=outcome.failures)

        logger.info(
            "Spawned runner: tasks=%s, size=%s, job=%s",
            outcome.task_arns,
            decision.profile.size_signature,
            decision.job_url,
        )
        return outcome
