"""GitHub webhook models for the runner launcher.

GitHub Webhook Payload Structure (workflow_job event, fields consulted):
{
  "action": "queued",
  "workflow_job": {
    "labels": ["self-hosted", "aws-ecs-16cpu-64mem-20disk-30m"],
    "html_url": "https://github.com/owner/repo/actions/runs/1/job/2"
  },
  "repository": {
    "name": "repo-name",
    "owner": {"login": "owner-name"}
  }
}
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..profiles import ResourceProfile

WORKFLOW_JOB_EVENT = "workflow_job"
SELF_HOSTED_LABEL = "self-hosted"


class JobAction(str, Enum):
    """workflow_job event actions.

    Only QUEUED leads to a runner launch; the others are acknowledged and
    ignored.
    """

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    WAITING = "waiting"


class WebhookEnvelope(BaseModel):
    """A raw inbound webhook delivery.

    The body is kept as the exact bytes received so the signature can be
    verified against what the sender signed.

    Attributes:
        event_type: Value of the X-GitHub-Event header, if present.
        body: The unparsed request body.
        signature: Value of the X-Hub-Signature-256 header, if present.
    """

    model_config = ConfigDict(frozen=True)

    event_type: Optional[str] = None
    body: bytes = b""
    signature: Optional[str] = None


class JobEvent(BaseModel):
    """Fields of a workflow_job event used to decide on and launch a runner.

    Attributes:
        action: The event action (queued, in_progress, completed, ...).
        labels: Labels requested by the job, in delivery order.
        organization: Login of the repository owner.
        repository: The repository name (without owner prefix).
        job_url: HTML URL of the queued job.
    """

    model_config = ConfigDict(frozen=True)

    action: str = Field(..., description="The workflow_job action")
    labels: tuple[str, ...] = Field(
        default=(),
        description="Labels requested by the job, in delivery order",
    )
    organization: str = Field(..., min_length=1)
    repository: str = Field(..., min_length=1)
    job_url: str = Field(..., min_length=1)

    @property
    def full_repository(self) -> str:
        """Repository path in format "{organization}/{repository}"."""
        return f"{self.organization}/{self.repository}"


class LaunchDecision(BaseModel):
    """Everything needed to launch a runner for an eligible job.

    Attributes:
        organization: Login of the repository owner.
        repository: The repository name.
        job_url: HTML URL of the queued job.
        labels: Full label set of the job, in delivery order.
        profile: Resource profile decoded from the configuration label.
    """

    model_config = ConfigDict(frozen=True)

    organization: str
    repository: str
    job_url: str
    labels: tuple[str, ...]
    profile: ResourceProfile

    @property
    def repository_url(self) -> str:
        return f"https://github.com/{self.organization}/{self.repository}/"
