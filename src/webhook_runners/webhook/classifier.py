"""Eligibility decisions for workflow_job webhook events.

An event leads to a runner launch only if it passes every gate, in order:

1. The event type is workflow_job.
2. The body is a workflow_job payload.
3. The action is queued.
4. The labels include "self-hosted".
5. There are exactly two labels.
6. Exactly one label starts with "aws-ecs-".
7. That label decodes to a ResourceProfile.

Any failed gate means the event is acknowledged and ignored. Ignored events
are not errors: the sender has nothing to fix and must not retry. The reason
is kept on the Classification so it can be logged and counted.
"""

import json
import logging
from enum import Enum
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from ..profiles import ResourceProfile, is_profile_label, resolve_profile
from .models import (
    SELF_HOSTED_LABEL,
    WORKFLOW_JOB_EVENT,
    JobAction,
    JobEvent,
    LaunchDecision,
)

logger = logging.getLogger(__name__)

# A job must ask for "self-hosted" plus exactly one profile label
REQUIRED_LABEL_COUNT = 2


class IgnoreReason(str, Enum):
    """Why an event did not lead to a runner launch."""

    WRONG_EVENT = "wrong_event"
    MALFORMED_PAYLOAD = "malformed_payload"
    WRONG_ACTION = "wrong_action"
    NOT_SELF_HOSTED = "not_self_hosted"
    LABEL_COUNT = "label_count"
    NO_PROFILE_LABEL = "no_profile_label"
    INVALID_PROFILE_LABEL = "invalid_profile_label"


class Classification(BaseModel):
    """Outcome of classifying one event.

    Exactly one of decision and reason is set.

    Attributes:
        decision: The launch decision when every gate passed.
        reason: The first gate that failed otherwise.
    """

    model_config = ConfigDict(frozen=True)

    decision: Optional[LaunchDecision] = None
    reason: Optional[IgnoreReason] = None

    @property
    def should_launch(self) -> bool:
        return self.decision is not None

    @classmethod
    def launch(cls, decision: LaunchDecision) -> "Classification":
        return cls(decision=decision)

    @classmethod
    def ignore(cls, reason: IgnoreReason) -> "Classification":
        return cls(reason=reason)


class EventClassifier:
    """Decides whether a webhook event warrants launching a runner.

    The classifier never raises for bad input; every problem with the event
    becomes an ignore Classification.

    Attributes:
        resolver: Maps a label to a ResourceProfile or None.
    """

    def __init__(
        self,
        resolver: Callable[[str], Optional[ResourceProfile]] = resolve_profile,
    ) -> None:
        self.resolver = resolver

    def classify(self, event_type: Optional[str], body: bytes) -> Classification:
        """Classify a verified webhook delivery.

        The event type is checked before the body is decoded, so events of
        other types are ignored whatever their body contains.

        Args:
            event_type: Value of the X-GitHub-Event header.
            body: The raw, already authenticated request body.

        Returns:
            Classification with either a LaunchDecision or an IgnoreReason.
        """
        if event_type != WORKFLOW_JOB_EVENT:
            logger.info("Ignoring event type: %s", event_type)
            return Classification.ignore(IgnoreReason.WRONG_EVENT)

        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning("Ignoring workflow_job event with invalid JSON: %s", e)
            return Classification.ignore(IgnoreReason.MALFORMED_PAYLOAD)

        event = self.parse_job_event(payload)
        if event is None:
            return Classification.ignore(IgnoreReason.MALFORMED_PAYLOAD)

        return self.classify_job_event(event)

    def classify_job_event(self, event: JobEvent) -> Classification:
        """Apply the action and label gates to a parsed event.

        Args:
            event: The parsed workflow_job event.

        Returns:
            Classification with either a LaunchDecision or an IgnoreReason.
        """
        if event.action != JobAction.QUEUED.value:
            logger.info(
                "Ignoring workflow_job action: %s (job %s)",
                event.action,
                event.job_url,
            )
            return Classification.ignore(IgnoreReason.WRONG_ACTION)

        labels = list(event.labels)

        if SELF_HOSTED_LABEL not in labels:
            logger.info("Ignoring job without self-hosted label: %s", labels)
            return Classification.ignore(IgnoreReason.NOT_SELF_HOSTED)

        if len(labels) != REQUIRED_LABEL_COUNT:
            logger.info(
                "Ignoring job with %d labels, expected %d: %s",
                len(labels),
                REQUIRED_LABEL_COUNT,
                labels,
            )
            return Classification.ignore(IgnoreReason.LABEL_COUNT)

        profile_labels = [label for label in labels if is_profile_label(label)]
        if len(profile_labels) != 1:
            logger.info("Ignoring job without a single aws-ecs- label: %s", labels)
            return Classification.ignore(IgnoreReason.NO_PROFILE_LABEL)

        config_label = profile_labels[0]
        profile = self.resolver(config_label)
        if profile is None:
            logger.warning("Invalid config label: %s", config_label)
            return Classification.ignore(IgnoreReason.INVALID_PROFILE_LABEL)

        decision = LaunchDecision(
            organization=event.organization,
            repository=event.repository,
            job_url=event.job_url,
            labels=tuple(labels),
            profile=profile,
        )

        logger.info(
            "Job eligible for runner: repository=%s, job=%s, size=%s",
            event.full_repository,
            event.job_url,
            profile.size_signature,
        )

        return Classification.launch(decision)

    def parse_job_event(self, payload: Any) -> Optional[JobEvent]:
        """Parse a workflow_job event from a webhook payload.

        Args:
            payload: The decoded webhook payload.

        Returns:
            JobEvent if the payload has the consulted fields, None otherwise.
            Returns None for:
            - A payload that is not a JSON object
            - Missing action, workflow_job or repository objects
            - A labels field that is not an array of strings
            - Missing repository name, owner login or job html_url
        """
        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        action = payload.get("action")
        if not isinstance(action, str):
            logger.warning("Missing 'action' field in payload")
            return None

        job_data = payload.get("workflow_job")
        if not isinstance(job_data, dict):
            logger.warning(
                "Missing or invalid 'workflow_job' field in payload: %s",
                type(job_data),
            )
            return None

        repo_data = payload.get("repository")
        if not isinstance(repo_data, dict):
            logger.warning(
                "Missing or invalid 'repository' field in payload: %s",
                type(repo_data),
            )
            return None

        labels = self._extract_labels(job_data.get("labels"))
        if labels is None:
            return None

        owner_data = repo_data.get("owner")
        organization = owner_data.get("login") if isinstance(owner_data, dict) else None

        try:
            return JobEvent(
                action=action,
                labels=tuple(labels),
                organization=organization,
                repository=repo_data.get("name"),
                job_url=job_data.get("html_url"),
            )
        except ValidationError as e:
            logger.warning("Invalid workflow_job payload: %s", e)
            return None

    def _extract_labels(self, labels_data: Any) -> Optional[List[str]]:
        """Extract label names from the workflow_job labels array.

        workflow_job labels are plain strings. Any other entry makes the
        label set ambiguous, so the whole array is rejected.
        """
        if not isinstance(labels_data, list):
            logger.warning("Missing or invalid 'labels' field: %s", type(labels_data))
            return None
        if not all(isinstance(label, str) for label in labels_data):
            logger.warning("Non-string entry in 'labels' field: %s", labels_data)
            return None
        return list(labels_data)


def classify_event(event_type: Optional[str], body: bytes) -> Classification:
    """Classify a delivery with the default label resolver."""
    return EventClassifier().classify(event_type, body)
