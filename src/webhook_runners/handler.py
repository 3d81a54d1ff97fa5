"""Webhook handling pipeline.

Each delivery passes through the stages in order, and any stage can end it:

1. Signature verification -> 401 if forged, missing or malformed
2. Classification -> 200 if the event is ignored
3. Registration token -> 500 if GitHub fails or config is missing
4. Runner launch -> 500 if ECS fails

Only a delivery that passes all four is a launch. Ignored deliveries get the
same 200 response as launches. Every response body is
``{"status": "<reason phrase>"}``.
"""

import logging
import time
from http import HTTPStatus
from typing import Dict

from pydantic import BaseModel, ConfigDict

from .config import ConfigurationError
from .context import RunnerContext
from .ecs.launcher import LaunchError, RunnerScope
from .github.client import GitHubAPIError
from .github.registration import AuthorizationContext, RegistrationTokenError
from .webhook.models import WebhookEnvelope
from .webhook.signature import MalformedSignatureError, verify_signature

logger = logging.getLogger(__name__)


class WebhookResponse(BaseModel):
    """Transport-independent response to a webhook delivery."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    status: str

    @classmethod
    def for_status(cls, status: HTTPStatus) -> "WebhookResponse":
        return cls(status_code=status.value, status=status.phrase)

    @property
    def body(self) -> Dict[str, str]:
        return {"status": self.status}


class WebhookProcessor:
    """Runs a webhook delivery through verification, classification,
    token issue and launch.

    Attributes:
        context: Settings-derived collaborators shared by all deliveries.
    """

    def __init__(self, context: RunnerContext) -> None:
        self.context = context

    async def handle(self, envelope: WebhookEnvelope) -> WebhookResponse:
        """Handle one webhook delivery.

        Never raises: every failure is logged and mapped to a response.

        Args:
            envelope: The raw delivery.

        Returns:
            WebhookResponse with status 200, 401 or 500.
        """
        started = time.monotonic()
        metrics = self.context.metrics

        try:
            if not self._authenticate(envelope):
                metrics.record_unauthorized()
                return WebhookResponse.for_status(HTTPStatus.UNAUTHORIZED)

            classification = self.context.classifier.classify(
                envelope.event_type, envelope.body
            )
            if not classification.should_launch:
                metrics.record_ignored(classification.reason.value)
                return WebhookResponse.for_status(HTTPStatus.OK)

            decision = classification.decision
            scope = self.context.scope
            auth_context = AuthorizationContext(
                organization=decision.organization,
                repository=decision.repository if scope == RunnerScope.REPO else None,
            )

            token = await self.context.broker.issue(auth_context)
            outcome = await self.context.launcher.launch(token, decision, scope)

            metrics.record_launch_failures(len(outcome.failures))
            metrics.record_launched(time.monotonic() - started)
            return WebhookResponse.for_status(HTTPStatus.OK)

        except ConfigurationError as e:
            logger.error("Configuration error: %s", e)
        except (GitHubAPIError, RegistrationTokenError) as e:
            logger.error(
                "Failed to get runner registration token: %s",
                e,
                extra={"status_code": getattr(e, "status_code", None)},
            )
        except LaunchError as e:
            metrics.record_launch_failures(len(e.failures))
            logger.error("Failed to launch runner: %s", e)
        except Exception:
            logger.exception("Unexpected error handling webhook")

        metrics.record_error()
        return WebhookResponse.for_status(HTTPStatus.INTERNAL_SERVER_ERROR)

    def _authenticate(self, envelope: WebhookEnvelope) -> bool:
        """Verify the delivery's signature.

        Raises:
            ConfigurationError: If no webhook secret is configured.
        """
        try:
            authentic = verify_signature(
                envelope.body,
                self.context.webhook_secret,
                envelope.signature,
            )
        except MalformedSignatureError as e:
            logger.warning("Rejecting webhook: %s", e)
            return False

        if not authentic:
            logger.warning("Rejecting webhook: signature mismatch")
        return authentic
