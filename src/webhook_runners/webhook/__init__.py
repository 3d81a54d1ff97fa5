"""GitHub webhook handling for the runner launcher.

This package authenticates workflow_job deliveries and decides whether they
request an ECS runner:
- signature: X-Hub-Signature-256 verification over the raw body
- classifier: event type, action and label gates
- models: envelope, parsed event and launch decision
"""

from .classifier import Classification, EventClassifier, IgnoreReason, classify_event
from .models import JobAction, JobEvent, LaunchDecision, WebhookEnvelope
from .signature import MalformedSignatureError, compute_signature, verify_signature

__all__ = [
    "Classification",
    "EventClassifier",
    "IgnoreReason",
    "JobAction",
    "JobEvent",
    "LaunchDecision",
    "MalformedSignatureError",
    "WebhookEnvelope",
    "classify_event",
    "compute_signature",
    "verify_signature",
]
