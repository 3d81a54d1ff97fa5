"""AWS Lambda entry point.

Adapts API Gateway (REST and HTTP API) and Lambda function URL events to the
webhook handler. Point the function's handler at
``webhook_runners.lambda_handler.lambda_handler``.
"""

import asyncio
import base64
import binascii
import json
import logging
from functools import lru_cache
from http import HTTPStatus
from typing import Any, Callable, Dict, Mapping, Optional

import structlog

from .config import get_settings
from .context import RunnerContext, build_context
from .handler import WebhookProcessor, WebhookResponse
from .main import EVENT_HEADER, WEBHOOK_PATH
from .webhook.models import WebhookEnvelope
from .webhook.signature import SIGNATURE_HEADER

logger = structlog.get_logger()

LambdaHandler = Callable[[Dict[str, Any], Any], Dict[str, Any]]


def configure_structured_logging(level: str = "INFO") -> None:
    """Emit JSON log lines for CloudWatch."""
    logging.basicConfig(level=level.upper(), format="%(message)s")
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _request_method(event: Mapping[str, Any]) -> str:
    method = event.get("httpMethod")
    if method is None:
        http = (event.get("requestContext") or {}).get("http") or {}
        method = http.get("method", "")
    return str(method).upper()


def _request_path(event: Mapping[str, Any]) -> str:
    return event.get("rawPath") or event.get("path") or ""


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def _body_bytes(event: Mapping[str, Any]) -> bytes:
    """Return the raw request body.

    Raises:
        binascii.Error: If a body marked as base64 does not decode.
    """
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        return base64.b64decode(body, validate=True)
    return body.encode("utf-8")


def _to_lambda_response(response: WebhookResponse) -> Dict[str, Any]:
    return {
        "statusCode": response.status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(response.body),
    }


def envelope_from_event(event: Mapping[str, Any]) -> WebhookEnvelope:
    """Build a WebhookEnvelope from a Lambda HTTP event."""
    headers = event.get("headers") or {}
    return WebhookEnvelope(
        event_type=_header(headers, EVENT_HEADER),
        body=_body_bytes(event),
        signature=_header(headers, SIGNATURE_HEADER),
    )


def make_lambda_handler(context: RunnerContext, path: str = WEBHOOK_PATH) -> LambdaHandler:
    """Create a Lambda handler bound to a RunnerContext.

    Args:
        context: The runtime context.
        path: Path the webhook is served on.

    Returns:
        A function suitable as a Lambda handler.
    """
    processor = WebhookProcessor(context)

    async def _process(envelope: WebhookEnvelope) -> WebhookResponse:
        try:
            return await processor.handle(envelope)
        finally:
            # The HTTP client is bound to this invocation's event loop
            await context.close()

    def handler(event: Dict[str, Any], lambda_context: Any) -> Dict[str, Any]:
        if _request_path(event) != path:
            return _to_lambda_response(WebhookResponse.for_status(HTTPStatus.NOT_FOUND))
        if _request_method(event) != "POST":
            return _to_lambda_response(
                WebhookResponse.for_status(HTTPStatus.METHOD_NOT_ALLOWED)
            )

        request_id = getattr(lambda_context, "aws_request_id", "unknown")
        logger.info("Processing webhook delivery", request_id=request_id)

        try:
            envelope = envelope_from_event(event)
        except binascii.Error as e:
            # An undecodable body cannot carry a valid signature
            logger.warning("Rejecting webhook with invalid base64 body", error=str(e))
            context.metrics.record_unauthorized()
            return _to_lambda_response(WebhookResponse.for_status(HTTPStatus.UNAUTHORIZED))

        response = asyncio.run(_process(envelope))
        return _to_lambda_response(response)

    return handler


@lru_cache(maxsize=1)
def _default_handler() -> LambdaHandler:
    settings = get_settings()
    configure_structured_logging(settings.log_level)
    return make_lambda_handler(build_context(settings))


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Lambda entry point; the context is built on the first invocation."""
    return _default_handler()(event, context)
