"""FastAPI application entry point for the runner launcher.

Exposes the GitHub webhook endpoint plus liveness and Prometheus metrics
endpoints. Configuration is loaded and validated once at startup; the
resulting RunnerContext lives on app.state for the lifetime of the process.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config import RunnerSettings, get_settings
from .context import RunnerContext, build_context
from .handler import WebhookProcessor
from .webhook.models import WebhookEnvelope
from .webhook.signature import SIGNATURE_HEADER

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/v1/webhook"
EVENT_HEADER = "X-GitHub-Event"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact.
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if not value:
        return "<unset>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: RunnerSettings) -> None:
    """Log configuration values with secrets redacted."""
    pat = settings.github_pat.get_secret_value() if settings.github_pat else None
    logger.info("Runner launcher configuration:")
    logger.info(f"  Auth Mode: {settings.auth_mode.value}")
    logger.info(f"  GitHub API URL: {settings.github_api_url}")
    logger.info(f"  GitHub App ID: {settings.github_app_id or '<unset>'}")
    logger.info(f"  GitHub Installations: {sorted(settings.github_installations)}")
    logger.info(f"  GitHub PAT: {_redact_secret(pat)}")
    logger.info(
        "  GitHub Webhook Secret: "
        f"{_redact_secret(settings.github_webhook_secret.get_secret_value())}"
    )
    logger.info(f"  Cluster ARN: {settings.cluster_arn}")
    logger.info(f"  Subnet ID: {settings.subnet_id}")
    logger.info(f"  Task Definition: {settings.task_definition}")
    logger.info(f"  Container Name: {settings.container_name}")
    logger.info(f"  AWS Region: {settings.aws_region}")


def create_app(context: Optional[RunnerContext] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        context: Prebuilt context (for testing). When omitted, settings are
                 loaded from the environment at startup.

    Returns:
        FastAPI: The configured application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runner_context = context
        if runner_context is None:
            settings = get_settings()
            configure_logging(settings.log_level)
            _log_configuration(settings)
            runner_context = build_context(settings)

        app.state.context = runner_context
        app.state.processor = WebhookProcessor(runner_context)
        logger.info("Runner launcher started")

        yield

        logger.info("Runner launcher shutting down")
        await runner_context.close()

    app = FastAPI(
        title="Webhook Runners",
        description="Launch ephemeral GitHub Actions runners on ECS",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health():
        """Liveness probe endpoint."""
        return {"status": "healthy"}

    @app.get("/metrics")
    async def metrics(request: Request):
        """Prometheus metrics endpoint."""
        registry = request.app.state.context.metrics.registry
        return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    @app.post(WEBHOOK_PATH)
    async def github_webhook(request: Request):
        """GitHub webhook receiver endpoint.

        The body is read as raw bytes so the signature is checked against
        exactly what GitHub signed.
        """
        envelope = WebhookEnvelope(
            event_type=request.headers.get(EVENT_HEADER),
            body=await request.body(),
            signature=request.headers.get(SIGNATURE_HEADER),
        )
        response = await request.app.state.processor.handle(envelope)
        return JSONResponse(status_code=response.status_code, content=response.body)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    configure_logging(dev_settings.log_level)
    uvicorn.run(
        "webhook_runners.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
    )
