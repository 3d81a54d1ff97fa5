"""Ephemeral GitHub Actions runners on AWS ECS.

This package turns GitHub workflow_job webhooks into ECS runner tasks:
- Webhook signature verification and event classification
- Resource profiles decoded from "aws-ecs-..." runner labels
- Runner registration tokens via a GitHub App installation or a static token
- ECS RunTask requests sized from the resolved profile
"""

__version__ = "1.0.0"
