"""ECS task launching for ephemeral runners."""

from .launcher import (
    LaunchError,
    LaunchFailure,
    LaunchOutcome,
    RunnerLauncher,
    RunnerScope,
    needs_ephemeral_storage_override,
)

__all__ = [
    "LaunchError",
    "LaunchFailure",
    "LaunchOutcome",
    "RunnerLauncher",
    "RunnerScope",
    "needs_ephemeral_storage_override",
]
