"""Resource profiles decoded from runner labels.

A job requests a runner size through a single label of the form::

    aws-ecs-<cpu>cpu-<memory>mem-<disk>disk-<timeout>m

cpu and memory are whole vCPUs and GiB, scaled by 1024 into the ECS units
(CPU units and MiB). disk is GiB of ephemeral storage and timeout is the job
timeout in minutes. The older form without a disk segment
(``aws-ecs-<cpu>cpu-<memory>mem-<timeout>m``) is still accepted and uses
DEFAULT_DISK_GIB.
"""

from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


LABEL_PREFIX = "aws-ecs-"

# ECS Fargate default ephemeral storage
DEFAULT_DISK_GIB = 20

UNIT_SCALE = 1024

_SEGMENT_SUFFIXES = ("cpu", "mem", "disk", "m")
_LEGACY_SEGMENT_SUFFIXES = ("cpu", "mem", "m")


class ResourceProfile(BaseModel):
    """CPU, memory, disk and timeout for one runner task.

    Attributes:
        cpu: ECS CPU units (1024 per vCPU).
        memory: Memory in MiB.
        disk: Ephemeral storage in GiB.
        timeout: Job timeout in minutes.
    """

    model_config = ConfigDict(frozen=True)

    cpu: int = Field(..., gt=0, description="ECS CPU units (1024 per vCPU)")
    memory: int = Field(..., gt=0, description="Memory in MiB")
    disk: int = Field(..., ge=0, description="Ephemeral storage in GiB")
    timeout: int = Field(..., ge=0, description="Job timeout in minutes")

    @property
    def size_signature(self) -> str:
        """Sizing summary used in runner names and task tags.

        Returns:
            str: e.g. "16384cpu-65536mem-20disk-30m"
        """
        return f"{self.cpu}cpu-{self.memory}mem-{self.disk}disk-{self.timeout}m"

    @property
    def timeout_value(self) -> str:
        """Timeout in the runner image's duration format (e.g. "30m")."""
        return f"{self.timeout}m"

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.cpu, self.memory, self.disk, self.timeout)

    def to_label(self) -> str:
        """Encode this profile as a canonical runner label.

        cpu and memory are divided back into whole units; profiles whose
        cpu or memory are not multiples of 1024 have no label form.

        Raises:
            ValueError: If cpu or memory is not a whole number of units.
        """
        if self.cpu % UNIT_SCALE or self.memory % UNIT_SCALE:
            raise ValueError(
                f"profile {self.size_signature} has no whole-unit label form"
            )
        return (
            f"{LABEL_PREFIX}{self.cpu // UNIT_SCALE}cpu-"
            f"{self.memory // UNIT_SCALE}mem-{self.disk}disk-{self.timeout}m"
        )


# Labels authorized by hand before the generic grammar existed. Every entry
# must decode to the same values through parse_profile_label.
KNOWN_PROFILES: Dict[str, Tuple[int, int, int, int]] = {
    "aws-ecs-16cpu-64mem-30m": (16384, 65536, 20, 30),
    "aws-ecs-16cpu-64mem-20disk-30m": (16384, 65536, 20, 30),
    "aws-ecs-16cpu-64mem-30disk-30m": (16384, 65536, 30, 30),
    "aws-ecs-16cpu-64mem-40disk-30m": (16384, 65536, 40, 30),
    "aws-ecs-16cpu-32mem-20disk-30m": (16384, 32768, 20, 30),
    "aws-ecs-16cpu-24mem-20disk-30m": (16384, 24576, 20, 30),
    "aws-ecs-16cpu-16mem-20disk-30m": (16384, 16384, 20, 30),
    "aws-ecs-12cpu-8mem-20disk-30m": (12288, 8192, 20, 30),
    "aws-ecs-8cpu-8mem-50disk-30m": (8192, 8192, 50, 30),
    "aws-ecs-8cpu-8mem-20disk-30m": (8192, 8192, 20, 30),
    "aws-ecs-4cpu-8mem-20disk-30m": (4096, 8192, 20, 30),
}


def _parse_segment(segment: str, suffix: str) -> Optional[int]:
    """Parse "<digits><suffix>" into an int, or None."""
    if not segment.endswith(suffix):
        return None
    digits = segment[: -len(suffix)]
    # str.isdigit() accepts non-ASCII digits that int() may not round-trip
    if not digits or not digits.isascii() or not digits.isdigit():
        return None
    return int(digits)


def parse_profile_label(label: str) -> Optional[ResourceProfile]:
    """Decode a label with the generic grammar.

    Args:
        label: A single runner label.

    Returns:
        ResourceProfile if the label matches either grammar, None otherwise.
        Returns None for:
        - Labels without the "aws-ecs-" prefix
        - A segment count matching neither grammar
        - Any numeric segment that is not a non-negative integer
        - Zero cpu or memory
    """
    if not isinstance(label, str) or not label.startswith(LABEL_PREFIX):
        return None

    segments = label[len(LABEL_PREFIX):].split("-")
    if len(segments) == len(_SEGMENT_SUFFIXES):
        suffixes = _SEGMENT_SUFFIXES
    elif len(segments) == len(_LEGACY_SEGMENT_SUFFIXES):
        suffixes = _LEGACY_SEGMENT_SUFFIXES
    else:
        return None

    values = [_parse_segment(s, suffix) for s, suffix in zip(segments, suffixes)]
    if any(v is None for v in values):
        return None

    if len(values) == len(_LEGACY_SEGMENT_SUFFIXES):
        cpu, memory, timeout = values
        disk = DEFAULT_DISK_GIB
    else:
        cpu, memory, disk, timeout = values

    if cpu == 0 or memory == 0:
        return None

    return ResourceProfile(
        cpu=cpu * UNIT_SCALE,
        memory=memory * UNIT_SCALE,
        disk=disk,
        timeout=timeout,
    )


def resolve_profile(label: str) -> Optional[ResourceProfile]:
    """Resolve a label to a ResourceProfile.

    The KNOWN_PROFILES table is consulted first, then the generic grammar.

    Args:
        label: A single runner label.

    Returns:
        ResourceProfile, or None if the label is not a resource request.
    """
    known = KNOWN_PROFILES.get(label)
    if known is not None:
        cpu, memory, disk, timeout = known
        return ResourceProfile(cpu=cpu, memory=memory, disk=disk, timeout=timeout)
    return parse_profile_label(label)


def is_profile_label(label: str) -> bool:
    """Check whether a label claims to be a resource request."""
    return isinstance(label, str) and label.startswith(LABEL_PREFIX)
