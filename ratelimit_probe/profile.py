"""Staged load profiles: the concurrency schedule a spike run follows."""

import logging
import re
from typing import List, Optional, Sequence, Tuple, Union

from ratelimit_probe.models import ConfigurationError, LoadStage


logger = logging.getLogger(__name__)

DEFAULT_SPIKE_PROFILE: Tuple[LoadStage, ...] = (
    LoadStage(duration_seconds=60, target=100, name="ramp"),
    LoadStage(duration_seconds=30, target=500, name="spike"),
    LoadStage(duration_seconds=60, target=100, name="recovery"),
    LoadStage(duration_seconds=30, target=0, name="ramp-down"),
)

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_UNIT_SECONDS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, None: 1}


def parse_duration(value: Union[str, int, float]) -> float:
    """Parse ``30``, ``"30s"``, ``"1m"`` or ``"1h"`` into seconds.

    Raises:
        ConfigurationError: If the value is not a recognised duration.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ConfigurationError(f"invalid duration: {value!r}")
    return float(match.group(1)) * _UNIT_SECONDS[match.group(2)]


def validate_profile(stages: Sequence[LoadStage]) -> List[LoadStage]:
    """Check a profile's shape and return it as a list.

    Every stage needs a strictly positive duration and a non-negative
    integer target. Consecutive stages with equal targets are accepted but
    logged, since they add nothing to the schedule.

    Raises:
        ConfigurationError: Listing every invalid stage.
    """
    errors = []
    if not stages:
        errors.append("profile must contain at least one stage")
    for i, stage in enumerate(stages):
        if not stage.duration_seconds > 0:
            errors.append(
                f"stages[{i}].duration must be positive, got {stage.duration_seconds!r}"
            )
        if isinstance(stage.target, bool) or not isinstance(stage.target, int) or stage.target < 0:
            errors.append(
                f"stages[{i}].target must be a non-negative integer, got {stage.target!r}"
            )
    if errors:
        raise ConfigurationError(
            "load profile validation failed:\n  - " + "\n  - ".join(errors)
        )

    for i in range(1, len(stages)):
        if stages[i].target == stages[i - 1].target:
            logger.warning(
                "stages[%d] repeats target %d of the previous stage", i, stages[i].target
            )
    return list(stages)


def stages_from_config(raw: list) -> List[LoadStage]:
    """Build and validate stages from ``[{duration, target, name?}, ...]``."""
    if not isinstance(raw, list):
        raise ConfigurationError("'stages' must be a list")
    stages = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ConfigurationError(f"stages[{i}] must be a mapping")
        if "duration" not in item or "target" not in item:
            raise ConfigurationError(f"stages[{i}] requires 'duration' and 'target'")
        stages.append(
            LoadStage(
                duration_seconds=parse_duration(item["duration"]),
                target=item["target"],
                name=str(item.get("name", "")),
            )
        )
    return validate_profile(stages)


def total_duration(stages: Sequence[LoadStage]) -> float:
    return sum(stage.duration_seconds for stage in stages)


def stage_at(stages: Sequence[LoadStage], elapsed: float) -> Optional[int]:
    """Index of the stage active ``elapsed`` seconds into the run, or None once over."""
    if elapsed < 0:
        return None
    boundary = 0.0
    for i, stage in enumerate(stages):
        boundary += stage.duration_seconds
        if elapsed < boundary:
            return i
    return None


def spike_stage(stages: Sequence[LoadStage]) -> int:
    """Index of the first stage with the highest target."""
    if not stages:
        raise ConfigurationError("profile must contain at least one stage")
    peak = max(stage.target for stage in stages)
    return next(i for i, stage in enumerate(stages) if stage.target == peak)


def is_spike(stages: Sequence[LoadStage], elapsed: float) -> bool:
    return stage_at(stages, elapsed) == spike_stage(stages)


def recovery_window(stages: Sequence[LoadStage]) -> Optional[Tuple[float, float]]:
    """Elapsed-time bounds of the stage following the spike, if there is one."""
    peak = spike_stage(stages)
    if peak + 1 >= len(stages):
        return None
    spike_end = total_duration(stages[: peak + 1])
    return spike_end, spike_end + stages[peak + 1].duration_seconds
