"""Threshold parsing and evaluation against named run metrics."""

import math
import operator
import re
from typing import Dict, List, Mapping, Sequence, Tuple, Union

from ratelimit_probe.models import ConfigurationError, ThresholdEvaluation, ThresholdSpec


class MetricReferenceError(ConfigurationError):
    """Raised when a threshold names a metric the run does not produce."""


OPERATORS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

DEFAULT_SPIKE_THRESHOLDS: Tuple[ThresholdSpec, ...] = (
    ThresholdSpec("http_req_duration_p95", "<", 500),
    ThresholdSpec("http_req_failed", "<", 0.50),
    ThresholdSpec("errors", "<", 0.01),
    ThresholdSpec("recovery_seconds", "<", 30),
    ThresholdSpec("products_latency_p95", "<", 200),
    ThresholdSpec("users_latency_p95", "<", 200),
)

_EXPRESSION_RE = re.compile(r"^\s*([A-Za-z_][\w.]*)\s*(<=|>=|==|!=|<|>)\s*(\S+)\s*$")


def parse_threshold(raw: Union[str, Mapping]) -> ThresholdSpec:
    """Build a ThresholdSpec from ``"errors < 0.01"`` or a mapping.

    Raises:
        ConfigurationError: If the spec is malformed.
    """
    if isinstance(raw, str):
        match = _EXPRESSION_RE.match(raw)
        if not match:
            raise ConfigurationError(f"malformed threshold: {raw!r}")
        metric, op, value = match.groups()
    elif isinstance(raw, Mapping):
        metric = raw.get("metric")
        op = raw.get("operator")
        value = raw.get("value")
        if not metric or not isinstance(metric, str):
            raise ConfigurationError(f"threshold is missing a metric name: {dict(raw)!r}")
    else:
        raise ConfigurationError(f"malformed threshold: {raw!r}")

    if op not in OPERATORS:
        raise ConfigurationError(f"unknown threshold operator {op!r} for {metric}")
    if isinstance(value, bool):
        raise ConfigurationError(f"threshold value for {metric} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"threshold value for {metric} must be a number, got {value!r}"
        ) from exc
    if not math.isfinite(number):
        raise ConfigurationError(f"threshold value for {metric} must be finite, got {value!r}")
    return ThresholdSpec(metric=metric, operator=op, value=number)


def evaluate(
    metrics: Mapping[str, float],
    specs: Sequence[ThresholdSpec],
) -> Tuple[List[ThresholdEvaluation], bool]:
    """Evaluate every threshold independently against observed metrics.

    Args:
        metrics: Observed metric values by name.
        specs: Thresholds to evaluate, in report order.

    Returns:
        A tuple of (evaluations in spec order, overall pass).

    Raises:
        MetricReferenceError: If a spec names a metric not in ``metrics``.
        ConfigurationError: If a spec uses an unknown operator.
    """
    missing = [spec.metric for spec in specs if spec.metric not in metrics]
    if missing:
        raise MetricReferenceError(
            "thresholds reference unknown metrics: " + ", ".join(sorted(set(missing)))
        )

    evaluations = []
    for spec in specs:
        compare = OPERATORS.get(spec.operator)
        if compare is None:
            raise ConfigurationError(
                f"unknown threshold operator {spec.operator!r} for {spec.metric}"
            )
        observed = metrics[spec.metric]
        evaluations.append(
            ThresholdEvaluation(spec=spec, observed=observed, ok=bool(compare(observed, spec.value)))
        )
    return evaluations, all(e.ok for e in evaluations)


def failed_thresholds(evaluations: Sequence[ThresholdEvaluation]) -> List[str]:
    return [e.spec.describe() for e in evaluations if not e.ok]


def evaluations_to_dicts(evaluations: Sequence[ThresholdEvaluation]) -> List[Dict]:
    return [
        {
            "metric": e.spec.metric,
            "operator": e.spec.operator,
            "value": e.spec.value,
            "observed": e.observed,
            "ok": e.ok,
        }
        for e in evaluations
    ]
