"""Accuracy scoring for quota probes."""

import logging
from typing import Dict, List, Optional

from ratelimit_probe.models import (
    AccuracyReport,
    ConfigurationError,
    ConfusionCounts,
    ThresholdSpec,
    Tolerance,
)


logger = logging.getLogger(__name__)

DEFAULT_ACCURACY_THRESHOLD = 99.0


def score(
    counts: ConfusionCounts,
    quota: int,
    total_requests: int,
    tier: str = "",
    accuracy_threshold: float = DEFAULT_ACCURACY_THRESHOLD,
) -> AccuracyReport:
    """Score how accurately the service enforced ``quota``.

    ``total_requests`` is the number of requests actually issued, which may
    be fewer than planned if the run was cut short.

    Args:
        counts: Final confusion counts of the run.
        quota: Requests admitted per window for the probed tier.
        total_requests: Requests issued during the run.
        tier: Tier name, carried into the report.
        accuracy_threshold: Overall accuracy (percent) above which the report
            is flagged ``passed``. The run verdict comes from the thresholds.

    Returns:
        An AccuracyReport.

    Raises:
        ConfigurationError: If the quota is not positive or no request was
            issued beyond it, since rejection accuracy is then undefined.
    """
    if quota <= 0:
        raise ConfigurationError(f"quota must be positive, got {quota}")
    if total_requests <= quota:
        raise ConfigurationError(
            f"rejection accuracy needs at least one request beyond the quota "
            f"({total_requests} issued, quota {quota})"
        )
    if counts.total != total_requests:
        logger.warning(
            "folded %d requests but %d were issued", counts.total, total_requests
        )

    success_accuracy = counts.true_admit / quota * 100
    rejection_accuracy = counts.true_throttle / (total_requests - quota) * 100
    overall_accuracy = min(success_accuracy, rejection_accuracy)

    return AccuracyReport(
        tier=tier,
        quota=quota,
        total_requests=total_requests,
        counts=counts,
        success_accuracy=success_accuracy,
        rejection_accuracy=rejection_accuracy,
        overall_accuracy=overall_accuracy,
        passed=overall_accuracy > accuracy_threshold,
    )


def quota_metrics(report: AccuracyReport) -> Dict[str, float]:
    """Flatten a report into the named metrics quota thresholds refer to."""
    counts = report.counts
    return {
        "total_requests": report.total_requests,
        "true_admit": counts.true_admit,
        "false_throttle": counts.false_throttle,
        "true_throttle": counts.true_throttle,
        "false_admit": counts.false_admit,
        "unexpected_errors": counts.unexpected_errors,
        "successful_requests": counts.successful_requests,
        "rate_limited_requests": counts.rate_limited_requests,
        "success_accuracy": report.success_accuracy,
        "rejection_accuracy": report.rejection_accuracy,
        "overall_accuracy": report.overall_accuracy,
    }


def quota_thresholds(
    quota: int,
    tolerance: Tolerance,
    total_requests: Optional[int] = None,
) -> List[ThresholdSpec]:
    """Default pass/fail thresholds for a quota probe.

    These decide the run verdict. The bounds are counts rather than exact
    equality because network interleaving near a window boundary can shift
    the observed boundary by a few requests.

    Args:
        quota: Requests admitted per window for the probed tier.
        tolerance: Allowed slack on each count.
        total_requests: Requests issued; when given, the rejection bound is
            capped at the size of the rejection window.
    """
    if tolerance.success < 0 or tolerance.rejection_min < 0 or tolerance.max_unexpected_errors < 0:
        raise ConfigurationError("tolerance values must not be negative")
    rejection_min = tolerance.rejection_min
    if total_requests is not None:
        rejection_min = min(rejection_min, max(total_requests - quota, 0))
    return [
        ThresholdSpec("successful_requests", ">=", max(quota - tolerance.success, 0)),
        ThresholdSpec("rate_limited_requests", ">=", rejection_min),
        ThresholdSpec("unexpected_errors", "<", tolerance.max_unexpected_errors),
    ]
