"""Render accuracy reports and threshold results as mappings or text."""

import json
from typing import Dict, List, Mapping, Sequence

from ratelimit_probe.models import (
    AccuracyReport,
    ConfigurationError,
    ConfusionCounts,
    ThresholdEvaluation,
)
from ratelimit_probe.thresholds import evaluations_to_dicts


_RULE = "=" * 60
_COUNT_FIELDS = (
    "true_admit",
    "false_throttle",
    "true_throttle",
    "false_admit",
    "unexpected_errors",
)


def report_to_dict(report: AccuracyReport) -> Dict:
    counts = report.counts
    return {
        "tier": report.tier,
        "quota": report.quota,
        "total_requests": report.total_requests,
        "true_admit": counts.true_admit,
        "false_throttle": counts.false_throttle,
        "true_throttle": counts.true_throttle,
        "false_admit": counts.false_admit,
        "unexpected_errors": counts.unexpected_errors,
        "successful_requests": counts.successful_requests,
        "rate_limited_requests": counts.rate_limited_requests,
        "success_accuracy": round(report.success_accuracy, 2),
        "rejection_accuracy": round(report.rejection_accuracy, 2),
        "overall_accuracy": round(report.overall_accuracy, 2),
        "passed": report.passed,
    }


def counts_from_dict(raw: Mapping) -> ConfusionCounts:
    """Rebuild ConfusionCounts from a results mapping.

    Raises:
        ConfigurationError: If a count is missing or not a non-negative integer.
    """
    values = {}
    for name in _COUNT_FIELDS:
        value = raw.get(name, 0)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ConfigurationError(f"'{name}' must be a non-negative integer, got {value!r}")
        values[name] = value
    return ConfusionCounts(**values)


def quota_result(
    report: AccuracyReport,
    evaluations: Sequence[ThresholdEvaluation],
    overall_pass: bool,
) -> Dict:
    result = report_to_dict(report)
    result["thresholds"] = evaluations_to_dicts(evaluations)
    result["thresholds_passed"] = overall_pass
    return result


def spike_result(
    metrics: Mapping[str, float],
    evaluations: Sequence[ThresholdEvaluation],
    overall_pass: bool,
) -> Dict:
    return {
        "metrics": dict(metrics),
        "thresholds": evaluations_to_dicts(evaluations),
        "passed": overall_pass,
    }


def to_json(result: Mapping) -> str:
    return json.dumps(result, indent=2, sort_keys=True)


def render_quota_summary(
    report: AccuracyReport,
    evaluations: Sequence[ThresholdEvaluation] = (),
    accuracy_threshold: float = 99.0,
) -> str:
    counts = report.counts
    expected_rate_limited = report.total_requests - report.quota
    verdict = all(e.ok for e in evaluations) if evaluations else report.passed

    lines = [
        _RULE,
        f"Rate Limit Validation - {report.tier or 'unknown'} Tier",
        _RULE,
        "",
        f"Rate Limit: {report.quota} requests/minute",
        f"Total Requests: {report.total_requests}",
        "",
        "Results:",
        f"  Successful Requests: {counts.successful_requests} (expected: {report.quota})",
        f"  Rate Limited Requests: {counts.rate_limited_requests} (expected: {expected_rate_limited})",
        f"  Unexpected Errors: {counts.unexpected_errors}",
        f"  Throttled before limit: {counts.false_throttle}",
        f"  Admitted after limit: {counts.false_admit}",
        "",
        f"Success Accuracy: {report.success_accuracy:.2f}%",
        f"Rejection Accuracy: {report.rejection_accuracy:.2f}%",
        f"Accuracy: {report.overall_accuracy:.2f}%",
    ]
    if evaluations:
        lines.append("")
        lines.extend(_threshold_lines(evaluations))
    lines.append("")
    lines.append(f"Status: {'PASS' if verdict else 'FAIL'}")
    if report.passed:
        lines.append(f"Rate limiting enforced correctly for {report.tier or 'this'} tier")
    elif verdict:
        lines.append(f"Rate limiting accuracy below {accuracy_threshold:g}% but within tolerance")
    else:
        lines.append(f"Rate limiting accuracy below threshold ({accuracy_threshold:g}%)")
    lines.append(_RULE)
    return "\n".join(lines)


def render_spike_summary(
    metrics: Mapping[str, float],
    evaluations: Sequence[ThresholdEvaluation],
    overall_pass: bool,
    duration_seconds: float = 0.0,
) -> str:
    total = int(metrics.get("total_requests", 0))
    lines = [
        "Spike Test Summary",
        _RULE,
        "",
        f"Test Duration: {duration_seconds:.1f}s",
        f"Total Requests: {total}",
    ]
    if duration_seconds > 0:
        lines.append(f"Request Rate: {total / duration_seconds:.2f}/s")

    lines.append("")
    lines.append("Response Times:")
    for label, key in (
        ("Min", "min"), ("Med", "med"), ("Avg", "avg"),
        ("p90", "p90"), ("p95", "p95"), ("p99", "p99"), ("Max", "max"),
    ):
        lines.append(f"  {label}: {metrics.get('http_req_duration_' + key, 0.0):.2f}ms")

    lines.append("")
    lines.append(f"HTTP Error Rate (includes 429): {metrics.get('http_req_failed', 0.0) * 100:.2f}%")
    lines.append(f"Rate Limited (429): {int(metrics.get('throttled', 0))}")
    lines.append(f"Custom Error Rate (excludes 429): {metrics.get('errors', 0.0) * 100:.2f}%")
    lines.append(f"Real Errors (non-429): {int(metrics.get('real_errors', 0))}")
    if "recovery_seconds" in metrics:
        lines.append(f"Recovery Time: {metrics['recovery_seconds']:.1f}s")

    lines.append("")
    lines.extend(_threshold_lines(evaluations))
    lines.append("")
    lines.append(f"Status: {'PASS' if overall_pass else 'FAIL'}")
    return "\n".join(lines)


def _threshold_lines(evaluations: Sequence[ThresholdEvaluation]) -> List[str]:
    lines = ["Threshold Checks:"]
    for e in evaluations:
        mark = "✓" if e.ok else "✗"
        lines.append(f"  {mark} {e.spec.describe()} (observed: {e.observed:g})")
    return lines
