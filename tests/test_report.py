"""Tests for report rendering."""

import json

import pytest

from ratelimit_probe.models import ConfigurationError, ConfusionCounts, ThresholdSpec, Tolerance
from ratelimit_probe.report import (
    counts_from_dict,
    quota_result,
    render_quota_summary,
    render_spike_summary,
    report_to_dict,
    spike_result,
    to_json,
)
from ratelimit_probe.scorer import quota_metrics, quota_thresholds, score
from ratelimit_probe.thresholds import evaluate


def _report(true_admit=60, false_throttle=0, true_throttle=10, unexpected=0):
    counts = ConfusionCounts(
        true_admit=true_admit,
        false_throttle=false_throttle,
        true_throttle=true_throttle,
        unexpected_errors=unexpected,
    )
    return score(counts, quota=60, total_requests=70, tier="BASIC")


class TestReportToDict:
    def test_fields(self):
        data = report_to_dict(_report())
        assert data["tier"] == "BASIC"
        assert data["quota"] == 60
        assert data["total_requests"] == 70
        assert data["successful_requests"] == 60
        assert data["rate_limited_requests"] == 10
        assert data["overall_accuracy"] == 100.0
        assert data["passed"] is True

    def test_accuracies_rounded(self):
        data = report_to_dict(_report(true_admit=56, false_throttle=4))
        assert data["success_accuracy"] == 93.33
        assert data["passed"] is False

    def test_quota_result_is_json_serializable(self):
        report = _report()
        evaluations, ok = evaluate(quota_metrics(report), quota_thresholds(60, Tolerance()))
        parsed = json.loads(to_json(quota_result(report, evaluations, ok)))
        assert parsed["thresholds_passed"] is True
        assert len(parsed["thresholds"]) == 3


class TestCountsFromDict:
    def test_missing_counts_default_to_zero(self):
        assert counts_from_dict({"true_admit": 3}) == ConfusionCounts(true_admit=3)

    def test_invalid_count(self):
        with pytest.raises(ConfigurationError, match="true_throttle"):
            counts_from_dict({"true_throttle": -1})


class TestRenderQuotaSummary:
    def test_passing_summary(self):
        text = render_quota_summary(_report())
        assert "BASIC Tier" in text
        assert "Successful Requests: 60 (expected: 60)" in text
        assert "Rate Limited Requests: 10 (expected: 10)" in text
        assert "Accuracy: 100.00%" in text
        assert "Status: PASS" in text

    def test_failing_threshold_fails_summary(self):
        report = _report()
        evaluations, _ = evaluate(quota_metrics(report), [ThresholdSpec("unexpected_errors", ">", 0)])
        text = render_quota_summary(report, evaluations)
        assert "✗ unexpected_errors > 0" in text
        assert "Status: FAIL" in text

    def test_low_accuracy(self):
        text = render_quota_summary(_report(true_admit=56, false_throttle=4))
        assert "Accuracy: 93.33%" in text
        assert "below threshold (99%)" in text

    def test_within_tolerance_passes_with_low_accuracy(self):
        report = _report(true_admit=57, false_throttle=3)
        evaluations, _ = evaluate(quota_metrics(report), quota_thresholds(60, Tolerance()))
        text = render_quota_summary(report, evaluations)
        assert "Accuracy: 95.00%" in text
        assert "Status: PASS" in text
        assert "below 99% but within tolerance" in text


class TestRenderSpikeSummary:
    def test_summary(self):
        metrics = {
            "total_requests": 200,
            "throttled": 40,
            "real_errors": 1,
            "errors": 1 / 160,
            "http_req_failed": 0.205,
            "http_req_duration_p95": 120.0,
            "recovery_seconds": 4.0,
        }
        evaluations, ok = evaluate(metrics, [ThresholdSpec("errors", "<", 0.01)])
        text = render_spike_summary(metrics, evaluations, ok, duration_seconds=10.0)
        assert "Total Requests: 200" in text
        assert "Request Rate: 20.00/s" in text
        assert "HTTP Error Rate (includes 429): 20.50%" in text
        assert "Real Errors (non-429): 1" in text
        assert "p95: 120.00ms" in text
        assert "Recovery Time: 4.0s" in text
        assert "✓ errors < 0.01" in text
        assert "Status: PASS" in text

    def test_spike_result(self):
        evaluations, ok = evaluate({"errors": 0.5}, [ThresholdSpec("errors", "<", 0.01)])
        result = spike_result({"errors": 0.5}, evaluations, ok)
        assert result["passed"] is False
        assert result["thresholds"][0]["ok"] is False
