"""Accumulation of classified requests into counts and latency samples."""

import dataclasses
import statistics
import threading
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from ratelimit_probe.models import (
    ConfusionCounts,
    ExpectedOutcome,
    LoadStage,
    ObservedOutcome,
    RequestRecord,
    SpikeOutcome,
)
from ratelimit_probe.profile import is_spike, recovery_window


_BUCKETS = {
    (ExpectedOutcome.ADMIT, ObservedOutcome.SUCCESS): "true_admit",
    (ExpectedOutcome.ADMIT, ObservedOutcome.THROTTLED): "false_throttle",
    (ExpectedOutcome.REJECT, ObservedOutcome.THROTTLED): "true_throttle",
    (ExpectedOutcome.REJECT, ObservedOutcome.SUCCESS): "false_admit",
}


def fold(
    counts: ConfusionCounts,
    expected: ExpectedOutcome,
    observed: ObservedOutcome,
) -> ConfusionCounts:
    """Return ``counts`` with one more request in the matching bucket.

    Any pairing other than the four confusion cells, including every
    UNEXPECTED_ERROR observation, lands in ``unexpected_errors`` so the
    total always equals the number of folded requests.
    """
    bucket = _BUCKETS.get((expected, observed), "unexpected_errors")
    return dataclasses.replace(counts, **{bucket: getattr(counts, bucket) + 1})


def merge(left: ConfusionCounts, right: ConfusionCounts) -> ConfusionCounts:
    """Combine counts accumulated independently, e.g. by separate workers."""
    return ConfusionCounts(
        **{
            f.name: getattr(left, f.name) + getattr(right, f.name)
            for f in dataclasses.fields(ConfusionCounts)
        }
    )


def percentile(sorted_values: Sequence[float], fraction: float) -> float:
    if not sorted_values:
        return 0.0
    k = int((len(sorted_values) - 1) * fraction)
    return sorted_values[k]


class QuotaAggregator:
    """Shared confusion counts that many request-issuing actors may fold into."""

    def __init__(self, counts: Optional[ConfusionCounts] = None):
        self._lock = threading.Lock()
        self._counts = counts or ConfusionCounts()

    def add(self, expected: ExpectedOutcome, observed: ObservedOutcome) -> ConfusionCounts:
        with self._lock:
            self._counts = fold(self._counts, expected, observed)
            return self._counts

    def snapshot(self) -> ConfusionCounts:
        with self._lock:
            return self._counts


class SpikeAggregator:
    """Collects spike-mode outcomes and latencies, safe for concurrent use."""

    def __init__(self):
        self._lock = threading.Lock()
        self._samples: List[Tuple[RequestRecord, SpikeOutcome]] = []

    def add(self, record: RequestRecord, outcome: SpikeOutcome) -> None:
        with self._lock:
            self._samples.append((record, outcome))

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def outcome_counts(self) -> Dict[SpikeOutcome, int]:
        with self._lock:
            samples = list(self._samples)
        counts = {outcome: 0 for outcome in SpikeOutcome}
        for _, outcome in samples:
            counts[outcome] += 1
        return counts

    def metrics(
        self,
        stages: Optional[Sequence[LoadStage]] = None,
        started_at: float = 0.0,
    ) -> Dict[str, float]:
        """Derive the named spike metrics the threshold evaluator consumes.

        Args:
            stages: The profile the run followed; enables ``recovery_seconds``.
            started_at: Timestamp the first stage started at.

        Returns:
            Mapping of metric name to value.
        """
        with self._lock:
            samples = list(self._samples)

        total = len(samples)
        throttled = sum(1 for _, o in samples if o is SpikeOutcome.THROTTLED)
        real_errors = sum(1 for _, o in samples if o is SpikeOutcome.ERROR)
        unthrottled = total - throttled
        http_failed = sum(1 for r, _ in samples if not 200 <= r.status < 400)

        metrics: Dict[str, float] = {
            "total_requests": total,
            "throttled": throttled,
            "real_errors": real_errors,
            "errors": real_errors / unthrottled if unthrottled else 0.0,
            "http_req_failed": http_failed / total if total else 0.0,
        }
        metrics.update(
            _latency_stats("http_req_duration", [r.latency_ms for r, _ in samples])
        )

        by_group: Dict[str, List[float]] = defaultdict(list)
        for record, _ in samples:
            by_group[record.group].append(record.latency_ms)
        for group, latencies in sorted(by_group.items()):
            metrics[f"{group}_latency_p95"] = percentile(sorted(latencies), 0.95)

        if stages:
            metrics["spike_real_errors"] = sum(
                1 for r, o in samples
                if o is SpikeOutcome.ERROR and is_spike(stages, r.timestamp - started_at)
            )
            metrics["recovery_seconds"] = _recovery_seconds(samples, stages, started_at)
        return metrics


# -- internal helpers ---------------------------------------------------------


def _latency_stats(prefix: str, latencies: List[float]) -> Dict[str, float]:
    ordered = sorted(latencies)
    return {
        f"{prefix}_min": ordered[0] if ordered else 0.0,
        f"{prefix}_med": statistics.median(ordered) if ordered else 0.0,
        f"{prefix}_avg": statistics.mean(ordered) if ordered else 0.0,
        f"{prefix}_p90": percentile(ordered, 0.90),
        f"{prefix}_p95": percentile(ordered, 0.95),
        f"{prefix}_p99": percentile(ordered, 0.99),
        f"{prefix}_max": ordered[-1] if ordered else 0.0,
    }


def _recovery_seconds(
    samples: List[Tuple[RequestRecord, SpikeOutcome]],
    stages: Sequence[LoadStage],
    started_at: float,
) -> float:
    window = recovery_window(stages)
    if window is None:
        return 0.0
    spike_end, recovery_end = window
    last_error = 0.0
    for record, outcome in samples:
        elapsed = record.timestamp - started_at
        if spike_end <= elapsed < recovery_end and outcome is SpikeOutcome.ERROR:
            last_error = max(last_error, elapsed - spike_end)
    return last_error
