"""Reference drivers that issue requests and feed the classification engine.

The quota probe runs from a single sequential actor so that request indices
line up with the service's one-minute window. The spike run steps each
stage's concurrency directly to its target instead of ramping linearly;
finer-grained scheduling is left to a dedicated load tool.
"""

import itertools
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ratelimit_probe.aggregator import QuotaAggregator, SpikeAggregator
from ratelimit_probe.classifier import (
    DEFAULT_RETRY_HEADER,
    classify_expectation,
    classify_record,
    classify_spike_record,
)
from ratelimit_probe.models import (
    ConfigurationError,
    ConfusionCounts,
    ExpectedOutcome,
    LoadStage,
    ObservedOutcome,
    RequestTarget,
)
from ratelimit_probe.profile import validate_profile


logger = logging.getLogger(__name__)

QUOTA_PROBE_TARGET = RequestTarget(group="users", path="/api/users?page=0&size=20")

DEFAULT_SPIKE_TARGETS = (
    RequestTarget(group="products", path="/api/products?page=0&size=20"),
    RequestTarget(group="users", path="/api/users?page=0&size=20"),
    RequestTarget(group="orders", path="/api/orders/1"),
    RequestTarget(
        group="events",
        path="/api/events",
        method="POST",
        payload={"userId": "user-1", "eventType": "PAGE_VIEW", "properties": {"page": "/products"}},
        accepted_statuses=(202,),
        max_latency_ms=50,
    ),
)


@dataclass
class QuotaRunResult:
    counts: ConfusionCounts
    issued: int
    planned: int

    @property
    def complete(self) -> bool:
        return self.issued == self.planned


@dataclass
class SpikeRunResult:
    aggregator: SpikeAggregator
    stages: List[LoadStage]
    started_at: float
    finished_at: float = 0.0
    issued: int = 0

    def metrics(self):
        return self.aggregator.metrics(self.stages, self.started_at)


def run_quota_probe(
    transport,
    quota: int,
    total_requests: int,
    target: RequestTarget = QUOTA_PROBE_TARGET,
    retry_header: str = DEFAULT_RETRY_HEADER,
    should_stop: Optional[Callable[[int], bool]] = None,
) -> QuotaRunResult:
    """Issue requests 1..total_requests back to back and fold every outcome.

    Args:
        transport: Object with ``request(target, index) -> RequestRecord``.
        quota: Requests per window the tier is entitled to.
        total_requests: Requests to plan; must exceed ``quota``.
        target: The endpoint to hit.
        retry_header: Header a throttled response must carry.
        should_stop: Called with the next index before each request; a true
            result ends the run early with the counts gathered so far.

    Returns:
        The final counts together with issued and planned request totals.
    """
    if quota <= 0:
        raise ConfigurationError(f"quota must be positive, got {quota}")
    if total_requests <= quota:
        raise ConfigurationError(
            f"planned {total_requests} requests, need more than the quota of {quota}"
        )

    aggregator = QuotaAggregator()
    issued = 0
    for index in range(1, total_requests + 1):
        if should_stop is not None and should_stop(index):
            logger.warning("quota probe stopped after %d/%d requests", issued, total_requests)
            break
        record = transport.request(target, index)
        issued += 1
        expected = classify_expectation(index, quota)
        observed = classify_record(record, retry_header=retry_header)
        aggregator.add(expected, observed)
        _log_quota_observation(index, total_requests, quota, record, expected, observed, retry_header)

    return QuotaRunResult(counts=aggregator.snapshot(), issued=issued, planned=total_requests)


def run_spike(
    transport,
    stages: Sequence[LoadStage],
    targets: Sequence[RequestTarget] = DEFAULT_SPIKE_TARGETS,
    think_time: float = 1.0,
    clock: Callable[[], float] = time.time,
    sleep: Callable[[float], None] = time.sleep,
) -> SpikeRunResult:
    """Drive the staged profile with one worker thread per virtual user.

    Args:
        transport: Object with ``request(target, index) -> RequestRecord``.
        stages: The load profile; validated before anything is sent.
        targets: Requests each virtual user cycles through.
        think_time: Pause after each request.
        clock: Wall-clock source; must match the transport's timestamps.
        sleep: Sleep primitive.

    Returns:
        The aggregator with every classified request and the run's start time.
    """
    stages = validate_profile(stages)
    if not targets:
        raise ConfigurationError("spike run needs at least one request target")

    aggregator = SpikeAggregator()
    counter = itertools.count(1)
    counter_lock = threading.Lock()

    def next_index() -> int:
        with counter_lock:
            return next(counter)

    def virtual_user(deadline: float) -> None:
        while clock() < deadline:
            for target in targets:
                if clock() >= deadline:
                    return
                record = transport.request(target, next_index())
                outcome = classify_spike_record(
                    record,
                    accepted_statuses=target.accepted_statuses,
                    max_latency_ms=target.max_latency_ms,
                )
                aggregator.add(record, outcome)
                if think_time > 0:
                    sleep(think_time)

    started_at = clock()
    stage_start = started_at
    for i, stage in enumerate(stages):
        deadline = stage_start + stage.duration_seconds
        logger.info(
            "stage %d (%s): %d virtual users for %gs",
            i, stage.name or "-", stage.target, stage.duration_seconds,
        )
        if stage.target > 0:
            with ThreadPoolExecutor(max_workers=stage.target) as pool:
                futures = [pool.submit(virtual_user, deadline) for _ in range(stage.target)]
                for future in futures:
                    future.result()
        remaining = deadline - clock()
        if remaining > 0:
            sleep(remaining)
        stage_start = deadline

    return SpikeRunResult(
        aggregator=aggregator,
        stages=stages,
        started_at=started_at,
        finished_at=clock(),
        issued=len(aggregator),
    )


# -- internal helpers ---------------------------------------------------------


def _log_quota_observation(index, total, quota, record, expected, observed, retry_header):
    if index % 10 == 0:
        logger.info("Request %d/%d: status %d", index, total, record.status)

    if observed is ObservedOutcome.UNEXPECTED_ERROR:
        logger.error("unexpected status %d at request %d", record.status, index)
    elif expected is ExpectedOutcome.ADMIT and observed is ObservedOutcome.THROTTLED:
        logger.warning("rate limited at request %d, expected limit: %d", index, quota)
    elif expected is ExpectedOutcome.REJECT and observed is ObservedOutcome.SUCCESS:
        logger.warning("request %d succeeded, should be rate limited", index)
    elif index == quota + 1 and observed is ObservedOutcome.THROTTLED:
        logger.info(
            "rate limit enforced at request %d (limit: %d), %s: %s",
            index, quota, retry_header, record.header(retry_header),
        )
