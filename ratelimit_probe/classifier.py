"""Expected and observed outcome classification for individual requests.

Quota probes compare two classifications per request: the outcome the
request's position relative to the quota predicts, and the outcome the
service actually produced. Spike runs use their own, more lenient
classifier that only separates admission-control rejections from genuine
errors.
"""

from typing import Collection, Mapping, Optional

from ratelimit_probe.models import (
    ExpectedOutcome,
    ObservedOutcome,
    RequestRecord,
    SpikeOutcome,
)


DEFAULT_RETRY_HEADER = "Retry-After"
SPIKE_ACCEPTED_STATUSES = frozenset({200, 404})

_STATUS_OK = 200
_STATUS_TOO_MANY_REQUESTS = 429


def classify_expectation(index: int, quota: int) -> ExpectedOutcome:
    """Predict the outcome of the ``index``-th request (1-based) under ``quota``.

    The request at ``index == quota`` is the last one admitted; the first
    rejection is expected at ``quota + 1``.
    """
    if index <= quota:
        return ExpectedOutcome.ADMIT
    return ExpectedOutcome.REJECT


def classify_observation(
    status: int,
    headers: Mapping[str, str],
    has_content: bool,
    has_error_field: bool,
    retry_header: str = DEFAULT_RETRY_HEADER,
) -> ObservedOutcome:
    """Map an observed response onto SUCCESS, THROTTLED or UNEXPECTED_ERROR.

    A 429 only counts as THROTTLED when it carries both the retry hint
    header and a structured error field; a malformed throttle response is
    itself a defect of the service under test.

    Args:
        status: HTTP status code (0 when the transport failed).
        headers: Response headers; looked up case-insensitively.
        has_content: Whether the body carries the expected content field.
        has_error_field: Whether the body carries a structured error field.
        retry_header: Name of the retry hint header.

    Returns:
        The observed outcome. Never raises.
    """
    if status == _STATUS_OK:
        return ObservedOutcome.SUCCESS if has_content else ObservedOutcome.UNEXPECTED_ERROR
    if status == _STATUS_TOO_MANY_REQUESTS:
        if _has_header(headers, retry_header) and has_error_field:
            return ObservedOutcome.THROTTLED
        return ObservedOutcome.UNEXPECTED_ERROR
    return ObservedOutcome.UNEXPECTED_ERROR


def classify_record(
    record: RequestRecord, retry_header: str = DEFAULT_RETRY_HEADER
) -> ObservedOutcome:
    return classify_observation(
        record.status,
        record.headers,
        record.has_content,
        record.has_error_field,
        retry_header=retry_header,
    )


def classify_spike_observation(
    status: int,
    has_content: bool,
    latency_ms: float = 0.0,
    accepted_statuses: Collection[int] = SPIKE_ACCEPTED_STATUSES,
    max_latency_ms: Optional[float] = None,
) -> SpikeOutcome:
    """Classify a response observed while the service is under a load spike.

    429 is an expected admission-control rejection, never an error. Any
    status in ``accepted_statuses`` is a valid business response (404 is a
    legitimate "not found"); a 200 must still carry its content field.

    Args:
        status: HTTP status code (0 when the transport failed).
        has_content: Whether the body carries the expected content field.
        latency_ms: Observed latency, checked against ``max_latency_ms``.
        accepted_statuses: Statuses that count as a served request.
        max_latency_ms: Optional ceiling for served requests.

    Returns:
        OK, THROTTLED or ERROR. Never raises.
    """
    if status == _STATUS_TOO_MANY_REQUESTS:
        return SpikeOutcome.THROTTLED
    if status not in accepted_statuses:
        return SpikeOutcome.ERROR
    if status == _STATUS_OK and not has_content:
        return SpikeOutcome.ERROR
    if max_latency_ms is not None and latency_ms >= max_latency_ms:
        return SpikeOutcome.ERROR
    return SpikeOutcome.OK


def classify_spike_record(
    record: RequestRecord,
    accepted_statuses: Collection[int] = SPIKE_ACCEPTED_STATUSES,
    max_latency_ms: Optional[float] = None,
) -> SpikeOutcome:
    return classify_spike_observation(
        record.status,
        record.has_content,
        latency_ms=record.latency_ms,
        accepted_statuses=accepted_statuses,
        max_latency_ms=max_latency_ms,
    )


# -- internal helpers ---------------------------------------------------------


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    wanted = name.lower()
    return any(key.lower() == wanted for key in headers)
