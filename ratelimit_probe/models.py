"""Data models for quota probes, spike runs, and their verdicts."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class ConfigurationError(Exception):
    """Raised when a run is misconfigured and cannot be classified or scored."""


class ExpectedOutcome(str, Enum):
    ADMIT = "admit"
    REJECT = "reject"


class ObservedOutcome(str, Enum):
    SUCCESS = "success"
    THROTTLED = "throttled"
    UNEXPECTED_ERROR = "unexpected_error"


class SpikeOutcome(str, Enum):
    OK = "ok"
    THROTTLED = "throttled"
    ERROR = "error"


@dataclass(frozen=True)
class Tier:
    name: str
    quota: int  # requests per one-minute window


@dataclass(frozen=True)
class RequestRecord:
    index: int
    timestamp: float
    status: int
    headers: Dict[str, str] = field(default_factory=dict)  # keys lower-cased
    has_content: bool = False
    has_error_field: bool = False
    latency_ms: float = 0.0
    group: str = "default"

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


@dataclass(frozen=True)
class ConfusionCounts:
    true_admit: int = 0
    false_throttle: int = 0
    true_throttle: int = 0
    false_admit: int = 0
    unexpected_errors: int = 0

    @property
    def total(self) -> int:
        return (
            self.true_admit
            + self.false_throttle
            + self.true_throttle
            + self.false_admit
            + self.unexpected_errors
        )

    @property
    def successful_requests(self) -> int:
        return self.true_admit + self.false_admit

    @property
    def rate_limited_requests(self) -> int:
        return self.true_throttle + self.false_throttle


@dataclass(frozen=True)
class AccuracyReport:
    tier: str
    quota: int
    total_requests: int
    counts: ConfusionCounts
    success_accuracy: float
    rejection_accuracy: float
    overall_accuracy: float
    passed: bool


@dataclass(frozen=True)
class LoadStage:
    duration_seconds: float
    target: int
    name: str = ""


@dataclass(frozen=True)
class ThresholdSpec:
    metric: str
    operator: str  # "<", "<=", ">", ">=", "==", "!="
    value: float

    def describe(self) -> str:
        return f"{self.metric} {self.operator} {self.value:g}"


@dataclass(frozen=True)
class ThresholdEvaluation:
    spec: ThresholdSpec
    observed: float
    ok: bool


@dataclass
class Tolerance:
    success: int = 5
    rejection_min: int = 5
    max_unexpected_errors: int = 5


@dataclass
class RunConfig:
    tier: str = "BASIC"
    tiers: Dict[str, int] = field(default_factory=dict)
    extra_requests: int = 10
    tolerance: Tolerance = field(default_factory=Tolerance)
    accuracy_threshold: float = 99.0
    retry_header: str = "Retry-After"
    stages: List[LoadStage] = field(default_factory=list)
    thresholds: List[ThresholdSpec] = field(default_factory=list)


@dataclass
class EvidenceEvent:
    ts: str
    mode: str
    target: str
    tier: Optional[str] = None
    total_requests: int = 0
    passed: bool = False
    failed_thresholds: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RequestTarget:
    group: str
    path: str
    method: str = "GET"
    payload: Optional[dict] = None
    accepted_statuses: Tuple[int, ...] = (200, 404)
    max_latency_ms: Optional[float] = None
