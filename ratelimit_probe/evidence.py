"""Append-only run log in JSONL format."""

import json
import os
from dataclasses import asdict
from datetime import datetime, timezone
from typing import List, Optional

from ratelimit_probe.models import EvidenceEvent


def create_event(
    mode: str,
    target: str,
    passed: bool,
    total_requests: int = 0,
    tier: Optional[str] = None,
    failed_thresholds: Optional[List[str]] = None,
) -> EvidenceEvent:
    """Build an EvidenceEvent stamped with the current UTC time.

    Args:
        mode: ``"quota"``, ``"spike"`` or ``"score"``.
        target: Base URL or results file the run was evaluated from.
        passed: Overall verdict of the run.
        total_requests: Requests issued (or scored).
        tier: Probed tier, for quota runs.
        failed_thresholds: Descriptions of thresholds that did not hold.

    Returns:
        A populated EvidenceEvent.
    """
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return EvidenceEvent(
        ts=ts,
        mode=mode,
        target=target,
        tier=tier,
        total_requests=total_requests,
        passed=passed,
        failed_thresholds=list(failed_thresholds or []),
    )


def append_event(event: EvidenceEvent, log_path: str) -> None:
    """Append a single event as a JSONL line, creating parent directories.

    Existing entries are never overwritten.
    """
    parent = os.path.dirname(log_path)
    if parent and not os.path.isdir(parent):
        os.makedirs(parent, exist_ok=True)

    with open(log_path, "a") as f:
        f.write(json.dumps(asdict(event)) + "\n")


def read_events(log_path: str) -> List[EvidenceEvent]:
    """Read all events from a JSONL log; malformed lines are skipped."""
    if not os.path.isfile(log_path):
        return []

    events = []
    with open(log_path, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(raw, dict):
                continue
            events.append(EvidenceEvent(
                ts=raw.get("ts", ""),
                mode=raw.get("mode", ""),
                target=raw.get("target", ""),
                tier=raw.get("tier"),
                total_requests=raw.get("total_requests", 0),
                passed=raw.get("passed", False),
                failed_thresholds=raw.get("failed_thresholds", []),
            ))
    return events
