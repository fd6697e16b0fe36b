"""Tests for evidence logging."""

import json
import os
import tempfile

from ratelimit_probe.evidence import append_event, create_event, read_events


class TestCreateEvent:
    def test_basic_event(self):
        event = create_event(mode="quota", target="http://localhost:8080", passed=True,
                             total_requests=70, tier="BASIC")
        assert event.mode == "quota"
        assert event.target == "http://localhost:8080"
        assert event.tier == "BASIC"
        assert event.total_requests == 70
        assert event.passed is True
        assert event.failed_thresholds == []
        assert "T" in event.ts  # ISO 8601

    def test_event_with_failures(self):
        event = create_event(
            mode="spike",
            target="http://localhost:8080",
            passed=False,
            failed_thresholds=["errors < 0.01"],
        )
        assert event.tier is None
        assert event.passed is False
        assert event.failed_thresholds == ["errors < 0.01"]


class TestAppendAndRead:
    def test_append_creates_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_path = os.path.join(tmpdir, "evidence.jsonl")
            assert not os.path.exists(log_path)

            append_event(create_event("quota", "http://svc", True), log_path)

            with open(log_path, "r") as f:
                lines = f.readlines()
            assert len(lines) == 1
            parsed = json.loads(lines[0])
            assert parsed["mode"] == "quota"
            assert parsed["passed"] is True

    def test_append_does_not_overwrite(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_path = os.path.join(tmpdir, "evidence.jsonl")
            append_event(create_event("quota", "http://one", True), log_path)
            append_event(create_event("spike", "http://two", False), log_path)

            events = read_events(log_path)
            assert [e.target for e in events] == ["http://one", "http://two"]
            assert events[1].mode == "spike"

    def test_read_nonexistent_returns_empty(self):
        assert read_events("/tmp/nonexistent_ratelimit_evidence.jsonl") == []

    def test_creates_parent_directories(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_path = os.path.join(tmpdir, "nested", "dir", "evidence.jsonl")
            append_event(create_event("score", "results.json", False), log_path)
            assert os.path.isfile(log_path)

    def test_malformed_lines_skipped(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_path = os.path.join(tmpdir, "evidence.jsonl")
            with open(log_path, "w") as f:
                f.write('{"ts":"2024-01-01T00:00:00Z","mode":"quota","target":"a","passed":true}\n')
                f.write("this is not json\n")
                f.write("[1, 2]\n")
                f.write('{"ts":"2024-01-02T00:00:00Z","mode":"spike","target":"b","passed":false}\n')

            events = read_events(log_path)
            assert [e.target for e in events] == ["a", "b"]
            assert events[0].total_requests == 0
