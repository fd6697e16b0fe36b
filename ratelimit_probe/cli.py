"""CLI entry point for rate-limit enforcement and spike resilience checks."""

import json
import logging
import sys

import click

from ratelimit_probe.evidence import append_event, create_event
from ratelimit_probe.loader import load_config
from ratelimit_probe.models import ConfigurationError, RunConfig
from ratelimit_probe.profile import (
    DEFAULT_SPIKE_PROFILE,
    spike_stage,
    total_duration,
    validate_profile,
)
from ratelimit_probe.report import (
    counts_from_dict,
    quota_result,
    render_quota_summary,
    render_spike_summary,
    spike_result,
    to_json,
)
from ratelimit_probe.runner import run_quota_probe, run_spike
from ratelimit_probe.scorer import quota_metrics, quota_thresholds, score
from ratelimit_probe.thresholds import DEFAULT_SPIKE_THRESHOLDS, evaluate, failed_thresholds
from ratelimit_probe.tiers import build_tiers, resolve_tier
from ratelimit_probe.transport import HttpTransport


EXIT_CONFIG_ERROR = 1
EXIT_THRESHOLDS_FAILED = 2

_base_url_option = click.option(
    "--base-url",
    envvar="BASE_URL",
    default="http://localhost:8080",
    show_default=True,
    help="Base URL of the service under test.",
)
_api_key_option = click.option(
    "--api-key",
    envvar="API_KEY",
    default="test-api-key-local-dev",
    help="API key sent in the X-API-Key header.",
)
_config_option = click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True),
    help="Optional run configuration (YAML or JSON).",
)
_out_option = click.option(
    "--out",
    default=None,
    type=click.Path(),
    help="Optional output path for the machine-readable result (JSON).",
)
_log_option = click.option(
    "--log",
    "log_path",
    default=None,
    type=click.Path(),
    help="Optional path to the evidence log (JSONL). Appends an entry when provided.",
)


@click.group()
@click.option("--verbose", is_flag=True, help="Show per-request progress logging.")
def main(verbose):
    """Rate limit validation -- probe quota enforcement and spike resilience."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@_base_url_option
@_api_key_option
@click.option("--tier", envvar="TIER", default=None, help="Tier to probe (BASIC, STANDARD, PREMIUM).")
@_config_option
@_out_option
@_log_option
def probe(base_url, api_key, tier, config_path, out, log_path):
    """Send quota + N sequential requests and score enforcement accuracy."""
    try:
        config = _load(config_path)
        probed = resolve_tier(tier or config.tier, build_tiers(config.tiers))
        specs = quota_thresholds(
            probed.quota, config.tolerance, probed.quota + config.extra_requests
        )
        specs += config.thresholds
    except ConfigurationError as exc:
        _fail(exc)

    transport = HttpTransport.for_base_url(base_url, api_key=api_key)
    try:
        run = run_quota_probe(
            transport,
            quota=probed.quota,
            total_requests=probed.quota + config.extra_requests,
            retry_header=config.retry_header,
        )
    finally:
        transport.close()

    _finish_quota(
        config, probed.name, probed.quota, run.counts, run.issued, specs,
        target=base_url, out=out, log_path=log_path, mode="quota",
    )


@main.command()
@_base_url_option
@_api_key_option
@_config_option
@click.option(
    "--think-time",
    default=1.0,
    show_default=True,
    type=float,
    help="Seconds each virtual user pauses between requests.",
)
@_out_option
@_log_option
def spike(base_url, api_key, config_path, think_time, out, log_path):
    """Run the staged spike profile and check graceful degradation."""
    try:
        config = _load(config_path)
        stages = validate_profile(config.stages or DEFAULT_SPIKE_PROFILE)
    except ConfigurationError as exc:
        _fail(exc)
    specs = list(config.thresholds or DEFAULT_SPIKE_THRESHOLDS)

    transport = HttpTransport.for_base_url(base_url, api_key=api_key)
    try:
        run = run_spike(transport, stages, think_time=think_time)
    finally:
        transport.close()

    metrics = run.metrics()
    try:
        evaluations, overall_pass = evaluate(metrics, specs)
    except ConfigurationError as exc:
        _fail(exc)

    click.echo(render_spike_summary(
        metrics, evaluations, overall_pass, run.finished_at - run.started_at
    ))
    _write_out(out, spike_result(metrics, evaluations, overall_pass))
    _log_run(log_path, "spike", base_url, overall_pass, run.issued, evaluations)
    if not overall_pass:
        sys.exit(EXIT_THRESHOLDS_FAILED)


@main.command("score")
@click.option(
    "--results",
    required=True,
    type=click.Path(exists=True),
    help="JSON file with tier, quota, total_requests and the confusion counts.",
)
@_config_option
@_out_option
@_log_option
def score_cmd(results, config_path, out, log_path):
    """Score confusion counts collected by an external load tool."""
    try:
        config = _load(config_path)
        with open(results, "r") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ConfigurationError("results JSON must be an object at top level")
        counts = counts_from_dict(raw)
        tier_name = raw.get("tier", config.tier)
        if not isinstance(tier_name, str) or not tier_name:
            raise ConfigurationError(f"'tier' must be a non-empty string, got {tier_name!r}")
        quota = raw.get("quota")
        if quota is None:
            quota = resolve_tier(tier_name, build_tiers(config.tiers)).quota
        total = raw.get("total_requests", counts.total)
        for name, value in (("quota", quota), ("total_requests", total)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"'{name}' must be an integer, got {value!r}")
        specs = quota_thresholds(quota, config.tolerance, total)
        specs += config.thresholds
    except json.JSONDecodeError as exc:
        _fail(ConfigurationError(f"failed to parse {results}: {exc}"))
    except ConfigurationError as exc:
        _fail(exc)

    _finish_quota(
        config, tier_name, quota, counts, total, specs,
        target=results, out=out, log_path=log_path, mode="score",
    )


@main.command("check-profile")
@_config_option
def check_profile(config_path):
    """Validate a staged load profile and describe it."""
    try:
        config = _load(config_path)
        stages = validate_profile(config.stages or DEFAULT_SPIKE_PROFILE)
    except ConfigurationError as exc:
        _fail(exc)

    peak = spike_stage(stages)
    for i, stage in enumerate(stages):
        marker = " <- spike" if i == peak else ""
        click.echo(
            f"{i}: {stage.name or '-'} {stage.duration_seconds:g}s -> {stage.target}{marker}"
        )
    click.echo(f"Total duration: {total_duration(stages):g}s")


# -- internal helpers ---------------------------------------------------------


def _load(config_path) -> RunConfig:
    return load_config(config_path) if config_path else RunConfig()


def _fail(exc: Exception) -> None:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(EXIT_CONFIG_ERROR)


def _finish_quota(config, tier, quota, counts, total, specs, target, out, log_path, mode):
    try:
        report = score(
            counts, quota, total, tier=tier, accuracy_threshold=config.accuracy_threshold
        )
        evaluations, overall_pass = evaluate(quota_metrics(report), specs)
    except ConfigurationError as exc:
        _fail(exc)

    click.echo(render_quota_summary(report, evaluations, config.accuracy_threshold))
    _write_out(out, quota_result(report, evaluations, overall_pass))
    _log_run(log_path, mode, target, overall_pass, total, evaluations, tier=tier)
    if not overall_pass:
        sys.exit(EXIT_THRESHOLDS_FAILED)


def _write_out(out, result) -> None:
    if not out:
        return
    with open(out, "w") as f:
        f.write(to_json(result) + "\n")
    click.echo(f"Results written to {out}")


def _log_run(log_path, mode, target, passed, total, evaluations, tier=None) -> None:
    if not log_path:
        return
    event = create_event(
        mode=mode,
        target=target,
        passed=passed,
        total_requests=total,
        tier=tier,
        failed_thresholds=failed_thresholds(evaluations),
    )
    append_event(event, log_path)
    click.echo(f"Evidence logged to {log_path}")


if __name__ == "__main__":
    main()
