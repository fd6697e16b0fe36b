"""Load and validate run configuration files (YAML or JSON)."""

import json
import os
from typing import List

import yaml

from ratelimit_probe.models import ConfigurationError, RunConfig, Tolerance
from ratelimit_probe.profile import stages_from_config
from ratelimit_probe.thresholds import parse_threshold
from ratelimit_probe.tiers import build_tiers, resolve_tier


def load_config(path: str) -> RunConfig:
    """Load a run configuration from a YAML or JSON file.

    Args:
        path: Path to the configuration file.

    Returns:
        A validated RunConfig instance.

    Raises:
        ConfigurationError: If the file is missing, unreadable, or invalid.
    """
    if not os.path.isfile(path):
        raise ConfigurationError(f"config file not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    try:
        with open(path, "r") as f:
            if ext in (".yaml", ".yml"):
                raw = yaml.safe_load(f)
            elif ext == ".json":
                raw = json.load(f)
            else:
                raise ConfigurationError(
                    f"unsupported file extension: {ext} (expected .yaml, .yml, or .json)"
                )
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"failed to parse {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError("config must be a mapping/object at the top level")

    return build_config(raw)


def build_config(raw: dict) -> RunConfig:
    """Construct and validate a RunConfig from a raw dict."""
    errors: List[str] = []
    config = RunConfig()

    tiers_raw = raw.get("tiers", {})
    if not isinstance(tiers_raw, dict):
        errors.append("'tiers' must be a mapping of tier name to quota")
        tiers_raw = {}
    try:
        tiers = build_tiers(tiers_raw)
        config.tiers = {name: tier.quota for name, tier in tiers.items()}
    except ConfigurationError as exc:
        errors.append(str(exc))
        tiers = None

    tier_name = raw.get("tier", config.tier)
    if not isinstance(tier_name, str) or not tier_name:
        errors.append("'tier' must be a non-empty string")
    elif tiers is not None:
        try:
            config.tier = resolve_tier(tier_name, tiers).name
        except ConfigurationError as exc:
            errors.append(str(exc))

    extra = raw.get("extra_requests", config.extra_requests)
    if isinstance(extra, bool) or not isinstance(extra, int) or extra < 1:
        errors.append("'extra_requests' must be a positive integer")
    else:
        config.extra_requests = extra

    config.tolerance = _parse_tolerance(raw.get("tolerance", {}), errors)
    if config.extra_requests < config.tolerance.rejection_min:
        errors.append(
            f"'extra_requests' ({config.extra_requests}) must be at least "
            f"'tolerance.rejection_min' ({config.tolerance.rejection_min})"
        )

    accuracy = raw.get("accuracy_threshold", config.accuracy_threshold)
    if isinstance(accuracy, bool) or not isinstance(accuracy, (int, float)):
        errors.append("'accuracy_threshold' must be a number")
    else:
        config.accuracy_threshold = float(accuracy)

    retry_header = raw.get("retry_header", config.retry_header)
    if not isinstance(retry_header, str) or not retry_header:
        errors.append("'retry_header' must be a non-empty string")
    else:
        config.retry_header = retry_header

    if "stages" in raw:
        try:
            config.stages = stages_from_config(raw["stages"])
        except ConfigurationError as exc:
            errors.append(str(exc))

    thresholds_raw = raw.get("thresholds", [])
    if not isinstance(thresholds_raw, list):
        errors.append("'thresholds' must be a list")
    else:
        for i, item in enumerate(thresholds_raw):
            try:
                config.thresholds.append(parse_threshold(item))
            except ConfigurationError as exc:
                errors.append(f"thresholds[{i}]: {exc}")

    if errors:
        raise ConfigurationError(
            "config validation failed:\n  - " + "\n  - ".join(errors)
        )
    return config


def _parse_tolerance(raw, errors: List[str]) -> Tolerance:
    tolerance = Tolerance()
    if not isinstance(raw, dict):
        errors.append("'tolerance' must be a mapping")
        return tolerance
    for key in ("success", "rejection_min", "max_unexpected_errors"):
        if key not in raw:
            continue
        value = raw[key]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            errors.append(f"'tolerance.{key}' must be a non-negative integer")
            continue
        setattr(tolerance, key, value)
    return tolerance
