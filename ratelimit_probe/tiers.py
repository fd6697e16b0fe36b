"""Tier configuration: which quota each API-key tier is entitled to."""

from typing import Dict, Mapping, Optional

from ratelimit_probe.models import ConfigurationError, Tier


WINDOW_SECONDS = 60

DEFAULT_TIERS: Dict[str, int] = {
    "BASIC": 60,
    "STANDARD": 300,
    "PREMIUM": 1000,
}


def build_tiers(overrides: Optional[Mapping[str, int]] = None) -> Dict[str, Tier]:
    """Merge tier overrides over the defaults and validate every quota.

    Args:
        overrides: Extra or replacement tiers, name -> quota.

    Returns:
        Mapping of upper-cased tier name to Tier.

    Raises:
        ConfigurationError: If any quota is not a positive integer.
    """
    merged = dict(DEFAULT_TIERS)
    for name, quota in (overrides or {}).items():
        merged[str(name).upper()] = quota

    tiers = {}
    for name, quota in merged.items():
        if isinstance(quota, bool) or not isinstance(quota, int) or quota <= 0:
            raise ConfigurationError(
                f"tier {name!r} must have a positive integer quota, got {quota!r}"
            )
        tiers[name] = Tier(name=name, quota=quota)
    return tiers


def resolve_tier(name: str, tiers: Optional[Mapping[str, Tier]] = None) -> Tier:
    """Look up a tier by (case-insensitive) name.

    Raises:
        ConfigurationError: If the tier is unknown.
    """
    table = tiers if tiers is not None else build_tiers()
    tier = table.get(name.upper())
    if tier is None:
        known = ", ".join(sorted(table))
        raise ConfigurationError(f"unknown tier: {name!r} (known tiers: {known})")
    return tier
