"""Rate limit enforcement and spike resilience validation."""

__version__ = "0.1.0"
