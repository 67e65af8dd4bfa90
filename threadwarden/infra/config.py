"""Centralized configuration for the reconciliation engine and cogs."""
from __future__ import annotations

import os
from dataclasses import dataclass, field


def _int_env(var: str, default: int) -> int:
    """Return int value from environment variable or default."""
    value = os.getenv(var)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _bool_env(var: str, default: bool) -> bool:
    """Return boolean value from environment variable or default."""
    value = os.getenv(var)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclass(frozen=True)
class ReconcileConfig:
    """Tuning for roster reconciliation passes."""

    batch_size: int = 50
    removal_delay_ms: int = 200
    check_frequency_seconds: int = 300

    @property
    def removal_delay(self) -> float:
        """Pause between removal calls, in seconds."""
        return self.removal_delay_ms / 1000

    @classmethod
    def from_env(cls) -> "ReconcileConfig":
        """Create config from environment variables.

        Non-positive batch sizes and frequencies fall back to the defaults.
        """
        batch_size = _int_env("RECONCILE_BATCH_SIZE", 50)
        delay = _int_env("RECONCILE_REMOVAL_DELAY_MS", 200)
        frequency = _int_env("MEMBER_CHECK_FREQUENCY", 300)
        return cls(
            batch_size=batch_size if batch_size > 0 else 50,
            removal_delay_ms=max(delay, 0),
            check_frequency_seconds=frequency if frequency > 0 else 300,
        )


@dataclass(frozen=True)
class ScheduleConfig:
    """Configuration for the cron sweep over every managed thread."""

    cron: str = ""
    timezone: str = "UTC"

    @property
    def enabled(self) -> bool:
        return bool(self.cron.strip())

    @classmethod
    def from_env(cls) -> "ScheduleConfig":
        return cls(
            cron=os.getenv("CLEANUP_CRON", ""),
            timezone=os.getenv("CLEANUP_TIMEZONE", "UTC"),
        )


@dataclass(frozen=True)
class AuditConfig:
    """Configuration for the removal audit table."""

    enabled: bool = False

    @classmethod
    def from_env(cls) -> "AuditConfig":
        return cls(enabled=_bool_env("LOG_REMOVALS", False))


@dataclass
class CogConfig:
    """Container for all warden configuration.

    Instantiated once and handed to cogs so tests can swap in their own
    values without touching the environment.
    """

    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig.from_env)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig.from_env)
    audit: AuditConfig = field(default_factory=AuditConfig.from_env)

    @classmethod
    def from_env(cls) -> "CogConfig":
        """Create all configs from environment variables."""
        return cls(
            reconcile=ReconcileConfig.from_env(),
            schedule=ScheduleConfig.from_env(),
            audit=AuditConfig.from_env(),
        )


# Global default configuration instance
_default_config: CogConfig | None = None


def get_config() -> CogConfig:
    """Return the global configuration instance.

    Creates the configuration on first access so environment variables are
    read lazily.
    """
    global _default_config
    if _default_config is None:
        _default_config = CogConfig.from_env()
    return _default_config


def set_config(config: CogConfig) -> None:
    """Set the global configuration instance."""
    global _default_config
    _default_config = config


def reset_config() -> None:
    """Reset the global configuration to reload from environment."""
    global _default_config
    _default_config = None
