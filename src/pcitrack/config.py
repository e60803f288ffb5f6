"""Runtime configuration for PCI Tracker.

Settings are read once from the environment by load_settings(). Every value
has a default suitable for local development; only the database URL and the
channel credentials are expected to be set in production.

Environment Variables:
    PCITRACK_DATABASE_URL: Postgres connection string (in-memory stores if unset)
    PCITRACK_EXPIRING_SOON_DAYS: Days before expiration that count as "expiring soon"
    PCITRACK_NOTIFY_WINDOW_DAYS: Look-ahead window for the expiration scan
    PCITRACK_NOTIFICATION_COOLDOWN_DAYS: Minimum days between repeat notices
    PCITRACK_REPORT_WINDOW_DAYS: Look-ahead window for the weekly report
    PCITRACK_DISPATCH_TIMEOUT_SECONDS: Per-call channel timeout
    PCITRACK_CLAIM_TTL_SECONDS: Age after which a notification claim is stale
    PCITRACK_SMTP_HOST / _PORT / _USER / _PASSWORD / _STARTTLS: Email transport
    PCITRACK_EMAIL_FROM: Sender address for outgoing mail
    PCITRACK_SLACK_TOKEN / PCITRACK_SLACK_CHANNEL / PCITRACK_SLACK_API_URL: Chat transport
    PCITRACK_FRONTEND_URL: Base URL used for links in notification bodies
    PCITRACK_SCHEDULER_ENABLED: Start the scheduler loop with the API process
    PCITRACK_CRON_EXPIRATION_SCAN / _RECONCILIATION / _WEEKLY_REPORT: Schedules
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

DEFAULT_EXPIRING_SOON_DAYS: Final[int] = 30
DEFAULT_NOTIFY_WINDOW_DAYS: Final[int] = 30
DEFAULT_COOLDOWN_DAYS: Final[int] = 7
DEFAULT_REPORT_WINDOW_DAYS: Final[int] = 30
DEFAULT_DISPATCH_TIMEOUT_SECONDS: Final[float] = 30.0
DEFAULT_CLAIM_TTL_SECONDS: Final[int] = 900

DEFAULT_CRON_EXPIRATION_SCAN: Final[str] = "0 9 * * *"
DEFAULT_CRON_RECONCILIATION: Final[str] = "0 1 * * *"
DEFAULT_CRON_WEEKLY_REPORT: Final[str] = "0 8 * * 1"

DEFAULT_SLACK_API_URL: Final[str] = "https://slack.com/api"


class ConfigError(Exception):
    """Raised when an environment variable holds an unusable value."""

    pass


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no"):
        return False
    return default


def _get_env_str(key: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default).strip()


def _get_env_int(key: str, default: int) -> int:
    """Get a non-negative integer from environment variable."""
    raw = _get_env_str(key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ConfigError(f"{key} must be >= 0, got {value}")
    return value


def _get_env_float(key: str, default: float) -> float:
    """Get a positive float from environment variable."""
    raw = _get_env_str(key)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{key} must be > 0, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings."""

    database_url: str = ""
    expiring_soon_days: int = DEFAULT_EXPIRING_SOON_DAYS
    notify_window_days: int = DEFAULT_NOTIFY_WINDOW_DAYS
    cooldown_days: int = DEFAULT_COOLDOWN_DAYS
    report_window_days: int = DEFAULT_REPORT_WINDOW_DAYS
    dispatch_timeout_seconds: float = DEFAULT_DISPATCH_TIMEOUT_SECONDS
    claim_ttl_seconds: int = DEFAULT_CLAIM_TTL_SECONDS

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_starttls: bool = True
    email_from: str = "pci-tracker@localhost"

    slack_token: str = ""
    slack_channel: str = ""
    slack_api_url: str = DEFAULT_SLACK_API_URL

    frontend_url: str = "http://localhost:3000"

    scheduler_enabled: bool = False
    cron_expiration_scan: str = DEFAULT_CRON_EXPIRATION_SCAN
    cron_reconciliation: str = DEFAULT_CRON_RECONCILIATION
    cron_weekly_report: str = DEFAULT_CRON_WEEKLY_REPORT

    @property
    def email_configured(self) -> bool:
        """True when an SMTP host is set."""
        return bool(self.smtp_host)

    @property
    def chat_configured(self) -> bool:
        """True when a Slack bot token is set."""
        return bool(self.slack_token)


def load_settings() -> Settings:
    """Build Settings from the current environment.

    Returns:
        Settings instance.

    Raises:
        ConfigError: If a numeric variable cannot be parsed.
    """
    return Settings(
        database_url=_get_env_str("PCITRACK_DATABASE_URL"),
        expiring_soon_days=_get_env_int("PCITRACK_EXPIRING_SOON_DAYS", DEFAULT_EXPIRING_SOON_DAYS),
        notify_window_days=_get_env_int("PCITRACK_NOTIFY_WINDOW_DAYS", DEFAULT_NOTIFY_WINDOW_DAYS),
        cooldown_days=_get_env_int("PCITRACK_NOTIFICATION_COOLDOWN_DAYS", DEFAULT_COOLDOWN_DAYS),
        report_window_days=_get_env_int("PCITRACK_REPORT_WINDOW_DAYS", DEFAULT_REPORT_WINDOW_DAYS),
        dispatch_timeout_seconds=_get_env_float(
            "PCITRACK_DISPATCH_TIMEOUT_SECONDS", DEFAULT_DISPATCH_TIMEOUT_SECONDS
        ),
        claim_ttl_seconds=_get_env_int("PCITRACK_CLAIM_TTL_SECONDS", DEFAULT_CLAIM_TTL_SECONDS),
        smtp_host=_get_env_str("PCITRACK_SMTP_HOST"),
        smtp_port=_get_env_int("PCITRACK_SMTP_PORT", 587),
        smtp_user=_get_env_str("PCITRACK_SMTP_USER"),
        smtp_password=_get_env_str("PCITRACK_SMTP_PASSWORD"),
        smtp_starttls=_get_env_bool("PCITRACK_SMTP_STARTTLS", True),
        email_from=_get_env_str("PCITRACK_EMAIL_FROM", "pci-tracker@localhost"),
        slack_token=_get_env_str("PCITRACK_SLACK_TOKEN"),
        slack_channel=_get_env_str("PCITRACK_SLACK_CHANNEL"),
        slack_api_url=_get_env_str("PCITRACK_SLACK_API_URL", DEFAULT_SLACK_API_URL),
        frontend_url=_get_env_str("PCITRACK_FRONTEND_URL", "http://localhost:3000"),
        scheduler_enabled=_get_env_bool("PCITRACK_SCHEDULER_ENABLED", False),
        cron_expiration_scan=_get_env_str(
            "PCITRACK_CRON_EXPIRATION_SCAN", DEFAULT_CRON_EXPIRATION_SCAN
        ),
        cron_reconciliation=_get_env_str(
            "PCITRACK_CRON_RECONCILIATION", DEFAULT_CRON_RECONCILIATION
        ),
        cron_weekly_report=_get_env_str("PCITRACK_CRON_WEEKLY_REPORT", DEFAULT_CRON_WEEKLY_REPORT),
    )
