"""
Configuration dataclasses for the domain sniper.

This module defines all configuration structures used throughout the system,
including registrar credentials, monitoring cadence, retry behaviour,
persistence, logging and the HTTP listener, plus loading them from the
environment (optionally seeded from a ``.env`` file).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError


# Known OVH API regions
OVH_ENDPOINTS = {
    "ovh-eu": "https://eu.api.ovh.com/1.0",
    "ovh-ca": "https://ca.api.ovh.com/1.0",
    "ovh-us": "https://api.us.ovhcloud.com/1.0",
}

# Permissions the sniper needs on the consumer key
DEFAULT_ACCESS_RULES = [
    {"method": "GET", "path": "/domain/*"},
    {"method": "GET", "path": "/order/domain/*"},
    {"method": "POST", "path": "/order/cart"},
    {"method": "POST", "path": "/order/cart/*"},
    {"method": "GET", "path": "/order/cart/*"},
    {"method": "DELETE", "path": "/order/cart/*"},
    {"method": "GET", "path": "/me/order/*"},
    {"method": "GET", "path": "/me"},
    {"method": "GET", "path": "/me/bill/*"},
    {"method": "GET", "path": "/me/prepaidAccount"},
    {"method": "GET", "path": "/me/payment/method"},
    {"method": "GET", "path": "/me/payment/method/*"},
]


@dataclass
class RegistrarConfig:
    """OVH API credentials and ordering defaults."""

    endpoint: str = "ovh-eu"
    app_key: Optional[str] = None
    app_secret: Optional[str] = None
    consumer_key: Optional[str] = None
    subsidiary: str = "FR"
    order_duration: str = "P1Y"
    timeout_seconds: float = 20.0
    settle_delay_seconds: float = 2.0

    @property
    def base_url(self) -> str:
        """Resolve a region name to its API base URL."""
        return OVH_ENDPOINTS.get(self.endpoint, self.endpoint).rstrip("/")

    @property
    def missing_credentials(self) -> list[str]:
        """Names of the credential variables that are not set."""
        missing = []
        if not self.app_key:
            missing.append("OVH_APP_KEY")
        if not self.app_secret:
            missing.append("OVH_APP_SECRET")
        if not self.consumer_key:
            missing.append("OVH_CONSUMER_KEY")
        return missing


@dataclass
class RetryConfig:
    """Retry behavior for idempotent remote reads."""

    max_retries: int = 2
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0


@dataclass
class MonitorConfig:
    """Monitor loop and scheduler cadence."""

    interval_seconds: float = 60.0
    domain_delay_seconds: float = 2.0
    disable_monitoring_on_purchase: bool = True
    expiry_lookup: bool = True
    rdap_endpoint: str = "https://rdap.org/domain/"


@dataclass
class PersistenceConfig:
    """SQLite database location."""

    database_path: Path = field(default_factory=lambda: Path("domain_sniper.db"))


@dataclass
class LoggingConfig:
    """Logging and audit configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class ApiConfig:
    """HTTP listener configuration."""

    host: str = "0.0.0.0"
    port: int = 3000


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    registrar: RegistrarConfig = field(default_factory=RegistrarConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    startup_self_test: bool = True

    @property
    def registrar_configured(self) -> bool:
        """True when all three OVH credentials are present."""
        return not self.registrar.missing_credentials

    def require_registrar(self) -> None:
        """
        Fail hard when registrar credentials are absent.

        Raises:
            ConfigurationError: If any OVH credential is missing
        """
        missing = self.registrar.missing_credentials
        if missing:
            raise ConfigurationError(
                code="missing_credentials",
                message=f"Missing registrar credentials: {', '.join(missing)}",
                details={"missing": missing},
            )


def _str_env(env: Mapping[str, str], name: str, default: Optional[str]) -> Optional[str]:
    value = env.get(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(
            code="invalid_number",
            message=f"{name} must be a number, got {raw!r}",
            details={"variable": name},
        ) from e


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            code="invalid_number",
            message=f"{name} must be an integer, got {raw!r}",
            details={"variable": name},
        ) from e


def _bool_env(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env(
    environ: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[Path] = None,
) -> SystemConfig:
    """
    Build a SystemConfig from environment variables.

    When ``environ`` is not given, a ``.env`` file is loaded into the
    process environment first (existing variables win) and ``os.environ``
    is read.

    Args:
        environ: Explicit mapping to read instead of the process environment
        dotenv_path: Optional path to a specific .env file

    Returns:
        SystemConfig populated from the environment

    Raises:
        ConfigurationError: If a numeric variable cannot be parsed
    """
    if environ is None:
        load_dotenv(dotenv_path)
        environ = os.environ

    registrar = RegistrarConfig(
        endpoint=_str_env(environ, "OVH_ENDPOINT", "ovh-eu"),
        app_key=_str_env(environ, "OVH_APP_KEY", None),
        app_secret=_str_env(environ, "OVH_APP_SECRET", None),
        consumer_key=_str_env(environ, "OVH_CONSUMER_KEY", None),
        subsidiary=_str_env(environ, "OVH_SUBSIDIARY", "FR"),
        order_duration=_str_env(environ, "SNIPER_ORDER_DURATION", "P1Y"),
        timeout_seconds=_float_env(environ, "SNIPER_HTTP_TIMEOUT", 20.0),
        settle_delay_seconds=_float_env(environ, "SNIPER_SETTLE_DELAY", 2.0),
    )

    monitor = MonitorConfig(
        interval_seconds=_float_env(environ, "SNIPER_CHECK_INTERVAL", 60.0),
        domain_delay_seconds=_float_env(environ, "SNIPER_DOMAIN_DELAY", 2.0),
        disable_monitoring_on_purchase=_bool_env(
            environ, "SNIPER_DISABLE_MONITORING_ON_PURCHASE", True
        ),
        expiry_lookup=_bool_env(environ, "SNIPER_EXPIRY_LOOKUP", True),
        rdap_endpoint=_str_env(environ, "SNIPER_RDAP_ENDPOINT", "https://rdap.org/domain/"),
    )

    return SystemConfig(
        registrar=registrar,
        retry=RetryConfig(max_retries=_int_env(environ, "SNIPER_RETRIES", 2)),
        monitor=monitor,
        persistence=PersistenceConfig(
            database_path=Path(_str_env(environ, "SNIPER_DATABASE", "domain_sniper.db")),
        ),
        logging=LoggingConfig(
            level=_str_env(environ, "SNIPER_LOG_LEVEL", "info").lower(),
            output_format=_str_env(environ, "SNIPER_LOG_FORMAT", "text").lower(),
        ),
        api=ApiConfig(
            host=_str_env(environ, "HOST", "0.0.0.0"),
            port=_int_env(environ, "PORT", 3000),
        ),
        startup_self_test=_bool_env(environ, "SNIPER_STARTUP_SELF_TEST", True),
    )
