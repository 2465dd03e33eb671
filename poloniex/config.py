"""
Configuration types for the Poloniex clients.

Provides immutable, validated configuration dataclasses plus the TOML loader and the
logging setup shared by the push and public API clients.
"""

from __future__ import annotations

import logging
import random
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from poloniex.errors import ConfigurationError

PUSH_API_URI = "wss://api.poloniex.com"
PUSH_API_REALM = "realm1"
PUBLIC_API_URL = "https://poloniex.com/public"

# Level names as they appear in conf files
LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
}

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


@dataclass(frozen=True)
class RetryPolicy:
    """
    How the reconnect loop waits between connection attempts.

    The defaults keep retrying forever with a fixed 5 second delay. Set
    backoff_factor > 1 for exponential growth (capped by max_delay_s), jitter for
    randomisation and max_attempts to give up after a number of failed attempts.
    """

    delay_s: float = 5.0
    backoff_factor: float = 1.0
    max_delay_s: float = 60.0
    jitter: float = 0.0  # ±fraction of the computed delay
    max_attempts: Optional[int] = None  # None = retry forever

    def __post_init__(self) -> None:
        if self.delay_s < 0:
            raise ConfigurationError(
                "delay_s must be non-negative",
                field="delay_s",
                value=self.delay_s,
            )
        if self.backoff_factor < 1:
            raise ConfigurationError(
                "backoff_factor must be >= 1",
                field="backoff_factor",
                value=self.backoff_factor,
            )
        if self.max_delay_s < self.delay_s:
            raise ConfigurationError(
                "max_delay_s must be >= delay_s",
                field="max_delay_s",
                value=self.max_delay_s,
            )
        if not (0 <= self.jitter <= 1):
            raise ConfigurationError(
                "jitter must be between 0 and 1",
                field="jitter",
                value=self.jitter,
            )
        if self.max_attempts is not None and self.max_attempts <= 0:
            raise ConfigurationError(
                "max_attempts must be positive or None",
                field="max_attempts",
                value=self.max_attempts,
            )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before the given (1-based) attempt."""
        delay = self.delay_s * (self.backoff_factor ** max(attempt - 1, 0))
        delay = min(delay, self.max_delay_s)

        if self.jitter:
            jitter_range = delay * self.jitter
            delay += random.uniform(-jitter_range, jitter_range)

        return float(max(0.0, delay))

    def exhausted(self, attempt: int) -> bool:
        """True once `attempt` failed attempts used up the budget."""
        return self.max_attempts is not None and attempt >= self.max_attempts


@dataclass(frozen=True)
class PushConfig:
    """
    Immutable configuration for the push API client.

    Example:
        config = PushConfig(timeout_s=30.0, topic_timeout_s=300.0)
    """

    wss_uri: str = PUSH_API_URI
    realm: str = PUSH_API_REALM

    # Liveness: global staleness also sets how often the monitor wakes up
    timeout_s: float = 60.0
    topic_timeout_s: float = 600.0

    # Bus calls
    connect_timeout_s: float = 30.0
    request_timeout_s: float = 10.0

    # Delivery
    channel_capacity: int = 1

    log_level: str = "warn"
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        if not self.wss_uri:
            raise ConfigurationError("wss_uri must not be empty", field="wss_uri")
        if not self.realm:
            raise ConfigurationError("realm must not be empty", field="realm")
        for name in ("timeout_s", "topic_timeout_s", "connect_timeout_s", "request_timeout_s"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive", field=name, value=value)
        if self.topic_timeout_s < self.timeout_s:
            raise ConfigurationError(
                "topic_timeout_s must be >= timeout_s",
                field="topic_timeout_s",
                value=self.topic_timeout_s,
            )
        if self.channel_capacity <= 0:
            raise ConfigurationError(
                "channel_capacity must be positive",
                field="channel_capacity",
                value=self.channel_capacity,
            )
        _check_log_level(self.log_level)


@dataclass(frozen=True)
class PublicConfig:
    """Immutable configuration for the public REST client."""

    api_url: str = PUBLIC_API_URL
    http_timeout_s: float = 10.0
    max_requests_per_s: int = 6
    log_level: str = "warn"

    def __post_init__(self) -> None:
        if not self.api_url:
            raise ConfigurationError("api_url must not be empty", field="api_url")
        if self.http_timeout_s <= 0:
            raise ConfigurationError(
                "http_timeout_s must be positive",
                field="http_timeout_s",
                value=self.http_timeout_s,
            )
        if self.max_requests_per_s <= 0:
            raise ConfigurationError(
                "max_requests_per_s must be positive",
                field="max_requests_per_s",
                value=self.max_requests_per_s,
            )
        _check_log_level(self.log_level)

    @property
    def min_request_interval_s(self) -> float:
        return 1.0 / self.max_requests_per_s


@dataclass(frozen=True)
class ClientConfig:
    """Both client configurations as read from one conf file."""

    push: PushConfig = field(default_factory=PushConfig)
    public: PublicConfig = field(default_factory=PublicConfig)


def _check_log_level(level: str) -> None:
    if level.lower() not in LOG_LEVELS:
        raise ConfigurationError(
            f"log_level must be one of {sorted(LOG_LEVELS)}",
            field="log_level",
            value=level,
        )


def load_config(path: str | Path) -> ClientConfig:
    """
    Load client configuration from a TOML file.

    Layout (every key optional):

        [poloniex_push_api]
        wss_uri = "wss://api.poloniex.com"
        realm = "realm1"
        log_level = "info"
        timeout_sec = 60
        topic_timeout_min = 10
        request_timeout_sec = 10
        channel_capacity = 1

        [poloniex_push_api.retry]
        delay_sec = 5
        backoff_factor = 1.0
        max_delay_sec = 60
        jitter = 0.0
        max_attempts = 0      # 0 = retry forever

        [poloniex_public_api]
        api_url = "https://poloniex.com/public"
        httpclient_timeout_sec = 10
        max_requests_sec = 6
        log_level = "warn"
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("rb") as f:
        data = tomllib.load(f)

    return ClientConfig(
        push=_push_config(data.get("poloniex_push_api", {})),
        public=_public_config(data.get("poloniex_public_api", {})),
    )


def _push_config(section: dict[str, Any]) -> PushConfig:
    defaults = PushConfig()
    retry_data = section.get("retry", {})
    max_attempts = retry_data.get("max_attempts", 0)

    retry = RetryPolicy(
        delay_s=float(retry_data.get("delay_sec", defaults.retry.delay_s)),
        backoff_factor=float(retry_data.get("backoff_factor", defaults.retry.backoff_factor)),
        max_delay_s=float(retry_data.get("max_delay_sec", defaults.retry.max_delay_s)),
        jitter=float(retry_data.get("jitter", defaults.retry.jitter)),
        max_attempts=max_attempts or None,
    )

    topic_timeout_s = defaults.topic_timeout_s
    if "topic_timeout_min" in section:
        topic_timeout_s = float(section["topic_timeout_min"]) * 60

    return PushConfig(
        wss_uri=section.get("wss_uri", defaults.wss_uri),
        realm=section.get("realm", defaults.realm),
        timeout_s=float(section.get("timeout_sec", defaults.timeout_s)),
        topic_timeout_s=topic_timeout_s,
        connect_timeout_s=float(section.get("connect_timeout_sec", defaults.connect_timeout_s)),
        request_timeout_s=float(section.get("request_timeout_sec", defaults.request_timeout_s)),
        channel_capacity=int(section.get("channel_capacity", defaults.channel_capacity)),
        log_level=section.get("log_level", defaults.log_level),
        retry=retry,
    )


def _public_config(section: dict[str, Any]) -> PublicConfig:
    defaults = PublicConfig()
    return PublicConfig(
        api_url=section.get("api_url", defaults.api_url),
        http_timeout_s=float(section.get("httpclient_timeout_sec", defaults.http_timeout_s)),
        max_requests_per_s=int(section.get("max_requests_sec", defaults.max_requests_per_s)),
        log_level=section.get("log_level", defaults.log_level),
    )


def configure_logging(level: str = "warn") -> logging.Logger:
    """
    Set the level of the `poloniex` logger tree and attach one stream handler.

    Unknown level names fall back to WARNING. Calling it twice does not add a
    second handler.
    """
    logger = logging.getLogger("poloniex")
    logger.setLevel(LOG_LEVELS.get(level.lower(), logging.WARNING))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
