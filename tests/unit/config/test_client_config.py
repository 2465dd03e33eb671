"""
Unit tests for client configuration and logging setup.
"""

import logging
from pathlib import Path

import pytest

from poloniex.config import (
    PUBLIC_API_URL,
    PUSH_API_REALM,
    PUSH_API_URI,
    ClientConfig,
    PublicConfig,
    PushConfig,
    RetryPolicy,
    configure_logging,
    load_config,
)
from poloniex.errors import ConfigurationError


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_defaults_retry_forever_every_five_seconds(self) -> None:
        """Test the default policy is a fixed 5s delay with no attempt limit."""
        policy = RetryPolicy()

        assert [policy.delay_for(n) for n in (1, 2, 10)] == [5.0, 5.0, 5.0]
        assert not policy.exhausted(1_000_000)

    def test_exponential_backoff_is_capped(self) -> None:
        """Test backoff growth stops at max_delay_s."""
        policy = RetryPolicy(delay_s=1.0, backoff_factor=2.0, max_delay_s=5.0)

        assert [policy.delay_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_jitter_stays_in_range(self) -> None:
        """Test jittered delays stay within the configured fraction."""
        policy = RetryPolicy(delay_s=10.0, jitter=0.1)

        for attempt in range(1, 50):
            assert 9.0 <= policy.delay_for(attempt) <= 11.0

    def test_max_attempts(self) -> None:
        """Test the attempt budget."""
        policy = RetryPolicy(max_attempts=3)

        assert not policy.exhausted(2)
        assert policy.exhausted(3)

    @pytest.mark.parametrize(
        ("kwargs", "field_name"),
        [
            ({"delay_s": -1.0}, "delay_s"),
            ({"backoff_factor": 0.5}, "backoff_factor"),
            ({"delay_s": 10.0, "max_delay_s": 5.0}, "max_delay_s"),
            ({"jitter": 1.5}, "jitter"),
            ({"max_attempts": 0}, "max_attempts"),
        ],
    )
    def test_invalid(self, kwargs: dict, field_name: str) -> None:
        """Test invalid policies raise ConfigurationError naming the field."""
        with pytest.raises(ConfigurationError) as exc_info:
            RetryPolicy(**kwargs)
        assert exc_info.value.field == field_name


class TestPushConfig:
    """Tests for PushConfig."""

    def test_defaults(self) -> None:
        """Test defaults point at the public push endpoint."""
        config = PushConfig()

        assert config.wss_uri == PUSH_API_URI == "wss://api.poloniex.com"
        assert config.realm == PUSH_API_REALM == "realm1"
        assert config.timeout_s == 60.0
        assert config.topic_timeout_s == 600.0
        assert config.channel_capacity == 1

    def test_invalid_timeout(self) -> None:
        """Test that a non-positive timeout raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            PushConfig(timeout_s=0)
        assert "timeout_s must be positive" in str(exc_info.value)

    def test_topic_timeout_below_global(self) -> None:
        """Test the per-topic timeout may not be shorter than the global one."""
        with pytest.raises(ConfigurationError):
            PushConfig(timeout_s=60.0, topic_timeout_s=30.0)

    def test_invalid_log_level(self) -> None:
        """Test unknown log level names are rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            PushConfig(log_level="verbose")
        assert exc_info.value.field == "log_level"


class TestPublicConfig:
    """Tests for PublicConfig."""

    def test_request_interval(self) -> None:
        """Test the minimum interval follows the request rate."""
        assert PublicConfig(max_requests_per_s=4).min_request_interval_s == 0.25

    def test_invalid_rate(self) -> None:
        """Test a non-positive request rate raises error."""
        with pytest.raises(ConfigurationError):
            PublicConfig(max_requests_per_s=0)


class TestLoadConfig:
    """Tests for the TOML loader."""

    def test_full_file(self, tmp_path: Path) -> None:
        """Test every section is read and units are converted."""
        path = tmp_path / "poloniex.toml"
        path.write_text(
            """
[poloniex_push_api]
wss_uri = "wss://push.example.com"
realm = "realm2"
log_level = "info"
timeout_sec = 30
topic_timeout_min = 5
channel_capacity = 8

[poloniex_push_api.retry]
delay_sec = 1
backoff_factor = 2.0
max_delay_sec = 30
max_attempts = 10

[poloniex_public_api]
api_url = "https://rest.example.com/public"
httpclient_timeout_sec = 5
max_requests_sec = 3
log_level = "debug"
"""
        )

        config = load_config(path)

        assert config.push.wss_uri == "wss://push.example.com"
        assert config.push.realm == "realm2"
        assert config.push.timeout_s == 30.0
        assert config.push.topic_timeout_s == 300.0
        assert config.push.channel_capacity == 8
        assert config.push.retry == RetryPolicy(
            delay_s=1.0, backoff_factor=2.0, max_delay_s=30.0, max_attempts=10
        )
        assert config.public == PublicConfig(
            api_url="https://rest.example.com/public",
            http_timeout_s=5.0,
            max_requests_per_s=3,
            log_level="debug",
        )

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        """Test missing sections fall back to defaults."""
        path = tmp_path / "empty.toml"
        path.write_text("")

        config = load_config(path)

        assert config == ClientConfig()
        assert config.public.api_url == PUBLIC_API_URL
        assert config.push.retry.max_attempts is None

    def test_zero_attempts_means_forever(self, tmp_path: Path) -> None:
        """Test max_attempts = 0 in the file disables the limit."""
        path = tmp_path / "retry.toml"
        path.write_text("[poloniex_push_api.retry]\nmax_attempts = 0\n")

        assert load_config(path).push.retry.max_attempts is None

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.toml")

    def test_invalid_value(self, tmp_path: Path) -> None:
        """Test invalid values in the file surface as ConfigurationError."""
        path = tmp_path / "bad.toml"
        path.write_text("[poloniex_push_api]\ntimeout_sec = -5\n")

        with pytest.raises(ConfigurationError):
            load_config(path)


class TestConfigureLogging:
    """Tests for configure_logging."""

    @pytest.fixture(autouse=True)
    def reset_logger(self):
        logger = logging.getLogger("poloniex")
        handlers, level = list(logger.handlers), logger.level
        yield
        logger.handlers = handlers
        logger.setLevel(level)

    @pytest.mark.parametrize(
        ("name", "level"),
        [
            ("debug", logging.DEBUG),
            ("info", logging.INFO),
            ("warn", logging.WARNING),
            ("error", logging.ERROR),
            ("fatal", logging.CRITICAL),
            ("panic", logging.CRITICAL),
            ("nonsense", logging.WARNING),
        ],
    )
    def test_level_mapping(self, name: str, level: int) -> None:
        """Test level names map onto logging levels."""
        assert configure_logging(name).level == level

    def test_single_handler(self) -> None:
        """Test repeated calls do not stack handlers."""
        logger = logging.getLogger("poloniex")
        logger.handlers = []

        configure_logging("info")
        configure_logging("debug")

        assert len(logger.handlers) == 1
