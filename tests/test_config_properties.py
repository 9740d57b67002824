"""
Property-based tests for configuration module.

Covers loading from the environment, validation, and the JSON config file
written and read by the CLI.
"""

import tempfile
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from uptime_cache.cli import create_default_config, load_config_from_file, save_config_to_file
from uptime_cache.config import (
    DEFAULT_API_URL,
    CategoryConfig,
    HeatmapConfig,
    LoggingConfig,
    PersistenceConfig,
    RefreshConfig,
    RetryConfig,
    SystemConfig,
    UpstreamConfig,
    load_config_from_env,
    parse_patterns,
    validate_config,
)
from uptime_cache.exceptions import ConfigurationError


# Strategies for generating valid configuration objects

pattern_strategy = st.text(
    alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789.-"),
    min_size=1,
    max_size=20,
)


@st.composite
def system_config_strategy(draw) -> SystemConfig:
    """Generate valid SystemConfig objects."""
    return SystemConfig(
        upstream=UpstreamConfig(
            api_token=draw(st.text(alphabet="abcdefXYZ0123456789", min_size=8, max_size=40)),
            api_url=draw(st.sampled_from([DEFAULT_API_URL, "https://uptime.example.com/api/v2"])),
            team_id=draw(st.sampled_from(["", "12345"])),
            timeout_seconds=draw(st.floats(min_value=1.0, max_value=120.0)),
            proxy_timeout_seconds=draw(st.floats(min_value=1.0, max_value=120.0)),
        ),
        refresh=RefreshConfig(
            interval_seconds=draw(st.floats(min_value=1.0, max_value=3600.0)),
            monitor_page_size=draw(st.integers(min_value=1, max_value=250)),
            incident_page_size=draw(st.integers(min_value=1, max_value=250)),
            incident_max_pages=draw(st.integers(min_value=1, max_value=20)),
            page_delay_seconds=draw(st.floats(min_value=0.0, max_value=5.0)),
            sla_delay_seconds=draw(st.floats(min_value=0.0, max_value=5.0)),
            cycle_timeout_seconds=draw(st.floats(min_value=0.0, max_value=3600.0)),
        ),
        heatmap=HeatmapConfig(
            window_days=draw(st.integers(min_value=1, max_value=365)),
            down_threshold=draw(st.floats(min_value=0.01, max_value=1.0)),
        ),
        categories=CategoryConfig(
            production_patterns=draw(st.lists(pattern_strategy, max_size=4)),
            staging_patterns=draw(st.lists(pattern_strategy, max_size=4)),
        ),
        retry=RetryConfig(
            max_retries=draw(st.integers(min_value=0, max_value=10)),
            base_delay_seconds=draw(st.floats(min_value=0.1, max_value=10.0)),
            max_delay_seconds=draw(st.floats(min_value=10.0, max_value=300.0)),
        ),
        persistence=PersistenceConfig(
            database_path=Path(draw(pattern_strategy.map(lambda s: f"/tmp/uptime/{s}.db"))),
        ),
        logging=LoggingConfig(
            level=draw(st.sampled_from(["debug", "info", "warn", "error"])),
            output_format=draw(st.sampled_from(["json", "text", "both"])),
        ),
    )


class TestConfigurationRoundTripProperty:
    """Property-based tests for the JSON configuration file."""

    @given(config=system_config_strategy())
    @settings(max_examples=100, deadline=None)
    def test_config_round_trip_preserves_data(self, config: SystemConfig) -> None:
        """
        *For any* valid SystemConfig object, saving it to a file and loading
        it back SHALL produce an equal SystemConfig object.
        """
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "config.json"

            assert save_config_to_file(config, path)
            loaded = load_config_from_file(path)

        assert loaded == config
        validate_config(loaded)

    def test_missing_file_loads_as_none(self, tmp_path) -> None:
        assert load_config_from_file(tmp_path / "absent.json") is None

    def test_malformed_file_loads_as_none(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        assert load_config_from_file(path) is None

    def test_comma_separated_patterns_in_file(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text(
            '{"upstream": {"api_token": "tok"},'
            ' "categories": {"production_patterns": "Shop.com, api.prod ,"}}',
            encoding="utf-8",
        )
        config = load_config_from_file(path)
        assert config.categories.production_patterns == ["shop.com", "api.prod"]
        assert config.categories.staging_patterns == []

    def test_empty_file_token_falls_back_to_environment(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("BETTERSTACK_API_TOKEN", "from-env")
        path = tmp_path / "config.json"
        assert save_config_to_file(create_default_config(), path)

        assert load_config_from_file(path).upstream.api_token == "from-env"


class TestEnvironmentLoadingProperty:
    """Configuration assembled from environment variables."""

    @given(
        token=st.text(alphabet="abcdef0123456789", min_size=1, max_size=40),
        production=st.lists(pattern_strategy, max_size=4),
        staging=st.lists(pattern_strategy, max_size=4),
    )
    @settings(max_examples=100)
    def test_env_values_are_picked_up(self, token: str, production: list, staging: list) -> None:
        """
        *For any* token and pattern lists, the loaded configuration SHALL
        carry the token and the lowercased, comma-split patterns.
        """
        env = {
            "BETTERSTACK_API_TOKEN": f"  {token}  ",
            "PRODUCTION_URL_PATTERNS": ",".join(p.upper() for p in production),
            "STAGING_URL_PATTERNS": " , ".join(staging),
        }

        config = load_config_from_env(env)

        assert config.upstream.api_token == token
        assert config.upstream.api_url == DEFAULT_API_URL
        assert config.categories.production_patterns == production
        assert config.categories.staging_patterns == staging

    def test_optional_overrides(self) -> None:
        config = load_config_from_env({
            "BETTERSTACK_API_TOKEN": "tok",
            "BETTERSTACK_API_URL": "https://uptime.example.com/api/v2/",
            "BETTERSTACK_TEAM_ID": "42",
            "UPTIME_CACHE_DB": "/var/lib/uptime/cache.db",
            "UPTIME_CACHE_LOG_LEVEL": "DEBUG",
            "UPTIME_CACHE_LOG_FORMAT": "json",
        })

        assert config.upstream.api_url == "https://uptime.example.com/api/v2"
        assert config.upstream.team_id == "42"
        assert config.persistence.database_path == Path("/var/lib/uptime/cache.db")
        assert config.logging.level == "debug"
        assert config.logging.output_format == "json"

    def test_missing_token_is_rejected(self) -> None:
        try:
            load_config_from_env({"PRODUCTION_URL_PATTERNS": "shop.com"})
        except ConfigurationError as e:
            assert e.code == "missing_token"
        else:
            raise AssertionError("Expected ConfigurationError")

    def test_parse_patterns(self) -> None:
        assert parse_patterns(None) == []
        assert parse_patterns("") == []
        assert parse_patterns(" A.com ,, b.org ") == ["a.com", "b.org"]


class TestValidationProperty:
    """Values the refresh pipeline cannot run with are rejected."""

    def _expect(self, config: SystemConfig, code: str) -> None:
        try:
            validate_config(config)
        except ConfigurationError as e:
            assert e.code == code
        else:
            raise AssertionError(f"Expected ConfigurationError {code}")

    def test_defaults_with_token_are_valid(self) -> None:
        validate_config(create_default_config(api_token="tok"))

    def test_invalid_values(self) -> None:
        config = create_default_config(api_token="tok")
        config.upstream.api_url = "ftp://uptime.example.com"
        self._expect(config, "invalid_api_url")

        config = create_default_config(api_token="tok")
        config.refresh.interval_seconds = 0
        self._expect(config, "invalid_interval")

        config = create_default_config(api_token="tok")
        config.refresh.monitor_page_size = 0
        self._expect(config, "invalid_page_size")

        config = create_default_config(api_token="tok")
        config.refresh.incident_max_pages = 0
        self._expect(config, "invalid_page_cap")

        config = create_default_config(api_token="tok")
        config.heatmap.window_days = 0
        self._expect(config, "invalid_window")

        config = create_default_config(api_token="tok")
        config.logging.output_format = "xml"
        self._expect(config, "invalid_log_format")

    @given(threshold=st.one_of(
        st.floats(max_value=0.0, allow_nan=False),
        st.floats(min_value=1.0, exclude_min=True, allow_nan=False),
    ))
    @settings(max_examples=50)
    def test_threshold_outside_unit_interval_rejected(self, threshold: float) -> None:
        config = create_default_config(api_token="tok")
        config.heatmap.down_threshold = threshold
        self._expect(config, "invalid_threshold")
