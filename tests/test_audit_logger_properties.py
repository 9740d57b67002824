"""
Property-based tests for Audit Logger module.

Uses Hypothesis for property-based testing of output formats, level
filtering and credential masking.
"""

import json
from io import StringIO

from hypothesis import given, settings, assume
from hypothesis import strategies as st

from uptime_cache.audit_logger import AuditLogger
from uptime_cache.enums import LogLevel
from uptime_cache.exceptions import UpstreamError


SENSITIVE_PATTERNS = [
    'token', 'secret', 'password', 'api_key', 'auth', 'authorization',
    'bearer', 'credential', 'cookie', 'session',
]


# Strategies for generating valid test data

@st.composite
def log_level_strategy(draw) -> LogLevel:
    """Generate valid LogLevel values."""
    return draw(st.sampled_from(list(LogLevel)))


@st.composite
def component_name_strategy(draw) -> str:
    """Generate valid component names."""
    return draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-"),
        min_size=1,
        max_size=50,
    ))


@st.composite
def message_strategy(draw) -> str:
    """Generate valid log messages."""
    return draw(st.text(
        alphabet=st.characters(
            whitelist_categories=('L', 'N', 'P', 'S', 'Z'),
            blacklist_characters='\x00\n\r',
        ),
        min_size=1,
        max_size=200,
    ))


@st.composite
def non_sensitive_key_strategy(draw) -> str:
    """Generate keys that are NOT sensitive."""
    key = draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz_"),
        min_size=1,
        max_size=20,
    ))
    for pattern in SENSITIVE_PATTERNS:
        assume(pattern not in key)
    return key


@st.composite
def sensitive_key_strategy(draw) -> str:
    """Generate keys that ARE sensitive."""
    base_keys = [
        'token', 'api_token', 'secret', 'password', 'api_key', 'auth_value',
        'authorization', 'bearer', 'credentials', 'cookie', 'session_id',
    ]
    base = draw(st.sampled_from(base_keys))
    prefix = draw(st.sampled_from(['', 'my_', 'upstream_', 'proxy_']))
    suffix = draw(st.sampled_from(['', '_value', '_data', '_1']))
    return f"{prefix}{base}{suffix}"


@st.composite
def simple_value_strategy(draw):
    """Generate simple JSON-serializable values."""
    return draw(st.one_of(
        st.text(min_size=0, max_size=50),
        st.integers(min_value=-1000, max_value=1000),
        st.floats(allow_nan=False, allow_infinity=False, min_value=-1000, max_value=1000),
        st.booleans(),
        st.none(),
    ))


@st.composite
def non_sensitive_data_strategy(draw) -> dict:
    """Generate data dictionaries without sensitive keys."""
    num_keys = draw(st.integers(min_value=0, max_value=5))
    data = {}
    for _ in range(num_keys):
        data[draw(non_sensitive_key_strategy())] = draw(simple_value_strategy())
    return data


class TestDualFormatProperty:
    """Property-based tests for dual format logging."""

    @given(
        level=log_level_strategy(),
        component=component_name_strategy(),
        message=message_strategy(),
        data=non_sensitive_data_strategy(),
    )
    @settings(max_examples=100)
    def test_dual_format_produces_both_outputs(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: dict,
    ) -> None:
        """
        *For any* log entry when output_format is "both", the logger SHALL
        produce both a valid JSON line and a human-readable text line.
        """
        output = StringIO()
        logger = AuditLogger(output_format="both", output_stream=output, min_level=LogLevel.DEBUG)

        logger.log(level, component, message, data)

        lines = output.getvalue().strip().split('\n')
        assert len(lines) == 2, f"Expected 2 lines, got {len(lines)}"

        parsed_json = json.loads(lines[0])
        assert parsed_json["level"] == level.value
        assert parsed_json["component"] == component
        assert parsed_json["message"] == message
        assert parsed_json["data"] == data
        assert "timestamp" in parsed_json

        assert level.value.upper() in lines[1]
        assert f"[{component}]" in lines[1]

    @given(
        level=log_level_strategy(),
        component=component_name_strategy(),
        message=message_strategy(),
    )
    @settings(max_examples=50)
    def test_json_only_writes_one_parseable_line(
        self,
        level: LogLevel,
        component: str,
        message: str,
    ) -> None:
        output = StringIO()
        logger = AuditLogger(output_format="json", output_stream=output, min_level=LogLevel.DEBUG)

        entry = logger.log(level, component, message)

        lines = output.getvalue().strip().split('\n')
        assert len(lines) == 1
        assert json.loads(lines[0]) == json.loads(logger.get_json_output(entry))


class TestLevelFilteringProperty:
    """Property-based tests for minimum level filtering."""

    @given(
        min_level=log_level_strategy(),
        level=log_level_strategy(),
        message=message_strategy(),
    )
    @settings(max_examples=100)
    def test_entries_below_min_level_are_dropped(
        self,
        min_level: LogLevel,
        level: LogLevel,
        message: str,
    ) -> None:
        """
        *For any* pair of levels, an entry SHALL be written exactly when its
        level is at or above the logger's minimum level.
        """
        order = [LogLevel.DEBUG, LogLevel.INFO, LogLevel.WARN, LogLevel.ERROR]
        output = StringIO()
        logger = AuditLogger(output_format="text", output_stream=output, min_level=min_level)

        entry = logger.log(level, "Component", message)

        if order.index(level) >= order.index(min_level):
            assert entry is not None
            assert len(logger.entries) == 1
            assert output.getvalue() != ""
        else:
            assert entry is None
            assert logger.entries == []
            assert output.getvalue() == ""

    def test_from_level_name_falls_back_to_info(self) -> None:
        assert AuditLogger.from_level_name("debug").min_level == LogLevel.DEBUG
        assert AuditLogger.from_level_name("ERROR").min_level == LogLevel.ERROR
        assert AuditLogger.from_level_name("loud").min_level == LogLevel.INFO


class TestSensitiveDataMaskingProperty:
    """Property-based tests for masking of credentials in log data."""

    @given(
        key=sensitive_key_strategy(),
        value=st.text(min_size=1, max_size=50),
    )
    @settings(max_examples=100)
    def test_sensitive_values_never_reach_output(self, key: str, value: str) -> None:
        """
        *For any* data dictionary containing a sensitive key, the value
        SHALL be replaced by the mask in the entry and in the output.
        """
        assume(value not in AuditLogger.MASK_VALUE)
        output = StringIO()
        logger = AuditLogger(output_format="json", output_stream=output)

        entry = logger.log(LogLevel.INFO, "UptimeClient", "Request", {key: value, "status": 200})

        assert entry.data[key] == AuditLogger.MASK_VALUE
        assert entry.data["status"] == 200
        assert json.loads(output.getvalue())["data"][key] == AuditLogger.MASK_VALUE

    @given(
        key=sensitive_key_strategy(),
        value=st.text(min_size=1, max_size=50),
    )
    @settings(max_examples=50)
    def test_nested_sensitive_values_are_masked(self, key: str, value: str) -> None:
        logger = AuditLogger(output_stream=StringIO())

        masked = logger.mask_sensitive_data({
            "request": {"headers": {key: value}},
            "attempts": [{key: value, "page": 1}],
        })

        assert masked["request"]["headers"][key] == AuditLogger.MASK_VALUE
        assert masked["attempts"][0][key] == AuditLogger.MASK_VALUE
        assert masked["attempts"][0]["page"] == 1

    @given(data=non_sensitive_data_strategy())
    @settings(max_examples=100)
    def test_non_sensitive_data_unchanged(self, data: dict) -> None:
        logger = AuditLogger(output_stream=StringIO())
        assert logger.mask_sensitive_data(data) == data


class TestErrorContextProperty:
    """Tests for full error context in error entries."""

    @given(
        status_code=st.sampled_from([429, 500, 502, 503]),
        message=message_strategy(),
    )
    @settings(max_examples=50)
    def test_upstream_error_context_is_logged(self, status_code: int, message: str) -> None:
        """
        *For any* upstream failure, the error entry SHALL carry the error
        type, message, code, request URL and response status.
        """
        logger = AuditLogger(output_stream=StringIO())
        error = UpstreamError(
            code="http_error",
            message=message,
            status_code=status_code,
            url="https://uptime.example.com/api/v2/monitors",
        )

        entry = logger.log_error(
            "UpstreamPager",
            "Giving up",
            error=error,
            request_url=error.url,
            response_status_code=error.status_code,
        )

        assert entry.level == LogLevel.ERROR
        assert entry.data["error_type"] == "UpstreamError"
        assert entry.data["error_code"] == "http_error"
        assert entry.data["request_url"] == "https://uptime.example.com/api/v2/monitors"
        assert entry.data["response_status_code"] == status_code

    def test_plain_exception_has_no_error_code(self) -> None:
        logger = AuditLogger(output_stream=StringIO())

        entry = logger.log_error("Scheduler", "Task failed", error=RuntimeError("boom"))

        assert entry.data["error_type"] == "RuntimeError"
        assert entry.data["error_message"] == "boom"
        assert "error_code" not in entry.data
        assert "request_url" not in entry.data

    def test_invalid_output_format_rejected(self) -> None:
        try:
            AuditLogger(output_format="xml")
        except ValueError:
            return
        raise AssertionError("Expected ValueError for unknown output format")
