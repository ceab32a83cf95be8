from __future__ import annotations

"""
Unit tests for the Configuration Validator.

Verifies:
1. Default value injection and string-to-number coercion.
2. Strict mode validation.
3. Batch bounds are rejected, never clamped.
4. Connection settings presence.
"""

import pytest

from pcli2.core.validator import (
    require_connection_settings,
    validate_batch_options,
    validate_config,
    validate_threshold,
)
from pcli2.domain.errors import ConfigurationError, ExitCode


def test_validate_none_returns_defaults() -> None:
    """Passing None should return the full default configuration."""
    cfg, warnings = validate_config(None)

    assert cfg["concurrent"] == 1
    assert cfg["format"] == "json"
    assert len(warnings) > 0


def test_validate_empty_dict_returns_defaults() -> None:
    cfg, warnings = validate_config({})

    assert cfg["threshold"] == 80.0
    assert cfg["api_base_url"] == "https://app-api.physna.com/v3"
    assert warnings == []


def test_numeric_strings_are_coerced() -> None:
    cfg, warnings = validate_config({"concurrent": "4", "delay": "1.5", "timeout": 60})

    assert cfg["concurrent"] == 4
    assert cfg["delay"] == 1.5
    assert cfg["timeout"] == 60
    assert len(warnings) == 2


def test_invalid_values_fall_back_with_warning() -> None:
    cfg, warnings = validate_config({"concurrent": "many", "format": "xml", "tenant": 5})

    assert cfg["concurrent"] == 1
    assert cfg["format"] == "json"
    assert cfg["tenant"] == ""
    assert len(warnings) == 3


def test_strict_mode_raises() -> None:
    with pytest.raises(ConfigurationError):
        validate_config({"format": "xml"}, strict=True)


def test_trailing_slash_removed_from_base_url() -> None:
    cfg, _ = validate_config({"api_base_url": "https://host/v3/"})

    assert cfg["api_base_url"] == "https://host/v3"


@pytest.mark.parametrize("concurrent,delay", [(1, 0), (10, 180), ("3", "2.5")])
def test_batch_bounds_accepted(concurrent, delay) -> None:
    n, d = validate_batch_options(concurrent, delay)

    assert 1 <= n <= 10
    assert 0 <= d <= 180


@pytest.mark.parametrize("concurrent,delay", [(0, 0), (11, 0), (1, -1), (1, 181), (None, 0)])
def test_batch_bounds_rejected(concurrent, delay) -> None:
    with pytest.raises(ConfigurationError) as exc:
        validate_batch_options(concurrent, delay)

    assert exc.value.exit_code == ExitCode.CONFIG


def test_threshold_bounds() -> None:
    assert validate_threshold("80") == 80.0
    with pytest.raises(ConfigurationError):
        validate_threshold(-1)
    with pytest.raises(ConfigurationError):
        validate_threshold("high")


def test_missing_connection_settings_listed(mock_config_dict) -> None:
    require_connection_settings(mock_config_dict)

    mock_config_dict["tenant"] = ""
    mock_config_dict["client_secret"] = ""
    with pytest.raises(ConfigurationError) as exc:
        require_connection_settings(mock_config_dict)

    assert "tenant" in str(exc.value)
    assert "client_secret" in str(exc.value)
