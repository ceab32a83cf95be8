from __future__ import annotations

"""
Configuration Validation Service.

Gatekeeper between untrusted inputs (config file, environment, CLI) and the
batch engine. Settings loaded from disk are coerced with warnings; the
batch bounds supplied for a run are checked strictly and rejected with a
ConfigurationError before any work item is started.
"""

import logging
from typing import Any, Dict, List, Tuple

from pcli2.domain.config import get_default_config
from pcli2.domain.constants import (
    MAX_CONCURRENCY,
    MAX_DELAY_SECONDS,
    MAX_MATCH_THRESHOLD,
    MIN_CONCURRENCY,
    MIN_DELAY_SECONDS,
    MIN_MATCH_THRESHOLD,
    OUTPUT_FORMATS,
)
from pcli2.domain.errors import ConfigurationError

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def validate_config(
        config: Any,
        *,
        strict: bool = False,
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Validate and normalize the provided configuration dictionary.

    Fills missing keys with defaults and coerces numeric fields stored as
    strings (as written by `config set`).

    Args:
        config: Raw configuration data (usually a dictionary).
        strict: If True, raises ConfigurationError instead of coercing.

    Returns:
        Tuple[Dict[str, Any], List[str]]: The normalized configuration and
                                          a list of warnings.
    """
    warnings: List[str] = []
    defaults = get_default_config()

    if not isinstance(config, dict):
        msg = f"Invalid config type: expected dict, received {type(config).__name__}."
        if strict:
            raise ConfigurationError(msg)
        warnings.append(f"{msg} Using defaults.")
        return defaults, warnings

    merged: Dict[str, Any] = dict(defaults)
    merged.update(config)

    string_fields = [
        "api_base_url", "auth_url", "tenant", "client_id", "client_secret", "log_file",
    ]

    for field in string_fields:
        merged[field] = _as_str(merged.get(field), defaults[field], field, warnings, strict)

    merged["api_base_url"] = merged["api_base_url"].rstrip("/")

    merged["timeout"] = _as_number(merged.get("timeout"), defaults["timeout"], "timeout", warnings, strict, int)
    merged["concurrent"] = _as_number(
        merged.get("concurrent"), defaults["concurrent"], "concurrent", warnings, strict, int
    )
    merged["delay"] = _as_number(merged.get("delay"), defaults["delay"], "delay", warnings, strict, float)
    merged["threshold"] = _as_number(
        merged.get("threshold"), defaults["threshold"], "threshold", warnings, strict, float
    )

    fmt = str(merged.get("format") or "").strip().lower()
    if fmt not in OUTPUT_FORMATS:
        msg = f"Invalid field 'format': '{merged.get('format')}' is not one of {', '.join(OUTPUT_FORMATS)}."
        if strict:
            raise ConfigurationError(msg)
        warnings.append(f"{msg} Using fallback.")
        fmt = defaults["format"]
    merged["format"] = fmt

    return merged, warnings


def validate_batch_options(concurrent: Any, delay: Any) -> Tuple[int, float]:
    """
    Check the bounds of a batch run.

    Out-of-range values are rejected, never clamped.

    Args:
        concurrent: Requested number of in-flight operations.
        delay: Requested throttle (seconds) after each non-skipped item.

    Returns:
        Tuple[int, float]: The validated (concurrent, delay) pair.

    Raises:
        ConfigurationError: If either value is malformed or out of range.
    """
    try:
        n = int(concurrent)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid concurrency value: {concurrent!r}") from None
    if isinstance(concurrent, float) and not float(concurrent).is_integer():
        raise ConfigurationError(f"Invalid concurrency value: {concurrent!r}")
    if not MIN_CONCURRENCY <= n <= MAX_CONCURRENCY:
        raise ConfigurationError(
            f"Concurrency must be between {MIN_CONCURRENCY} and {MAX_CONCURRENCY}, got {n}."
        )

    try:
        d = float(delay)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid delay value: {delay!r}") from None
    if not MIN_DELAY_SECONDS <= d <= MAX_DELAY_SECONDS:
        raise ConfigurationError(
            f"Delay must be between {MIN_DELAY_SECONDS:g} and {MAX_DELAY_SECONDS:g} seconds, got {d:g}."
        )

    return n, d


def validate_threshold(threshold: Any) -> float:
    """Check a geometric match threshold (percentage)."""
    try:
        t = float(threshold)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid threshold value: {threshold!r}") from None
    if not MIN_MATCH_THRESHOLD <= t <= MAX_MATCH_THRESHOLD:
        raise ConfigurationError(
            f"Threshold must be between {MIN_MATCH_THRESHOLD:g} and {MAX_MATCH_THRESHOLD:g}, got {t:g}."
        )
    return t


def require_connection_settings(config: Dict[str, Any]) -> None:
    """
    Ensure the settings needed to reach the service are present.

    Raises:
        ConfigurationError: Naming every missing setting.
    """
    missing = [k for k in ("tenant", "client_id", "client_secret") if not config.get(k)]
    if missing:
        raise ConfigurationError(
            "Missing connection settings: " + ", ".join(missing)
            + ". Use 'pcli2 config set' or the PCLI2_* environment variables."
        )


# -----------------------------------------------------------------------------
# PRIVATE HELPERS: TYPE COERCION
# -----------------------------------------------------------------------------

def _as_str(value: Any, fallback: str, field: str, warnings: List[str], strict: bool) -> str:
    """Validate and sanitize string inputs."""
    if value is None:
        return fallback
    if isinstance(value, str):
        return value.strip()

    msg = f"Invalid field '{field}': expected str, received {type(value).__name__}."
    if strict:
        raise ConfigurationError(msg)
    warnings.append(f"{msg} Using fallback.")
    return fallback


def _as_number(value: Any, fallback: Any, field: str, warnings: List[str], strict: bool, kind: type) -> Any:
    """Coerce ints/floats (or their string forms) to the requested kind."""
    if value is None:
        return fallback
    if isinstance(value, bool):
        msg = f"Invalid field '{field}': expected number, received bool."
    elif isinstance(value, (int, float)):
        return kind(value)
    else:
        try:
            converted = kind(str(value).strip())
        except ValueError:
            msg = f"Invalid field '{field}': '{value}' is not a number."
        else:
            if not strict:
                warnings.append(f"Field '{field}' converted from '{value}' to {converted}.")
                return converted
            msg = f"Invalid field '{field}': expected number, received str."

    if strict:
        raise ConfigurationError(msg)
    warnings.append(f"{msg} Using fallback.")
    return fallback
