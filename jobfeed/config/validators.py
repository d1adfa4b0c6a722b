"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    employers = config_dict.get("employers", [])
    if isinstance(employers, list):
        for employer in employers:
            if isinstance(employer, dict) and not employer.get("enabled", True):
                name = employer.get("name", "Unknown")
                warning_messages.append(f"Employer '{name}' is disabled and will be skipped")

    reconciliation = config_dict.get("reconciliation", {})
    advanced = config_dict.get("advanced", {})
    if isinstance(reconciliation, dict) and isinstance(advanced, dict):
        workers = reconciliation.get("max_workers", 1)
        interval_ms = advanced.get("min_request_interval_ms", 250)
        if isinstance(workers, int) and workers > 1 and interval_ms == 0:
            warning_messages.append(
                f"max_workers={workers} with min_request_interval_ms=0 may trigger API rate limits"
            )

        delay_ms = reconciliation.get("inter_employer_delay_ms", 500)
        if isinstance(delay_ms, int) and delay_ms == 0 and workers == 1:
            warning_messages.append(
                "inter_employer_delay_ms=0 sends back-to-back requests to every board"
            )

    normalization = config_dict.get("normalization", {})
    if isinstance(normalization, dict):
        keywords = normalization.get("tag_keywords")
        if isinstance(keywords, list):
            normalized = [k.strip().lower() for k in keywords if isinstance(k, str)]
            duplicates = sorted({k for k in normalized if normalized.count(k) > 1})
            if duplicates:
                warning_messages.append(
                    f"Duplicate tag_keywords will be deduplicated: {', '.join(duplicates)}"
                )
        if normalization.get("tag_keywords") is not None or normalization.get("location_rules") is not None:
            warning_messages.append(
                "Changed normalization rules only apply to listings whose content changes next"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
