"""
Configuration and Feature Flags for the layout engine

Process-wide switches are controlled via environment variables so they can
be toggled without code changes. Per-call options live on LayoutOptions
(bpmn_autolayout.models.layout_options).

Usage:
    from bpmn_autolayout.config.settings import is_enabled

    if is_enabled('layout_debug'):
        # Emit per-step layout diagnostics at INFO level
        ...

Environment Variables:
    BPMN_LAYOUT_DEBUG=true/false  - Verbose per-step layout logging
    BPMN_LAYOUT_SOLVER=<name>     - Default solver engine ('layered' or 'elk')
    BPMN_ELK_TIMEOUT=<seconds>    - Timeout for a single ELK worker request
"""

import os
from typing import Dict


# Feature flags with environment variable overrides
FEATURE_FLAGS: Dict[str, bool] = {
    # Step timings and moved counts logged at INFO instead of DEBUG
    'layout_debug': os.getenv('BPMN_LAYOUT_DEBUG', 'false').lower() == 'true',
}

DEFAULT_SOLVER = 'layered'
DEFAULT_SOLVER_TIMEOUT = 30


def is_enabled(flag: str) -> bool:
    """
    Check if a feature flag is enabled.

    Args:
        flag: Feature flag name (e.g., 'layout_debug')

    Returns:
        True if flag is enabled, False otherwise

    Raises:
        KeyError: If flag name is not recognized

    Example:
        >>> is_enabled('layout_debug')
        False  # Default

        >>> # After: export BPMN_LAYOUT_DEBUG=true
        >>> is_enabled('layout_debug')
        True
    """
    if flag not in FEATURE_FLAGS:
        available = ', '.join(FEATURE_FLAGS.keys())
        raise KeyError(
            f"Unknown feature flag: '{flag}'. "
            f"Available flags: {available}"
        )

    return FEATURE_FLAGS[flag]


def get_all_flags() -> Dict[str, bool]:
    """
    Get all feature flags and their current state.

    Returns:
        Dictionary of flag names to boolean values
    """
    return FEATURE_FLAGS.copy()


def set_flag(flag: str, enabled: bool) -> None:
    """
    Programmatically set a feature flag (for testing only).

    Args:
        flag: Feature flag name
        enabled: True to enable, False to disable

    Warning:
        This is for testing only. In production, use environment variables.
    """
    if flag not in FEATURE_FLAGS:
        available = ', '.join(FEATURE_FLAGS.keys())
        raise KeyError(
            f"Unknown feature flag: '{flag}'. "
            f"Available flags: {available}"
        )

    FEATURE_FLAGS[flag] = enabled


def get_default_solver() -> str:
    """Solver engine used when a layout call does not name one."""
    return os.getenv('BPMN_LAYOUT_SOLVER', DEFAULT_SOLVER).strip().lower() or DEFAULT_SOLVER


def get_solver_timeout() -> int:
    """
    Timeout in seconds for a single external solver request.

    Falls back to the default when the environment value is not an integer.
    """
    raw = os.getenv('BPMN_ELK_TIMEOUT')
    if not raw:
        return DEFAULT_SOLVER_TIMEOUT
    try:
        return max(1, int(raw))
    except ValueError:
        return DEFAULT_SOLVER_TIMEOUT
