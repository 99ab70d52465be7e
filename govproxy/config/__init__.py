"""
govproxy Configuration

Loads govproxy.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    GovProxyConfig,
    LoggingSection,
    NetworkSection,
    SubmissionSection,
    load_config,
)

__all__ = [
    "GovProxyConfig",
    "NetworkSection",
    "SubmissionSection",
    "LoggingSection",
    "load_config",
]
