"""
govproxy TOML Configuration Loader

Loads govproxy.toml with environment variable overrides. Defaults come
from govproxy.constants (and therefore from `.env`).

Environment variable mapping:
    [network] name               → GOVPROXY_NETWORK
    [network] endpoint           → GOVPROXY_ENDPOINT
    [submission] tx_timeout      → GOVPROXY_TX_TIMEOUT
    [submission] inter_batch_delay → GOVPROXY_BATCH_DELAY
    [logging] level              → GOVPROXY_LOG_LEVEL

Mnemonics never belong in this file; use a keyfile or the prompt.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from ..constants import (
    DEFAULT_TX_TIMEOUT_SECONDS,
    GOVPROXY_BATCH_DELAY,
    GOVPROXY_NETWORK,
    GOVPROXY_TX_TIMEOUT,
    LOG_LEVEL,
)
from ..exceptions import ConfigurationError
from ..logger import get_logger
from ..networks import NETWORKS, NetworkConfig, get_network

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = "govproxy.toml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {value!r}")


def _default_timeout() -> float:
    return _float(GOVPROXY_TX_TIMEOUT or DEFAULT_TX_TIMEOUT_SECONDS, "GOVPROXY_TX_TIMEOUT")


def _default_delay() -> Optional[float]:
    if not str(GOVPROXY_BATCH_DELAY).strip():
        return None
    return _float(GOVPROXY_BATCH_DELAY, "GOVPROXY_BATCH_DELAY")


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass
class NetworkSection:
    """[network] section."""
    name: str = field(default_factory=lambda: str(GOVPROXY_NETWORK))
    endpoint: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NetworkSection":
        return cls(
            name=data.get("name", str(GOVPROXY_NETWORK)),
            endpoint=data.get("endpoint") or None,
        )

    def apply_env(self) -> None:
        if v := os.environ.get("GOVPROXY_NETWORK"):
            self.name = v
        if v := os.environ.get("GOVPROXY_ENDPOINT"):
            self.endpoint = v

    def resolve(self) -> NetworkConfig:
        return get_network(self.name).with_endpoint(self.endpoint)


@dataclass
class SubmissionSection:
    """[submission] section."""
    tx_timeout: float = field(default_factory=_default_timeout)
    inter_batch_delay: Optional[float] = field(default_factory=_default_delay)
    confirm: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubmissionSection":
        delay = data.get("inter_batch_delay")
        return cls(
            tx_timeout=_float(data.get("tx_timeout", _default_timeout()), "tx_timeout"),
            inter_batch_delay=_default_delay() if delay is None else _float(delay, "inter_batch_delay"),
            confirm=data.get("confirm", True),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("GOVPROXY_TX_TIMEOUT"):
            self.tx_timeout = _float(v, "GOVPROXY_TX_TIMEOUT")
        if v := os.environ.get("GOVPROXY_BATCH_DELAY"):
            self.inter_batch_delay = _float(v, "GOVPROXY_BATCH_DELAY")


@dataclass
class LoggingSection:
    """[logging] section."""
    level: str = field(default_factory=lambda: str(LOG_LEVEL).upper())
    file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingSection":
        return cls(
            level=str(data.get("level", LOG_LEVEL)).upper(),
            file=data.get("file") or None,
        )

    def apply_env(self) -> None:
        if v := os.environ.get("GOVPROXY_LOG_LEVEL"):
            self.level = v.upper()


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass
class GovProxyConfig:
    """
    Runtime configuration.

    Built from govproxy.toml (if any), then environment overrides, then
    validated. CLI flags are applied on top by the caller.
    """
    network: NetworkSection = field(default_factory=NetworkSection)
    submission: SubmissionSection = field(default_factory=SubmissionSection)
    logging: LoggingSection = field(default_factory=LoggingSection)
    source: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GovProxyConfig":
        for section in ("network", "submission", "logging"):
            if not isinstance(data.get(section, {}), dict):
                raise ConfigurationError(f"[{section}] must be a table")
        return cls(
            network=NetworkSection.from_dict(data.get("network", {})),
            submission=SubmissionSection.from_dict(data.get("submission", {})),
            logging=LoggingSection.from_dict(data.get("logging", {})),
        )

    @classmethod
    def from_file(cls, config_path: str, required: bool = False) -> "GovProxyConfig":
        """
        Load configuration from a TOML file.

        A missing file yields defaults with environment overrides, unless
        *required* is set, in which case it is an error.
        """
        path = Path(config_path)
        if not path.exists():
            if required:
                raise ConfigurationError(f"Config file not found: {config_path}")
            logger.debug(f"No config file at {config_path}, using defaults")
            cfg = cls()
            cfg.apply_env()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.source = str(path)
        cfg.apply_env()
        logger.debug(f"Loaded configuration from {path}")
        return cfg

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.network.apply_env()
        self.submission.apply_env()
        self.logging.apply_env()

    def validate(self) -> bool:
        """
        Raises:
            ConfigurationError: on invalid config
        """
        if self.network.name.strip().lower() not in NETWORKS:
            raise ConfigurationError(
                f"Invalid network: {self.network.name!r}. Use one of: {', '.join(NETWORKS)}"
            )
        if self.network.endpoint and not self.network.endpoint.startswith(("ws://", "wss://")):
            raise ConfigurationError(f"Endpoint must be a ws:// or wss:// URL: {self.network.endpoint}")
        if self.submission.tx_timeout <= 0:
            raise ConfigurationError("tx_timeout must be > 0")
        if self.submission.inter_batch_delay is not None and self.submission.inter_batch_delay < 0:
            raise ConfigurationError("inter_batch_delay must be >= 0")
        if not isinstance(self.submission.confirm, bool):
            raise ConfigurationError("confirm must be true or false")
        if self.logging.level not in _LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.logging.level}")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics)."""
        return {
            "network": {
                "name": self.network.name,
                "endpoint": self.network.endpoint,
            },
            "submission": {
                "tx_timeout": self.submission.tx_timeout,
                "inter_batch_delay": self.submission.inter_batch_delay,
                "confirm": self.submission.confirm,
            },
            "logging": {
                "level": self.logging.level,
                "file": self.logging.file,
            },
        }


def load_config(path: Optional[str] = None) -> GovProxyConfig:
    """
    Load and validate configuration.

    Resolution order:
        1. Explicit *path* argument (must exist)
        2. GOVPROXY_CONFIG env var (must exist)
        3. ./govproxy.toml in current directory
        4. Defaults (with env overrides)
    """
    required = True
    if path is None:
        path = os.environ.get("GOVPROXY_CONFIG")
    if path is None:
        path, required = DEFAULT_CONFIG_FILE, False

    cfg = GovProxyConfig.from_file(path, required=required)
    cfg.validate()
    return cfg
