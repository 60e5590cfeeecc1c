"""Configuration management for hyperrisk.

Loads settings from environment or .env file with safe defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Self

from dotenv import load_dotenv

from .endpoints import HYPERLIQUID_API_BASE

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "data/hyperrisk.db"
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RISK_FREE_RATE = 0.03
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class HyperRiskConfig:
    """Runtime configuration.

    Attributes:
        api_url: Base URL of the Hyperliquid REST API
        db_path: SQLite file holding tracked wallets
        http_timeout: Per-request timeout in seconds
        max_retries: Retries for transient upstream errors
        risk_free_rate: Annual risk-free rate for Sharpe/Sortino
        log_level: Logging level name for the CLI
    """

    api_url: str = HYPERLIQUID_API_BASE
    db_path: str = DEFAULT_DB_PATH
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, *, load_dotenv_file: bool = True) -> Self:
        """Load configuration from environment variables.

        Args:
            load_dotenv_file: If True, load .env file from cwd or a parent first.

        Returns:
            HyperRiskConfig instance with loaded values.
        """
        if load_dotenv_file:
            loaded_env_path: Path | None = None
            for directory in (Path.cwd(), *Path.cwd().parents):
                env_path = directory / ".env"
                if env_path.exists():
                    load_dotenv(env_path)
                    loaded_env_path = env_path
                    break

            if loaded_env_path:
                logger.info("CONFIG: Loaded .env file from %s", loaded_env_path)
            else:
                logger.info("CONFIG: No .env file found in cwd or parents")

        def _float_env(key: str, default: float) -> float:
            raw = os.getenv(key)
            if raw is None or not raw.strip():
                return default
            try:
                return float(raw)
            except ValueError:
                logger.warning("CONFIG: Ignoring invalid %s=%r, using %s", key, raw, default)
                return default

        def _int_env(key: str, default: int) -> int:
            raw = os.getenv(key)
            if raw is None or not raw.strip():
                return default
            try:
                return int(raw)
            except ValueError:
                logger.warning("CONFIG: Ignoring invalid %s=%r, using %s", key, raw, default)
                return default

        config = cls(
            api_url=(os.getenv("HYPERLIQUID_API_URL") or HYPERLIQUID_API_BASE).rstrip("/"),
            db_path=os.getenv("HYPERRISK_DB_PATH") or DEFAULT_DB_PATH,
            http_timeout=_float_env("HYPERRISK_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            max_retries=max(_int_env("HYPERRISK_MAX_RETRIES", DEFAULT_MAX_RETRIES), 0),
            risk_free_rate=_float_env("HYPERRISK_RISK_FREE_RATE", DEFAULT_RISK_FREE_RATE),
            log_level=(os.getenv("HYPERRISK_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        )

        logger.info(
            "CONFIG: HyperRiskConfig loaded - api_url=%s, db_path=%s, timeout=%.1fs, retries=%d",
            config.api_url,
            config.db_path,
            config.http_timeout,
            config.max_retries,
        )

        return config


def load_config(*, load_dotenv_file: bool = True) -> HyperRiskConfig:
    """Load and return hyperrisk configuration.

    Example:
        >>> from hyperrisk.config import load_config
        >>> config = load_config()
        >>> print(config.api_url)
    """
    return HyperRiskConfig.from_env(load_dotenv_file=load_dotenv_file)
