"""Configuration loader with validation and singleton access."""

import logging
import yaml
from pathlib import Path
from typing import Optional

from portfolio_base import ConfigurationError
from .models import AppConfig

logger = logging.getLogger(__name__)

# Global config singleton
_config: Optional[AppConfig] = None


def load_config(config_path: str | Path) -> AppConfig:
    """
    Load and validate configuration from YAML file.

    Args:
        config_path: Path to config.yaml file

    Returns:
        Validated AppConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigurationError: If config validation fails
        yaml.YAMLError: If YAML parsing fails
    """
    global _config

    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raw_config = {}

    try:
        _config = AppConfig(**raw_config)
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    # Log loaded configuration for audit trail
    logger.info("Configuration loaded successfully:")
    logger.info(f"  Log level: {_config.logging.level} ({_config.logging.format})")
    logger.info(f"  Decorrelation threshold: {_config.balancer.decorrelation_threshold_pct}%")
    logger.info(f"  keep_if_small threshold: {_config.balancer.keep_if_small_threshold}")
    logger.info(f"  Weight sum tolerance: {_config.balancer.weight_sum_tolerance}")
    for account in _config.accounts:
        margin = account.margin_trading
        logger.info(
            f"  Account {account.id}: mode={account.desired_mode.value}, "
            f"tickers={len(account.desired_wallet)}, interval={account.balance_interval}s, "
            f"margin={'on x' + str(margin.multiplier) if margin.enabled else 'off'}"
        )

    return _config


def get_config() -> AppConfig:
    """
    Get the current loaded configuration.

    Returns:
        Current AppConfig instance

    Raises:
        RuntimeError: If config hasn't been loaded yet
    """
    if _config is None:
        raise RuntimeError(
            "Configuration not loaded. Call load_config() first."
        )
    return _config
