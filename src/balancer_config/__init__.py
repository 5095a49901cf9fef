"""Application configuration management for the wallet balancer."""

from .models import (
    AppConfig,
    AccountConfig,
    BalancerSettings,
    ExchangeClosureBehavior,
    LoggingConfig,
)
from .loader import load_config, get_config

__all__ = [
    "AppConfig",
    "AccountConfig",
    "BalancerSettings",
    "ExchangeClosureBehavior",
    "LoggingConfig",
    "load_config",
    "get_config",
]
