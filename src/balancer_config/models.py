"""Pydantic models for application configuration with validation."""

import os
from typing import Dict, List, Literal
from pydantic import BaseModel, Field, field_validator, model_validator

from portfolio_base import DesiredWeight, MarginConfig, WeightingMode


class LoggingConfig(BaseModel):
    """Logging output settings."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level"
    )
    format: Literal["text", "json"] = Field(
        default="text",
        description="text for human-readable lines, json for one JSON object per line"
    )
    log_dir: str = Field(
        default="",
        description="Directory for the rotating log file; empty disables file logging"
    )


class BalancerSettings(BaseModel):
    """Engine tuning parameters shared by all accounts."""

    decorrelation_threshold_pct: float = Field(
        default=5.0,
        ge=0.0,
        le=100.0,
        description="Decorrelation above this percent marks a ticker as overpriced relative to AUM"
    )
    decorrelation_shift_cap: float = Field(
        default=0.5,
        gt=0.0,
        le=1.0,
        description="Largest fraction of an overpriced ticker's weight moved to underpriced tickers"
    )
    keep_if_small_threshold: float = Field(
        default=5000.0,
        ge=0.0,
        description="keep_if_small strategy leaves margin positions worth less than this"
    )
    weight_sum_tolerance: float = Field(
        default=1.0,
        gt=0.0,
        le=10.0,
        description="Allowed distance of a desired wallet's weight sum from 100"
    )
    margin_transfer_fee_rate: float = Field(
        default=0.01,
        ge=0.0,
        le=0.1,
        description="Fee rate for carrying a margin position above the free threshold overnight"
    )


class ExchangeClosureBehavior(BaseModel):
    """What a cycle does when the exchange is closed."""

    mode: Literal["skip_iteration", "force_orders", "dry_run"] = Field(
        default="skip_iteration",
        description="skip_iteration=do nothing, force_orders=submit anyway, dry_run=plan only"
    )
    update_iteration_result: bool = Field(
        default=False,
        description="Keep the planned result of a skipped or dry-run cycle"
    )


class AccountConfig(BaseModel):
    """Per-account rebalancing configuration."""

    id: str
    name: str
    t_invest_token: str
    account_id: str
    desired_wallet: Dict[str, float]
    desired_mode: WeightingMode = WeightingMode.MANUAL
    balance_interval: int = Field(
        default=3600,
        ge=60,
        description="Seconds between rebalancing cycles"
    )
    sleep_between_orders: float = Field(
        default=3.0,
        ge=0.0,
        le=60.0,
        description="Pause between submitted orders"
    )
    margin_trading: MarginConfig = Field(default_factory=MarginConfig)
    exchange_closure_behavior: ExchangeClosureBehavior = Field(
        default_factory=ExchangeClosureBehavior
    )
    dry_run: bool = False

    @field_validator("desired_wallet")
    @classmethod
    def validate_desired_wallet(cls, v: Dict[str, float]) -> Dict[str, float]:
        if not v:
            raise ValueError("desired_wallet must not be empty")
        negative = [ticker for ticker, weight in v.items() if weight < 0]
        if negative:
            raise ValueError(f"desired_wallet weights must be non-negative: {', '.join(negative)}")
        return v

    def desired_weights(self) -> List[DesiredWeight]:
        """Desired wallet as an ordered list of (ticker, weight) pairs"""
        return [DesiredWeight(ticker=ticker, weight=weight) for ticker, weight in self.desired_wallet.items()]

    def resolve_token(self) -> str:
        """Return the token, reading it from the environment for ${VAR} references"""
        value = self.t_invest_token
        if value.startswith("${") and value.endswith("}"):
            return os.environ.get(value[2:-1], "")
        return value


class AppConfig(BaseModel):
    """Root application configuration."""

    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging settings"
    )
    balancer: BalancerSettings = Field(
        default_factory=BalancerSettings,
        description="Rebalancing engine settings"
    )
    accounts: List[AccountConfig] = Field(
        default_factory=list,
        description="Accounts to rebalance"
    )

    @model_validator(mode="after")
    def validate_accounts(self) -> "AppConfig":
        seen = set()
        for account in self.accounts:
            if account.id in seen:
                raise ValueError(f"Duplicate account id '{account.id}'")
            seen.add(account.id)

            total = sum(account.desired_wallet.values())
            if abs(total - 100.0) > self.balancer.weight_sum_tolerance:
                raise ValueError(
                    f"Account {account.id}: desired_wallet weights sum to {total:.2f}, "
                    f"expected 100 +/- {self.balancer.weight_sum_tolerance}"
                )
        return self

    def get_account(self, account_id: str) -> AccountConfig:
        for account in self.accounts:
            if account.id == account_id:
                return account
        raise KeyError(f"Account '{account_id}' not configured")
