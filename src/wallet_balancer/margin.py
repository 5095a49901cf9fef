"""Margin exposure measurement and margin policy"""

from typing import Dict, List, Optional, Union
import logging
from pydantic import ValidationError
from portfolio_base import BalancingStrategy, ConfigurationError, MarginConfig, MarginInfo, Position
from balancer_config import BalancerSettings
from .shares import security_values


def coerce_margin_config(margin_config: Union[MarginConfig, dict, None]) -> MarginConfig:
    if margin_config is None:
        return MarginConfig()
    if isinstance(margin_config, MarginConfig):
        return margin_config
    try:
        return MarginConfig(**margin_config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid margin configuration: {e}") from e


def cash_available(wallet: List[Position]) -> float:
    return sum(position.total_price_number for position in wallet if position.is_cash)


class MarginSizer:
    """Measure margin-funded exposure of a wallet against its margin configuration"""

    def __init__(self, settings: Optional[BalancerSettings] = None, logger: Optional[logging.Logger] = None):
        self.settings = settings or BalancerSettings()
        self.logger = logger or logging.getLogger(__name__)

    def size_margin(self, wallet: List[Position], margin_config: Union[MarginConfig, dict, None],
                    total_portfolio_value: float) -> MarginInfo:
        config = coerce_margin_config(margin_config)

        if not config.enabled:
            return MarginInfo(balancing_strategy=config.balancing_strategy)

        cash = cash_available(wallet)
        values = security_values(wallet)
        securities_total = sum(values.values())

        credit_capacity = max(0.0, total_portfolio_value * (config.multiplier - 1))
        if config.max_margin_size > 0:
            credit_capacity = min(credit_capacity, config.max_margin_size)

        margin_used = max(0.0, securities_total - cash - config.free_threshold)
        within_limits = margin_used <= credit_capacity

        position_margin = self._position_margin(values, cash, securities_total)
        margin_positions = list(position_margin)

        transfer_cost = sum(
            values[ticker] * self.settings.margin_transfer_fee_rate
            for ticker in margin_positions
            if values[ticker] > config.free_threshold
        )

        info = MarginInfo(
            total_margin_used=margin_used,
            margin_positions=margin_positions,
            within_limits=within_limits,
            credit_capacity=credit_capacity,
            available_margin=max(0.0, credit_capacity - margin_used),
            position_margin=position_margin,
            transfer_cost=transfer_cost,
            risk_level=self._risk_level(margin_used, credit_capacity),
            balancing_strategy=config.balancing_strategy,
        )

        log = self.logger.info if within_limits else self.logger.warning
        log(
            f"Margin: used {margin_used:,.2f} of {credit_capacity:,.2f} capacity "
            f"(cash {cash:,.2f}, securities {securities_total:,.2f}, "
            f"{len(margin_positions)} margin positions, risk {info.risk_level})"
        )
        return info

    def _position_margin(self, values: Dict[str, float], cash: float, securities_total: float) -> Dict[str, float]:
        """Margin-funded part of each position, cash being spread pro rata over all securities"""
        if securities_total <= 0 or securities_total <= cash:
            return {}
        funded_ratio = max(0.0, cash) / securities_total
        return {
            ticker: value * (1 - funded_ratio)
            for ticker, value in values.items()
            if value > 0
        }

    def _risk_level(self, margin_used: float, credit_capacity: float) -> str:
        if margin_used <= 0:
            return "low"
        if credit_capacity <= 0:
            return "high"
        ratio = margin_used / credit_capacity
        if ratio > 0.8:
            return "high"
        if ratio > 0.6:
            return "medium"
        return "low"


def plan_forced_reductions(margin_info: MarginInfo, keep_if_small_threshold: float) -> Dict[str, float]:
    """Value to sell per ticker so that margin exposure complies with the balancing strategy.

    Nothing is reduced while the exposure is within limits or under the keep strategy.
    """
    if margin_info.within_limits or not margin_info.margin_positions:
        return {}

    strategy = margin_info.balancing_strategy
    margins = margin_info.position_margin

    if strategy == BalancingStrategy.KEEP:
        return {}

    if strategy == BalancingStrategy.REMOVE:
        return {ticker: margins[ticker] for ticker in margin_info.margin_positions if margins.get(ticker, 0) > 0}

    # keep_if_small: small margin positions stay, larger ones absorb the overage proportionally
    large = {
        ticker: margins[ticker]
        for ticker in margin_info.margin_positions
        if margins.get(ticker, 0) >= keep_if_small_threshold
    }
    large_total = sum(large.values())
    if large_total <= 0:
        return {}
    overage = margin_info.total_margin_used - margin_info.credit_capacity
    to_reduce = min(overage, large_total)
    return {ticker: to_reduce * margin / large_total for ticker, margin in large.items()}
