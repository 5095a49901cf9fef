"""Rebalancing engine: target weights -> margin sizing -> order plan"""

from typing import List, Mapping, Optional, Union
import logging
from portfolio_base import BalancerResult, InstrumentInfo, MarginConfig, Position, WeightingMode
from balancer_config import BalancerSettings
from .margin import MarginSizer, coerce_margin_config
from .planner import OrderPlanner
from .shares import calculate_portfolio_shares, index_wallet, validate_wallet
from .weights import DesiredInput, MetricsInput, WeightResolver, coerce_desired, coerce_mode


class Rebalancer:
    """Compose weight resolution, margin sizing and order planning for one wallet.

    Holds no state between calls: every input arrives as an argument, so one
    instance may serve many accounts concurrently.
    """

    def __init__(self, settings: Optional[BalancerSettings] = None, logger: Optional[logging.Logger] = None):
        self.settings = settings or BalancerSettings()
        self.logger = logger or logging.getLogger(__name__)
        self.weight_resolver = WeightResolver(self.settings, self.logger)
        self.margin_sizer = MarginSizer(self.settings, self.logger)
        self.order_planner = OrderPlanner(self.settings, self.logger)

    def balance(self, wallet: List[Position], desired_wallet: DesiredInput,
                metrics: MetricsInput = None, mode: Union[str, WeightingMode] = WeightingMode.MANUAL,
                dry_run: bool = True, margin_config: Union[MarginConfig, dict, None] = None,
                instruments: Optional[Mapping[str, InstrumentInfo]] = None) -> BalancerResult:
        """
        Calculate the rebalancing plan for a wallet.

        Raises ConfigurationError for an unknown mode, a malformed margin config,
        negative desired weights or negative lot sizes. Missing data never raises;
        it is reported in the result warnings.
        """
        # Configuration problems are rejected before any computation
        requested_mode = coerce_mode(mode)
        margin = coerce_margin_config(margin_config)
        desired = coerce_desired(desired_wallet)
        validate_wallet(wallet)

        total_portfolio_value = sum(position.total_price_number for position in wallet)
        current_shares = calculate_portfolio_shares(wallet)
        self.logger.info(
            f"Balancing {len(wallet)} positions worth {total_portfolio_value:,.2f} "
            f"toward {len(desired)} targets (mode={requested_mode.value}, dry_run={dry_run})"
        )

        resolution = self.weight_resolver.resolve(desired, requested_mode, metrics)
        if resolution.mode_used != requested_mode:
            self.logger.info(f"Weighting mode degraded from {requested_mode.value} to {resolution.mode_used.value}")

        target_weights = dict(resolution.weights)
        if target_weights:
            # Holdings missing from the desired wallet are sold down
            for ticker, position in index_wallet(wallet).items():
                if not position.is_cash and ticker not in target_weights:
                    self.logger.info(f"{ticker} is not in the desired wallet, targeting 0%")
                    target_weights[ticker] = 0.0
        self._log_target_weights(target_weights)

        margin_info = self.margin_sizer.size_margin(wallet, margin, total_portfolio_value)

        plan = self.order_planner.plan_orders(
            wallet=wallet,
            target_weights=target_weights,
            total_portfolio_value=total_portfolio_value,
            margin_info=margin_info,
            dry_run=dry_run,
            instruments=instruments,
        )
        if plan.forced_reductions:
            margin_info = margin_info.model_copy(update={"forced_reductions": plan.forced_reductions})

        return BalancerResult(
            final_percents=plan.final_percents,
            mode_used=resolution.mode_used.value,
            total_portfolio_value=total_portfolio_value,
            current_shares=current_shares,
            target_weights=target_weights,
            margin_info=margin_info,
            orders=plan.orders,
            warnings=resolution.warnings + plan.warnings,
            dry_run=dry_run,
        )

    def _log_target_weights(self, target_weights):
        self.logger.debug(f"Target weights ({len(target_weights)}):")
        for ticker, weight in target_weights.items():
            self.logger.debug(f"  {ticker}: {weight:.2f}%")


def balancer(wallet: List[Position], desired_wallet: DesiredInput, metrics: MetricsInput = None,
             mode: Union[str, WeightingMode] = WeightingMode.MANUAL, dry_run: bool = True,
             margin_config: Union[MarginConfig, dict, None] = None,
             instruments: Optional[Mapping[str, InstrumentInfo]] = None,
             settings: Optional[BalancerSettings] = None,
             logger: Optional[logging.Logger] = None) -> BalancerResult:
    """Run one rebalancing calculation with a fresh Rebalancer"""
    return Rebalancer(settings=settings, logger=logger).balance(
        wallet=wallet,
        desired_wallet=desired_wallet,
        metrics=metrics,
        mode=mode,
        dry_run=dry_run,
        margin_config=margin_config,
        instruments=instruments,
    )
