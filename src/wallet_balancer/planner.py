"""Conversion of target weights into whole-lot buy/sell orders"""

from typing import Dict, List, Mapping, Optional, Tuple
import logging
import math
from portfolio_base import DataGapError, InstrumentInfo, MarginInfo, Order, OrderAction, Position
from balancer_config import BalancerSettings
from .margin import plan_forced_reductions
from .models import OrderPlan
from .shares import index_wallet, shares_from_values, validate_wallet
from .tickers import normalize_ticker

# Absorbs float noise when counting whole lots
LOT_EPSILON = 1e-9


class OrderPlanner:
    """Plan the lot-quantized orders that move a wallet toward its target weights"""

    def __init__(self, settings: Optional[BalancerSettings] = None, logger: Optional[logging.Logger] = None):
        self.settings = settings or BalancerSettings()
        self.logger = logger or logging.getLogger(__name__)

    def plan_orders(self, wallet: List[Position], target_weights: Mapping[str, float],
                    total_portfolio_value: float, margin_info: Optional[MarginInfo] = None,
                    dry_run: bool = True,
                    instruments: Optional[Mapping[str, InstrumentInfo]] = None) -> OrderPlan:
        """
        Calculate orders for every ticker of target_weights.

        Lots are truncated toward zero so no order moves a ticker past its target
        value. Sub-lot residuals are dropped. Tickers without lot metadata are
        skipped with a warning.
        """
        validate_wallet(wallet)
        positions = index_wallet(wallet)
        instrument_map = {normalize_ticker(t): info for t, info in (instruments or {}).items()}
        warnings: List[str] = []

        projected: Dict[str, float] = {
            ticker: position.total_price_number
            for ticker, position in positions.items()
            if not position.is_cash
        }

        if total_portfolio_value <= 0:
            self._warn(warnings, f"Total portfolio value is {total_portfolio_value:,.2f}; no orders planned")
            return OrderPlan(final_percents=shares_from_values(projected), warnings=warnings)

        forced = {}
        if margin_info is not None:
            forced = plan_forced_reductions(margin_info, self.settings.keep_if_small_threshold)

        margin_orders: List[Order] = []
        sell_orders: List[Order] = []
        buy_orders: List[Order] = []
        applied_reductions: Dict[str, float] = {}

        targets: Dict[str, Optional[float]] = {normalize_ticker(t): w for t, w in target_weights.items()}
        # Forced-only tickers get the margin sell and no target-driven order
        for ticker in forced:
            targets.setdefault(ticker, None)

        for ticker, weight in targets.items():
            position = positions.get(ticker)

            if position is not None and position.is_cash:
                self.logger.debug(f"{ticker} is cash, reserving {weight:.2f}% without orders")
                continue

            try:
                lot_price, figi = self._lot_info(ticker, position, instrument_map)
            except DataGapError as e:
                self._warn(warnings, str(e))
                continue

            current_value = position.total_price_number if position else 0.0
            held_lots = math.floor(position.lots + LOT_EPSILON) if position else 0

            forced_lots = 0
            if ticker in forced:
                forced_lots = min(held_lots, math.ceil(forced[ticker] / lot_price - LOT_EPSILON))
                if forced_lots > 0:
                    margin_orders.append(self._order(ticker, -forced_lots, lot_price, figi, reason="margin"))
                    applied_reductions[ticker] = forced_lots * lot_price
                    current_value -= forced_lots * lot_price
                    held_lots -= forced_lots
                    self.logger.info(
                        f"Margin policy ({margin_info.balancing_strategy.value}): "
                        f"sell {forced_lots} lots of {ticker} to reduce {forced[ticker]:,.2f} of margin exposure"
                    )

            if weight is None:
                projected[ticker] = max(0.0, current_value)
                continue

            target_value = weight / 100 * total_portfolio_value
            delta_value = target_value - current_value
            delta_lots = int(delta_value / lot_price)

            if delta_lots > 0 and forced_lots > 0:
                self._warn(warnings, f"Buy of {delta_lots} lots of {ticker} suppressed by margin policy")
                delta_lots = 0
            if delta_lots < 0:
                delta_lots = max(delta_lots, -held_lots)

            self.logger.debug(
                f"{ticker}: target {weight:.2f}% = {target_value:,.2f}, current {current_value:,.2f}, "
                f"delta {delta_value:,.2f} -> {delta_lots} lots @ {lot_price:,.2f}"
            )

            if delta_lots >= 1:
                buy_orders.append(self._order(ticker, delta_lots, lot_price, figi))
            elif delta_lots <= -1:
                sell_orders.append(self._order(ticker, delta_lots, lot_price, figi))

            projected[ticker] = max(0.0, current_value + delta_lots * lot_price)

        # Sells free cash before buys; expensive lots are bought while cash is plentiful
        sell_orders.sort(key=lambda o: o.estimated_value, reverse=True)
        buy_orders.sort(key=lambda o: o.lot_price, reverse=True)
        orders = margin_orders + sell_orders + buy_orders

        if dry_run:
            self.logger.info(f"Dry run: {len(orders)} orders planned, none will be submitted")

        return OrderPlan(
            final_percents=shares_from_values(projected),
            orders=orders,
            warnings=warnings,
            forced_reductions=applied_reductions,
        )

    def _lot_info(self, ticker: str, position: Optional[Position],
                  instruments: Mapping[str, InstrumentInfo]) -> Tuple[float, Optional[str]]:
        """Lot price and figi from the held position, else from the instrument snapshot"""
        if position is not None and position.lot_price_number > 0:
            return position.lot_price_number, position.figi

        instrument = instruments.get(ticker)
        if instrument is not None and instrument.lot_size > 0 and instrument.lot_price_number > 0:
            figi = position.figi if position is not None and position.figi else instrument.figi
            return instrument.lot_price_number, figi

        raise DataGapError(ticker, f"No lot size or price for {ticker}, skipping its orders")

    def _order(self, ticker: str, signed_lots: int, lot_price: float, figi: Optional[str],
               reason: str = "rebalance") -> Order:
        lots = abs(signed_lots)
        return Order(
            ticker=ticker,
            action=OrderAction.BUY if signed_lots > 0 else OrderAction.SELL,
            lots=lots,
            figi=figi,
            lot_price=lot_price,
            estimated_value=lots * lot_price,
            reason=reason,
        )

    def _warn(self, warnings: List[str], message: str):
        self.logger.warning(message)
        warnings.append(message)
