"""Per-account rebalancing cycle around the wallet balancer engine"""

import asyncio
from typing import Dict, List, Optional
import logging

from portfolio_base import (
    BaseRebalancer,
    BalancerResult,
    BrokerClient,
    BrokerConnectionError,
    InstrumentInfo,
    MetricsProvider,
    Order,
    OrderExecutionError,
    OrderResult,
    Position,
    RebalanceResult,
)
from balancer_config import AccountConfig, BalancerSettings
from wallet_balancer import Rebalancer, normalize_ticker
from .context import clear_current_account, set_current_account


class AccountRebalancer(BaseRebalancer):
    """Fetch an account snapshot, plan with the engine and submit the orders"""

    def __init__(self, broker_client: BrokerClient, metrics_provider: Optional[MetricsProvider] = None,
                 settings: Optional[BalancerSettings] = None, logger: Optional[logging.Logger] = None):
        super().__init__(broker_client, metrics_provider, logger or logging.getLogger(__name__))
        self.engine = Rebalancer(settings=settings, logger=self.logger)

    async def rebalance_account(self, account: AccountConfig) -> RebalanceResult:
        """Execute rebalancing for account"""
        set_current_account(account.id)
        self.logger.info(f"Starting rebalance for account {account.id}")

        try:
            dry_run = account.dry_run
            if not await self.broker.is_market_open():
                behavior = account.exchange_closure_behavior
                self.logger.info(f"Exchange is closed, closure behavior: {behavior.mode}")

                if behavior.mode == "skip_iteration":
                    plan = None
                    if behavior.update_iteration_result:
                        plan = await self._plan(account, dry_run=True)
                    return RebalanceResult(
                        account_id=account.id,
                        success=True,
                        plan=plan,
                        skipped_reason="exchange closed",
                    )
                if behavior.mode == "dry_run":
                    dry_run = True

            plan = await self._plan(account, dry_run=dry_run)
            self._log_planned_orders(plan.orders, is_preview=dry_run)

            if dry_run:
                return RebalanceResult(account_id=account.id, success=True, plan=plan)

            executed = []
            try:
                await self._submit_orders(account, plan.orders, executed)
            except OrderExecutionError as e:
                self.logger.error(f"Order submission stopped after {len(executed)} of {len(plan.orders)} orders: {e}")
                return RebalanceResult(
                    account_id=account.id,
                    success=False,
                    submitted=bool(executed),
                    plan=plan,
                    executed_orders=executed,
                    error=str(e),
                )

            self.logger.info(f"Rebalance completed successfully for account {account.id}")
            return RebalanceResult(
                account_id=account.id,
                success=True,
                submitted=True,
                plan=plan,
                executed_orders=executed,
            )

        except Exception as e:
            self.logger.error(f"Rebalance failed for account {account.id}: {e}")
            return RebalanceResult(account_id=account.id, success=False, error=str(e))
        finally:
            clear_current_account()

    async def calculate_rebalance(self, account: AccountConfig) -> RebalanceResult:
        """Calculate rebalance without executing (preview)"""
        set_current_account(account.id)
        self.logger.info(f"Calculating rebalance for account {account.id}")
        try:
            plan = await self._plan(account, dry_run=True)
            self._log_planned_orders(plan.orders, is_preview=True)
            return RebalanceResult(account_id=account.id, success=True, plan=plan)
        finally:
            clear_current_account()

    async def _plan(self, account: AccountConfig, dry_run: bool) -> BalancerResult:
        wallet = await self.broker.get_wallet(account.account_id)
        self._log_wallet(account.id, wallet)

        desired = account.desired_weights()
        desired_tickers = [normalize_ticker(item.ticker) for item in desired]
        held = {normalize_ticker(position.base) for position in wallet}

        instruments: Dict[str, InstrumentInfo] = {}
        missing = [ticker for ticker in desired_tickers if ticker not in held]
        if missing:
            instruments = await self.broker.get_instruments(missing)

        metrics = None
        if account.desired_mode.uses_metrics and self.metrics_provider is not None:
            metrics = await self.metrics_provider.get_metrics(desired_tickers)

        result = self.engine.balance(
            wallet=wallet,
            desired_wallet=desired,
            metrics=metrics,
            mode=account.desired_mode,
            dry_run=dry_run,
            margin_config=account.margin_trading,
            instruments=instruments,
        )
        self._log_target_allocations(result)
        return result

    async def connect(self):
        """Connect the broker client, raising BrokerConnectionError on refusal"""
        if not await self.broker.connect():
            raise BrokerConnectionError("Broker refused the connection")
        self.logger.info("Connected to broker")

    async def _submit_orders(self, account: AccountConfig, orders: List[Order], executed: List[OrderResult]):
        """Submit orders in plan order, appending each acknowledgement to executed"""
        for index, order in enumerate(orders):
            if index > 0 and account.sleep_between_orders:
                await asyncio.sleep(account.sleep_between_orders)
            self.logger.info(f"Submitting {order.action.value.upper()} {order.lots} lots of {order.ticker}")
            try:
                executed.append(await self.broker.place_order(account.account_id, order))
            except OrderExecutionError:
                raise
            except Exception as e:
                raise OrderExecutionError(f"{order.action.value} {order.lots} lots of {order.ticker} failed: {e}") from e

    def _log_wallet(self, account_id: str, wallet: List[Position]):
        total_value = sum(position.total_price_number for position in wallet)

        self.logger.info("====== ACCOUNT SNAPSHOT ======")
        self.logger.info(f"Account ID: {account_id}")
        self.logger.info(f"Total Portfolio Value: {total_value:,.2f}")
        if not wallet:
            self.logger.info("No positions held")
        for position in sorted(wallet, key=lambda p: p.base):
            percent = (position.total_price_number / total_value * 100) if total_value > 0 else 0
            self.logger.info(
                f"  {position.base}: {position.amount:,} @ {position.price_number:,.2f} "
                f"= {position.total_price_number:,.2f} ({percent:.2f}%)"
            )
        self.logger.info("=" * 30)

    def _log_target_allocations(self, result: BalancerResult):
        self.logger.info(f"====== TARGET ALLOCATIONS ({result.mode_used}) ======")
        for ticker in sorted(result.target_weights):
            current = result.current_shares.get(ticker, 0.0)
            final = result.final_percents.get(ticker, 0.0)
            self.logger.info(
                f"  {ticker}: target {result.target_weights[ticker]:.2f}%, "
                f"current {current:.2f}%, after orders {final:.2f}%"
            )
        if result.margin_info and result.margin_info.total_margin_used > 0:
            margin = result.margin_info
            self.logger.info(
                f"Margin used: {margin.total_margin_used:,.2f} / {margin.credit_capacity:,.2f} "
                f"({'within' if margin.within_limits else 'OVER'} limits)"
            )
        self.logger.info("=" * 35)

    def _log_planned_orders(self, orders: List[Order], is_preview: bool = False):
        stage = "PROPOSED ORDERS (PREVIEW)" if is_preview else "PLANNED ORDERS"
        self.logger.info(f"====== {stage} ======")

        if not orders:
            self.logger.info("No orders required - portfolio is already balanced")
            self.logger.info("=" * (len(stage) + 14))
            return

        sells = [o for o in orders if o.signed_lots < 0]
        buys = [o for o in orders if o.signed_lots > 0]
        self.logger.info(f"Total Orders: {len(orders)} ({len(sells)} sells, {len(buys)} buys)")
        self.logger.info(f"Total Sell Value: {sum(o.estimated_value for o in sells):,.2f}")
        self.logger.info(f"Total Buy Value: {sum(o.estimated_value for o in buys):,.2f}")
        for order in orders:
            self.logger.info(
                f"  {order.action.value.upper()} {order.lots} lots of {order.ticker} "
                f"@ {order.lot_price:,.2f} = {order.estimated_value:,.2f} ({order.reason})"
            )
        self.logger.info("=" * (len(stage) + 14))


async def rebalance_accounts(rebalancer: AccountRebalancer, accounts: List[AccountConfig],
                             preview: bool = False) -> List[RebalanceResult]:
    """Run one cycle for each account concurrently"""
    run = rebalancer.calculate_rebalance if preview else rebalancer.rebalance_account
    results = await asyncio.gather(*(run(account) for account in accounts), return_exceptions=True)

    collected = []
    for account, result in zip(accounts, results):
        if isinstance(result, Exception):
            rebalancer.logger.error(f"Account {account.id} cycle raised: {result}")
            result = RebalanceResult(account_id=account.id, success=False, error=str(result))
        collected.append(result)
    return collected


async def run_account_loop(rebalancer: AccountRebalancer, account: AccountConfig,
                           max_cycles: Optional[int] = None) -> List[RebalanceResult]:
    """Rebalance one account every balance_interval seconds until max_cycles have run"""
    await rebalancer.connect()
    results = []
    try:
        while max_cycles is None or len(results) < max_cycles:
            result = await rebalancer.rebalance_account(account)
            results.append(result)
            if max_cycles is not None and len(results) >= max_cycles:
                break
            rebalancer.logger.info(f"Next cycle for account {account.id} in {account.balance_interval}s")
            await asyncio.sleep(account.balance_interval)
    finally:
        await rebalancer.broker.disconnect()
    return results
