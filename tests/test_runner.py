import asyncio
import logging

import pytest

from portfolio_base import (
    BrokerAPIError,
    BrokerClient,
    BrokerConnectionError,
    MetricsProvider,
    OrderAction,
    OrderExecutionError,
    OrderResult,
)
from balancer_config import AccountConfig
from balance_runner import AccountRebalancer, get_current_account, rebalance_accounts, run_account_loop
import balance_runner.rebalancer as runner_module

from .factories import account_payload, instrument, metrics, valued


class FakeBroker(BrokerClient):
    def __init__(self, wallet, instruments=None, market_open=True, wallet_error=None,
                 reject_order=None, connect_ok=True):
        self.wallet = wallet
        self.instruments = instruments or {}
        self.market_open = market_open
        self.wallet_error = wallet_error
        self.reject_order = reject_order
        self.connect_ok = connect_ok
        self.disconnected = False
        self.placed = []
        self.instrument_requests = []

    async def connect(self):
        return self.connect_ok

    async def disconnect(self):
        self.disconnected = True

    async def get_wallet(self, account_id):
        if self.wallet_error:
            raise self.wallet_error
        return list(self.wallet)

    async def get_instruments(self, tickers):
        self.instrument_requests.append(list(tickers))
        return {t: self.instruments[t] for t in tickers if t in self.instruments}

    async def is_market_open(self):
        return self.market_open

    async def place_order(self, account_id, order):
        if self.reject_order is not None and len(self.placed) + 1 == self.reject_order:
            raise OrderExecutionError(f"{order.ticker} rejected: not enough funds")
        self.placed.append((account_id, order.ticker, order.action, order.lots))
        return OrderResult(
            order_id=str(len(self.placed)),
            ticker=order.ticker,
            action=order.action,
            lots=order.lots,
            status="filled",
        )


class FakeMetrics(MetricsProvider):
    def __init__(self, snapshot):
        self.snapshot = snapshot
        self.calls = 0

    async def get_metrics(self, tickers):
        self.calls += 1
        return self.snapshot


@pytest.fixture
def broker(skewed_wallet):
    return FakeBroker(skewed_wallet)


def _account(account_id="acc-1", **overrides):
    return AccountConfig(**account_payload(account_id, **overrides))


def test_live_rebalance_submits_orders_in_plan_order(broker):
    result = asyncio.run(AccountRebalancer(broker).rebalance_account(_account()))

    assert result.success
    assert result.submitted
    assert broker.placed == [
        ("broker-acc-1", "TRUR", OrderAction.SELL, 25),
        ("broker-acc-1", "TMOS", OrderAction.BUY, 50),
    ]
    assert [o.order_id for o in result.executed_orders] == ["1", "2"]
    assert not result.plan.dry_run


def test_preview_never_submits(broker):
    result = asyncio.run(AccountRebalancer(broker).calculate_rebalance(_account()))

    assert result.success
    assert not result.submitted
    assert result.plan.dry_run
    assert len(result.plan.orders) == 2
    assert broker.placed == []


def test_dry_run_account_never_submits(broker):
    result = asyncio.run(AccountRebalancer(broker).rebalance_account(_account(dry_run=True)))
    assert result.plan.orders
    assert broker.placed == []


def test_closed_exchange_skips_iteration(broker):
    broker.market_open = False
    result = asyncio.run(AccountRebalancer(broker).rebalance_account(_account()))

    assert result.success
    assert result.skipped_reason == "exchange closed"
    assert result.plan is None
    assert broker.placed == []


def test_skipped_iteration_can_keep_its_plan(broker):
    broker.market_open = False
    account = _account(exchange_closure_behavior={"mode": "skip_iteration", "update_iteration_result": True})
    result = asyncio.run(AccountRebalancer(broker).rebalance_account(account))

    assert result.skipped_reason == "exchange closed"
    assert result.plan is not None
    assert broker.placed == []


def test_closed_exchange_dry_run_mode(broker):
    broker.market_open = False
    account = _account(exchange_closure_behavior={"mode": "dry_run"})
    result = asyncio.run(AccountRebalancer(broker).rebalance_account(account))

    assert result.plan.dry_run
    assert result.skipped_reason is None
    assert broker.placed == []


def test_closed_exchange_force_orders(broker):
    broker.market_open = False
    account = _account(exchange_closure_behavior={"mode": "force_orders"})
    result = asyncio.run(AccountRebalancer(broker).rebalance_account(account))

    assert result.submitted
    assert len(broker.placed) == 2


def test_broker_failure_is_reported(skewed_wallet):
    broker = FakeBroker(skewed_wallet, wallet_error=BrokerAPIError("portfolio request timed out"))
    result = asyncio.run(AccountRebalancer(broker).rebalance_account(_account()))

    assert not result.success
    assert "timed out" in result.error
    assert get_current_account() is None


def test_metrics_are_fetched_only_for_metric_modes(broker):
    provider = FakeMetrics({"TRUR": metrics(market_cap=300), "TMOS": metrics(market_cap=100)})
    rebalancer = AccountRebalancer(broker, metrics_provider=provider)

    manual = asyncio.run(rebalancer.calculate_rebalance(_account()))
    assert provider.calls == 0
    assert manual.plan.mode_used == "manual"

    weighted = asyncio.run(rebalancer.calculate_rebalance(_account(desired_mode="marketcap")))
    assert provider.calls == 1
    assert weighted.plan.mode_used == "marketcap"
    assert weighted.plan.orders == []


def test_instruments_are_fetched_for_unheld_tickers():
    broker = FakeBroker(
        [valued("TRUR", 100000, lot_price=1000)],
        instruments={"TGLD": instrument("TGLD", 10, lot_size=10)},
    )
    account = _account(desired={"TRUR": 50, "TGLD@": 50})
    result = asyncio.run(AccountRebalancer(broker).calculate_rebalance(account))

    assert broker.instrument_requests == [["TGLD"]]
    orders = {o.ticker: (o.action, o.lots) for o in result.plan.orders}
    assert orders == {"TRUR": (OrderAction.SELL, 50), "TGLD": (OrderAction.BUY, 500)}


def test_accounts_run_concurrently(broker):
    accounts = [_account("a"), _account("b", dry_run=True)]
    results = asyncio.run(rebalance_accounts(AccountRebalancer(broker), accounts))

    assert [r.account_id for r in results] == ["a", "b"]
    assert results[0].submitted
    assert not results[1].submitted
    assert {placed[0] for placed in broker.placed} == {"broker-a"}


def test_cycle_logs_carry_account_id(broker, caplog):
    seen = []

    class Capture(logging.Handler):
        def emit(self, record):
            seen.append(get_current_account())

    caplog.set_level(logging.INFO, logger="tests.runner")
    logger = logging.getLogger("tests.runner")
    handler = Capture()
    logger.addHandler(handler)
    try:
        asyncio.run(AccountRebalancer(broker, logger=logger).calculate_rebalance(_account("ctx")))
    finally:
        logger.removeHandler(handler)

    assert seen
    assert set(seen) == {"ctx"}


def test_rejected_order_keeps_earlier_fills(skewed_wallet):
    broker = FakeBroker(skewed_wallet, reject_order=2)
    result = asyncio.run(AccountRebalancer(broker).rebalance_account(_account()))

    assert not result.success
    assert result.submitted
    assert result.plan is not None
    assert [(o.ticker, o.action, o.lots) for o in result.executed_orders] == [("TRUR", OrderAction.SELL, 25)]
    assert "not enough funds" in result.error


def test_unexpected_broker_error_is_wrapped(skewed_wallet):
    class FlakyBroker(FakeBroker):
        async def place_order(self, account_id, order):
            raise ConnectionResetError("socket closed")

    result = asyncio.run(AccountRebalancer(FlakyBroker(skewed_wallet)).rebalance_account(_account()))

    assert not result.success
    assert not result.submitted
    assert result.executed_orders == []
    assert "TRUR" in result.error and "socket closed" in result.error


def test_default_logger_is_the_runner_module():
    assert AccountRebalancer(FakeBroker([])).logger.name == "balance_runner.rebalancer"


def test_account_loop_waits_balance_interval(broker, monkeypatch):
    waits = []

    async def fake_sleep(seconds):
        waits.append(seconds)

    monkeypatch.setattr(runner_module.asyncio, "sleep", fake_sleep)
    account = _account(balance_interval=120, dry_run=True)
    results = asyncio.run(run_account_loop(AccountRebalancer(broker), account, max_cycles=3))

    assert len(results) == 3
    assert waits == [120, 120]
    assert broker.disconnected


def test_account_loop_refused_connection(broker):
    broker.connect_ok = False
    with pytest.raises(BrokerConnectionError):
        asyncio.run(run_account_loop(AccountRebalancer(broker), _account(), max_cycles=1))
    assert broker.placed == []
