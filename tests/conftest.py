"""
Shared fixtures for balancer tests.
"""

import pytest

from balancer_config import BalancerSettings
from wallet_balancer import Rebalancer

from .factories import cash, security, valued


@pytest.fixture
def settings():
    return BalancerSettings()


@pytest.fixture
def rebalancer(settings):
    return Rebalancer(settings=settings)


@pytest.fixture
def balanced_wallet():
    return [
        valued("TRUR", 60000, lot_price=1200),
        valued("TMOS", 60000, lot_price=600),
        cash(50000),
    ]


@pytest.fixture
def skewed_wallet():
    return [
        valued("TRUR", 90000, lot_price=1200),
        valued("TMOS", 30000, lot_price=600),
        cash(0),
    ]


@pytest.fixture
def margin_wallet():
    # 200000 of securities against 10000 of cash
    return [
        security("TGLD", amount=2000, price=100),
        cash(10000),
    ]
