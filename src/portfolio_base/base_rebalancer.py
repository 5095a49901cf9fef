from abc import ABC, abstractmethod
from typing import Optional
import logging
from .base_client import BrokerClient, MetricsProvider
from .models import RebalanceResult

class BaseRebalancer(ABC):
    """Base rebalancer class with common functionality"""

    def __init__(self, broker_client: BrokerClient, metrics_provider: Optional[MetricsProvider] = None,
                 logger: Optional[logging.Logger] = None):
        self.broker = broker_client
        self.metrics_provider = metrics_provider
        self.logger = logger or logging.getLogger(__name__)

    @abstractmethod
    async def rebalance_account(self, account_config) -> RebalanceResult:
        """Execute live rebalancing for account"""
        pass

    @abstractmethod
    async def calculate_rebalance(self, account_config) -> RebalanceResult:
        """Calculate rebalance without executing (preview mode)"""
        pass
