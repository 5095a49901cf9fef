from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from .models import InstrumentInfo, InstrumentMetrics, Order, OrderResult, Position

class BrokerClient(ABC):
    """Abstract base class for broker API clients"""

    @abstractmethod
    async def connect(self) -> bool:
        """Establish connection to broker"""
        pass

    @abstractmethod
    async def disconnect(self):
        """Close connection to broker"""
        pass

    @abstractmethod
    async def get_wallet(self, account_id: str) -> List[Position]:
        """Get current positions and cash balances of the account"""
        pass

    @abstractmethod
    async def get_instruments(self, tickers: List[str]) -> Dict[str, InstrumentInfo]:
        """Get lot size and last price for tradable instruments"""
        pass

    @abstractmethod
    async def is_market_open(self) -> bool:
        """Check the trading schedule of the exchange"""
        pass

    @abstractmethod
    async def place_order(self, account_id: str, order: Order) -> OrderResult:
        """Submit a market order for a whole number of lots"""
        pass


class MetricsProvider(ABC):
    """Source of market-cap / AUM snapshots"""

    @abstractmethod
    async def get_metrics(self, tickers: List[str]) -> Optional[Dict[str, InstrumentMetrics]]:
        """Return metrics per ticker, or None when no snapshot is available"""
        pass
