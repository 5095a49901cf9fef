class BalancerError(Exception):
    """Base class for rebalancing errors"""
    pass

class ConfigurationError(BalancerError, ValueError):
    """Raised when account, margin or mode configuration is malformed"""
    pass

class DataGapError(BalancerError):
    """Raised when metrics or instrument metadata are missing for a ticker"""

    def __init__(self, ticker: str, message: str):
        super().__init__(message)
        self.ticker = ticker

class BrokerConnectionError(BalancerError):
    """Raised when broker connection fails"""
    pass

class BrokerAPIError(BalancerError):
    """Raised when broker API returns an error"""
    pass

class OrderExecutionError(BalancerError):
    """Raised when order execution fails"""
    pass
