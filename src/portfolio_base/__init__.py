from .base_client import BrokerClient, MetricsProvider
from .base_rebalancer import BaseRebalancer
from .models import (
    # Enumerations
    WeightingMode,
    BalancingStrategy,
    OrderAction,
    # Wallet models
    Quotation,
    Position,
    DesiredWeight,
    InstrumentInfo,
    InstrumentMetrics,
    MarginConfig,
    # Result models
    Order,
    MarginInfo,
    BalancerResult,
    OrderResult,
    RebalanceResult,
)
from .exceptions import (
    BalancerError,
    ConfigurationError,
    DataGapError,
    BrokerConnectionError,
    BrokerAPIError,
    OrderExecutionError,
)

__version__ = "1.0.0"

__all__ = [
    "BrokerClient",
    "MetricsProvider",
    "BaseRebalancer",
    "WeightingMode",
    "BalancingStrategy",
    "OrderAction",
    "Quotation",
    "Position",
    "DesiredWeight",
    "InstrumentInfo",
    "InstrumentMetrics",
    "MarginConfig",
    "Order",
    "MarginInfo",
    "BalancerResult",
    "OrderResult",
    "RebalanceResult",
    "BalancerError",
    "ConfigurationError",
    "DataGapError",
    "BrokerConnectionError",
    "BrokerAPIError",
    "OrderExecutionError",
    "__version__",
]
