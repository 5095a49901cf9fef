from .calculator import Rebalancer, balancer
from .weights import WeightResolver, normalize_weights
from .margin import MarginSizer, plan_forced_reductions
from .planner import OrderPlanner
from .shares import calculate_portfolio_shares
from .tickers import normalize_ticker, tickers_equal
from .models import WeightResolution, OrderPlan

__version__ = "1.0.0"

__all__ = [
    "Rebalancer",
    "balancer",
    "WeightResolver",
    "normalize_weights",
    "MarginSizer",
    "plan_forced_reductions",
    "OrderPlanner",
    "calculate_portfolio_shares",
    "normalize_ticker",
    "tickers_equal",
    "WeightResolution",
    "OrderPlan",
    "__version__",
]
