from .rebalancer import AccountRebalancer, rebalance_accounts, run_account_loop
from .logger import configure_root_logger, StructuredFormatter, AccountContextFilter
from .context import set_current_account, get_current_account, clear_current_account

__version__ = "1.0.0"

__all__ = [
    "AccountRebalancer",
    "rebalance_accounts",
    "run_account_loop",
    "configure_root_logger",
    "StructuredFormatter",
    "AccountContextFilter",
    "set_current_account",
    "get_current_account",
    "clear_current_account",
    "__version__",
]
