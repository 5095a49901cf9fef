"""Ticker normalization shared by wallet, desired wallet and metrics keys"""

from typing import Dict, Optional

# Exchange ticker renames, old -> new
TICKER_ALIASES: Dict[str, str] = {
    "TRAY": "TPAY",
}


def normalize_ticker(ticker: Optional[str]) -> Optional[str]:
    """Strip whitespace and a trailing '@', then apply known aliases"""
    if not ticker:
        return ticker
    normalized = ticker.strip()
    if normalized.endswith("@"):
        normalized = normalized[:-1]
    return TICKER_ALIASES.get(normalized, normalized)


def tickers_equal(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return normalize_ticker(a) == normalize_ticker(b)
