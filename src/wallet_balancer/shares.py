"""Percentage share of each security in the non-cash part of a wallet"""

from typing import Dict, Iterable, List, Mapping
import logging
from portfolio_base import ConfigurationError, Position, Quotation
from .tickers import normalize_ticker

logger = logging.getLogger(__name__)


def validate_wallet(wallet: Iterable[Position]):
    """Reject positions whose lot metadata cannot be valid"""
    for position in wallet:
        if position.lot_size < 0:
            raise ConfigurationError(f"Negative lot size {position.lot_size} for {position.base}")


def index_wallet(wallet: Iterable[Position]) -> Dict[str, Position]:
    """Key positions by normalized ticker, merging positions that share one"""
    positions: Dict[str, Position] = {}
    for position in wallet:
        ticker = normalize_ticker(position.base)
        existing = positions.get(ticker)
        if existing is None:
            positions[ticker] = position
            continue
        logger.warning(f"Merging duplicate wallet positions for {ticker} ({existing.base}, {position.base})")
        total = existing.total_price_number + position.total_price_number
        positions[ticker] = existing.model_copy(update={
            "amount": existing.amount + position.amount,
            "total_price_number": total,
            "total_price": Quotation.from_float(total),
        })
    return positions


def shares_from_values(values: Mapping[str, float]) -> Dict[str, float]:
    """Convert ticker -> market value into ticker -> percent of the total.

    Returns an empty mapping when the total is not positive.
    """
    total = sum(values.values())
    if total <= 0:
        return {}
    return {ticker: value / total * 100 for ticker, value in values.items()}


def security_values(wallet: Iterable[Position]) -> Dict[str, float]:
    values: Dict[str, float] = {}
    for position in wallet:
        if position.is_cash:
            continue
        ticker = normalize_ticker(position.base)
        values[ticker] = values.get(ticker, 0.0) + position.total_price_number
    return values


def calculate_portfolio_shares(wallet: List[Position]) -> Dict[str, float]:
    """Share of every non-cash position in the total security value, in percent"""
    return shares_from_values(security_values(wallet))
