"""Target weight derivation for every weighting mode"""

from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union
import logging
from pydantic import ValidationError
from portfolio_base import ConfigurationError, DesiredWeight, InstrumentMetrics, WeightingMode
from balancer_config import BalancerSettings
from .models import WeightResolution
from .tickers import normalize_ticker

logger = logging.getLogger(__name__)

DesiredInput = Union[Iterable[DesiredWeight], Iterable[Tuple[str, float]], Mapping[str, float]]
MetricsInput = Optional[Mapping[str, Union[InstrumentMetrics, dict]]]


def coerce_mode(mode: Union[str, WeightingMode]) -> WeightingMode:
    try:
        return WeightingMode(mode)
    except ValueError:
        valid = ", ".join(m.value for m in WeightingMode)
        raise ConfigurationError(f"Unknown weighting mode '{mode}'. Expected one of: {valid}") from None


def coerce_desired(desired: DesiredInput) -> List[DesiredWeight]:
    """Accept DesiredWeight items, (ticker, weight) pairs or a mapping"""
    if isinstance(desired, Mapping):
        items = list(desired.items())
    else:
        items = list(desired)
    result = []
    try:
        for item in items:
            if isinstance(item, DesiredWeight):
                result.append(item)
            else:
                ticker, weight = item
                result.append(DesiredWeight(ticker=ticker, weight=weight))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid desired wallet entry: {e}") from e
    return result


def aggregate_desired(desired: List[DesiredWeight]) -> Dict[str, float]:
    """Merge entries whose tickers normalize to the same symbol, keeping first-seen order"""
    merged: Dict[str, float] = {}
    for item in desired:
        ticker = normalize_ticker(item.ticker)
        merged[ticker] = merged.get(ticker, 0.0) + item.weight
    return merged


def coerce_metrics(metrics: MetricsInput) -> Dict[str, InstrumentMetrics]:
    if not metrics:
        return {}
    result = {}
    for ticker, value in metrics.items():
        if value is None:
            continue
        if not isinstance(value, InstrumentMetrics):
            try:
                value = InstrumentMetrics(**value)
            except ValidationError as e:
                logger.warning(f"Ignoring malformed metrics for {ticker}: {e}")
                continue
        result[normalize_ticker(ticker)] = value
    return result


def normalize_weights(weights: Mapping[str, float]) -> Dict[str, float]:
    """Scale weights so they sum to 100; empty when the sum is not positive"""
    total = sum(weights.values())
    if total <= 0:
        return {}
    return {ticker: weight / total * 100 for ticker, weight in weights.items()}


class WeightResolver:
    """Produce the target percentage of every desired ticker"""

    def __init__(self, settings: Optional[BalancerSettings] = None, logger: Optional[logging.Logger] = None):
        self.settings = settings or BalancerSettings()
        self.logger = logger or logging.getLogger(__name__)
        self._resolvers: Dict[WeightingMode, Callable[[Dict[str, float], Dict[str, InstrumentMetrics], List[str]],
                                                      Tuple[Optional[Dict[str, float]], WeightingMode]]] = {
            WeightingMode.MANUAL: self._resolve_manual,
            WeightingMode.DEFAULT: self._resolve_default,
            WeightingMode.MARKETCAP: self._resolve_marketcap,
            WeightingMode.AUM: self._resolve_aum,
            WeightingMode.MARKETCAP_AUM: self._resolve_marketcap_aum,
            WeightingMode.DECORRELATION: self._resolve_decorrelation,
        }
        missing = set(WeightingMode) - set(self._resolvers)
        if missing:
            raise RuntimeError(f"No weight resolver for modes: {sorted(m.value for m in missing)}")

    def resolve_target_weights(self, desired_wallet: DesiredInput, mode: Union[str, WeightingMode],
                               metrics: MetricsInput = None) -> Dict[str, float]:
        """Target weights per ticker, summing to 100"""
        return self.resolve(desired_wallet, mode, metrics).weights

    def resolve(self, desired_wallet: DesiredInput, mode: Union[str, WeightingMode],
                metrics: MetricsInput = None) -> WeightResolution:
        requested = coerce_mode(mode)
        desired = aggregate_desired(coerce_desired(desired_wallet))
        warnings: List[str] = []

        # The only normalization applied to raw input weights
        base = normalize_weights(desired)
        if not base:
            message = "Desired wallet is empty or its weights sum to zero; no target weights"
            self._warn(warnings, message)
            return WeightResolution(weights={}, mode_used=requested, warnings=warnings)

        metric_map = coerce_metrics(metrics)
        if requested.uses_metrics and not metric_map:
            self._warn(warnings, f"No metrics snapshot available, '{requested.value}' mode falls back to default weights")
            return WeightResolution(weights=base, mode_used=WeightingMode.DEFAULT, warnings=warnings)

        weights, mode_used = self._resolvers[requested](base, metric_map, warnings)
        if weights is None:
            self._warn(warnings, f"No usable metrics for '{requested.value}' mode, falling back to default weights")
            return WeightResolution(weights=base, mode_used=WeightingMode.DEFAULT, warnings=warnings)

        return WeightResolution(weights=normalize_weights(weights), mode_used=mode_used, warnings=warnings)

    def _resolve_manual(self, base, metrics, warnings):
        return base, WeightingMode.MANUAL

    def _resolve_default(self, base, metrics, warnings):
        return base, WeightingMode.DEFAULT

    def _resolve_marketcap(self, base, metrics, warnings):
        return self._metric_weights(base, metrics, "market_cap_value", warnings), WeightingMode.MARKETCAP

    def _resolve_aum(self, base, metrics, warnings):
        return self._metric_weights(base, metrics, "aum_value", warnings), WeightingMode.AUM

    def _resolve_marketcap_aum(self, base, metrics, warnings):
        by_cap = self._metric_weights(base, metrics, "market_cap_value", warnings)
        by_aum = self._metric_weights(base, metrics, "aum_value", warnings)

        if by_cap is None and by_aum is None:
            return None, WeightingMode.MARKETCAP_AUM
        if by_cap is None:
            self._warn(warnings, "No market cap values, marketcap_aum uses AUM weights only")
            return by_aum, WeightingMode.MARKETCAP_AUM
        if by_aum is None:
            self._warn(warnings, "No AUM values, marketcap_aum uses market cap weights only")
            return by_cap, WeightingMode.MARKETCAP_AUM

        mean = {ticker: (by_cap[ticker] + by_aum[ticker]) / 2 for ticker in base}
        return normalize_weights(mean), WeightingMode.MARKETCAP_AUM

    def _resolve_decorrelation(self, base, metrics, warnings):
        start, _ = self._resolve_marketcap_aum(base, metrics, warnings)
        decorrelation = self._decorrelation_values(base, metrics)

        if not decorrelation:
            if start is None:
                return None, WeightingMode.DECORRELATION
            self._warn(warnings, "No decorrelation values, using marketcap_aum weights")
            return start, WeightingMode.MARKETCAP_AUM

        if start is None:
            self._warn(warnings, "No market cap or AUM values, shifting default weights by decorrelation")
            start = dict(base)

        return self._shift_by_decorrelation(start, decorrelation), WeightingMode.DECORRELATION

    def _metric_weights(self, base: Dict[str, float], metrics: Dict[str, InstrumentMetrics],
                        field: str, warnings: List[str]) -> Optional[Dict[str, float]]:
        """Weights proportional to a metric; tickers without it keep an equal-weight slot"""
        participants = [ticker for ticker, weight in base.items() if weight > 0]
        known: Dict[str, float] = {}
        for ticker in participants:
            metric = metrics.get(ticker)
            value = getattr(metric, field) if metric else None
            if value is not None and value > 0:
                known[ticker] = value

        if not known:
            return None

        equal_slot = 100.0 / len(participants)
        missing = [ticker for ticker in participants if ticker not in known]
        for ticker in missing:
            self._warn(warnings, f"No {field} for {ticker}, using equal weight {equal_slot:.2f}%")

        remainder = 100.0 - equal_slot * len(missing)
        known_total = sum(known.values())

        result = {}
        for ticker in base:
            if ticker in known:
                result[ticker] = remainder * known[ticker] / known_total
            elif ticker in missing:
                result[ticker] = equal_slot
            else:
                result[ticker] = 0.0
        return result

    def _decorrelation_values(self, base: Dict[str, float], metrics: Dict[str, InstrumentMetrics]) -> Dict[str, float]:
        values = {}
        for ticker in base:
            metric = metrics.get(ticker)
            if metric is None:
                continue
            if metric.decorrelation_pct is not None:
                values[ticker] = metric.decorrelation_pct
            elif metric.market_cap_value is not None and metric.aum_value:
                values[ticker] = (metric.market_cap_value - metric.aum_value) / metric.aum_value * 100
        return values

    def _shift_by_decorrelation(self, weights: Dict[str, float], decorrelation: Dict[str, float]) -> Dict[str, float]:
        """Move weight from tickers above the threshold to tickers below it"""
        threshold = self.settings.decorrelation_threshold_pct
        cap = self.settings.decorrelation_shift_cap

        over = {t: d for t, d in decorrelation.items() if d > threshold and weights.get(t, 0) > 0}
        under = [t for t, d in decorrelation.items() if d < threshold and weights.get(t, 0) > 0]
        if not over or not under:
            self.logger.debug(f"Decorrelation: nothing to shift (over={len(over)}, under={len(under)})")
            return dict(weights)

        shifted = dict(weights)
        pool = 0.0
        for ticker, pct in over.items():
            reduction = weights[ticker] * min(cap, (pct - threshold) / 100)
            shifted[ticker] -= reduction
            pool += reduction
            self.logger.debug(f"Decorrelation: {ticker} at {pct:.2f}% gives up {reduction:.4f} weight")

        under_total = sum(weights[t] for t in under)
        for ticker in under:
            shifted[ticker] += pool * weights[ticker] / under_total

        return shifted

    def _warn(self, warnings: List[str], message: str):
        self.logger.warning(message)
        warnings.append(message)
