import pytest

from portfolio_base import ConfigurationError, DesiredWeight, WeightingMode
from balancer_config import BalancerSettings
from wallet_balancer import WeightResolver, normalize_weights

from .factories import metrics


@pytest.fixture
def resolver(settings):
    return WeightResolver(settings)


def test_manual_weights_are_normalized(resolver):
    resolution = resolver.resolve({"A": 1, "B": 3}, WeightingMode.MANUAL)
    assert resolution.mode_used == WeightingMode.MANUAL
    assert resolution.weights == {"A": pytest.approx(25.0), "B": pytest.approx(75.0)}
    assert resolution.warnings == []


def test_default_mode_is_reported_as_default(resolver):
    resolution = resolver.resolve({"A": 1, "B": 1}, "default")
    assert resolution.mode_used == WeightingMode.DEFAULT
    assert resolution.weights == {"A": pytest.approx(50.0), "B": pytest.approx(50.0)}


def test_equal_percentages_survive_a_single_normalization(resolver):
    desired = {ticker: 25 for ticker in ("TRUR", "TMOS", "TGLD", "TPAY")}
    weights = resolver.resolve_target_weights(desired, WeightingMode.MANUAL)
    assert weights == {ticker: pytest.approx(25.0) for ticker in desired}


def test_weights_summing_above_hundred_are_treated_as_relative(resolver):
    desired = {f"T{i}": 25 for i in range(12)}
    weights = resolver.resolve_target_weights(desired, WeightingMode.MANUAL)
    assert all(weight == pytest.approx(100 / 12) for weight in weights.values())


def test_accepts_desired_weight_pairs(resolver):
    desired = [DesiredWeight(ticker="A", weight=30), ("B", 70)]
    weights = resolver.resolve_target_weights(desired, WeightingMode.MANUAL)
    assert weights == {"A": pytest.approx(30.0), "B": pytest.approx(70.0)}


def test_aliased_desired_entries_are_summed(resolver):
    weights = resolver.resolve_target_weights({"TRAY": 50, "TPAY@": 50}, WeightingMode.MANUAL)
    assert weights == {"TPAY": pytest.approx(100.0)}


@pytest.mark.parametrize("desired", [{}, {"A": 0, "B": 0}])
def test_empty_or_zero_desired_wallet_yields_no_weights(resolver, desired):
    resolution = resolver.resolve(desired, WeightingMode.MANUAL)
    assert resolution.weights == {}
    assert resolution.warnings


def test_unknown_mode_is_a_configuration_error(resolver):
    with pytest.raises(ConfigurationError, match="Unknown weighting mode"):
        resolver.resolve({"A": 100}, "momentum")


def test_negative_weight_is_a_configuration_error(resolver):
    with pytest.raises(ConfigurationError):
        resolver.resolve({"A": -5, "B": 105}, WeightingMode.MANUAL)


def test_marketcap_weights(resolver):
    resolution = resolver.resolve(
        {"A": 50, "B": 50},
        WeightingMode.MARKETCAP,
        {"A": metrics(market_cap=300), "B": metrics(market_cap=100)},
    )
    assert resolution.mode_used == WeightingMode.MARKETCAP
    assert resolution.weights == {"A": pytest.approx(75.0), "B": pytest.approx(25.0)}


def test_metrics_may_be_plain_dicts(resolver):
    weights = resolver.resolve_target_weights(
        {"A": 50, "B": 50},
        WeightingMode.AUM,
        {"A": {"aum_value": 100}, "B": {"aum_value": 300}},
    )
    assert weights == {"A": pytest.approx(25.0), "B": pytest.approx(75.0)}


def test_missing_metric_gets_equal_slot(resolver):
    resolution = resolver.resolve(
        {"A": 1, "B": 1, "C": 1},
        WeightingMode.MARKETCAP,
        {"A": metrics(market_cap=300), "B": metrics(market_cap=100)},
    )
    assert resolution.weights["C"] == pytest.approx(100 / 3)
    assert resolution.weights["A"] == pytest.approx(50.0)
    assert resolution.weights["B"] == pytest.approx(100 / 6)
    assert any("C" in warning for warning in resolution.warnings)


@pytest.mark.parametrize("mode", ["marketcap", "aum", "marketcap_aum", "decorrelation"])
def test_metric_modes_degrade_without_snapshot(resolver, mode):
    resolution = resolver.resolve({"A": 1, "B": 3}, mode, None)
    assert resolution.mode_used == WeightingMode.DEFAULT
    assert resolution.weights == {"A": pytest.approx(25.0), "B": pytest.approx(75.0)}
    assert resolution.warnings


def test_metric_mode_degrades_when_field_is_absent(resolver):
    resolution = resolver.resolve(
        {"A": 50, "B": 50},
        WeightingMode.AUM,
        {"A": metrics(market_cap=300), "B": metrics(market_cap=100)},
    )
    assert resolution.mode_used == WeightingMode.DEFAULT
    assert resolution.weights == {"A": pytest.approx(50.0), "B": pytest.approx(50.0)}


def test_marketcap_aum_averages_both_weightings(resolver):
    weights = resolver.resolve_target_weights(
        {"A": 50, "B": 50},
        WeightingMode.MARKETCAP_AUM,
        {"A": metrics(market_cap=300, aum=100), "B": metrics(market_cap=100, aum=300)},
    )
    assert weights == {"A": pytest.approx(50.0), "B": pytest.approx(50.0)}


def test_marketcap_aum_uses_market_cap_alone_when_aum_is_missing(resolver):
    resolution = resolver.resolve(
        {"A": 50, "B": 50},
        WeightingMode.MARKETCAP_AUM,
        {"A": metrics(market_cap=300), "B": metrics(market_cap=100)},
    )
    assert resolution.mode_used == WeightingMode.MARKETCAP_AUM
    assert resolution.weights == {"A": pytest.approx(75.0), "B": pytest.approx(25.0)}
    assert resolution.warnings


def test_decorrelation_moves_weight_to_underpriced_tickers(resolver):
    resolution = resolver.resolve(
        {"A": 50, "B": 50},
        WeightingMode.DECORRELATION,
        {
            "A": metrics(market_cap=100, aum=100, decorrelation=20),
            "B": metrics(market_cap=100, aum=100, decorrelation=0),
        },
    )
    assert resolution.mode_used == WeightingMode.DECORRELATION
    # A gives up 15% of its 50% weight
    assert resolution.weights == {"A": pytest.approx(42.5), "B": pytest.approx(57.5)}


def test_decorrelation_shift_is_capped():
    resolver = WeightResolver(BalancerSettings(decorrelation_shift_cap=0.5))
    weights = resolver.resolve_target_weights(
        {"A": 50, "B": 50},
        WeightingMode.DECORRELATION,
        {
            "A": metrics(market_cap=100, aum=100, decorrelation=90),
            "B": metrics(market_cap=100, aum=100, decorrelation=-10),
        },
    )
    assert weights == {"A": pytest.approx(25.0), "B": pytest.approx(75.0)}


def test_decorrelation_is_derived_from_market_cap_and_aum(resolver):
    weights = resolver.resolve_target_weights(
        {"A": 50, "B": 50},
        WeightingMode.DECORRELATION,
        {"A": metrics(market_cap=110, aum=100), "B": metrics(market_cap=100, aum=100)},
    )
    assert weights["A"] < weights["B"]
    assert sum(weights.values()) == pytest.approx(100.0)


def test_decorrelation_without_values_reports_marketcap_aum(resolver):
    resolution = resolver.resolve(
        {"A": 50, "B": 50},
        WeightingMode.DECORRELATION,
        {"A": metrics(market_cap=300), "B": metrics(market_cap=100)},
    )
    assert resolution.mode_used == WeightingMode.MARKETCAP_AUM
    assert resolution.weights == {"A": pytest.approx(75.0), "B": pytest.approx(25.0)}


@pytest.mark.parametrize("mode", list(WeightingMode))
def test_every_mode_sums_to_hundred(resolver, mode):
    snapshot = {
        "A": metrics(market_cap=500, aum=200),
        "B": metrics(market_cap=100, aum=150, decorrelation=-3),
        "C": metrics(aum=50),
    }
    weights = resolver.resolve_target_weights({"A": 40, "B": 40, "C": 20}, mode, snapshot)
    assert sum(weights.values()) == pytest.approx(100.0)
    assert all(weight >= 0 for weight in weights.values())


def test_normalize_weights():
    assert normalize_weights({"A": 2, "B": 2}) == {"A": 50.0, "B": 50.0}
    assert normalize_weights({}) == {}
