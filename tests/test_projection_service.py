import dataclasses
import math
from datetime import date

import pytest

from subtrack.db.models import Subscription
from subtrack.errors import ValidationError
from subtrack.services.projection_service import (
    TIME_HORIZONS,
    FinancialProjectionEngine,
    InvestmentConfig,
    LongTermCostAnalyzer,
    ProjectionResult,
)

ZERO_RETURN = InvestmentConfig(annual_return_rate=0.0)


def _sub(amount=100.0, frequency="monthly", custom_days=None, category_id=1, name="Netflix"):
    return Subscription(
        id=1,
        name=name,
        amount=amount,
        currency="NOK",
        billing_frequency=frequency,
        next_payment_date=date(2025, 2, 1),
        category_id=category_id,
        start_date=date(2025, 1, 1),
        custom_frequency_days=custom_days,
    )


def _projections(five_year, ten_year):
    return {
        years: ProjectionResult(years, 0.0, 0.0, {5: five_year, 10: ten_year}.get(years, 0.0))
        for years in TIME_HORIZONS
    }


def test_monthly_equivalent():
    engine = FinancialProjectionEngine(InvestmentConfig())
    assert engine.calculate_monthly_equivalent(_sub(300.0, "quarterly")) == 100.0
    assert engine.calculate_monthly_equivalent(_sub(1200.0, "annually")) == 100.0
    assert engine.calculate_monthly_equivalent(_sub(100.0, "custom", 30)) == pytest.approx(101.4666, rel=1e-4)
    with pytest.raises(ValidationError):
        engine.calculate_monthly_equivalent(_sub(100.0, "custom"))


def test_zero_rate_returns_contributions():
    engine = FinancialProjectionEngine(ZERO_RETURN)
    assert engine.calculate_compound_returns(100.0, 5) == 6000.0


def test_monthly_compounding():
    engine = FinancialProjectionEngine(InvestmentConfig(annual_return_rate=0.12))
    assert engine.calculate_compound_returns(100.0, 1) == pytest.approx(1268.25, abs=0.01)


def test_annual_compounding():
    engine = FinancialProjectionEngine(InvestmentConfig(annual_return_rate=0.1, monthly_compounding=False))
    assert engine.calculate_compound_returns(100.0, 2) == pytest.approx(2772.0)


def test_returns_increase_with_rate():
    engine = FinancialProjectionEngine(InvestmentConfig())
    for years in TIME_HORIZONS:
        values = [
            engine.calculate_compound_returns(100.0, years, InvestmentConfig(annual_return_rate=rate))
            for rate in (0.02, 0.05, 0.08)
        ]
        assert values == sorted(values)
        assert len(set(values)) == 3


def test_subscription_cost_with_inflation():
    engine = FinancialProjectionEngine(InvestmentConfig(inflation_rate=0.1))
    assert engine.calculate_subscription_cost(_sub(100.0), 2) == pytest.approx(2520.0)


def test_subscription_cost_partial_year():
    engine = FinancialProjectionEngine(InvestmentConfig(inflation_rate=0.0))
    assert engine.calculate_subscription_cost(_sub(100.0), 0.5) == pytest.approx(600.0)
    assert engine.calculate_subscription_cost(_sub(100.0), 1.5) == pytest.approx(1800.0)


def test_generate_projections():
    engine = FinancialProjectionEngine(ZERO_RETURN)
    assert engine.generate_projections(10.0) == {1: 120.0, 5: 600.0, 10: 1200.0, 20: 2400.0}
    assert engine.generate_projections(10.0, horizons=(3,)) == {3: 360.0}


def test_zero_rate_never_breaks_even():
    engine = FinancialProjectionEngine(ZERO_RETURN)
    comparison = engine.compare_subscription_vs_investment(_sub(100.0))

    assert math.isinf(comparison.break_even_years)
    assert comparison.recommendation == "keep"
    assert "reasonable timeframe" in comparison.reason


def test_expensive_subscription_should_be_cancelled():
    engine = FinancialProjectionEngine(InvestmentConfig())
    comparison = engine.compare_subscription_vs_investment(_sub(1000.0))

    assert comparison.break_even_years < 5
    assert comparison.recommendation == "cancel_immediately"
    assert set(comparison.projections) == set(TIME_HORIZONS)
    assert comparison.projections[20].potential_savings > 0


def test_recommend_rules():
    engine = FinancialProjectionEngine(InvestmentConfig())

    assert engine.recommend(_sub(100.0), _projections(500.0, 5000.0), 3.0)[0] == "consider_cancelling"

    recommendation, reason = engine.recommend(_sub(100.0), _projections(10.0, 0.0), 6.0)
    assert recommendation == "consider_cancelling"
    assert reason.startswith("High-cost subscription")

    recommendation, reason = engine.recommend(_sub(20.0), _projections(10.0, 50.0), 8.0)
    assert recommendation == "keep"
    assert reason.startswith("Moderate investment potential")

    recommendation, reason = engine.recommend(_sub(20.0), _projections(10.0, 50.0), 12.0)
    assert recommendation == "keep"
    assert reason == "Investment break-even takes 12.0 years. Subscription may provide better value."


def test_config_is_immutable_and_overridable():
    config = InvestmentConfig()
    aggressive = config.with_overrides(annual_return_rate=0.1)

    assert config.annual_return_rate == 0.07
    assert aggressive.annual_return_rate == 0.1
    assert aggressive.inflation_rate == config.inflation_rate
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.annual_return_rate = 0.2


def test_per_call_config_leaves_engine_untouched():
    engine = FinancialProjectionEngine(InvestmentConfig())
    comparison = engine.compare_subscription_vs_investment(_sub(), ZERO_RETURN)
    assert comparison.config is ZERO_RETURN
    assert engine.config.annual_return_rate == 0.07


def test_config_from_settings(monkeypatch):
    from subtrack.config import settings

    monkeypatch.setattr(settings, "annual_return_rate", 0.05)
    assert InvestmentConfig.from_settings().annual_return_rate == 0.05


def test_chart_data():
    analyzer = LongTermCostAnalyzer(FinancialProjectionEngine(ZERO_RETURN))
    chart = analyzer.generate_chart_data(_sub(100.0))

    assert [point["period"] for point in chart] == ["Year 1", "Year 5", "Year 10", "Year 20"]
    assert chart[0]["investment_value"] == 1200.0
    assert chart[0]["subscription_cost"] == 1200.0


def test_table_data():
    analyzer = LongTermCostAnalyzer(FinancialProjectionEngine(ZERO_RETURN))
    table = analyzer.generate_table_data(_sub(100.0))

    assert [row["period"] for row in table["rows"]] == ["1 Year", "5 Years", "10 Years", "20 Years"]
    assert table["rows"][0]["subscription_cost"] == "1,200.00 kr"
    assert table["rows"][0]["savings_percentage"] == "+0.0%"
    assert table["summary"]["break_even_years"] == "Never"
    assert table["summary"]["average_annual_return"] == "0.0%"


def test_bulk_savings():
    analyzer = LongTermCostAnalyzer(FinancialProjectionEngine(InvestmentConfig()))
    bulk = analyzer.calculate_bulk_savings([_sub(100.0), _sub(600.0, "annually", name="Domain")])

    assert bulk.total_monthly == 150.0
    assert bulk.currency == "NOK"
    assert bulk.projections[1].subscription_cost == pytest.approx(1800.0)
    assert bulk.projections[20].investment_value > bulk.projections[20].subscription_cost


def test_bulk_savings_empty():
    bulk = LongTermCostAnalyzer(FinancialProjectionEngine(InvestmentConfig())).calculate_bulk_savings([])
    assert bulk.total_monthly == 0
    assert bulk.projections[10].potential_savings == 0


def test_category_breakdown():
    analyzer = LongTermCostAnalyzer(FinancialProjectionEngine(InvestmentConfig()))
    subs = [
        _sub(100.0, category_id=1, name="Netflix"),
        _sub(300.0, category_id=2, name="Gym"),
        _sub(50.0, category_id=1, name="Spotify"),
        _sub(10.0, category_id=9, name="Mystery"),
    ]

    breakdown = analyzer.generate_category_breakdown(subs, {1: "Streaming", 2: "Health"})

    assert [c.category_name for c in breakdown] == ["Health", "Streaming", "Uncategorized"]
    streaming = breakdown[1]
    assert streaming.monthly_total == 150.0
    assert streaming.annual_total == 1800.0
    assert streaming.subscription_count == 2


def test_disclaimers():
    disclaimers = LongTermCostAnalyzer(FinancialProjectionEngine(InvestmentConfig())).get_disclaimers()
    assert len(disclaimers) == 5
    assert any("professional financial advice" in d for d in disclaimers)
