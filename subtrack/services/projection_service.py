"""Subscription cost vs. investment projections.

Compares what a subscription costs over time (with inflation) against what
the same monthly amount would grow to if invested instead.
"""

import logging
import math
from dataclasses import dataclass, field, replace

from subtrack.config import settings
from subtrack.currency import format_amount
from subtrack.db.models import Subscription

logger = logging.getLogger(__name__)

TIME_HORIZONS = (1, 5, 10, 20)

INVESTMENT_DISCLAIMERS = {
    "general": (
        "Investment projections are estimates based on historical market performance "
        "and should not be considered guaranteed returns."
    ),
    "market_risk": (
        "All investments carry risk, including potential loss of principal. "
        "Past performance does not guarantee future results."
    ),
    "inflation": (
        "Inflation rates and subscription price increases are estimates "
        "and may vary significantly from projections."
    ),
    "personal_finance": (
        "This analysis is for informational purposes only and should not replace professional financial advice."
    ),
    "assumptions": (
        "Calculations assume consistent monthly investments and compound growth, "
        "which may not reflect real-world conditions."
    ),
}


@dataclass(frozen=True, slots=True)
class InvestmentConfig:
    annual_return_rate: float = 0.07
    monthly_compounding: bool = True
    inflation_rate: float = 0.025

    @classmethod
    def from_settings(cls) -> "InvestmentConfig":
        return cls(
            annual_return_rate=settings.annual_return_rate,
            monthly_compounding=settings.monthly_compounding,
            inflation_rate=settings.inflation_rate,
        )

    def with_overrides(self, **changes) -> "InvestmentConfig":
        return replace(self, **changes)


@dataclass(slots=True)
class ProjectionResult:
    years: int
    subscription_cost: float
    investment_value: float
    potential_savings: float


@dataclass(slots=True)
class SubscriptionComparison:
    subscription: Subscription
    monthly_amount: float
    config: InvestmentConfig
    projections: dict[int, ProjectionResult]
    break_even_years: float
    recommendation: str
    reason: str


@dataclass(slots=True)
class BulkSavings:
    total_monthly: float
    currency: str
    projections: dict[int, ProjectionResult]


@dataclass(slots=True)
class CategoryCost:
    category_name: str
    monthly_total: float = 0.0
    subscriptions: list[Subscription] = field(default_factory=list)

    @property
    def annual_total(self) -> float:
        return self.monthly_total * 12

    @property
    def subscription_count(self) -> int:
        return len(self.subscriptions)


class FinancialProjectionEngine:
    def __init__(self, config: InvestmentConfig | None = None):
        self.config = config or InvestmentConfig.from_settings()

    def calculate_monthly_equivalent(self, subscription: Subscription) -> float:
        return subscription.monthly_amount()

    def calculate_compound_returns(
        self, monthly_amount: float, years: float, config: InvestmentConfig | None = None
    ) -> float:
        config = config or self.config
        rate = config.annual_return_rate

        if config.monthly_compounding:
            monthly_rate = rate / 12
            months = years * 12
            if monthly_rate == 0:
                return monthly_amount * months
            return monthly_amount * ((1 + monthly_rate) ** months - 1) / monthly_rate

        value = 0.0
        for _ in range(int(years)):
            value = (value + monthly_amount * 12) * (1 + rate)
        return value

    def calculate_subscription_cost(
        self, subscription: Subscription, years: float, config: InvestmentConfig | None = None
    ) -> float:
        config = config or self.config
        monthly = self.calculate_monthly_equivalent(subscription)
        whole_years = int(years)

        total = 0.0
        for year in range(1, whole_years + 1):
            total += monthly * (1 + config.inflation_rate) ** (year - 1) * 12
        # partial final year at that year's price
        remainder = years - whole_years
        if remainder > 0:
            total += monthly * (1 + config.inflation_rate) ** whole_years * 12 * remainder
        return total

    def generate_projections(
        self,
        monthly_amount: float,
        horizons: tuple[int, ...] = TIME_HORIZONS,
        config: InvestmentConfig | None = None,
    ) -> dict[int, float]:
        return {years: self.calculate_compound_returns(monthly_amount, years, config) for years in horizons}

    def calculate_break_even(self, subscription: Subscription, config: InvestmentConfig | None = None) -> float:
        """Years until investing beats paying, or ``math.inf`` within 50 years."""
        config = config or self.config
        monthly = self.calculate_monthly_equivalent(subscription)

        low, high = 0.1, 50.0
        while high - low > 0.1:
            mid = (low + high) / 2
            investment = self.calculate_compound_returns(monthly, mid, config)
            cost = self.calculate_subscription_cost(subscription, mid, config)
            if investment > cost + 0.01:
                high = mid
            else:
                low = mid

        years = (low + high) / 2
        investment = self.calculate_compound_returns(monthly, years, config)
        cost = self.calculate_subscription_cost(subscription, years, config)
        return years if investment > cost + 0.01 else math.inf

    def recommend(
        self, subscription: Subscription, projections: dict[int, ProjectionResult], break_even: float
    ) -> tuple[str, str]:
        monthly = self.calculate_monthly_equivalent(subscription)
        five_year = projections[5].potential_savings
        ten_year = projections[10].potential_savings
        currency = subscription.currency

        if break_even < 2:
            return (
                "cancel_immediately",
                f"Investment breaks even in {break_even:.1f} years. "
                "Consider cancelling and investing the money instead.",
            )
        if break_even < 5 and ten_year > monthly * 12:
            return (
                "consider_cancelling",
                f"Investment breaks even in {break_even:.1f} years with potential 10-year savings of "
                f"{format_amount(ten_year, currency)}.",
            )
        if monthly > 50 and break_even < 7 and five_year > 0:
            return (
                "consider_cancelling",
                f"High-cost subscription ({format_amount(monthly, currency)}/month) with "
                f"{break_even:.1f}-year break-even. Review if value justifies cost.",
            )
        if break_even > 10 or five_year < 0:
            if math.isinf(break_even):
                return "keep", "Investment returns don't exceed subscription costs in reasonable timeframe."
            return (
                "keep",
                f"Investment break-even takes {break_even:.1f} years. Subscription may provide better value.",
            )
        return "keep", "Moderate investment potential. Consider personal value and usage when deciding."

    def compare_subscription_vs_investment(
        self, subscription: Subscription, config: InvestmentConfig | None = None
    ) -> SubscriptionComparison:
        config = config or self.config
        monthly = self.calculate_monthly_equivalent(subscription)

        projections = {}
        for years in TIME_HORIZONS:
            cost = self.calculate_subscription_cost(subscription, years, config)
            value = self.calculate_compound_returns(monthly, years, config)
            projections[years] = ProjectionResult(
                years=years,
                subscription_cost=cost,
                investment_value=value,
                potential_savings=value - cost,
            )

        break_even = self.calculate_break_even(subscription, config)
        recommendation, reason = self.recommend(subscription, projections, break_even)
        logger.debug(
            "Projected %s: break-even %.2f years, %s",
            subscription.name,
            break_even,
            recommendation,
            extra={"subscription_id": subscription.id},
        )
        return SubscriptionComparison(
            subscription=subscription,
            monthly_amount=monthly,
            config=config,
            projections=projections,
            break_even_years=break_even,
            recommendation=recommendation,
            reason=reason,
        )


class LongTermCostAnalyzer:
    def __init__(self, engine: FinancialProjectionEngine | None = None):
        self.engine = engine or FinancialProjectionEngine()

    def generate_chart_data(self, subscription: Subscription, config: InvestmentConfig | None = None) -> list[dict]:
        comparison = self.engine.compare_subscription_vs_investment(subscription, config)
        return [
            {
                "period": f"Year {p.years}",
                "subscription_cost": p.subscription_cost,
                "investment_value": p.investment_value,
                "potential_savings": p.potential_savings,
            }
            for p in comparison.projections.values()
        ]

    def generate_table_data(self, subscription: Subscription, config: InvestmentConfig | None = None) -> dict:
        comparison = self.engine.compare_subscription_vs_investment(subscription, config)
        currency = subscription.currency

        rows = []
        for p in comparison.projections.values():
            pct = p.potential_savings / p.subscription_cost * 100 if p.subscription_cost > 0 else 0.0
            rows.append(
                {
                    "period": f"{p.years} Year{'s' if p.years > 1 else ''}",
                    "subscription_cost": format_amount(p.subscription_cost, currency),
                    "investment_value": format_amount(p.investment_value, currency),
                    "potential_savings": format_amount(p.potential_savings, currency),
                    "savings_percentage": f"{pct:+.1f}%",
                }
            )

        longest = comparison.projections[max(TIME_HORIZONS)]
        break_even = comparison.break_even_years
        return {
            "rows": rows,
            "summary": {
                "total_subscription_cost": format_amount(longest.subscription_cost, currency),
                "total_investment_value": format_amount(longest.investment_value, currency),
                "total_potential_savings": format_amount(longest.potential_savings, currency),
                "average_annual_return": f"{comparison.config.annual_return_rate * 100:.1f}%",
                "break_even_years": "Never" if math.isinf(break_even) else f"{break_even:.1f} years",
            },
        }

    def calculate_bulk_savings(
        self, subscriptions: list[Subscription], config: InvestmentConfig | None = None
    ) -> BulkSavings:
        total_monthly = sum(s.monthly_amount() for s in subscriptions)
        currency = subscriptions[0].currency if subscriptions else settings.default_currency

        projections = {}
        for years in TIME_HORIZONS:
            cost = sum(self.engine.calculate_subscription_cost(s, years, config) for s in subscriptions)
            value = self.engine.calculate_compound_returns(total_monthly, years, config)
            projections[years] = ProjectionResult(
                years=years,
                subscription_cost=cost,
                investment_value=value,
                potential_savings=value - cost,
            )
        return BulkSavings(total_monthly=total_monthly, currency=currency, projections=projections)

    def generate_category_breakdown(
        self, subscriptions: list[Subscription], category_names: dict[int, str]
    ) -> list[CategoryCost]:
        by_name: dict[str, CategoryCost] = {}
        for s in subscriptions:
            name = category_names.get(s.category_id, "Uncategorized")
            entry = by_name.setdefault(name, CategoryCost(category_name=name))
            entry.subscriptions.append(s)
            entry.monthly_total += s.monthly_amount()
        return sorted(by_name.values(), key=lambda c: c.monthly_total, reverse=True)

    def get_disclaimers(self) -> list[str]:
        return list(INVESTMENT_DISCLAIMERS.values())
