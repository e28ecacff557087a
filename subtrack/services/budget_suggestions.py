"""Three-tier budget suggestions blended from several history windows."""

import asyncio
import logging
from dataclasses import dataclass

from subtrack.db.models import BudgetAmount, BudgetSuggestion, BudgetTiers, SpendingAnalysis
from subtrack.db.repository import Repository
from subtrack.errors import NotFoundError, OperationError, SubtrackError

logger = logging.getLogger(__name__)

# history window in months -> recency weight
ANALYSIS_WINDOWS = {3: 1.5, 6: 1.2, 12: 1.0}
MIN_WINDOW_CONFIDENCE = 0.3


@dataclass(slots=True)
class SubscriptionCosts:
    monthly_total: float = 0.0
    count: int = 0


def _reasoning(tier: str, analysis: SpendingAnalysis, allocation: SubscriptionCosts) -> str:
    has_subscriptions = allocation.count > 0
    is_volatile = analysis.standard_deviation > analysis.average_monthly * 0.3
    has_upward_trend = analysis.trend > 0

    context = f"Based on {analysis.period_months} months of spending history"
    if has_subscriptions:
        plural = "s" if allocation.count > 1 else ""
        context += f" and {allocation.count} active subscription{plural}"

    if tier == "conservative":
        factors = []
        if is_volatile:
            factors.append("spending variability")
        if has_upward_trend:
            factors.append("increasing trend")
        if has_subscriptions:
            factors.append("subscription commitments")
        extra = (
            f" with extra buffer for {' and '.join(factors)}"
            if factors
            else " with generous buffer for unexpected expenses"
        )
        return (
            f"{context}. Provides comfortable spending room{extra}. "
            "Best for peace of mind and avoiding budget stress."
        )
    if tier == "moderate":
        return (
            f"{context}. Balanced approach matching your typical spending patterns "
            "with modest buffer for variations. Recommended for most situations."
        )
    note = " while ensuring subscription commitments are fully covered" if has_subscriptions else ""
    return (
        f"{context}. Tight budget encouraging reduced spending and savings{note}. "
        "Requires discipline but maximizes financial goals."
    )


def calculate_suggestion_tiers(
    analysis: SpendingAnalysis, allocation: SubscriptionCosts, period: str
) -> BudgetTiers:
    scale = 12 if period == "yearly" else 1
    base = analysis.average_monthly * scale
    floor = allocation.monthly_total * scale

    if analysis.standard_deviation > 0:
        volatility = min(1.5, 1 + analysis.standard_deviation / analysis.average_monthly)
    else:
        volatility = 1.1
    trend = min(1.2, 1 + abs(analysis.trend) / analysis.average_monthly) if analysis.trend > 0 else 1.0

    conservative = max(base * min(2.0, volatility * trend * 1.3), floor * 1.2)
    moderate = max(base * min(1.5, volatility * trend * 1.1), floor * 1.1)
    aggressive = max(base * max(0.8, 1 / (volatility * 1.1)), floor)

    c = analysis.confidence
    return BudgetTiers(
        conservative=BudgetAmount(
            amount=round(conservative),
            reasoning=_reasoning("conservative", analysis, allocation),
            confidence=min(0.95, c * 1.1),
        ),
        moderate=BudgetAmount(
            amount=round(moderate),
            reasoning=_reasoning("moderate", analysis, allocation),
            confidence=c,
        ),
        aggressive=BudgetAmount(
            amount=round(aggressive),
            reasoning=_reasoning("aggressive", analysis, allocation),
            confidence=max(0.5, c * 0.8),
        ),
    )


def suggestion_confidence(analysis: SpendingAnalysis, allocation: SubscriptionCosts) -> float:
    confidence = analysis.confidence
    if allocation.count > 0:
        confidence += 0.15
    if analysis.standard_deviation > 0:
        confidence += max(-0.2, -0.1 * analysis.standard_deviation / max(1.0, analysis.average_monthly))
    if analysis.period_months >= 6:
        confidence += 0.1
    return max(0.1, min(1.0, confidence))


def blend_analyses(category_id: int, analyses: list[SpendingAnalysis]) -> SpendingAnalysis:
    """Confidence- and recency-weighted blend of the usable history windows."""
    valid = [a for a in analyses if a.confidence > MIN_WINDOW_CONFIDENCE]
    if not valid:
        return SpendingAnalysis(
            category_id=category_id,
            period_months=3,
            average_monthly=0.0,
            min_monthly=0.0,
            max_monthly=0.0,
            standard_deviation=0.0,
            trend=0.0,
            subscription_costs=0.0,
            variable_spending=0.0,
            confidence=0.1,
        )

    weights = [a.confidence * ANALYSIS_WINDOWS.get(a.period_months, 1.0) for a in valid]
    total = sum(weights)

    def weighted(attr: str) -> float:
        return sum(getattr(a, attr) * w for a, w in zip(valid, weights)) / total

    average = weighted("average_monthly")
    subscriptions = weighted("subscription_costs")
    return SpendingAnalysis(
        category_id=category_id,
        period_months=valid[0].period_months,
        average_monthly=average,
        min_monthly=min(a.min_monthly for a in valid),
        max_monthly=max(a.max_monthly for a in valid),
        standard_deviation=weighted("standard_deviation"),
        trend=weighted("trend"),
        subscription_costs=subscriptions,
        variable_spending=max(0.0, average - subscriptions),
        confidence=max(a.confidence for a in valid),
    )


class BudgetSuggestionGenerator:
    def __init__(self, repository: Repository):
        self.repository = repository

    async def analyze_spending_patterns(self, category_id: int) -> SpendingAnalysis:
        analyses = await asyncio.gather(
            *(self.repository.analyze_historical_spending(category_id, months) for months in ANALYSIS_WINDOWS)
        )
        return blend_analyses(category_id, list(analyses))

    async def calculate_subscription_allocation(self, category_id: int) -> SubscriptionCosts:
        try:
            subscriptions = await self.repository.find_subscriptions_by_category(category_id)
            active = [s for s in subscriptions if s.is_active]
            return SubscriptionCosts(
                monthly_total=sum(s.monthly_amount() for s in active),
                count=len(active),
            )
        except Exception:
            logger.warning("Subscription allocation unavailable for category %s", category_id, exc_info=True)
            return SubscriptionCosts()

    async def generate_suggestions(self, category_id: int, period: str = "monthly") -> BudgetSuggestion:
        try:
            category = await self.repository.get_category_by_id(category_id)
            if category is None:
                raise NotFoundError("Category", category_id)

            analysis = await self.analyze_spending_patterns(category_id)
            allocation = await self.calculate_subscription_allocation(category_id)
            return BudgetSuggestion(
                category_id=category_id,
                category_name=category.name,
                period=period,
                tiers=calculate_suggestion_tiers(analysis, allocation, period),
                historical=analysis,
                subscription_costs=allocation.monthly_total,
                subscription_count=allocation.count,
                confidence=suggestion_confidence(analysis, allocation),
            )
        except SubtrackError:
            raise
        except Exception as e:
            raise OperationError("generate budget suggestions", e) from e
