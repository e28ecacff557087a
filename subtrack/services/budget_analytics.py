"""Budget analytics: history, variance against actuals, projections and tier suggestions."""

import asyncio
import logging
import math
from collections import defaultdict
from datetime import date

import numpy as np

from subtrack.db.models import (
    Budget,
    BudgetAmount,
    BudgetProjection,
    BudgetSuggestion,
    BudgetTiers,
    MonthlyVariance,
    SpendingAnalysis,
    VarianceAnalysis,
)
from subtrack.db.repository import Repository
from subtrack.errors import NotFoundError, OperationError, SubtrackError
from subtrack.matching import mean
from subtrack.periods import iter_months, month_key

logger = logging.getLogger(__name__)

HISTORY_WINDOWS = (3, 6, 12)

NO_DATA_INSIGHT = "No spending data available for analysis."
NORMAL_INSIGHT = "Your budget performance looks normal with no significant patterns detected."


def calculate_budget_tiers(analysis: SpendingAnalysis, period: str) -> BudgetTiers:
    scale = 12 if period == "yearly" else 1
    base = analysis.average_monthly * scale
    floor = analysis.subscription_costs * scale
    c = analysis.confidence

    return BudgetTiers(
        conservative=BudgetAmount(
            amount=round(max(base * 1.2, floor * 1.1)),
            reasoning=(
                f"Based on your average {period} spending with a 20% buffer for unexpected expenses. "
                "This provides a comfortable cushion while encouraging mindful spending."
            ),
            confidence=min(0.9, c + 0.1),
        ),
        moderate=BudgetAmount(
            amount=round(max(base * 1.1, floor)),
            reasoning=(
                f"Based on your average {period} spending with a 10% buffer. "
                "This matches your typical spending patterns with modest room for variation."
            ),
            confidence=c,
        ),
        aggressive=BudgetAmount(
            amount=round(max(base * 0.9, floor)),
            reasoning=(
                f"Tight budget set 10% below your average {period} spending. "
                "This encourages savings but ensures subscription commitments are covered."
            ),
            confidence=max(0.6, c - 0.2),
        ),
    )


def generate_variance_insights(monthly: list[MonthlyVariance]) -> list[str]:
    if not monthly:
        return [NO_DATA_INSIGHT]

    insights = []
    over_share = sum(1 for m in monthly if m.variance > 0) / len(monthly) * 100
    if over_share > 70:
        insights.append(
            "You frequently exceed your budget. Consider increasing your budget amount "
            "or identifying areas to reduce spending."
        )
    elif over_share > 30:
        insights.append(
            "You occasionally overspend. Review months with high variance to identify spending triggers."
        )

    if sum(1 for m in monthly if m.variance_percentage < -10) > len(monthly) / 2:
        insights.append(
            "You consistently spend less than budgeted. Consider reducing your budget to allocate funds elsewhere."
        )

    percentages = [m.variance_percentage for m in monthly]
    spread = max(percentages) - min(percentages)
    if spread > 100:
        insights.append(
            "Your spending varies significantly month-to-month. "
            "Consider tracking specific spending triggers or seasonal patterns."
        )
    elif spread < 20:
        insights.append("Your spending is very consistent. Your budget appears well-calibrated to your needs.")

    if len(monthly) >= 3:
        recent = [m.variance for m in monthly[-3:]]
        if recent[0] < recent[1] < recent[2]:
            insights.append(
                "Your spending has been trending upward recently. Monitor this closely to avoid budget overruns."
            )
        elif recent[0] > recent[1] > recent[2]:
            insights.append(
                "Great progress! Your spending has been trending downward, showing improved budget discipline."
            )

    return insights or [NORMAL_INSIGHT]


def _risk_level(projected_pct: float, spent_pct: float) -> str:
    if projected_pct > 100:
        return "high"
    if projected_pct > 85 or spent_pct > 75:
        return "medium"
    return "low"


class BudgetAnalyticsEngine:
    def __init__(self, repository: Repository):
        self.repository = repository

    async def analyze_historical_spending(self, category_id: int, months: int) -> SpendingAnalysis:
        return await self.repository.analyze_historical_spending(category_id, months)

    async def calculate_budget_variance(self, budget: Budget) -> VarianceAnalysis:
        try:
            return await self._calculate_budget_variance(budget)
        except SubtrackError:
            raise
        except Exception as e:
            raise OperationError("calculate budget variance", e) from e

    async def _calculate_budget_variance(self, budget: Budget) -> VarianceAnalysis:
        today = date.today()
        end = min(budget.end_date, today) if budget.end_date else today
        budgeted = budget.monthly_amount

        actual_by_month: dict[str, float] = defaultdict(float)
        months = list(iter_months(budget.start_date, end)) if budget.start_date <= end else []
        if months:
            # edge months are counted in full
            transactions = await self.repository.find_transactions_by_date_range(
                months[0][0], months[-1][1], category_id=budget.category_id, tx_type="expense"
            )
            for t in transactions:
                actual_by_month[month_key(t.date)] += abs(t.amount)

        monthly = []
        for first_day, _ in months:
            key = month_key(first_day)
            actual = actual_by_month.get(key, 0.0)
            variance = actual - budgeted
            monthly.append(
                MonthlyVariance(
                    month=key,
                    budgeted=budgeted,
                    actual=actual,
                    variance=variance,
                    variance_percentage=variance / budgeted * 100 if budgeted else 0.0,
                )
            )

        variances = [m.variance for m in monthly]
        average = mean(variances)
        std = float(np.std(variances, ddof=1)) if len(variances) > 1 else 0.0
        return VarianceAnalysis(
            budget_id=budget.id,
            monthly_variances=monthly,
            average_variance=average,
            total_overspend=sum(v for v in variances if v > 0),
            total_underspend=sum(-v for v in variances if v < 0),
            variance_standard_deviation=std,
            insights=generate_variance_insights(monthly),
        )

    async def project_budget_performance(self, budget_id: int) -> BudgetProjection:
        try:
            progress = await self.repository.calculate_budget_progress(budget_id)
            if progress is None:
                raise NotFoundError("Budget", budget_id)

            budget = progress.budget
            projected = progress.current_spent + progress.average_daily_spend * progress.days_remaining
            remaining = budget.amount - progress.current_spent

            return BudgetProjection(
                budget_id=budget_id,
                projected_total_spent=round(projected),
                projected_end_date=progress.period_end,
                risk_level=_risk_level(
                    projected / budget.amount * 100,
                    progress.current_spent / budget.amount * 100,
                ),
                days_until_depletion=(
                    math.floor(remaining / progress.average_daily_spend)
                    if progress.average_daily_spend > 0
                    else None
                ),
                recommended_daily_spend=(
                    round(remaining / progress.days_remaining) if progress.days_remaining > 0 else 0
                ),
            )
        except SubtrackError:
            raise
        except Exception as e:
            raise OperationError("project budget performance", e) from e

    async def _subscription_count(self, category_id: int) -> int:
        try:
            subscriptions = await self.repository.find_subscriptions_by_category(category_id)
            return sum(1 for s in subscriptions if s.is_active)
        except Exception:
            logger.warning("Subscription count unavailable for category %s", category_id, exc_info=True)
            return 0

    async def generate_budget_suggestions(self, category_id: int, period: str = "monthly") -> BudgetSuggestion:
        try:
            category = await self.repository.get_category_by_id(category_id)
            if category is None:
                raise NotFoundError("Category", category_id)

            analyses = await asyncio.gather(
                *(self.repository.analyze_historical_spending(category_id, m) for m in HISTORY_WINDOWS)
            )
            primary = max(analyses, key=lambda a: a.confidence)
            return BudgetSuggestion(
                category_id=category_id,
                category_name=category.name,
                period=period,
                tiers=calculate_budget_tiers(primary, period),
                historical=primary,
                subscription_costs=primary.subscription_costs,
                subscription_count=await self._subscription_count(category_id),
                confidence=primary.confidence,
            )
        except SubtrackError:
            raise
        except Exception as e:
            raise OperationError("generate budget suggestions", e) from e
