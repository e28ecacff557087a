import logging
from dataclasses import dataclass

from subtrack.currency import format_amount
from subtrack.db.models import Budget, BudgetAlert, Subscription
from subtrack.db.repository import Repository
from subtrack.errors import NotFoundError
from subtrack.services.budget_alerts import record_alert

logger = logging.getLogger(__name__)

SUBSCRIPTION_IMPACT_PCT = 5


@dataclass(slots=True)
class SubscriptionAllocation:
    category_id: int
    total_monthly: float
    subscription_count: int
    subscriptions: list[Subscription]


@dataclass(slots=True)
class SubscriptionImpact:
    budget_id: int
    subscription_allocated: float
    percentage_of_budget: float
    variable_budget: float
    subscriptions: list[Subscription]


@dataclass(slots=True)
class SubscriptionAwareSuggestion:
    category_id: int
    subscription_costs: float
    variable_spending: float
    suggested_amount: float
    confidence: float
    reasoning: str


class SubscriptionBudgetService:
    """Keeps budgets informed about subscription lifecycle changes."""

    def __init__(self, repository: Repository):
        self.repository = repository

    async def _category_budgets(self, category_id: int) -> list[Budget]:
        budgets = await self.repository.find_budgets_by_category(category_id)
        return [b for b in budgets if b.is_active]

    async def _alert_on_impact(self, subscription: Subscription, alert_type: str, verb: str) -> list[BudgetAlert]:
        monthly = subscription.monthly_amount()
        created = []
        for budget in await self._category_budgets(subscription.category_id):
            pct = monthly / budget.monthly_amount * 100
            if pct <= SUBSCRIPTION_IMPACT_PCT:
                continue
            alert = await record_alert(
                self.repository,
                budget.id,
                alert_type,
                f"Subscription '{subscription.name}' {verb} "
                f"{format_amount(monthly, subscription.currency)}/month "
                f"({pct:.1f}% of budget '{budget.name}')",
            )
            if alert:
                created.append(alert)
        return created

    async def on_subscription_created(self, subscription: Subscription) -> list[BudgetAlert]:
        try:
            return await self._alert_on_impact(subscription, "subscription_added", "adds")
        except Exception:
            logger.warning(
                "Subscription created hook failed",
                exc_info=True,
                extra={"subscription_id": subscription.id},
            )
            return []

    async def on_subscription_deleted(self, subscription: Subscription) -> list[BudgetAlert]:
        try:
            return await self._alert_on_impact(subscription, "subscription_removed", "frees")
        except Exception:
            logger.warning(
                "Subscription deleted hook failed",
                exc_info=True,
                extra={"subscription_id": subscription.id},
            )
            return []

    async def on_subscription_updated(self, old: Subscription, new: Subscription) -> list[BudgetAlert]:
        try:
            return await self._alert_on_update(old, new)
        except Exception:
            logger.warning(
                "Subscription updated hook failed",
                exc_info=True,
                extra={"subscription_id": new.id},
            )
            return []

    async def _alert_on_update(self, old: Subscription, new: Subscription) -> list[BudgetAlert]:
        created = []

        if old.category_id != new.category_id:
            message = f"Subscription '{new.name}' moved to another category"
            for category_id in (old.category_id, new.category_id):
                for budget in await self._category_budgets(category_id):
                    created.append(
                        await record_alert(self.repository, budget.id, "subscription_category_changed", message)
                    )

        old_monthly = old.monthly_amount()
        new_monthly = new.monthly_amount()
        budgets = await self._category_budgets(new.category_id)

        if old.amount != new.amount:
            diff = new_monthly - old_monthly
            for budget in budgets:
                pct = abs(diff) / budget.monthly_amount * 100
                if pct <= SUBSCRIPTION_IMPACT_PCT:
                    continue
                direction = "increased" if diff > 0 else "decreased"
                created.append(
                    await record_alert(
                        self.repository,
                        budget.id,
                        "subscription_amount_changed",
                        f"Subscription '{new.name}' {direction} by "
                        f"{format_amount(abs(diff), new.currency)}/month ({pct:.1f}% of budget '{budget.name}')",
                    )
                )

        if old.billing_frequency != new.billing_frequency:
            for budget in budgets:
                created.append(
                    await record_alert(
                        self.repository,
                        budget.id,
                        "subscription_frequency_changed",
                        f"Subscription '{new.name}' now bills {new.billing_frequency} "
                        f"({format_amount(old_monthly, new.currency)} -> "
                        f"{format_amount(new_monthly, new.currency)} per month)",
                    )
                )

        return [a for a in created if a is not None]

    async def calculate_subscription_allocation(self, category_id: int) -> SubscriptionAllocation:
        subscriptions = [
            s for s in await self.repository.find_subscriptions_by_category(category_id) if s.is_active
        ]
        return SubscriptionAllocation(
            category_id=category_id,
            total_monthly=sum(s.monthly_amount() for s in subscriptions),
            subscription_count=len(subscriptions),
            subscriptions=subscriptions,
        )

    async def analyze_subscription_impact(self, budget_id: int) -> SubscriptionImpact:
        budget = await self.repository.find_budget_by_id(budget_id)
        if budget is None:
            raise NotFoundError("Budget", budget_id)
        allocation = await self.calculate_subscription_allocation(budget.category_id)
        allocated = allocation.total_monthly * (12 if budget.period == "yearly" else 1)
        return SubscriptionImpact(
            budget_id=budget_id,
            subscription_allocated=allocated,
            percentage_of_budget=allocated / budget.amount * 100,
            variable_budget=max(0.0, budget.amount - allocated),
            subscriptions=allocation.subscriptions,
        )

    async def generate_subscription_aware_suggestion(self, category_id: int) -> SubscriptionAwareSuggestion:
        allocation = await self.calculate_subscription_allocation(category_id)
        analysis = await self.repository.analyze_historical_spending(category_id, 6)
        variable = max(0.0, analysis.average_monthly - allocation.total_monthly)

        confidence = 0.7
        if allocation.subscription_count:
            confidence += 0.2
        if variable > 0:
            confidence += 0.1

        return SubscriptionAwareSuggestion(
            category_id=category_id,
            subscription_costs=allocation.total_monthly,
            variable_spending=variable,
            suggested_amount=round(allocation.total_monthly + variable * 1.1),
            confidence=min(1.0, confidence),
            reasoning=(
                f"Covers {allocation.subscription_count} active subscriptions "
                f"plus a 10% buffer on average variable spending"
            ),
        )

    async def create_renewal_notifications(self, days: int = 7) -> list[BudgetAlert]:
        created = []
        for subscription in await self.repository.find_upcoming_payments(days):
            try:
                for budget in await self._category_budgets(subscription.category_id):
                    progress = await self.repository.calculate_budget_progress(budget.id)
                    renewal = (
                        f"'{subscription.name}' renews on {subscription.next_payment_date.isoformat()} "
                        f"for {format_amount(subscription.amount, subscription.currency)}"
                    )
                    if progress is not None and progress.remaining_amount < subscription.amount:
                        alert = await record_alert(
                            self.repository,
                            budget.id,
                            "subscription_insufficient_budget",
                            f"{renewal}, but only {format_amount(progress.remaining_amount, budget.currency)} "
                            f"remains in budget '{budget.name}'",
                        )
                    else:
                        alert = await record_alert(self.repository, budget.id, "subscription_renewal", renewal)
                    if alert:
                        created.append(alert)
            except Exception:
                logger.warning(
                    "Renewal notification failed",
                    exc_info=True,
                    extra={"subscription_id": subscription.id},
                )
        return created
