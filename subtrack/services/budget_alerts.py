import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date

from subtrack.currency import format_amount
from subtrack.db.models import Budget, BudgetAlert, BudgetProgress, Transaction
from subtrack.db.repository import Repository
from subtrack.periods import effective_period

logger = logging.getLogger(__name__)

LARGE_TRANSACTION_PCT = 10
BULK_IMPORT_PCT = 15


@dataclass(slots=True)
class BudgetImpact:
    budget_id: int
    budget_name: str
    transaction_amount: float
    percentage_of_budget: float
    progress: BudgetProgress
    alerts: list[BudgetAlert] = field(default_factory=list)


def transaction_in_budget_period(tx_date: date, budget: Budget, today: date | None = None) -> bool:
    start, end = effective_period(budget.start_date, budget.end_date, budget.period, today)
    return start <= tx_date <= end


async def record_alert(
    repository: Repository,
    budget_id: int,
    alert_type: str,
    message: str,
    threshold_percentage: float | None = None,
) -> BudgetAlert | None:
    """Create an alert; failures are logged and yield None."""
    try:
        return await repository.create_budget_alert(
            BudgetAlert(
                id=None,
                budget_id=budget_id,
                alert_type=alert_type,
                message=message,
                threshold_percentage=threshold_percentage,
            )
        )
    except Exception:
        logger.warning(
            "Failed to create %s alert",
            alert_type,
            exc_info=True,
            extra={"budget_id": budget_id},
        )
        return None


class BudgetAlertService:
    """Raises budget alerts in response to new or imported transactions."""

    def __init__(self, repository: Repository):
        self.repository = repository

    async def _active_budgets_for(self, category_id: int, tx_date: date) -> list[Budget]:
        budgets = await self.repository.find_budgets_by_category(category_id)
        return [b for b in budgets if b.is_active and transaction_in_budget_period(tx_date, b)]

    async def check_budget_thresholds(
        self, budget: Budget, progress: BudgetProgress | None = None
    ) -> list[BudgetAlert]:
        if progress is None:
            progress = await self.repository.calculate_budget_progress(budget.id)
        if progress is None:
            return []

        unread = await self.repository.find_unread_budget_alerts(budget.id)
        already_alerted = {a.threshold_percentage for a in unread if a.alert_type == "threshold"}

        created = []
        for threshold in sorted(budget.alert_thresholds):
            if progress.percentage_spent < threshold or threshold in already_alerted:
                continue
            alert = await record_alert(
                self.repository,
                budget.id,
                "threshold",
                f"Budget '{budget.name}' has reached {threshold}% "
                f"({format_amount(progress.current_spent, budget.currency)} of "
                f"{format_amount(budget.amount, budget.currency)})",
                threshold_percentage=threshold,
            )
            if alert:
                created.append(alert)
        return created

    async def _check_projection(self, budget: Budget, progress: BudgetProgress) -> BudgetAlert | None:
        if progress.percentage_spent >= 100 or progress.projected_spent <= budget.amount:
            return None
        unread = await self.repository.find_unread_budget_alerts(budget.id)
        if any(a.alert_type == "projection" for a in unread):
            return None
        return await record_alert(
            self.repository,
            budget.id,
            "projection",
            f"At the current pace budget '{budget.name}' will reach "
            f"{format_amount(progress.projected_spent, budget.currency)} "
            f"against {format_amount(budget.amount, budget.currency)}",
        )

    async def check_transaction_budget_impact(self, transaction: Transaction) -> list[BudgetImpact]:
        if transaction.type != "expense" or transaction.category_id is None:
            return []

        impacts = []
        for budget in await self._active_budgets_for(transaction.category_id, transaction.date):
            try:
                progress = await self.repository.calculate_budget_progress(budget.id)
                amount = abs(transaction.amount)
                pct = amount / budget.amount * 100
                alerts = []

                if pct > LARGE_TRANSACTION_PCT:
                    alert = await record_alert(
                        self.repository,
                        budget.id,
                        "large_transaction",
                        f"Large transaction: {transaction.description} "
                        f"({format_amount(amount, budget.currency)}) is {pct:.1f}% of budget '{budget.name}'",
                    )
                    if alert:
                        alerts.append(alert)

                alerts.extend(await self.check_budget_thresholds(budget, progress))
                projection = await self._check_projection(budget, progress)
                if projection:
                    alerts.append(projection)

                impacts.append(
                    BudgetImpact(
                        budget_id=budget.id,
                        budget_name=budget.name,
                        transaction_amount=amount,
                        percentage_of_budget=pct,
                        progress=progress,
                        alerts=alerts,
                    )
                )
            except Exception:
                logger.warning(
                    "Budget impact check failed",
                    exc_info=True,
                    extra={"budget_id": budget.id},
                )
        return impacts

    async def on_transactions_created(self, transactions: list[Transaction]) -> list[BudgetImpact]:
        impacts = []
        totals: dict[int, float] = defaultdict(float)
        for t in transactions:
            impacts.extend(await self.check_transaction_budget_impact(t))
            if t.type == "expense" and t.category_id is not None:
                totals[t.category_id] += abs(t.amount)

        today = date.today()
        for category_id, total in totals.items():
            for budget in await self._active_budgets_for(category_id, today):
                pct = total / budget.amount * 100
                if pct <= BULK_IMPORT_PCT:
                    continue
                await record_alert(
                    self.repository,
                    budget.id,
                    "bulk_import",
                    f"Imported transactions add {format_amount(total, budget.currency)} "
                    f"({pct:.1f}% of budget) to '{budget.name}'",
                )
        return impacts
