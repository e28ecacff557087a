import asyncio
import logging
from dataclasses import dataclass, fields, replace
from datetime import date

from subtrack.config import settings
from subtrack.currency import resolve_currency
from subtrack.db.models import (
    BUDGET_PERIODS,
    Budget,
    BudgetAlert,
    BudgetProgress,
    BudgetProjection,
    BudgetScenario,
    BudgetSuggestion,
    VarianceAnalysis,
)
from subtrack.db.repository import Repository
from subtrack.errors import NotFoundError, OperationError, SubtrackError, ValidationError
from subtrack.services.budget_alerts import BudgetAlertService
from subtrack.services.budget_analytics import BudgetAnalyticsEngine
from subtrack.services.budget_suggestions import BudgetSuggestionGenerator

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {f.name for f in fields(Budget)} - {"id"}

AT_RISK_SHARE = 0.3


@dataclass(slots=True)
class BudgetRequest:
    name: str
    category_id: int
    amount: float
    start_date: date
    period: str = "monthly"
    end_date: date | None = None
    currency: str | None = None
    alert_thresholds: list[int] | None = None
    scenario_id: int | None = None
    description: str | None = None


@dataclass(slots=True)
class BudgetPerformance:
    progress: BudgetProgress
    variance: VarianceAnalysis
    projection: BudgetProjection


@dataclass(slots=True)
class BudgetDashboard:
    budgets: list[BudgetProgress]
    total_budgeted: float
    total_spent: float
    total_remaining: float
    over_budget_count: int
    at_risk_count: int
    overall_status: str
    unread_alerts: list[BudgetAlert]


def validate_budget(
    name: str,
    amount: float,
    period: str,
    start_date: date,
    end_date: date | None,
    alert_thresholds: list[int],
) -> None:
    if not name or not name.strip():
        raise ValidationError("Budget name is required")
    if amount <= 0:
        raise ValidationError("Budget amount must be positive")
    if period not in BUDGET_PERIODS:
        raise ValidationError(f"Invalid budget period: {period}")
    if end_date is not None and start_date >= end_date:
        raise ValidationError("Start date must be before end date")
    if any(t <= 0 for t in alert_thresholds):
        raise ValidationError("Alert thresholds must be positive percentages")


def overall_status(progress: list[BudgetProgress]) -> str:
    if any(p.status == "over-budget" for p in progress):
        return "over-budget"
    at_risk = sum(1 for p in progress if p.status == "at-risk")
    if progress and at_risk / len(progress) > AT_RISK_SHARE:
        return "at-risk"
    return "on-track"


class BudgetService:
    def __init__(self, repository: Repository):
        self.repository = repository
        self.analytics = BudgetAnalyticsEngine(repository)
        self.suggestions = BudgetSuggestionGenerator(repository)
        self.alerts = BudgetAlertService(repository)

    async def _require_category(self, category_id: int) -> None:
        if await self.repository.get_category_by_id(category_id) is None:
            raise NotFoundError("Category", category_id)

    async def _active_scenario_id(self) -> int:
        active = await self.repository.find_active_budget_scenario()
        if active is None:
            active = await self.repository.create_budget_scenario(
                BudgetScenario(id=None, name="Default", is_active=True)
            )
        return active.id

    async def _refresh_threshold_alerts(self, budget: Budget) -> None:
        try:
            await self.alerts.check_budget_thresholds(budget)
        except Exception:
            logger.warning("Threshold check failed", exc_info=True, extra={"budget_id": budget.id})

    # CRUD

    async def create_budget(self, request: BudgetRequest) -> Budget:
        thresholds = sorted(request.alert_thresholds or settings.default_alert_thresholds)
        validate_budget(
            request.name, request.amount, request.period, request.start_date, request.end_date, thresholds
        )
        await self._require_category(request.category_id)
        if request.scenario_id is not None:
            if await self.repository.find_budget_scenario_by_id(request.scenario_id) is None:
                raise NotFoundError("Budget scenario", request.scenario_id)

        try:
            budget = await self.repository.create_budget(
                Budget(
                    id=None,
                    name=request.name.strip(),
                    category_id=request.category_id,
                    amount=request.amount,
                    currency=resolve_currency(request.currency),
                    period=request.period,
                    start_date=request.start_date,
                    end_date=request.end_date,
                    alert_thresholds=thresholds,
                    scenario_id=request.scenario_id or await self._active_scenario_id(),
                    description=request.description,
                )
            )
        except SubtrackError:
            raise
        except Exception as e:
            raise OperationError("create budget", e) from e

        logger.info("Created budget %s", budget.name, extra={"budget_id": budget.id})
        await self._refresh_threshold_alerts(budget)
        return budget

    async def get_budgets(
        self, category_id: int | None = None, scenario_id: int | None = None, active_only: bool = False
    ) -> list[Budget]:
        if scenario_id is not None:
            budgets = await self.repository.find_budgets_by_scenario(scenario_id)
        elif category_id is not None:
            budgets = await self.repository.find_budgets_by_category(category_id)
        else:
            budgets = await self.repository.find_all_budgets()

        if category_id is not None:
            budgets = [b for b in budgets if b.category_id == category_id]
        if active_only:
            budgets = [b for b in budgets if b.is_active]
        return budgets

    async def get_budget(self, budget_id: int) -> Budget:
        budget = await self.repository.find_budget_by_id(budget_id)
        if budget is None:
            raise NotFoundError("Budget", budget_id)
        return budget

    async def get_budget_with_progress(self, budget_id: int) -> BudgetProgress:
        progress = await self.repository.calculate_budget_progress(budget_id)
        if progress is None:
            raise NotFoundError("Budget", budget_id)
        return progress

    async def update_budget(self, budget_id: int, **updates) -> Budget:
        unknown = set(updates) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown budget fields: {', '.join(sorted(unknown))}")
        if "alert_thresholds" in updates:
            updates["alert_thresholds"] = sorted(updates["alert_thresholds"])

        existing = await self.get_budget(budget_id)
        merged = replace(existing, **updates)
        validate_budget(
            merged.name, merged.amount, merged.period, merged.start_date, merged.end_date, merged.alert_thresholds
        )
        if "category_id" in updates:
            await self._require_category(merged.category_id)

        try:
            updated = await self.repository.update_budget(budget_id, **updates)
        except Exception as e:
            raise OperationError("update budget", e) from e

        if {"amount", "alert_thresholds", "category_id", "start_date", "end_date"} & set(updates):
            await self._refresh_threshold_alerts(updated)
        return updated

    async def delete_budget(self, budget_id: int) -> bool:
        await self.get_budget(budget_id)
        try:
            deleted = await self.repository.delete_budget(budget_id)
        except Exception as e:
            raise OperationError("delete budget", e) from e
        logger.info("Deleted budget", extra={"budget_id": budget_id})
        return deleted

    # Analytics

    async def get_budget_suggestions(self, category_id: int, period: str = "monthly") -> BudgetSuggestion:
        return await self.suggestions.generate_suggestions(category_id, period)

    async def analyze_budget_performance(self, budget_id: int) -> BudgetPerformance:
        budget = await self.get_budget(budget_id)
        progress, variance, projection = await asyncio.gather(
            self.get_budget_with_progress(budget_id),
            self.analytics.calculate_budget_variance(budget),
            self.analytics.project_budget_performance(budget_id),
        )
        return BudgetPerformance(progress=progress, variance=variance, projection=projection)

    async def get_dashboard(self) -> BudgetDashboard:
        budgets = [b for b in await self.repository.find_budgets_by_active_scenario() if b.is_active]
        results = await asyncio.gather(*(self.repository.calculate_budget_progress(b.id) for b in budgets))
        progress = [p for p in results if p is not None]

        return BudgetDashboard(
            budgets=progress,
            total_budgeted=sum(p.budget.amount for p in progress),
            total_spent=sum(p.current_spent for p in progress),
            total_remaining=sum(p.remaining_amount for p in progress),
            over_budget_count=sum(1 for p in progress if p.status == "over-budget"),
            at_risk_count=sum(1 for p in progress if p.status == "at-risk"),
            overall_status=overall_status(progress),
            unread_alerts=await self.repository.find_unread_budget_alerts(),
        )

    # Scenarios

    async def get_scenarios(self) -> list[BudgetScenario]:
        return await self.repository.find_all_budget_scenarios()

    async def create_scenario(
        self, name: str, description: str | None = None, copy_from_scenario_id: int | None = None
    ) -> BudgetScenario:
        if not name or not name.strip():
            raise ValidationError("Scenario name is required")
        if copy_from_scenario_id is not None:
            if await self.repository.find_budget_scenario_by_id(copy_from_scenario_id) is None:
                raise NotFoundError("Budget scenario", copy_from_scenario_id)

        try:
            scenario = await self.repository.create_budget_scenario(
                BudgetScenario(id=None, name=name.strip(), description=description)
            )
            if copy_from_scenario_id is not None:
                for budget in await self.repository.find_budgets_by_scenario(copy_from_scenario_id):
                    await self.repository.create_budget(
                        replace(budget, id=None, name=f"{budget.name} (Copy)", scenario_id=scenario.id)
                    )
        except Exception as e:
            raise OperationError("create budget scenario", e) from e
        return scenario

    async def activate_scenario(self, scenario_id: int) -> BudgetScenario:
        if not await self.repository.activate_budget_scenario(scenario_id):
            raise NotFoundError("Budget scenario", scenario_id)
        return await self.repository.find_budget_scenario_by_id(scenario_id)

    # Alerts

    async def get_alerts(self, budget_id: int | None = None) -> list[BudgetAlert]:
        return await self.repository.find_budget_alerts(budget_id)

    async def get_unread_alerts(self) -> list[BudgetAlert]:
        return await self.repository.find_unread_budget_alerts()

    async def mark_alert_read(self, alert_id: int) -> bool:
        return await self.repository.mark_budget_alert_as_read(alert_id)
