"""Storage contract for the subscription and budget engines, and its SQLite implementation."""

import json
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Protocol

import numpy as np

from subtrack.db.database import get_db
from subtrack.db.models import (
    Budget,
    BudgetAlert,
    BudgetProgress,
    BudgetScenario,
    Category,
    SpendingAnalysis,
    Subscription,
    SubscriptionPattern,
    Transaction,
    TransactionSummary,
)
from subtrack.periods import DAYS_PER_MONTH, add_months, effective_period, inclusive_days, month_key

logger = logging.getLogger(__name__)

AdjustConfidence = Callable[[float, bool], float]


def fixed_step_confidence(current: float, was_correct: bool) -> float:
    if was_correct:
        return min(1.0, current + 0.1 * (1 - current))
    return max(0.1, current - 0.15)


def moving_average_confidence(alpha: float = 0.2) -> AdjustConfidence:
    def adjust(current: float, was_correct: bool) -> float:
        target = 1.0 if was_correct else 0.0
        return max(0.1, min(1.0, (1 - alpha) * current + alpha * target))

    return adjust


class Repository(Protocol):
    async def create_transaction(self, transaction: Transaction) -> Transaction: ...
    async def find_all_transactions(self) -> list[Transaction]: ...
    async def find_transaction_by_id(self, transaction_id: int) -> Transaction | None: ...
    async def find_transactions_by_date_range(
        self, start: date, end: date, category_id: int | None = None, tx_type: str | None = None
    ) -> list[Transaction]: ...
    async def calculate_summary(self, start: date | None = None, end: date | None = None) -> TransactionSummary: ...
    async def update_transaction_category(self, transaction_id: int, category_id: int | None) -> bool: ...

    async def get_categories(self) -> list[Category]: ...
    async def get_category_by_id(self, category_id: int) -> Category | None: ...
    async def create_category(self, name: str, color: str | None = None) -> Category: ...

    async def create_subscription(self, subscription: Subscription) -> Subscription: ...
    async def find_all_subscriptions(self) -> list[Subscription]: ...
    async def find_subscription_by_id(self, subscription_id: int) -> Subscription | None: ...
    async def find_subscriptions_by_category(self, category_id: int) -> list[Subscription]: ...
    async def find_active_subscriptions(self) -> list[Subscription]: ...
    async def update_subscription(self, subscription_id: int, **fields) -> Subscription | None: ...
    async def delete_subscription(self, subscription_id: int) -> bool: ...
    async def find_upcoming_payments(self, days: int) -> list[Subscription]: ...
    async def calculate_total_monthly_cost(self) -> float: ...
    async def find_unused_subscriptions(self, days: int) -> list[Subscription]: ...

    async def create_subscription_pattern(self, pattern: SubscriptionPattern) -> SubscriptionPattern: ...
    async def find_patterns_by_subscription(self, subscription_id: int) -> list[SubscriptionPattern]: ...
    async def update_pattern_usage(self, pattern_id: int, was_correct: bool) -> SubscriptionPattern | None: ...
    async def delete_subscription_pattern(self, pattern_id: int) -> bool: ...

    async def flag_transaction_as_subscription(self, transaction_id: int, subscription_id: int) -> bool: ...
    async def unflag_transaction_as_subscription(self, transaction_id: int) -> bool: ...
    async def find_subscription_transactions(self, subscription_id: int) -> list[Transaction]: ...

    async def create_budget(self, budget: Budget) -> Budget: ...
    async def find_all_budgets(self) -> list[Budget]: ...
    async def find_budget_by_id(self, budget_id: int) -> Budget | None: ...
    async def find_budgets_by_category(self, category_id: int) -> list[Budget]: ...
    async def find_budgets_by_period(self, start: date, end: date) -> list[Budget]: ...
    async def find_budgets_by_scenario(self, scenario_id: int) -> list[Budget]: ...
    async def find_budgets_by_active_scenario(self) -> list[Budget]: ...
    async def update_budget(self, budget_id: int, **fields) -> Budget | None: ...
    async def delete_budget(self, budget_id: int) -> bool: ...
    async def calculate_budget_progress(self, budget_id: int) -> BudgetProgress | None: ...
    async def analyze_historical_spending(self, category_id: int, months: int) -> SpendingAnalysis: ...

    async def create_budget_scenario(self, scenario: BudgetScenario) -> BudgetScenario: ...
    async def find_all_budget_scenarios(self) -> list[BudgetScenario]: ...
    async def find_budget_scenario_by_id(self, scenario_id: int) -> BudgetScenario | None: ...
    async def find_active_budget_scenario(self) -> BudgetScenario | None: ...
    async def activate_budget_scenario(self, scenario_id: int) -> bool: ...

    async def create_budget_alert(self, alert: BudgetAlert) -> BudgetAlert: ...
    async def find_budget_alerts(self, budget_id: int | None = None) -> list[BudgetAlert]: ...
    async def find_unread_budget_alerts(self, budget_id: int | None = None) -> list[BudgetAlert]: ...
    async def mark_budget_alert_as_read(self, alert_id: int) -> bool: ...


def _parse_date(value) -> date | None:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def _to_db(value):
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, list):
        return json.dumps(value)
    return value


def _row_to_transaction(row) -> Transaction:
    return Transaction(
        id=row["id"],
        date=_parse_date(row["date"]),
        description=row["description"],
        amount=row["amount"],
        type=row["type"],
        currency=row["currency"],
        category_id=row["category_id"],
        is_subscription=bool(row["is_subscription"]),
        subscription_id=row["subscription_id"],
    )


def _row_to_subscription(row) -> Subscription:
    return Subscription(
        id=row["id"],
        name=row["name"],
        amount=row["amount"],
        currency=row["currency"],
        billing_frequency=row["billing_frequency"],
        next_payment_date=_parse_date(row["next_payment_date"]),
        category_id=row["category_id"],
        start_date=_parse_date(row["start_date"]),
        is_active=bool(row["is_active"]),
        custom_frequency_days=row["custom_frequency_days"],
        end_date=_parse_date(row["end_date"]),
        last_used_date=_parse_date(row["last_used_date"]),
        usage_rating=row["usage_rating"],
        description=row["description"],
        notes=row["notes"],
        website=row["website"],
        cancellation_url=row["cancellation_url"],
    )


def _row_to_pattern(row) -> SubscriptionPattern:
    return SubscriptionPattern(
        id=row["id"],
        subscription_id=row["subscription_id"],
        pattern=row["pattern"],
        pattern_type=row["pattern_type"],
        confidence_score=row["confidence_score"],
        created_by=row["created_by"],
        is_active=bool(row["is_active"]),
        usage_count=row["usage_count"],
    )


def _row_to_budget(row) -> Budget:
    return Budget(
        id=row["id"],
        name=row["name"],
        category_id=row["category_id"],
        amount=row["amount"],
        currency=row["currency"],
        period=row["period"],
        start_date=_parse_date(row["start_date"]),
        end_date=_parse_date(row["end_date"]),
        is_active=bool(row["is_active"]),
        alert_thresholds=json.loads(row["alert_thresholds"]),
        scenario_id=row["scenario_id"],
        description=row["description"],
    )


def _row_to_alert(row) -> BudgetAlert:
    return BudgetAlert(
        id=row["id"],
        budget_id=row["budget_id"],
        alert_type=row["alert_type"],
        message=row["message"],
        threshold_percentage=row["threshold_percentage"],
        is_read=bool(row["is_read"]),
        created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
    )


def _row_to_scenario(row) -> BudgetScenario:
    return BudgetScenario(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        is_active=bool(row["is_active"]),
    )


def _budget_status(percentage_spent: float) -> str:
    if percentage_spent >= 100:
        return "over-budget"
    if percentage_spent >= 85:
        return "at-risk"
    return "on-track"


class SQLiteRepository:
    """Repository backed by the shared aiosqlite connection from ``get_db()``."""

    _SUBSCRIPTION_FIELDS = {
        "name",
        "description",
        "amount",
        "currency",
        "billing_frequency",
        "custom_frequency_days",
        "next_payment_date",
        "category_id",
        "is_active",
        "start_date",
        "end_date",
        "last_used_date",
        "usage_rating",
        "notes",
        "website",
        "cancellation_url",
    }
    _BUDGET_FIELDS = {
        "name",
        "description",
        "category_id",
        "amount",
        "currency",
        "period",
        "start_date",
        "end_date",
        "is_active",
        "alert_thresholds",
        "scenario_id",
    }

    def __init__(self, adjust_confidence: AdjustConfidence = fixed_step_confidence):
        self.adjust_confidence = adjust_confidence

    # Transactions

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        db = await get_db()
        cursor = await db.execute(
            """INSERT INTO transactions
            (date, description, amount, currency, type, category_id, is_subscription, subscription_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                transaction.date.isoformat(),
                transaction.description,
                transaction.amount,
                transaction.currency,
                transaction.type,
                transaction.category_id,
                int(transaction.is_subscription),
                transaction.subscription_id,
            ),
        )
        await db.commit()
        return replace(transaction, id=cursor.lastrowid)

    async def find_all_transactions(self) -> list[Transaction]:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM transactions ORDER BY date DESC, id DESC")
        return [_row_to_transaction(row) for row in await cursor.fetchall()]

    async def find_transaction_by_id(self, transaction_id: int) -> Transaction | None:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM transactions WHERE id = ?", (transaction_id,))
        row = await cursor.fetchone()
        return _row_to_transaction(row) if row else None

    async def find_transactions_by_date_range(
        self, start: date, end: date, category_id: int | None = None, tx_type: str | None = None
    ) -> list[Transaction]:
        query = "SELECT * FROM transactions WHERE date >= ? AND date <= ?"
        params: list = [start.isoformat(), end.isoformat()]
        if category_id is not None:
            query += " AND category_id = ?"
            params.append(category_id)
        if tx_type is not None:
            query += " AND type = ?"
            params.append(tx_type)
        query += " ORDER BY date DESC, id DESC"
        db = await get_db()
        cursor = await db.execute(query, params)
        return [_row_to_transaction(row) for row in await cursor.fetchall()]

    async def calculate_summary(self, start: date | None = None, end: date | None = None) -> TransactionSummary:
        query = """SELECT
                COALESCE(SUM(CASE WHEN type = 'income' THEN amount ELSE 0 END), 0) AS income,
                COALESCE(SUM(CASE WHEN type = 'expense' THEN ABS(amount) ELSE 0 END), 0) AS expenses,
                COUNT(*) AS count
            FROM transactions WHERE 1 = 1"""
        params: list = []
        if start is not None:
            query += " AND date >= ?"
            params.append(start.isoformat())
        if end is not None:
            query += " AND date <= ?"
            params.append(end.isoformat())
        db = await get_db()
        cursor = await db.execute(query, params)
        row = await cursor.fetchone()
        return TransactionSummary(
            total_income=row["income"],
            total_expenses=row["expenses"],
            net_amount=row["income"] - row["expenses"],
            transaction_count=row["count"],
        )

    async def update_transaction_category(self, transaction_id: int, category_id: int | None) -> bool:
        db = await get_db()
        cursor = await db.execute(
            "UPDATE transactions SET category_id = ? WHERE id = ?",
            (category_id, transaction_id),
        )
        await db.commit()
        return cursor.rowcount > 0

    # Categories

    async def get_categories(self) -> list[Category]:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM categories ORDER BY name")
        return [Category(id=row["id"], name=row["name"], color=row["color"]) for row in await cursor.fetchall()]

    async def get_category_by_id(self, category_id: int) -> Category | None:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM categories WHERE id = ?", (category_id,))
        row = await cursor.fetchone()
        return Category(id=row["id"], name=row["name"], color=row["color"]) if row else None

    async def create_category(self, name: str, color: str | None = None) -> Category:
        db = await get_db()
        cursor = await db.execute("INSERT INTO categories (name, color) VALUES (?, ?)", (name, color))
        await db.commit()
        return Category(id=cursor.lastrowid, name=name, color=color)

    # Subscriptions

    async def create_subscription(self, subscription: Subscription) -> Subscription:
        fields = {k: _to_db(getattr(subscription, k)) for k in self._SUBSCRIPTION_FIELDS}
        columns = ", ".join(fields)
        placeholders = ", ".join("?" for _ in fields)
        db = await get_db()
        cursor = await db.execute(
            f"INSERT INTO subscriptions ({columns}) VALUES ({placeholders})",
            list(fields.values()),
        )
        await db.commit()
        return replace(subscription, id=cursor.lastrowid)

    async def find_all_subscriptions(self) -> list[Subscription]:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM subscriptions ORDER BY name")
        return [_row_to_subscription(row) for row in await cursor.fetchall()]

    async def find_subscription_by_id(self, subscription_id: int) -> Subscription | None:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription_id,))
        row = await cursor.fetchone()
        return _row_to_subscription(row) if row else None

    async def find_subscriptions_by_category(self, category_id: int) -> list[Subscription]:
        db = await get_db()
        cursor = await db.execute(
            "SELECT * FROM subscriptions WHERE category_id = ? ORDER BY name",
            (category_id,),
        )
        return [_row_to_subscription(row) for row in await cursor.fetchall()]

    async def find_active_subscriptions(self) -> list[Subscription]:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM subscriptions WHERE is_active = 1 ORDER BY name")
        return [_row_to_subscription(row) for row in await cursor.fetchall()]

    async def update_subscription(self, subscription_id: int, **fields) -> Subscription | None:
        fields = {k: _to_db(v) for k, v in fields.items() if k in self._SUBSCRIPTION_FIELDS}
        if fields:
            set_clause = ", ".join(f"{k} = ?" for k in fields)
            db = await get_db()
            await db.execute(
                f"UPDATE subscriptions SET {set_clause} WHERE id = ?",
                [*fields.values(), subscription_id],
            )
            await db.commit()
        return await self.find_subscription_by_id(subscription_id)

    async def delete_subscription(self, subscription_id: int) -> bool:
        db = await get_db()
        cursor = await db.execute("DELETE FROM subscriptions WHERE id = ?", (subscription_id,))
        await db.commit()
        return cursor.rowcount > 0

    async def find_upcoming_payments(self, days: int) -> list[Subscription]:
        today = date.today()
        db = await get_db()
        cursor = await db.execute(
            """SELECT * FROM subscriptions
            WHERE is_active = 1 AND next_payment_date >= ? AND next_payment_date <= ?
            ORDER BY next_payment_date""",
            (today.isoformat(), (today + timedelta(days=days)).isoformat()),
        )
        return [_row_to_subscription(row) for row in await cursor.fetchall()]

    async def calculate_total_monthly_cost(self) -> float:
        subscriptions = await self.find_active_subscriptions()
        return sum(s.monthly_amount() for s in subscriptions)

    async def find_unused_subscriptions(self, days: int) -> list[Subscription]:
        cutoff = date.today() - timedelta(days=days)
        db = await get_db()
        cursor = await db.execute(
            """SELECT * FROM subscriptions
            WHERE is_active = 1 AND (last_used_date IS NULL OR last_used_date < ?)
            ORDER BY last_used_date""",
            (cutoff.isoformat(),),
        )
        return [_row_to_subscription(row) for row in await cursor.fetchall()]

    # Subscription patterns

    async def create_subscription_pattern(self, pattern: SubscriptionPattern) -> SubscriptionPattern:
        db = await get_db()
        cursor = await db.execute(
            """INSERT INTO subscription_patterns
            (subscription_id, pattern, pattern_type, confidence_score, created_by, is_active, usage_count)
            VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                pattern.subscription_id,
                pattern.pattern,
                pattern.pattern_type,
                pattern.confidence_score,
                pattern.created_by,
                int(pattern.is_active),
                pattern.usage_count,
            ),
        )
        await db.commit()
        return replace(pattern, id=cursor.lastrowid)

    async def find_patterns_by_subscription(self, subscription_id: int) -> list[SubscriptionPattern]:
        db = await get_db()
        cursor = await db.execute(
            """SELECT * FROM subscription_patterns
            WHERE subscription_id = ? AND is_active = 1
            ORDER BY confidence_score DESC, id""",
            (subscription_id,),
        )
        return [_row_to_pattern(row) for row in await cursor.fetchall()]

    async def update_pattern_usage(self, pattern_id: int, was_correct: bool) -> SubscriptionPattern | None:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM subscription_patterns WHERE id = ?", (pattern_id,))
        row = await cursor.fetchone()
        if not row:
            return None
        pattern = _row_to_pattern(row)
        confidence = self.adjust_confidence(pattern.confidence_score, was_correct)
        await db.execute(
            """UPDATE subscription_patterns
            SET confidence_score = ?, usage_count = usage_count + 1, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?""",
            (confidence, pattern_id),
        )
        await db.commit()
        return replace(pattern, confidence_score=confidence, usage_count=pattern.usage_count + 1)

    async def delete_subscription_pattern(self, pattern_id: int) -> bool:
        db = await get_db()
        cursor = await db.execute("DELETE FROM subscription_patterns WHERE id = ?", (pattern_id,))
        await db.commit()
        return cursor.rowcount > 0

    # Transaction <-> subscription linkage

    async def flag_transaction_as_subscription(self, transaction_id: int, subscription_id: int) -> bool:
        db = await get_db()
        cursor = await db.execute(
            "UPDATE transactions SET is_subscription = 1, subscription_id = ? WHERE id = ?",
            (subscription_id, transaction_id),
        )
        await db.commit()
        return cursor.rowcount > 0

    async def unflag_transaction_as_subscription(self, transaction_id: int) -> bool:
        db = await get_db()
        cursor = await db.execute(
            "UPDATE transactions SET is_subscription = 0, subscription_id = NULL WHERE id = ?",
            (transaction_id,),
        )
        await db.commit()
        return cursor.rowcount > 0

    async def find_subscription_transactions(self, subscription_id: int) -> list[Transaction]:
        db = await get_db()
        cursor = await db.execute(
            "SELECT * FROM transactions WHERE subscription_id = ? ORDER BY date DESC",
            (subscription_id,),
        )
        return [_row_to_transaction(row) for row in await cursor.fetchall()]

    # Budgets

    async def create_budget(self, budget: Budget) -> Budget:
        fields = {k: _to_db(getattr(budget, k)) for k in self._BUDGET_FIELDS}
        columns = ", ".join(fields)
        placeholders = ", ".join("?" for _ in fields)
        db = await get_db()
        cursor = await db.execute(
            f"INSERT INTO budgets ({columns}) VALUES ({placeholders})",
            list(fields.values()),
        )
        await db.commit()
        return replace(budget, id=cursor.lastrowid)

    async def _find_budgets(self, where: str = "1 = 1", params: tuple = ()) -> list[Budget]:
        db = await get_db()
        cursor = await db.execute(f"SELECT * FROM budgets WHERE {where} ORDER BY name, id", params)
        return [_row_to_budget(row) for row in await cursor.fetchall()]

    async def find_all_budgets(self) -> list[Budget]:
        return await self._find_budgets()

    async def find_budget_by_id(self, budget_id: int) -> Budget | None:
        budgets = await self._find_budgets("id = ?", (budget_id,))
        return budgets[0] if budgets else None

    async def find_budgets_by_category(self, category_id: int) -> list[Budget]:
        return await self._find_budgets("category_id = ?", (category_id,))

    async def find_budgets_by_period(self, start: date, end: date) -> list[Budget]:
        return await self._find_budgets(
            "start_date <= ? AND (end_date IS NULL OR end_date >= ?)",
            (end.isoformat(), start.isoformat()),
        )

    async def find_budgets_by_scenario(self, scenario_id: int) -> list[Budget]:
        return await self._find_budgets("scenario_id = ?", (scenario_id,))

    async def find_budgets_by_active_scenario(self) -> list[Budget]:
        active = await self.find_active_budget_scenario()
        if active is None:
            return await self._find_budgets("scenario_id IS NULL")
        return await self.find_budgets_by_scenario(active.id)

    async def update_budget(self, budget_id: int, **fields) -> Budget | None:
        fields = {k: _to_db(v) for k, v in fields.items() if k in self._BUDGET_FIELDS}
        if fields:
            set_clause = ", ".join(f"{k} = ?" for k in fields)
            db = await get_db()
            await db.execute(
                f"UPDATE budgets SET {set_clause} WHERE id = ?",
                [*fields.values(), budget_id],
            )
            await db.commit()
        return await self.find_budget_by_id(budget_id)

    async def delete_budget(self, budget_id: int) -> bool:
        db = await get_db()
        cursor = await db.execute("DELETE FROM budgets WHERE id = ?", (budget_id,))
        await db.commit()
        return cursor.rowcount > 0

    async def _category_subscription_cost(self, category_id: int) -> float:
        subscriptions = await self.find_subscriptions_by_category(category_id)
        return sum(s.monthly_amount() for s in subscriptions if s.is_active)

    async def calculate_budget_progress(self, budget_id: int) -> BudgetProgress | None:
        budget = await self.find_budget_by_id(budget_id)
        if budget is None:
            return None

        today = date.today()
        start, end = effective_period(budget.start_date, budget.end_date, budget.period, today)
        db = await get_db()
        cursor = await db.execute(
            """SELECT COALESCE(SUM(ABS(amount)), 0) AS spent FROM transactions
            WHERE category_id = ? AND type = 'expense' AND date >= ? AND date <= ?""",
            (budget.category_id, start.isoformat(), end.isoformat()),
        )
        spent = (await cursor.fetchone())["spent"]

        percentage = spent / budget.amount * 100
        days_remaining = max(0, (end - today).days + 1)
        total_days = inclusive_days(start, end)
        days_elapsed = max(1, total_days - days_remaining)
        average_daily = spent / days_elapsed

        allocated = await self._category_subscription_cost(budget.category_id) * total_days / DAYS_PER_MONTH

        return BudgetProgress(
            budget=budget,
            current_spent=spent,
            remaining_amount=max(0.0, budget.amount - spent),
            percentage_spent=percentage,
            status=_budget_status(percentage),
            projected_spent=spent + average_daily * days_remaining,
            days_remaining=days_remaining,
            average_daily_spend=average_daily,
            subscription_allocated=allocated,
            variable_spent=max(0.0, spent - allocated),
            period_start=start,
            period_end=end,
        )

    async def analyze_historical_spending(self, category_id: int, months: int) -> SpendingAnalysis:
        today = date.today()
        transactions = await self.find_transactions_by_date_range(
            add_months(today, -months), today, category_id=category_id, tx_type="expense"
        )
        subscription_costs = await self._category_subscription_cost(category_id)

        if not transactions:
            return SpendingAnalysis(
                category_id=category_id,
                period_months=months,
                average_monthly=0.0,
                min_monthly=0.0,
                max_monthly=0.0,
                standard_deviation=0.0,
                trend=0.0,
                subscription_costs=subscription_costs,
                variable_spending=0.0,
                confidence=0.1,
            )

        by_month: dict[str, float] = defaultdict(float)
        for t in transactions:
            by_month[month_key(t.date)] += abs(t.amount)
        totals = np.array([by_month[k] for k in sorted(by_month)])

        average = float(totals.mean())
        std = float(totals.std())
        trend = float(np.polyfit(np.arange(len(totals)), totals, 1)[0]) if len(totals) >= 2 else 0.0

        factors = [
            min(1.0, len(totals) / 6),
            min(1.0, len(transactions) / 20),
            max(0.0, 1 - std / max(1.0, average)),
        ]
        confidence = max(0.1, min(1.0, sum(factors) / len(factors)))

        return SpendingAnalysis(
            category_id=category_id,
            period_months=months,
            average_monthly=average,
            min_monthly=float(totals.min()),
            max_monthly=float(totals.max()),
            standard_deviation=std,
            trend=trend,
            subscription_costs=subscription_costs,
            variable_spending=max(0.0, average - subscription_costs),
            confidence=confidence,
        )

    # Scenarios

    async def create_budget_scenario(self, scenario: BudgetScenario) -> BudgetScenario:
        db = await get_db()
        cursor = await db.execute(
            "INSERT INTO budget_scenarios (name, description, is_active) VALUES (?, ?, 0)",
            (scenario.name, scenario.description),
        )
        await db.commit()
        created = replace(scenario, id=cursor.lastrowid, is_active=False)
        if scenario.is_active:
            await self.activate_budget_scenario(created.id)
            created = replace(created, is_active=True)
        return created

    async def find_all_budget_scenarios(self) -> list[BudgetScenario]:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM budget_scenarios ORDER BY id")
        return [_row_to_scenario(row) for row in await cursor.fetchall()]

    async def find_budget_scenario_by_id(self, scenario_id: int) -> BudgetScenario | None:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM budget_scenarios WHERE id = ?", (scenario_id,))
        row = await cursor.fetchone()
        return _row_to_scenario(row) if row else None

    async def find_active_budget_scenario(self) -> BudgetScenario | None:
        db = await get_db()
        cursor = await db.execute("SELECT * FROM budget_scenarios WHERE is_active = 1 LIMIT 1")
        row = await cursor.fetchone()
        return _row_to_scenario(row) if row else None

    async def activate_budget_scenario(self, scenario_id: int) -> bool:
        db = await get_db()
        cursor = await db.execute("SELECT id FROM budget_scenarios WHERE id = ?", (scenario_id,))
        if not await cursor.fetchone():
            return False
        await db.execute("UPDATE budget_scenarios SET is_active = (id = ?)", (scenario_id,))
        await db.commit()
        logger.info("Activated budget scenario %s", scenario_id)
        return True

    # Alerts

    async def create_budget_alert(self, alert: BudgetAlert) -> BudgetAlert:
        db = await get_db()
        cursor = await db.execute(
            """INSERT INTO budget_alerts (budget_id, alert_type, threshold_percentage, message, is_read)
            VALUES (?, ?, ?, ?, ?)""",
            (alert.budget_id, alert.alert_type, alert.threshold_percentage, alert.message, int(alert.is_read)),
        )
        await db.commit()
        return replace(alert, id=cursor.lastrowid)

    async def find_budget_alerts(self, budget_id: int | None = None) -> list[BudgetAlert]:
        db = await get_db()
        if budget_id is None:
            cursor = await db.execute("SELECT * FROM budget_alerts ORDER BY created_at DESC, id DESC")
        else:
            cursor = await db.execute(
                "SELECT * FROM budget_alerts WHERE budget_id = ? ORDER BY created_at DESC, id DESC",
                (budget_id,),
            )
        return [_row_to_alert(row) for row in await cursor.fetchall()]

    async def find_unread_budget_alerts(self, budget_id: int | None = None) -> list[BudgetAlert]:
        alerts = await self.find_budget_alerts(budget_id)
        return [a for a in alerts if not a.is_read]

    async def mark_budget_alert_as_read(self, alert_id: int) -> bool:
        db = await get_db()
        cursor = await db.execute("UPDATE budget_alerts SET is_read = 1 WHERE id = ?", (alert_id,))
        await db.commit()
        return cursor.rowcount > 0
