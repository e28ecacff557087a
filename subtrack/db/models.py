from dataclasses import dataclass, field
from datetime import date, datetime

from subtrack.errors import ValidationError
from subtrack.periods import DAYS_PER_MONTH

BILLING_FREQUENCIES = ("monthly", "quarterly", "annually", "custom")
PATTERN_TYPES = ("exact", "contains", "starts_with", "regex")
BUDGET_PERIODS = ("monthly", "yearly")
ALERT_TYPES = (
    "threshold",
    "projection",
    "large_transaction",
    "bulk_import",
    "subscription_added",
    "subscription_removed",
    "subscription_category_changed",
    "subscription_amount_changed",
    "subscription_frequency_changed",
    "subscription_renewal",
    "subscription_insufficient_budget",
)


@dataclass(slots=True)
class Category:
    id: int | None
    name: str
    color: str | None = None


@dataclass(slots=True)
class Transaction:
    id: int | None
    date: date
    description: str
    amount: float
    type: str = "expense"
    currency: str | None = None
    category_id: int | None = None
    is_subscription: bool = False
    subscription_id: int | None = None


@dataclass(slots=True)
class TransactionSummary:
    total_income: float
    total_expenses: float
    net_amount: float
    transaction_count: int


def monthly_equivalent(amount: float, frequency: str, custom_days: int | None = None) -> float:
    if frequency == "monthly":
        return amount
    if frequency == "quarterly":
        return amount / 3
    if frequency == "annually":
        return amount / 12
    if frequency == "custom":
        if not custom_days:
            raise ValidationError("Custom frequency requires custom_frequency_days")
        return amount / (custom_days / DAYS_PER_MONTH)
    raise ValidationError(f"Unknown billing frequency: {frequency}")


@dataclass(slots=True)
class Subscription:
    id: int | None
    name: str
    amount: float
    currency: str
    billing_frequency: str
    next_payment_date: date
    category_id: int
    start_date: date
    is_active: bool = True
    custom_frequency_days: int | None = None
    end_date: date | None = None
    last_used_date: date | None = None
    usage_rating: int | None = None
    description: str | None = None
    notes: str | None = None
    website: str | None = None
    cancellation_url: str | None = None
    created_at: datetime | None = None

    def monthly_amount(self) -> float:
        return monthly_equivalent(self.amount, self.billing_frequency, self.custom_frequency_days)


@dataclass(slots=True)
class SubscriptionPattern:
    id: int | None
    subscription_id: int
    pattern: str
    pattern_type: str
    confidence_score: float = 1.0
    created_by: str = "user"
    is_active: bool = True
    usage_count: int = 0


@dataclass(slots=True)
class DetectedPattern:
    pattern: str
    pattern_type: str
    confidence: float


@dataclass(slots=True)
class RecurringPattern:
    description: str
    amount: float
    currency: str
    frequency: str
    confidence: float
    transactions: list[Transaction]
    category_id: int | None = None


@dataclass(slots=True)
class SubscriptionCandidate:
    name: str
    amount: float
    currency: str
    billing_frequency: str
    confidence: float
    matching_transactions: list[Transaction]
    detected_patterns: list[DetectedPattern]
    reason: str
    category_id: int | None = None


@dataclass(slots=True)
class SubscriptionMatch:
    transaction_id: int
    subscription_id: int
    confidence: float
    matched_pattern: SubscriptionPattern


@dataclass(slots=True)
class DetectionResult:
    candidates: list[SubscriptionCandidate]
    matches: list[SubscriptionMatch]
    total_transactions: int
    already_flagged: int


@dataclass(slots=True)
class BudgetScenario:
    id: int | None
    name: str
    description: str | None = None
    is_active: bool = False


@dataclass(slots=True)
class Budget:
    id: int | None
    name: str
    category_id: int
    amount: float
    currency: str
    period: str
    start_date: date
    end_date: date | None = None
    is_active: bool = True
    alert_thresholds: list[int] = field(default_factory=lambda: [50, 75, 90, 100])
    scenario_id: int | None = None
    description: str | None = None

    @property
    def monthly_amount(self) -> float:
        return self.amount / 12 if self.period == "yearly" else self.amount


@dataclass(slots=True)
class BudgetProgress:
    budget: Budget
    current_spent: float
    remaining_amount: float
    percentage_spent: float
    status: str
    projected_spent: float
    days_remaining: int
    average_daily_spend: float
    subscription_allocated: float
    variable_spent: float
    period_start: date
    period_end: date

    @property
    def budget_id(self) -> int:
        return self.budget.id


@dataclass(slots=True)
class BudgetAlert:
    id: int | None
    budget_id: int
    alert_type: str
    message: str
    threshold_percentage: float | None = None
    is_read: bool = False
    created_at: datetime | None = None


@dataclass(slots=True)
class SpendingAnalysis:
    category_id: int
    period_months: int
    average_monthly: float
    min_monthly: float
    max_monthly: float
    standard_deviation: float
    trend: float
    subscription_costs: float
    variable_spending: float
    confidence: float


@dataclass(slots=True)
class MonthlyVariance:
    month: str
    budgeted: float
    actual: float
    variance: float
    variance_percentage: float


@dataclass(slots=True)
class VarianceAnalysis:
    budget_id: int
    monthly_variances: list[MonthlyVariance]
    average_variance: float
    total_overspend: float
    total_underspend: float
    variance_standard_deviation: float
    insights: list[str]


@dataclass(slots=True)
class BudgetProjection:
    budget_id: int
    projected_total_spent: float
    projected_end_date: date
    risk_level: str
    days_until_depletion: int | None
    recommended_daily_spend: float


@dataclass(slots=True)
class BudgetAmount:
    amount: float
    reasoning: str
    confidence: float


@dataclass(slots=True)
class BudgetTiers:
    conservative: BudgetAmount
    moderate: BudgetAmount
    aggressive: BudgetAmount


@dataclass(slots=True)
class BudgetSuggestion:
    category_id: int
    category_name: str
    period: str
    tiers: BudgetTiers
    historical: SpendingAnalysis
    subscription_costs: float
    subscription_count: int
    confidence: float
