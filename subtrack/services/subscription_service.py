import logging
from dataclasses import dataclass, field, fields, replace
from datetime import date

from subtrack.categories import pick_default_category
from subtrack.config import settings
from subtrack.currency import resolve_currency
from subtrack.db.models import (
    BILLING_FREQUENCIES,
    PATTERN_TYPES,
    DetectionResult,
    Subscription,
    SubscriptionCandidate,
    SubscriptionMatch,
    SubscriptionPattern,
    Transaction,
)
from subtrack.db.repository import Repository
from subtrack.errors import NotFoundError, OperationError, SubtrackError, ValidationError
from subtrack.periods import advance_by_frequency
from subtrack.services.subscription_budget_service import SubscriptionBudgetService
from subtrack.services.subscription_patterns import SubscriptionPatternEngine

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {f.name for f in fields(Subscription)} - {"id", "created_at"}


@dataclass(slots=True)
class SubscriptionRequest:
    name: str
    amount: float
    billing_frequency: str
    next_payment_date: date
    category_id: int
    currency: str | None = None
    custom_frequency_days: int | None = None
    start_date: date | None = None
    description: str | None = None
    notes: str | None = None
    website: str | None = None
    cancellation_url: str | None = None
    usage_rating: int | None = None
    transaction_ids: list[int] = field(default_factory=list)


def validate_subscription(
    name: str,
    amount: float,
    billing_frequency: str,
    custom_frequency_days: int | None,
    usage_rating: int | None = None,
) -> None:
    if not name or not name.strip():
        raise ValidationError("Subscription name is required")
    if amount <= 0:
        raise ValidationError("Subscription amount must be positive")
    if billing_frequency not in BILLING_FREQUENCIES:
        raise ValidationError(f"Invalid billing frequency: {billing_frequency}")
    if billing_frequency == "custom" and (not custom_frequency_days or custom_frequency_days <= 0):
        raise ValidationError("Custom frequency requires custom_frequency_days")
    if usage_rating is not None and not 1 <= usage_rating <= 5:
        raise ValidationError("Usage rating must be between 1 and 5")


class SubscriptionService:
    def __init__(self, repository: Repository):
        self.repository = repository
        self.engine = SubscriptionPatternEngine(repository)
        self.budget_integration = SubscriptionBudgetService(repository)

    # CRUD

    async def create_subscription(self, request: SubscriptionRequest) -> Subscription:
        validate_subscription(
            request.name,
            request.amount,
            request.billing_frequency,
            request.custom_frequency_days,
            request.usage_rating,
        )
        if await self.repository.get_category_by_id(request.category_id) is None:
            raise NotFoundError("Category", request.category_id)

        try:
            subscription = await self.repository.create_subscription(
                Subscription(
                    id=None,
                    name=request.name.strip(),
                    amount=request.amount,
                    currency=resolve_currency(request.currency),
                    billing_frequency=request.billing_frequency,
                    custom_frequency_days=request.custom_frequency_days,
                    next_payment_date=request.next_payment_date,
                    category_id=request.category_id,
                    start_date=request.start_date or date.today(),
                    usage_rating=request.usage_rating,
                    description=request.description,
                    notes=request.notes,
                    website=request.website,
                    cancellation_url=request.cancellation_url,
                )
            )
            if request.transaction_ids:
                await self.flag_transactions(request.transaction_ids, subscription.id)
                transactions = [
                    t
                    for t in [await self.repository.find_transaction_by_id(i) for i in request.transaction_ids]
                    if t is not None
                ]
                await self.engine.create_patterns_for_subscription(subscription.id, transactions)
        except SubtrackError:
            raise
        except Exception as e:
            raise OperationError("create subscription", e) from e

        logger.info("Created subscription %s", subscription.name, extra={"subscription_id": subscription.id})
        await self.budget_integration.on_subscription_created(subscription)
        return subscription

    async def get_subscriptions(self) -> list[Subscription]:
        return await self.repository.find_all_subscriptions()

    async def get_active_subscriptions(self) -> list[Subscription]:
        return await self.repository.find_active_subscriptions()

    async def get_subscription(self, subscription_id: int) -> Subscription:
        subscription = await self.repository.find_subscription_by_id(subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription", subscription_id)
        return subscription

    async def update_subscription(self, subscription_id: int, **updates) -> Subscription:
        unknown = set(updates) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown subscription fields: {', '.join(sorted(unknown))}")
        existing = await self.get_subscription(subscription_id)
        merged = replace(existing, **updates)
        validate_subscription(
            merged.name,
            merged.amount,
            merged.billing_frequency,
            merged.custom_frequency_days,
            merged.usage_rating,
        )
        if "category_id" in updates and await self.repository.get_category_by_id(merged.category_id) is None:
            raise NotFoundError("Category", merged.category_id)

        try:
            updated = await self.repository.update_subscription(subscription_id, **updates)
        except Exception as e:
            raise OperationError("update subscription", e) from e

        await self.budget_integration.on_subscription_updated(existing, updated)
        return updated

    async def cancel_subscription(self, subscription_id: int) -> Subscription:
        existing = await self.get_subscription(subscription_id)
        try:
            cancelled = await self.repository.update_subscription(
                subscription_id, is_active=False, end_date=date.today()
            )
        except Exception as e:
            raise OperationError("cancel subscription", e) from e
        logger.info("Cancelled subscription %s", existing.name, extra={"subscription_id": subscription_id})
        await self.budget_integration.on_subscription_deleted(existing)
        return cancelled

    async def delete_subscription(self, subscription_id: int) -> bool:
        existing = await self.get_subscription(subscription_id)
        try:
            for t in await self.repository.find_subscription_transactions(subscription_id):
                await self.repository.unflag_transaction_as_subscription(t.id)
            for p in await self.repository.find_patterns_by_subscription(subscription_id):
                await self.repository.delete_subscription_pattern(p.id)
            deleted = await self.repository.delete_subscription(subscription_id)
        except Exception as e:
            raise OperationError("delete subscription", e) from e

        logger.info("Deleted subscription %s", existing.name, extra={"subscription_id": subscription_id})
        if existing.is_active:
            await self.budget_integration.on_subscription_deleted(existing)
        return deleted

    # Detection and confirmation

    async def detect_subscriptions(self, transactions: list[Transaction] | None = None) -> DetectionResult:
        if transactions is None:
            transactions = await self.repository.find_all_transactions()
        unflagged = [t for t in transactions if not t.is_subscription]
        candidates = await self.engine.detect_subscriptions(unflagged)
        matches = await self.engine.match_existing_subscriptions(transactions)
        return DetectionResult(
            candidates=candidates,
            matches=matches,
            total_transactions=len(transactions),
            already_flagged=len(transactions) - len(unflagged),
        )

    async def _default_category_id(self) -> int:
        category = pick_default_category(await self.repository.get_categories())
        if category is None:
            raise ValidationError("No category available for subscription")
        return category.id

    async def confirm_subscription(
        self, candidate: SubscriptionCandidate, overrides: dict | None = None
    ) -> Subscription:
        overrides = overrides or {}
        unknown = set(overrides) - {f.name for f in fields(SubscriptionRequest)}
        if unknown:
            raise ValidationError(f"Unknown subscription fields: {', '.join(sorted(unknown))}")
        if not candidate.matching_transactions:
            raise ValidationError("Candidate has no matching transactions")
        dates = [t.date for t in candidate.matching_transactions]
        frequency = overrides.get("billing_frequency", candidate.billing_frequency)
        custom_days = overrides.get("custom_frequency_days")

        data = {
            "name": candidate.name,
            "amount": candidate.amount,
            "currency": candidate.currency,
            "billing_frequency": frequency,
            "custom_frequency_days": custom_days,
            "next_payment_date": advance_by_frequency(max(dates), frequency, custom_days),
            "start_date": min(dates),
            "transaction_ids": [t.id for t in candidate.matching_transactions],
        }
        data.update(overrides)
        if not data.get("category_id"):
            data["category_id"] = candidate.category_id or await self._default_category_id()

        return await self.create_subscription(SubscriptionRequest(**data))

    async def confirm_subscription_matches(self, matches: list[SubscriptionMatch]) -> int:
        confirmed = 0
        for match in matches:
            if await self.repository.flag_transaction_as_subscription(match.transaction_id, match.subscription_id):
                await self.engine.update_pattern_confidence(match.matched_pattern.id, True)
                confirmed += 1
        return confirmed

    # Queries

    async def get_upcoming_payments(self, days: int | None = None) -> list[Subscription]:
        return await self.repository.find_upcoming_payments(days or settings.upcoming_payment_days)

    async def get_total_monthly_cost(self) -> float:
        return await self.repository.calculate_total_monthly_cost()

    async def get_unused_subscriptions(self, days: int | None = None) -> list[Subscription]:
        return await self.repository.find_unused_subscriptions(days or settings.unused_subscription_days)

    async def get_subscriptions_by_category(self, category_id: int) -> list[Subscription]:
        return await self.repository.find_subscriptions_by_category(category_id)

    async def get_subscription_transactions(self, subscription_id: int) -> list[Transaction]:
        return await self.repository.find_subscription_transactions(subscription_id)

    # Patterns

    async def get_subscription_patterns(self, subscription_id: int) -> list[SubscriptionPattern]:
        return await self.repository.find_patterns_by_subscription(subscription_id)

    async def add_subscription_pattern(
        self, subscription_id: int, pattern: str, pattern_type: str = "contains"
    ) -> SubscriptionPattern:
        await self.get_subscription(subscription_id)
        if not pattern.strip():
            raise ValidationError("Pattern must not be empty")
        if pattern_type not in PATTERN_TYPES:
            raise ValidationError(f"Invalid pattern type: {pattern_type}")
        return await self.repository.create_subscription_pattern(
            SubscriptionPattern(
                id=None,
                subscription_id=subscription_id,
                pattern=pattern,
                pattern_type=pattern_type,
                confidence_score=1.0,
                created_by="user",
            )
        )

    async def delete_subscription_pattern(self, pattern_id: int) -> bool:
        return await self.repository.delete_subscription_pattern(pattern_id)

    async def update_pattern_confidence(self, pattern_id: int, was_correct: bool) -> SubscriptionPattern | None:
        return await self.engine.update_pattern_confidence(pattern_id, was_correct)

    # Flags

    async def flag_transactions(self, transaction_ids: list[int], subscription_id: int) -> int:
        flagged = 0
        for transaction_id in transaction_ids:
            if await self.repository.flag_transaction_as_subscription(transaction_id, subscription_id):
                flagged += 1
        return flagged

    async def unflag_transactions(self, transaction_ids: list[int]) -> int:
        unflagged = 0
        for transaction_id in transaction_ids:
            if await self.repository.unflag_transaction_as_subscription(transaction_id):
                unflagged += 1
        return unflagged
