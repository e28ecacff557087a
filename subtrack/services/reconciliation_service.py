import logging
from dataclasses import dataclass, field
from datetime import date

from subtrack.config import settings
from subtrack.db.models import Subscription, SubscriptionPattern, Transaction
from subtrack.db.repository import Repository
from subtrack.errors import NotFoundError
from subtrack.matching import compact, fuzzy_contains
from subtrack.periods import add_months, advance_by_frequency

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReconciliationSummary:
    updated: int = 0
    errors: list[str] = field(default_factory=list)


def description_matches(description: str, pattern: SubscriptionPattern) -> bool:
    text = compact(description)
    needle = compact(pattern.pattern)
    if pattern.pattern_type == "exact":
        return text == needle
    if pattern.pattern_type == "contains":
        return needle in text or fuzzy_contains(text, needle)
    if pattern.pattern_type == "starts_with":
        return text.startswith(needle)
    return False


def next_payment_date(last_payment: date, subscription: Subscription) -> date:
    return advance_by_frequency(
        last_payment, subscription.billing_frequency, subscription.custom_frequency_days
    )


class ReconciliationService:
    """Advances subscriptions' next payment dates from matching transactions."""

    def __init__(self, repository: Repository):
        self.repository = repository

    async def _find_matching_transactions(self, patterns: list[SubscriptionPattern]) -> list[Transaction]:
        today = date.today()
        start = add_months(today, -settings.reconcile_lookback_months)
        transactions = await self.repository.find_transactions_by_date_range(start, today, tx_type="expense")
        return [t for t in transactions if any(description_matches(t.description, p) for p in patterns)]

    async def reconcile_subscription(self, subscription: Subscription) -> bool:
        patterns = await self.repository.find_patterns_by_subscription(subscription.id)
        if not patterns:
            # first sighting: seed a name pattern and reconcile on the next run
            await self.repository.create_subscription_pattern(
                SubscriptionPattern(
                    id=None,
                    subscription_id=subscription.id,
                    pattern=subscription.name.lower(),
                    pattern_type="contains",
                    confidence_score=0.8,
                    created_by="system",
                )
            )
            logger.info("Created default pattern", extra={"subscription_id": subscription.id})
            return False

        matching = await self._find_matching_transactions(patterns)
        if not matching:
            return False

        latest = max(matching, key=lambda t: t.date)
        next_date = next_payment_date(latest.date, subscription)
        if next_date == subscription.next_payment_date:
            return False

        await self.repository.update_subscription(subscription.id, next_payment_date=next_date)
        await self.repository.flag_transaction_as_subscription(latest.id, subscription.id)
        logger.info(
            "Advanced %s next payment to %s",
            subscription.name,
            next_date.isoformat(),
            extra={"subscription_id": subscription.id},
        )
        return True

    async def reconcile_all(self) -> ReconciliationSummary:
        summary = ReconciliationSummary()
        for subscription in await self.repository.find_active_subscriptions():
            try:
                if await self.reconcile_subscription(subscription):
                    summary.updated += 1
            except Exception as e:
                logger.warning(
                    "Reconciliation failed for %s",
                    subscription.name,
                    exc_info=True,
                    extra={"subscription_id": subscription.id},
                )
                summary.errors.append(f"Failed to reconcile {subscription.name}: {e}")
        return summary

    async def reconcile_subscription_by_name(self, name: str) -> bool:
        wanted = name.lower()
        for subscription in await self.repository.find_all_subscriptions():
            if wanted in subscription.name.lower() or subscription.name.lower() in wanted:
                return await self.reconcile_subscription(subscription)
        raise NotFoundError("Subscription", name)
