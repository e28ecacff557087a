from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest

from subtrack.db.models import Subscription, SubscriptionPattern, Transaction
from subtrack.errors import NotFoundError
from subtrack.periods import add_months
from subtrack.services.reconciliation_service import (
    ReconciliationService,
    description_matches,
    next_payment_date,
)

TODAY = date.today()


def _sub(category_id, name="Netflix", **kwargs):
    return Subscription(
        id=kwargs.pop("id", None),
        name=name,
        amount=149.0,
        currency="NOK",
        billing_frequency=kwargs.pop("billing_frequency", "monthly"),
        next_payment_date=kwargs.pop("next_payment_date", TODAY - timedelta(days=90)),
        category_id=category_id,
        start_date=TODAY - timedelta(days=365),
        **kwargs,
    )


def _pattern(subscription_id, pattern="netflix", pattern_type="contains"):
    return SubscriptionPattern(
        id=None,
        subscription_id=subscription_id,
        pattern=pattern,
        pattern_type=pattern_type,
        confidence_score=0.8,
        created_by="system",
    )


async def _add_tx(repo, days_ago, description="NETFLIX.COM", tx_type="expense"):
    return await repo.create_transaction(
        Transaction(
            id=None,
            date=TODAY - timedelta(days=days_ago),
            description=description,
            amount=-149.0 if tx_type == "expense" else 149.0,
            type=tx_type,
        )
    )


async def test_first_run_seeds_name_pattern(repo, category):
    sub = await repo.create_subscription(_sub(category.id, "Netflix"))
    service = ReconciliationService(repo)

    assert await service.reconcile_subscription(sub) is False

    patterns = await repo.find_patterns_by_subscription(sub.id)
    assert len(patterns) == 1
    assert patterns[0].pattern == "netflix"
    assert patterns[0].pattern_type == "contains"
    assert patterns[0].confidence_score == 0.8
    assert patterns[0].created_by == "system"


async def test_advances_next_payment_from_latest_match(repo, category):
    sub = await repo.create_subscription(_sub(category.id))
    await repo.create_subscription_pattern(_pattern(sub.id))
    await _add_tx(repo, 40)
    latest = await _add_tx(repo, 10)
    service = ReconciliationService(repo)

    assert await service.reconcile_subscription(sub) is True

    updated = await repo.find_subscription_by_id(sub.id)
    assert updated.next_payment_date == add_months(latest.date, 1)
    flagged = await repo.find_subscription_transactions(sub.id)
    assert [t.id for t in flagged] == [latest.id]


async def test_no_change_when_already_current(repo, category):
    latest_date = TODAY - timedelta(days=10)
    sub = await repo.create_subscription(_sub(category.id, next_payment_date=add_months(latest_date, 1)))
    await repo.create_subscription_pattern(_pattern(sub.id))
    await _add_tx(repo, 10)

    assert await ReconciliationService(repo).reconcile_subscription(sub) is False


async def test_ignores_income_and_old_transactions(repo, category):
    sub = await repo.create_subscription(_sub(category.id))
    await repo.create_subscription_pattern(_pattern(sub.id))
    await _add_tx(repo, 5, tx_type="income")
    await _add_tx(repo, 400)

    assert await ReconciliationService(repo).reconcile_subscription(sub) is False


async def test_custom_frequency_advances_by_days(repo, category):
    sub = await repo.create_subscription(
        _sub(category.id, billing_frequency="custom", custom_frequency_days=14)
    )
    await repo.create_subscription_pattern(_pattern(sub.id))
    latest = await _add_tx(repo, 3)

    assert await ReconciliationService(repo).reconcile_subscription(sub) is True
    updated = await repo.find_subscription_by_id(sub.id)
    assert updated.next_payment_date == latest.date + timedelta(days=14)


async def test_misspelled_merchant_matches_fuzzily(repo, category):
    sub = await repo.create_subscription(_sub(category.id))
    await repo.create_subscription_pattern(_pattern(sub.id, "netflix.com"))
    await _add_tx(repo, 2, "NETFLX.COM")

    assert await ReconciliationService(repo).reconcile_subscription(sub) is True


async def test_short_pattern_ignores_unrelated_merchant(repo, category):
    sub = await repo.create_subscription(_sub(category.id, "Max"))
    await repo.create_subscription_pattern(_pattern(sub.id, "max"))
    bar = await _add_tx(repo, 2, "BAR ROMA")

    assert await ReconciliationService(repo).reconcile_subscription(sub) is False

    assert (await repo.find_subscription_by_id(sub.id)).next_payment_date == sub.next_payment_date
    assert (await repo.find_transaction_by_id(bar.id)).is_subscription is False


async def test_reconcile_all_counts_updates(repo, category):
    netflix = await repo.create_subscription(_sub(category.id, "Netflix"))
    await repo.create_subscription_pattern(_pattern(netflix.id))
    await repo.create_subscription(_sub(category.id, "Spotify"))
    await _add_tx(repo, 2)

    summary = await ReconciliationService(repo).reconcile_all()

    assert summary.updated == 1
    assert summary.errors == []


async def test_reconcile_all_collects_errors():
    repository = AsyncMock()
    repository.find_active_subscriptions.return_value = [
        _sub(1, "Netflix", id=1),
        _sub(1, "Spotify", id=2),
    ]
    repository.find_patterns_by_subscription.side_effect = [RuntimeError("database is locked"), []]

    summary = await ReconciliationService(repository).reconcile_all()

    assert summary.updated == 0
    assert summary.errors == ["Failed to reconcile Netflix: database is locked"]
    repository.create_subscription_pattern.assert_awaited_once()


async def test_reconcile_by_name_is_case_insensitive(repo, category):
    sub = await repo.create_subscription(_sub(category.id, "Netflix"))
    await repo.create_subscription_pattern(_pattern(sub.id))
    await _add_tx(repo, 2)

    assert await ReconciliationService(repo).reconcile_subscription_by_name("NETFLIX") is True


async def test_reconcile_by_partial_name_includes_cancelled(repo, category):
    sub = await repo.create_subscription(_sub(category.id, "Netflix Premium", is_active=False))
    await repo.create_subscription_pattern(_pattern(sub.id))
    await _add_tx(repo, 2)

    assert await ReconciliationService(repo).reconcile_subscription_by_name("netflix") is True


async def test_reconcile_by_name_unknown(repo):
    with pytest.raises(NotFoundError, match="Subscription not found: Hulu"):
        await ReconciliationService(repo).reconcile_subscription_by_name("Hulu")


def test_description_matches_by_type():
    assert description_matches("NETFLIX.COM", _pattern(1, "netflix com", "exact"))
    assert description_matches("Spotify AB Stockholm", _pattern(1, "spotify", "starts_with"))
    assert not description_matches("My Spotify", _pattern(1, "spotify", "starts_with"))
    assert not description_matches("NETFLIX", _pattern(1, "^netflix", "regex"))
    assert not description_matches("BAR ROMA", _pattern(1, "max"))


def test_next_payment_date_per_frequency():
    last = date(2025, 1, 31)
    assert next_payment_date(last, _sub(1, billing_frequency="monthly")) == date(2025, 2, 28)
    assert next_payment_date(last, _sub(1, billing_frequency="quarterly")) == date(2025, 4, 30)
    assert next_payment_date(last, _sub(1, billing_frequency="annually")) == date(2026, 1, 31)
