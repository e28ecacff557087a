from dataclasses import replace
from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest

from subtrack.db.models import Budget, Subscription, Transaction
from subtrack.errors import NotFoundError
from subtrack.periods import month_start
from subtrack.services.subscription_budget_service import SubscriptionBudgetService

TODAY = date.today()


def _budget(category_id, amount=1000.0, period="monthly", name="Streaming"):
    return Budget(
        id=None,
        name=name,
        category_id=category_id,
        amount=amount,
        currency="NOK",
        period=period,
        start_date=month_start(TODAY),
        alert_thresholds=[500],
    )


def _sub(category_id, amount=100.0, frequency="monthly", **kwargs):
    return Subscription(
        id=kwargs.pop("id", None),
        name=kwargs.pop("name", "Netflix"),
        amount=amount,
        currency="NOK",
        billing_frequency=frequency,
        next_payment_date=kwargs.pop("next_payment_date", TODAY + timedelta(days=3)),
        category_id=category_id,
        start_date=TODAY - timedelta(days=100),
        **kwargs,
    )


async def _alert_types(repo):
    return [a.alert_type for a in await repo.find_budget_alerts()]


async def test_created_subscription_alerts_budget(repo, category):
    await repo.create_budget(_budget(category.id))
    sub = await repo.create_subscription(_sub(category.id, 100.0))

    [alert] = await SubscriptionBudgetService(repo).on_subscription_created(sub)

    assert alert.alert_type == "subscription_added"
    assert "10.0% of budget 'Streaming'" in alert.message


async def test_small_subscription_does_not_alert(repo, category):
    await repo.create_budget(_budget(category.id))
    sub = await repo.create_subscription(_sub(category.id, 30.0))

    assert await SubscriptionBudgetService(repo).on_subscription_created(sub) == []


async def test_yearly_budget_compared_monthly(repo, category):
    await repo.create_budget(_budget(category.id, amount=12000.0, period="yearly"))
    sub = await repo.create_subscription(_sub(category.id, 100.0))

    [alert] = await SubscriptionBudgetService(repo).on_subscription_created(sub)
    assert "10.0%" in alert.message


async def test_deleted_subscription_alerts_budget(repo, category):
    await repo.create_budget(_budget(category.id))
    sub = await repo.create_subscription(_sub(category.id, 100.0))

    await SubscriptionBudgetService(repo).on_subscription_deleted(sub)

    assert await _alert_types(repo) == ["subscription_removed"]


async def test_amount_change_alert(repo, category):
    await repo.create_budget(_budget(category.id))
    old = await repo.create_subscription(_sub(category.id, 100.0))

    alerts = await SubscriptionBudgetService(repo).on_subscription_updated(old, replace(old, amount=200.0))

    assert [a.alert_type for a in alerts] == ["subscription_amount_changed"]
    assert "increased" in alerts[0].message


async def test_frequency_change_alert(repo, category):
    await repo.create_budget(_budget(category.id))
    old = await repo.create_subscription(_sub(category.id, 1200.0, "annually"))

    alerts = await SubscriptionBudgetService(repo).on_subscription_updated(
        old, replace(old, billing_frequency="monthly")
    )

    assert [a.alert_type for a in alerts] == ["subscription_frequency_changed"]


async def test_category_change_alerts_both_budgets(repo, category):
    other = await repo.create_category("Music")
    await repo.create_budget(_budget(category.id))
    await repo.create_budget(_budget(other.id, name="Music"))
    old = await repo.create_subscription(_sub(category.id, 100.0))

    alerts = await SubscriptionBudgetService(repo).on_subscription_updated(old, replace(old, category_id=other.id))

    assert [a.alert_type for a in alerts] == ["subscription_category_changed"] * 2
    assert {a.budget_id for a in alerts} == {b.id for b in await repo.find_all_budgets()}


async def test_hooks_never_raise():
    repository = AsyncMock()
    repository.find_budgets_by_category.side_effect = RuntimeError("offline")
    service = SubscriptionBudgetService(repository)
    sub = _sub(1, id=1)

    assert await service.on_subscription_created(sub) == []
    assert await service.on_subscription_deleted(sub) == []
    assert await service.on_subscription_updated(sub, replace(sub, amount=500.0)) == []


async def test_subscription_allocation(repo, category):
    await repo.create_subscription(_sub(category.id, 100.0))
    await repo.create_subscription(_sub(category.id, 600.0, "annually", name="Cloud"))
    await repo.create_subscription(_sub(category.id, 999.0, name="Old", is_active=False))

    allocation = await SubscriptionBudgetService(repo).calculate_subscription_allocation(category.id)

    assert allocation.total_monthly == 150.0
    assert allocation.subscription_count == 2


async def test_subscription_impact(repo, category):
    budget = await repo.create_budget(_budget(category.id, amount=12000.0, period="yearly"))
    await repo.create_subscription(_sub(category.id, 250.0))

    impact = await SubscriptionBudgetService(repo).analyze_subscription_impact(budget.id)

    assert impact.subscription_allocated == 3000.0
    assert impact.percentage_of_budget == 25.0
    assert impact.variable_budget == 9000.0
    assert len(impact.subscriptions) == 1


async def test_subscription_impact_missing_budget(repo):
    with pytest.raises(NotFoundError, match="Budget not found: 8"):
        await SubscriptionBudgetService(repo).analyze_subscription_impact(8)


async def test_subscription_aware_suggestion(repo, category):
    await repo.create_subscription(_sub(category.id, 200.0))

    suggestion = await SubscriptionBudgetService(repo).generate_subscription_aware_suggestion(category.id)

    assert suggestion.subscription_costs == 200.0
    assert suggestion.variable_spending == 0.0
    assert suggestion.suggested_amount == 200
    assert suggestion.confidence == pytest.approx(0.9)


async def test_subscription_aware_suggestion_with_spending(repo, category):
    await repo.create_transaction(
        Transaction(id=None, date=TODAY, description="Cinema", amount=-600.0, category_id=category.id)
    )

    suggestion = await SubscriptionBudgetService(repo).generate_subscription_aware_suggestion(category.id)

    assert suggestion.variable_spending == 600.0
    assert suggestion.suggested_amount == 660
    assert suggestion.confidence == pytest.approx(0.8)


async def test_renewal_notifications(repo, category):
    await repo.create_budget(_budget(category.id))
    await repo.create_subscription(_sub(category.id, 100.0, next_payment_date=TODAY + timedelta(days=3)))
    later = TODAY + timedelta(days=30)
    await repo.create_subscription(_sub(category.id, 100.0, name="Later", next_payment_date=later))

    alerts = await SubscriptionBudgetService(repo).create_renewal_notifications(7)

    assert [a.alert_type for a in alerts] == ["subscription_renewal"]
    assert "'Netflix' renews on" in alerts[0].message


async def test_renewal_with_insufficient_budget(repo, category):
    await repo.create_budget(_budget(category.id, amount=150.0))
    await repo.create_transaction(
        Transaction(id=None, date=TODAY, description="Cinema", amount=-100.0, category_id=category.id)
    )
    await repo.create_subscription(_sub(category.id, 100.0))

    alerts = await SubscriptionBudgetService(repo).create_renewal_notifications()

    assert [a.alert_type for a in alerts] == ["subscription_insufficient_budget"]
    assert "only 50.00 kr remains" in alerts[0].message
