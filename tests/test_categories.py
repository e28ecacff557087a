from subtrack.categories import DEFAULT_CATEGORIES, pick_default_category, seed_default_categories
from subtrack.db.models import Category


async def test_seed_defaults(repo):
    await seed_default_categories()
    names = [c.name for c in await repo.get_categories()]
    assert sorted(names) == sorted(DEFAULT_CATEGORIES)


async def test_seed_is_idempotent(repo):
    await seed_default_categories()
    await seed_default_categories()
    assert len(await repo.get_categories()) == len(DEFAULT_CATEGORIES)


def test_pick_prefers_subscription_category():
    cats = [Category(1, "Groceries"), Category(2, "Other"), Category(3, "Subscriptions")]
    assert pick_default_category(cats).id == 3


def test_pick_falls_back_to_other():
    cats = [Category(1, "Groceries"), Category(2, "Misc expenses")]
    assert pick_default_category(cats).id == 2


def test_pick_first_or_none():
    assert pick_default_category([Category(5, "Travel")]).id == 5
    assert pick_default_category([]) is None
