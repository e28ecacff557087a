from subtrack.db.database import get_db
from subtrack.db.models import Category

DEFAULT_CATEGORIES: list[str] = [
    "Groceries",
    "Dining",
    "Transport",
    "Utilities",
    "Entertainment",
    "Healthcare",
    "Shopping",
    "Subscriptions",
    "Housing",
    "Travel",
    "Other",
]


async def seed_default_categories() -> None:
    db = await get_db()
    await db.executemany(
        "INSERT OR IGNORE INTO categories (name) VALUES (?)",
        [(name,) for name in DEFAULT_CATEGORIES],
    )
    await db.commit()


def pick_default_category(categories: list[Category]) -> Category | None:
    """Category a confirmed subscription falls back to when none was chosen."""
    for keywords in (("subscription", "recurring"), ("other", "misc")):
        for category in categories:
            name = category.name.lower()
            if any(k in name for k in keywords):
                return category
    return categories[0] if categories else None
