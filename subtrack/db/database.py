import aiosqlite

from subtrack.config import settings

SCHEMA = """
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    color TEXT
);

CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY,
    date DATE NOT NULL,
    description TEXT NOT NULL,
    amount REAL NOT NULL,
    currency TEXT,
    type TEXT NOT NULL CHECK(type IN ('income', 'expense', 'transfer')),
    category_id INTEGER REFERENCES categories(id) ON DELETE SET NULL,
    is_subscription BOOLEAN NOT NULL DEFAULT 0,
    subscription_id INTEGER REFERENCES subscriptions(id) ON DELETE SET NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS subscriptions (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    amount REAL NOT NULL CHECK(amount > 0),
    currency TEXT NOT NULL,
    billing_frequency TEXT NOT NULL DEFAULT 'monthly'
        CHECK(billing_frequency IN ('monthly', 'quarterly', 'annually', 'custom')),
    custom_frequency_days INTEGER CHECK(custom_frequency_days IS NULL OR custom_frequency_days > 0),
    next_payment_date DATE NOT NULL,
    category_id INTEGER NOT NULL REFERENCES categories(id),
    is_active BOOLEAN NOT NULL DEFAULT 1,
    start_date DATE NOT NULL,
    end_date DATE,
    last_used_date DATE,
    usage_rating INTEGER CHECK(usage_rating IS NULL OR (usage_rating >= 1 AND usage_rating <= 5)),
    notes TEXT,
    website TEXT,
    cancellation_url TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    CHECK(billing_frequency != 'custom' OR custom_frequency_days IS NOT NULL)
);

CREATE TABLE IF NOT EXISTS subscription_patterns (
    id INTEGER PRIMARY KEY,
    subscription_id INTEGER NOT NULL REFERENCES subscriptions(id) ON DELETE CASCADE,
    pattern TEXT NOT NULL,
    pattern_type TEXT NOT NULL CHECK(pattern_type IN ('exact', 'contains', 'starts_with', 'regex')),
    confidence_score REAL NOT NULL DEFAULT 1.0
        CHECK(confidence_score >= 0 AND confidence_score <= 1),
    created_by TEXT NOT NULL DEFAULT 'user' CHECK(created_by IN ('user', 'system')),
    is_active BOOLEAN NOT NULL DEFAULT 1,
    usage_count INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS budget_scenarios (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    is_active BOOLEAN NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS budgets (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    category_id INTEGER NOT NULL REFERENCES categories(id),
    amount REAL NOT NULL CHECK(amount > 0),
    currency TEXT NOT NULL,
    period TEXT NOT NULL DEFAULT 'monthly' CHECK(period IN ('monthly', 'yearly')),
    start_date DATE NOT NULL,
    end_date DATE,
    is_active BOOLEAN NOT NULL DEFAULT 1,
    alert_thresholds TEXT NOT NULL DEFAULT '[50, 75, 90, 100]',
    scenario_id INTEGER REFERENCES budget_scenarios(id) ON DELETE CASCADE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    CHECK(end_date IS NULL OR start_date < end_date)
);

CREATE TABLE IF NOT EXISTS budget_alerts (
    id INTEGER PRIMARY KEY,
    budget_id INTEGER NOT NULL REFERENCES budgets(id) ON DELETE CASCADE,
    alert_type TEXT NOT NULL CHECK(alert_type IN (
        'threshold', 'projection', 'large_transaction', 'bulk_import',
        'subscription_added', 'subscription_removed', 'subscription_category_changed',
        'subscription_amount_changed', 'subscription_frequency_changed',
        'subscription_renewal', 'subscription_insufficient_budget'
    )),
    threshold_percentage REAL,
    message TEXT NOT NULL,
    is_read BOOLEAN NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);
CREATE INDEX IF NOT EXISTS idx_transactions_category_date ON transactions(category_id, date);
CREATE INDEX IF NOT EXISTS idx_transactions_subscription ON transactions(subscription_id);
CREATE INDEX IF NOT EXISTS idx_subscriptions_active ON subscriptions(is_active, next_payment_date);
CREATE INDEX IF NOT EXISTS idx_patterns_subscription ON subscription_patterns(subscription_id);
CREATE INDEX IF NOT EXISTS idx_budgets_category ON budgets(category_id);
CREATE INDEX IF NOT EXISTS idx_budgets_scenario ON budgets(scenario_id);
CREATE INDEX IF NOT EXISTS idx_budget_alerts_budget ON budget_alerts(budget_id, is_read);
"""

_db: aiosqlite.Connection | None = None


async def get_db() -> aiosqlite.Connection:
    global _db
    if _db is None:
        _db = await aiosqlite.connect(settings.db_path)
        _db.row_factory = aiosqlite.Row
        await _db.execute("PRAGMA journal_mode=WAL")
        await _db.execute("PRAGMA foreign_keys=ON")
    return _db


async def close_db():
    global _db
    if _db is not None:
        await _db.close()
        _db = None


async def init_db():
    from subtrack.categories import seed_default_categories

    db = await get_db()
    await db.executescript(SCHEMA)
    await db.commit()
    await seed_default_categories()
