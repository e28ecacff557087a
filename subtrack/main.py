import asyncio
import json
import logging
import time

from subtrack.config import settings
from subtrack.db.database import close_db, init_db
from subtrack.db.repository import SQLiteRepository
from subtrack.logging import setup_logging
from subtrack.services.reconciliation_service import ReconciliationService
from subtrack.services.subscription_budget_service import SubscriptionBudgetService

logger = logging.getLogger(__name__)

RENEWAL_NOTICE_DAYS = 7


async def run_maintenance() -> dict:
    """Reconcile every active subscription and raise renewal notices."""
    repository = SQLiteRepository()
    started = time.monotonic()

    summary = await ReconciliationService(repository).reconcile_all()
    renewals = await SubscriptionBudgetService(repository).create_renewal_notifications(RENEWAL_NOTICE_DAYS)

    result = {
        "reconciled": summary.updated,
        "errors": summary.errors,
        "renewal_alerts": len(renewals),
    }
    logger.info(
        "Maintenance finished: %s",
        json.dumps(result),
        extra={"operation": "maintenance", "latency_ms": round((time.monotonic() - started) * 1000, 1)},
    )
    return result


async def main():
    await init_db()
    try:
        await run_maintenance()
    finally:
        await close_db()


def run():
    setup_logging(level=logging.DEBUG if settings.debug else logging.INFO)
    asyncio.run(main())


if __name__ == "__main__":
    run()
