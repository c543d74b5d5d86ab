import asyncio
import logging

from app.database import async_session_maker
from app.services.order_expiry_service import expire_stale_pending_orders


def expire_unpaid_orders():
    """Entry point for the scheduler: cancel stale pending orders."""
    return asyncio.run(expire_stale_pending_orders(async_session_maker))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    expire_unpaid_orders()
