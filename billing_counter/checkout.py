from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import AbstractSet, Iterable, Optional
import logging

from . import config
from .cart import CartEngine
from .clients import BillingClient
from .exceptions import ServiceFailure, ServiceTimeout
from .schemas import Bill, CheckoutSnapshot

logger = logging.getLogger(__name__)


def find_matching_bill(snapshot: CheckoutSnapshot, bills: Iterable[Bill], since: datetime,
                       known_ids: AbstractSet[int] = frozenset()) -> Optional[Bill]:
    """
    Picks the newest bill created at or after ``since``, absent from
    ``known_ids``, with exactly the snapshot's products and quantities.
    Prices are not compared: the service bills at its own stored price.
    """
    wanted = Counter((line.product_id, line.quantity) for line in snapshot.lines)
    candidates = [
        bill for bill in bills
        if bill.id not in known_ids
        and bill.date >= since
        and Counter((line.product_id, line.quantity) for line in bill.lines) == wanted
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda b: (b.date, b.id))


async def submit_checkout(engine: CartEngine, billing: BillingClient,
                          reconcile_window: int = config.RECONCILE_WINDOW_SECONDS) -> Bill:
    """
    Checks the cart out and returns the persisted bill.

    The cart is emptied only after the billing service confirms the bill. On
    a timeout the outcome is unknown, so the bill history is searched for a
    new bill matching the submitted snapshot before giving up; the timeout is
    re-raised, with the cart intact, when none is found. Bills that existed
    before the submission never count as a match.
    """
    with engine.checkout() as snapshot:
        known_ids = {bill.id for bill in await billing.list_bills()}
        started_at = datetime.now(timezone.utc)
        try:
            return await billing.create_bill(snapshot)
        except ServiceTimeout:
            logger.warning("Checkout submission timed out; looking for the bill in history")
            bill = await _recover_bill(snapshot, billing, known_ids, started_at - timedelta(seconds=reconcile_window))
            if bill is None:
                logger.warning("No matching bill found; cart kept for retry")
                raise
            logger.info(f"Timed out checkout was persisted as bill {bill.id}; clearing cart")
            return bill


async def _recover_bill(snapshot: CheckoutSnapshot, billing: BillingClient,
                        known_ids: AbstractSet[int], since: datetime) -> Optional[Bill]:
    try:
        bills = await billing.list_bills()
    except ServiceFailure as e:
        logger.error(f"Could not fetch bill history to reconcile checkout: {e}")
        raise
    return find_matching_bill(snapshot, bills, since, known_ids)
