# Overview: Bounded retry for stock adjustments that lose an optimistic-lock race.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


logger = logging.getLogger(__name__)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, sleep=time.sleep):
    """
    Execute a DB unit of work with retry on concurrency-related failures.

    Retries on OperationalError (locks) and StaleDataError (a versioned
    InventoryRecord / SaleLine changed between our read and our write).
    The session is rolled back before each retry so func() re-reads.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Concurrent update detected, retrying (attempt %d/%d)", attempt + 1, attempts)
            sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
