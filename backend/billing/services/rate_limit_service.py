"""
Sale Rate Limiting Service

WHY: Stop a single account from flooding the sale endpoint (scripted
spam, runaway client retries).

ALGORITHM: fixed window per user.
- No window, or now >= window reset time: open a new window with count 1.
- Window active and count < MAX_REQUESTS: count + 1.
- Otherwise: reject with RateLimitedError.

Up to 2x MAX_REQUESTS can be admitted across a window boundary (end of
one window + start of the next). That is a property of fixed windows,
not a defect.

SECURITY: fails closed. If the window cannot be read or updated, the
request is rejected (RateLimitUnavailableError), never admitted.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from ..errors import RateLimitedError, RateLimitUnavailableError
from ..extensions import db
from ..models import RateLimitWindow
from billing.time_utils import utcnow
from .sale_store import RateWindow, SaleStore, StorageError


# Configuration constants (overridable via app config, see Config)
WINDOW_SECONDS = 60
MAX_REQUESTS = 10
SWAP_ATTEMPTS = 5


def next_window(
    window: RateWindow | None,
    now: datetime,
    *,
    window_seconds: int = WINDOW_SECONDS,
    max_requests: int = MAX_REQUESTS,
) -> RateWindow | None:
    """
    Pure fixed-window decision.

    Returns the window to store when the request is admitted, or None when
    the user is over quota.
    """
    if window is None or now >= window.reset_at:
        return RateWindow(count=1, reset_at=now + timedelta(seconds=window_seconds))
    if window.count < max_requests:
        return RateWindow(count=window.count + 1, reset_at=window.reset_at)
    return None


def admit(
    store: SaleStore,
    user_id: int,
    *,
    now: datetime | None = None,
    window_seconds: int = WINDOW_SECONDS,
    max_requests: int = MAX_REQUESTS,
    attempts: int = SWAP_ATTEMPTS,
) -> RateWindow:
    """
    Admit one sale request for user_id or raise.

    The read-decide-write is a compare-and-swap loop: a lost swap means
    another request of the same user moved the window, so we re-read and
    decide again.
    """
    now = now or utcnow()

    for _ in range(attempts):
        try:
            current = store.get_rate_window(user_id)
            proposed = next_window(
                current,
                now,
                window_seconds=window_seconds,
                max_requests=max_requests,
            )
            if proposed is None:
                retry_after = max(1, math.ceil((current.reset_at - now).total_seconds()))
                raise RateLimitedError(retry_after)

            if store.swap_rate_window(user_id, current, proposed):
                return proposed
        except StorageError as exc:
            raise RateLimitUnavailableError() from exc

    raise RateLimitUnavailableError("Rate limit state is contended; try again")


def cleanup_expired_windows(*, now: datetime | None = None) -> int:
    """
    Delete windows that ended before now.

    Optional housekeeping (expired rows are overwritten anyway).
    Returns count deleted.
    """
    now = now or utcnow()
    deleted = db.session.query(RateLimitWindow).filter(
        RateLimitWindow.window_reset_at < now
    ).delete()
    db.session.commit()
    return deleted
