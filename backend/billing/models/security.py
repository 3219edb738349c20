from __future__ import annotations

from ..extensions import db
from billing.time_utils import to_utc_z


class RateLimitWindow(db.Model):
    """
    Fixed-window request counter for sale creation, one row per user.

    Rows are never deleted on the hot path: an expired window is simply
    overwritten by the next request. Updates are compare-and-swap on
    (request_count, window_reset_at) so concurrent requests from the same
    user cannot both be admitted on the last slot.
    """
    __tablename__ = "rate_limit_windows"

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True)
    request_count = db.Column(db.Integer, nullable=False)
    window_reset_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "request_count": self.request_count,
            "window_reset_at": to_utc_z(self.window_reset_at),
        }
