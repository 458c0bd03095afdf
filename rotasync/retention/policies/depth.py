from datetime import date as Date

from pydantic import Field

from rotasync import logging
from rotasync import calendar
from rotasync.interfaces import RotationDecision, Deletion, DeletionReason
from rotasync.retention.interfaces import RetentionPolicy

logger = logging.get_logger(__name__)


class DepthRetentionPolicy(RetentionPolicy):
    """
    Keeps ``daily`` days, then ``weekly`` weeks of Monday snapshots, then
    ``monthly`` months of 1st-of-the-month snapshots.

    The deletion candidate walks back from today: ``daily`` days, then
    ``weekly`` weeks further if it landed on a Monday, then ``monthly`` months
    further if it landed on the 1st. A snapshot therefore only survives a tier
    if it sits on that tier's boundary.
    """

    daily: int = Field(default=1, ge=0)
    weekly: int = Field(default=0, ge=0)
    monthly: int = Field(default=0, ge=0)

    def __str__(self):
        return f"DepthRetentionPolicy(daily={self.daily}, weekly={self.weekly}, monthly={self.monthly})"

    @property
    def is_active(self) -> bool:
        return any((self.daily, self.weekly, self.monthly))

    def has_work(self, today: Date) -> bool:
        if (self.daily > 0) or (not self.is_active):
            return True
        if self.weekly > 0 and calendar.is_week_start(today):
            return True
        if self.monthly > 0 and calendar.is_month_start(today):
            return True
        return False

    def plan(self, today: Date) -> RotationDecision:
        lgr = logger.bind(today=today, policy=str(self))
        # with every tier off, fall back to only keeping the snapshot just made
        daily = self.daily if self.is_active else 1

        d = today
        reason: DeletionReason = 'previous day'
        if daily > 0:
            d = calendar.shift(d, days=-daily)
            lgr.debug("Set previous snapshot", date=d)

        if self.weekly > 0 and calendar.is_week_start(d):
            d = calendar.shift(d, weeks=-self.weekly)
            reason = 'new week'
            lgr.debug("Monday, set previous snapshot", date=d)

        if self.monthly > 0 and calendar.is_month_start(d):
            d = calendar.shift(d, months=-self.monthly)
            reason = 'new month'
            lgr.debug("1st of the month, set previous snapshot", date=d)

        if d == today:
            lgr.debug("Nothing to rotate today")
            return RotationDecision(today=today)
        return RotationDecision(today=today, deletions=(Deletion(date=d, reason=reason),))
