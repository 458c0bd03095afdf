from datetime import date as Date

from pydantic import Field

from rotasync import logging
from rotasync import calendar
from rotasync.interfaces import RotationDecision, Deletion
from rotasync.retention.interfaces import RetentionPolicy

logger = logging.get_logger(__name__)


class KeepFlagRetentionPolicy(RetentionPolicy):
    """
    Keeps ``daily`` daily snapshots plus, when enabled, the latest Monday
    snapshot and the latest 1st-of-the-month snapshot.

    The snapshot from ``daily`` days ago is deleted unless it is a Monday or a
    1st, in which case it is kept and the previous weekly or monthly one is
    deleted instead.
    """

    daily: int = Field(default=1, ge=1)
    weekly: bool = False
    monthly: bool = False

    def __str__(self):
        return f"KeepFlagRetentionPolicy(daily={self.daily}, weekly={self.weekly}, monthly={self.monthly})"

    def plan(self, today: Date) -> RotationDecision:
        lgr = logger.bind(today=today, policy=str(self))
        nb_prev = self.daily
        day = calendar.day_of_month(today)
        # the day on which the previous snapshot is the 1st of the month
        new_month = 1 + nb_prev
        # and the weekday on which it is a Monday
        new_week = nb_prev % 7 + 1

        deletions: list[Deletion] = []
        delete_previous = True

        if self.monthly and day == new_month:
            delete_previous = False
            # days first, the 1st of this month, so the month step never clamps
            lgr.debug("New month, removing last month's snapshot")
            deletions.append(
                Deletion(date=calendar.shift(calendar.shift(today, days=-nb_prev), months=-1),
                         reason='new month'))

        if self.weekly and calendar.weekday(today) == new_week:
            delete_previous = False
            delete_week = True
            if self.monthly:
                if day == new_month:
                    # last week's snapshot is older than this month's, already handled
                    delete_week = False
                    lgr.debug("New week, previous snapshot is also this month's, removing nothing")
                elif day == 8 + nb_prev:
                    # last week's snapshot is this month's
                    delete_week = False
                    lgr.debug("New week, removing the snapshot from 2 weeks ago")
                    deletions.append(
                        Deletion(date=calendar.shift(today, weeks=-2, days=-nb_prev), reason='new week'))
            if delete_week:
                lgr.debug("New week, removing last week's snapshot")
                deletions.append(
                    Deletion(date=calendar.shift(today, weeks=-1, days=-nb_prev), reason='new week'))

        if delete_previous:
            lgr.debug("Removing previous snapshot")
            deletions.append(Deletion(date=calendar.shift(today, days=-nb_prev), reason='previous day'))

        return RotationDecision(today=today, deletions=tuple(deletions))
