from abc import ABC, abstractmethod
from datetime import date as Date

from pydantic import BaseModel, ConfigDict

from rotasync.interfaces import RotationDecision


class RetentionPolicy(ABC, BaseModel):
    """
    Abstract base class for snapshot retention policies.

    A policy only does calendar arithmetic: it never looks at what is on disk,
    it names the dates whose snapshots have become obsolete now that today's
    snapshot exists.
    """

    model_config = ConfigDict(frozen=True)

    @abstractmethod
    def plan(self, today: Date) -> RotationDecision:
        """
        Determines which snapshots to delete after today's snapshot was made.

        Args:
            today (Date): The date of the snapshot that was just made.

        Returns:
            RotationDecision: The dates to delete, never including today.
        """
        pass

    def has_work(self, today: Date) -> bool:
        """
        Whether a run today would rotate anything, runs without work are skipped.
        """
        return True
