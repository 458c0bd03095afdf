from abc import ABC, abstractmethod
from pathlib import Path
from contextlib import AbstractContextManager

from rotasync.interfaces import SnapshotName, LinkState


class SnapshotStore(ABC):
    """
    A collection of snapshot directories plus one reference link pointing at
    the most recent of them.
    """

    @abstractmethod
    def path_for(self, name: SnapshotName) -> Path:
        pass

    @abstractmethod
    def exists(self, name: SnapshotName) -> bool:
        pass

    @abstractmethod
    def delete(self, name: SnapshotName, dryrun: bool = False) -> bool:
        """
        Remove a snapshot, doing nothing when it does not exist.

        Returns:
            bool: Whether a snapshot was (or in dryrun would have been) removed.
        """
        pass

    @abstractmethod
    def touch(self, name: SnapshotName):
        pass

    @abstractmethod
    def link_state(self, link: SnapshotName) -> LinkState:
        pass

    @abstractmethod
    def link_latest(self, link: SnapshotName, name: SnapshotName):
        pass

    @abstractmethod
    def lock(self) -> AbstractContextManager:
        pass
