import os
import fcntl
import shutil
from pathlib import Path
from contextlib import contextmanager

from pydantic import BaseModel, ConfigDict, field_validator

from rotasync import logging
from rotasync.errors import ValidationError, RotationError
from rotasync.otel import with_tracer, trace
from rotasync.interfaces import SnapshotName, LinkState
from rotasync.storage.interfaces import SnapshotStore

logger = logging.get_logger(__name__)
tracer = trace.get_tracer(__name__)

LOCK_FILENAME = '.rotasync.lock'


class LocalSnapshotStore(SnapshotStore, BaseModel):
    """
    Snapshots stored as directories of ``directory``, with the reference link
    a relative symlink next to them.
    """

    model_config = ConfigDict(frozen=True)

    directory: Path

    @field_validator('directory')
    @classmethod
    def validate_path(cls, directory: Path):
        if not directory.is_absolute():
            raise ValueError(f"directory must be absolute, instead received path = {directory}")
        return directory

    def __str__(self):
        return f"LocalSnapshotStore(directory={self.directory})"

    def path_for(self, name: SnapshotName) -> Path:
        return self.directory.joinpath(SnapshotName(name))

    def exists(self, name: SnapshotName) -> bool:
        path = self.path_for(name)
        return path.is_dir() and not path.is_symlink()

    @with_tracer(tracer)
    def delete(self, name: SnapshotName, dryrun: bool = False) -> bool:
        lgr = logger.bind(snapshot=name, directory=self.directory, dryrun=dryrun)
        if not self.exists(name):
            lgr.debug("Snapshot does not exist, nothing to remove")
            return False
        lgr.info("Removing old snapshot")
        if not dryrun:
            try:
                shutil.rmtree(self.path_for(name))
            except OSError as e:
                raise RotationError(f"Failed to remove snapshot {name} from {self.directory}: {e}") from e
        return True

    @with_tracer(tracer)
    def touch(self, name: SnapshotName):
        logger.debug("Setting snapshot modification time to now", snapshot=name)
        os.utime(self.path_for(name))

    def link_state(self, link: SnapshotName) -> LinkState:
        path = self.path_for(link)
        if path.is_symlink():
            return LinkState.REFERENCE
        if path.exists():
            return LinkState.WRONG_KIND
        return LinkState.ABSENT

    @with_tracer(tracer)
    def link_latest(self, link: SnapshotName, name: SnapshotName):
        """
        Point the reference link at snapshot ``name``.

        The new link is created beside the old one and renamed over it, so the
        reference is never missing.

        Raises:
            ValidationError: If something other than a symlink sits at the link path.
        """
        lgr = logger.bind(link=link, snapshot=name, directory=self.directory)
        path = self.path_for(link)
        if self.link_state(link) is LinkState.WRONG_KIND:
            raise ValidationError(f"Reference link must be a symlink: {path}")

        tmp_path = path.with_name(f".{link}.tmp")
        if tmp_path.is_symlink() or tmp_path.is_file():
            tmp_path.unlink()
        elif tmp_path.is_dir():
            shutil.rmtree(tmp_path)
        lgr.info("Pointing reference link at snapshot")
        os.symlink(SnapshotName(name), tmp_path)
        os.replace(tmp_path, path)

    @contextmanager
    def lock(self):
        """
        Hold an exclusive lock on the destination root for the duration of a run.

        Raises:
            ValidationError: If another run holds the lock.
        """
        path = self.directory.joinpath(LOCK_FILENAME)
        with open(path, 'a') as handle:
            try:
                fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                raise ValidationError(f"Another run holds the lock on {self.directory}: {path}")
            logger.debug("Acquired lock", path=path)
            try:
                yield self
            finally:
                fcntl.flock(handle, fcntl.LOCK_UN)
                logger.debug("Released lock", path=path)
