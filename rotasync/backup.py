from enum import Enum
from pathlib import Path
from typing import Optional
from contextlib import nullcontext
from datetime import date as Date

from pydantic import BaseModel, ConfigDict

from rotasync import logging
from rotasync.config import BackupConfig
from rotasync.otel import trace, with_tracer
from rotasync.storage.interfaces import SnapshotStore
from rotasync.storage.adapters.file import LocalSnapshotStore
from rotasync.transfer import Transfer, RsyncTransfer, build_arguments, ensure_slashed
from rotasync.interfaces import LinkState, RotationDecision, SnapshotName
from rotasync.errors import ValidationError, TransferError, NothingToDoError

logger = logging.get_logger(__name__)
tracer = trace.get_tracer(__name__)


class RunState(Enum):
    CONFIG_RESOLVED = 'ConfigResolved'
    SOURCE_VALIDATED = 'SourceValidated'
    DESTINATION_VALIDATED = 'DestinationValidated'
    LINK_DEST_VALIDATED = 'LinkDestValidated'
    TRANSFER_INVOKED = 'TransferInvoked'
    TRANSFER_SUCCEEDED = 'TransferSucceeded'
    TRANSFER_FAILED = 'TransferFailed'
    LINK_UPDATED = 'LinkUpdated'
    ROTATION_PLANNED = 'RotationPlanned'
    ROTATION_APPLIED = 'RotationApplied'
    DONE = 'Done'


class RunReport:
    """
    What a run got through, kept up to date while it progresses so a failed
    run still reports how far it went.
    """

    def __init__(self, today: Date, dryrun: bool = False):
        self.today = today
        self.dryrun = dryrun
        self.state = RunState.CONFIG_RESOLVED
        self.snapshot: Optional[SnapshotName] = None
        self.arguments: list[str] = []
        self.returncode: Optional[int] = None
        self.decision: Optional[RotationDecision] = None
        self.deleted: list[SnapshotName] = []

    def advance(self, state: RunState):
        logger.debug("Run state changed", previous=self.state.value, state=state.value)
        self.state = state


class BackupJob(BaseModel):
    """
    Makes today's snapshot with the transfer tool, points the reference link
    at it, then deletes whatever the retention policy deems obsolete.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    config: BackupConfig
    store: Optional[SnapshotStore] = None
    transfer: Transfer = RsyncTransfer()

    def get_store(self) -> SnapshotStore:
        if self.store is not None:
            return self.store
        return LocalSnapshotStore(directory=self.config.dest_root.absolute())

    @with_tracer(tracer)
    def run(self, today: Optional[Date] = None, dryrun: bool = False) -> RunReport:
        """
        Run one backup.

        Args:
            today (Optional[Date]): The date of the snapshot, defaults to today.
            dryrun (bool, optional): Validate and plan only; nothing is transferred,
                linked or deleted. Defaults to False.

        Returns:
            RunReport: The final state of the run.

        Raises:
            NothingToDoError: If the retention policy has nothing to rotate today.
            ValidationError: If the source, destination, exclude file or link is unusable.
            TransferError: If the transfer tool exits non-zero. Nothing is rotated.
        """
        today = today or Date.today()
        config = self.config
        report = RunReport(today, dryrun=dryrun)
        lgr = logger.bind(today=today, dryrun=dryrun)
        lgr.info("Starting backup run", policy=str(config.policy))

        source = self._validate_source()
        report.advance(RunState.SOURCE_VALIDATED)

        if not config.policy.has_work(today):
            raise NothingToDoError(f"Nothing to do on {today} with {config.policy}")

        self._validate_dest_root()
        store = self.get_store()
        # a dry run leaves the destination root untouched, lock file included
        with nullcontext() if dryrun else store.lock():
            name = config.snapshot_name(today)
            destination = store.path_for(name)
            if destination.exists() or destination.is_symlink():
                raise ValidationError(f"Destination already exists: {destination}")
            report.snapshot = name
            lgr = lgr.bind(snapshot=name)
            lgr.debug("Destination validated", destination=destination)
            report.advance(RunState.DESTINATION_VALIDATED)

            link_dest = self._validate_link_dest(store)
            report.advance(RunState.LINK_DEST_VALIDATED)

            if (config.exclude_from is not None) and (not config.exclude_from.is_file()):
                raise ValidationError(f"Exclude file not found: {config.exclude_from}")

            report.arguments = build_arguments(config.args,
                                               verbose=config.verbose,
                                               log_file=config.log_file,
                                               exclude_from=config.exclude_from,
                                               link_dest=link_dest)
            if not dryrun:
                report.advance(RunState.TRANSFER_INVOKED)
                report.returncode = self.transfer(report.arguments, source, ensure_slashed(destination))
                if report.returncode != 0:
                    report.advance(RunState.TRANSFER_FAILED)
                    raise TransferError(
                        f"Transfer did not complete successfully (rc={report.returncode})",
                        returncode=report.returncode)
                report.advance(RunState.TRANSFER_SUCCEEDED)

                # so the snapshot carries the time it was completed
                store.touch(name)

                if config.link_dest is not None:
                    store.link_latest(config.link_dest, name)
                report.advance(RunState.LINK_UPDATED)
            else:
                lgr.info("Dry run, skipping transfer", arguments=report.arguments)

            report.decision = config.policy.plan(today)
            report.advance(RunState.ROTATION_PLANNED)

            for deletion in report.decision.deletions:
                target = deletion.snapshot(config.date_format).name
                if target == name:
                    lgr.warning("Refusing to remove the snapshot just made", target=target)
                    continue
                lgr.debug("Rotating", target=target, reason=deletion.reason)
                if store.delete(target, dryrun=dryrun):
                    report.deleted.append(target)
            report.advance(RunState.ROTATION_APPLIED)

        report.advance(RunState.DONE)
        lgr.info("Backup run done", deleted=report.deleted)
        return report

    def _validate_source(self) -> str:
        source = self.config.source
        if not source:
            raise ValidationError("Source missing")
        # host:path sources are checked by the transfer tool itself
        if (':' not in source) and (not Path(source).is_dir()):
            raise ValidationError(f"Source not found: {source}")
        source = ensure_slashed(source)
        logger.debug("Source validated", source=source)
        return source

    def _validate_dest_root(self):
        dest_root = self.config.dest_root
        if dest_root is None:
            raise ValidationError("Destination root missing")
        if not dest_root.is_dir():
            raise ValidationError(f"Destination root not found: {dest_root}")

    def _validate_link_dest(self, store: SnapshotStore) -> Optional[Path]:
        link = self.config.link_dest
        if link is None:
            logger.debug("No reference link configured")
            return None
        path = store.path_for(link)
        state = store.link_state(link)
        if state is LinkState.WRONG_KIND:
            raise ValidationError(f"Reference link must be a symlink: {path}")
        if state is LinkState.ABSENT:
            logger.warning("Reference link does not exist (yet), transferring without it", link=path)
            return None
        logger.debug("Reference link validated", link=path)
        return path
