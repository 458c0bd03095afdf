class BackupError(Exception):
    """
    Base error for a backup run that could not complete.
    """
    exit_code = 1


class ConfigurationError(BackupError):
    """
    Error indicating a missing or invalid option.
    """
    exit_code = 2


class NothingToDoError(ConfigurationError):
    """
    Error indicating the retention policy has nothing to rotate today, so the
    run is skipped before anything is transferred.
    """
    exit_code = 0


class ValidationError(BackupError):
    """
    Error indicating that the source, destination, exclude file or reference
    link is unusable for this run.
    """
    exit_code = 3


class TransferError(BackupError):
    """
    Error indicating that the transfer tool did not complete successfully.
    """
    exit_code = 4

    def __init__(self, message: str, returncode: int):
        super().__init__(message)
        self.returncode = returncode


class RotationError(BackupError):
    """
    Error indicating that an obsolete snapshot could not be removed.
    Removing a snapshot that does not exist is not an error.
    """
    exit_code = 5
