"""
The external file transfer tool, rsync by default, invoked as a black box.
"""

import time
import subprocess
from pathlib import Path
from typing import Optional, Protocol, Sequence, runtime_checkable

import humanize
from pydantic import BaseModel, ConfigDict

from rotasync import logging
from rotasync.otel import trace, with_tracer

logger = logging.get_logger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_ARGS = ('--archive', '--hard-links', '--delete')


@runtime_checkable
class Transfer(Protocol):
    """
    Copies ``source`` into ``destination``; an exit code of 0 is the only
    success.
    """

    def __call__(self, args: Sequence[str], source: str, destination: str) -> int:
        ...


def ensure_slashed(path: str | Path) -> str:
    path = str(path)
    return path if path.endswith('/') else path + '/'


def build_arguments(args: Sequence[str],
                    verbose: bool = False,
                    log_file: Optional[Path] = None,
                    exclude_from: Optional[Path] = None,
                    link_dest: Optional[Path] = None) -> list[str]:
    """
    Assemble the transfer tool arguments from the base ``args``.

    Args:
        args (Sequence[str]): Base arguments, configured or the defaults.
        verbose (bool): Adds --verbose.
        log_file (Optional[Path]): Adds --log-file, placed first.
        exclude_from (Optional[Path]): Adds --exclude-from.
        link_dest (Optional[Path]): Adds --link-dest, the previous snapshot used to
            hard link unchanged files. Only pass it when the reference link exists.

    Returns:
        list[str]: The full argument list, source and destination excluded.
    """
    arguments = list(args)
    if log_file is not None:
        arguments.insert(0, f'--log-file={log_file}')
    if verbose and '--verbose' not in arguments and '-v' not in arguments:
        arguments.append('--verbose')
    if exclude_from is not None:
        arguments.append(f'--exclude-from={exclude_from}')
    if link_dest is not None:
        arguments.append(f'--link-dest={ensure_slashed(link_dest)}')
    return arguments


class RsyncTransfer(BaseModel):
    """
    Runs rsync, logging its output.
    """

    model_config = ConfigDict(frozen=True)

    executable: str = 'rsync'

    def __str__(self):
        return f"RsyncTransfer(executable={self.executable})"

    @with_tracer(tracer)
    def __call__(self, args: Sequence[str], source: str, destination: str) -> int:
        cmd = [self.executable, *args, source, destination]
        lgr = logger.bind(cmd=' '.join(cmd))
        lgr.info("Running transfer")
        start = time.monotonic()
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            # the executable is missing or not runnable, report it like rsync would
            lgr.error("Failed to start transfer", error=str(e))
            return 127
        lgr = lgr.bind(returncode=result.returncode,
                       duration=humanize.naturaldelta(time.monotonic() - start))

        for line in result.stdout.splitlines():
            lgr.debug(line)
        for line in result.stderr.splitlines():
            if result.returncode:
                lgr.error(line)
            else:
                lgr.warning(line)
        lgr.info("Transfer finished")
        return result.returncode
