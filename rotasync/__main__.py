import sys
import argparse
from pathlib import Path
from datetime import date as Date
from typing import Optional, Sequence
from importlib.metadata import PackageNotFoundError, version

from tabulate import tabulate

from rotasync import logging
from rotasync.backup import BackupJob, RunReport
from rotasync.errors import BackupError, NothingToDoError
from rotasync.config import BackupConfig, load_config_file, resolve_config

try:
    VERSION = version('rotasync')
except PackageNotFoundError:
    # running from a source checkout that was never installed
    VERSION = 'unknown'

logger = logging.get_logger('rotasync')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='rotasync',
        description='Makes a dated rsync snapshot and rotates the old ones away.',
        epilog='Command line options take precedence over the configuration file.'
    )
    parser.add_argument('-V', '--version', action='version', version=f'%(prog)s {VERSION}')
    parser.add_argument('-v', '--verbose', action='store_const', const=True,
                        help='enable verbose mode')
    parser.add_argument('-l', '--log-file', type=Path,
                        help='log to FILE instead of stdout, also passed to rsync')
    parser.add_argument('-c', '--config', type=Path,
                        help='read key=value options from FILE')
    parser.add_argument('--exclude-from', type=Path,
                        help="excludes file, rsync's --exclude-from")
    parser.add_argument('-s', '--source',
                        help='source of the backup')
    parser.add_argument('-d', '--dest-root', type=Path,
                        help='directory holding the snapshots')
    parser.add_argument('--date-format',
                        help='strftime format naming the snapshots, default %%Y-%%m-%%d')
    parser.add_argument('-n', '--name',
                        help='name of the snapshot made today instead of the formatted date')
    parser.add_argument('--link-dest', metavar='SYMLINK',
                        help='name of the symlink in --dest-root pointing to the latest snapshot, '
                        "used as rsync's --link-dest")
    parser.add_argument('--args',
                        help='arguments for rsync, without --verbose, --exclude-from, --log-file '
                        'or --link-dest which are added when needed')
    parser.add_argument('--mode', choices=['depth', 'flags'],
                        help='depth: keep NUM days, weeks and months (default); '
                        'flags: keep NUM days plus one weekly and/or one monthly snapshot')
    parser.add_argument('--daily', type=int, metavar='NUM', help='daily snapshots to keep')
    parser.add_argument('--weekly', type=int, metavar='NUM',
                        help='weekly snapshots to keep (0|1 with --mode flags)')
    parser.add_argument('--monthly', type=int, metavar='NUM',
                        help='monthly snapshots to keep (0|1 with --mode flags)')
    parser.add_argument('--dry-run', action='store_true',
                        help='validate and show what would be removed without transferring, linking, '
                        'deleting or creating the lock file')
    return parser


def format_plan(report: RunReport, config: BackupConfig) -> str:
    rows = [[
        d.date.isoformat(),
        d.snapshot(config.date_format).name,
        d.reason,
        'yes' if d.snapshot(config.date_format).name in report.deleted else 'no',
    ] for d in report.decision.deletions]
    return tabulate(rows, headers=['date', 'snapshot', 'reason', 'present'], tablefmt='simple')


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    cli = {k: v for k, v in vars(args).items() if k not in ('config', 'dry_run')}

    logger.info(f"rotasync v{VERSION}")
    logger.info("Run started", date=Date.today().isoformat(),
                command_line=' '.join(sys.argv[1:] if argv is None else argv))
    try:
        file_values = load_config_file(args.config) if args.config is not None else {}
        config = resolve_config(cli=cli, file=file_values)
        logging.configure_sink(config.log_file, verbose=config.verbose)

        report = BackupJob(config=config).run(dryrun=args.dry_run)
        if args.dry_run:
            print(format_plan(report, config))
        return 0
    except NothingToDoError as e:
        if not logging.is_sink_configured():
            logging.configure_sink()
        logger.info("Skipping run", reason=str(e))
        return e.exit_code
    except BackupError as e:
        if not logging.is_sink_configured():
            logging.configure_sink()
        logger.error("Run aborted", error=str(e), error_type=type(e).__name__)
        return e.exit_code
    except Exception:
        if not logging.is_sink_configured():
            logging.configure_sink()
        logger.exception("Run failed unexpectedly")
        raise


if __name__ == '__main__':
    sys.exit(main())
