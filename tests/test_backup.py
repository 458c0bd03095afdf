import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from datetime import date, timedelta

from rotasync.config import resolve_config
from rotasync.backup import BackupJob, RunState
from rotasync.errors import ValidationError, TransferError, NothingToDoError

# 2025-09-01 is a Monday
MONDAY_1ST = date(2025, 9, 1)
TUESDAY_2ND = date(2025, 9, 2)


class FakeTransfer:
    """
    Stands in for rsync: records the calls and creates the destination with
    an old modification time, like --archive copying an old source directory.
    """

    def __init__(self, returncode: int = 0):
        self.returncode = returncode
        self.calls = []

    def __call__(self, args, source, destination):
        self.calls.append((list(args), source, destination))
        path = Path(destination)
        path.mkdir()
        path.joinpath('file.txt').write_text('data')
        os.utime(path, (0, 0))
        return self.returncode


class TestBackupJob(unittest.TestCase):

    def setUp(self):
        self.tmp = TemporaryDirectory()
        root = Path(self.tmp.name)
        self.source = root.joinpath('source')
        self.source.mkdir()
        self.dest_root = root.joinpath('backups')
        self.dest_root.mkdir()
        self.transfer = FakeTransfer()

    def tearDown(self):
        self.tmp.cleanup()

    def make_job(self, **options) -> BackupJob:
        cli = {'source': str(self.source), 'dest_root': self.dest_root, 'link_dest': 'latest'}
        cli.update(options)
        return BackupJob(config=resolve_config(cli=cli), transfer=self.transfer)

    def snapshots(self) -> list[str]:
        return sorted(p.name for p in self.dest_root.iterdir() if p.is_dir() and not p.is_symlink())

    def link_target(self) -> str:
        return os.readlink(self.dest_root.joinpath('latest'))

    def test_first_run(self):
        report = self.make_job().run(today=MONDAY_1ST)

        self.assertEqual(report.state, RunState.DONE)
        self.assertEqual(report.snapshot, '2025-09-01')
        self.assertEqual(report.returncode, 0)
        self.assertEqual(report.deleted, [])
        self.assertEqual(self.snapshots(), ['2025-09-01'])
        self.assertEqual(self.link_target(), '2025-09-01')

        args, source, destination = self.transfer.calls[0]
        self.assertEqual(source, f'{self.source}/')
        self.assertEqual(destination, f'{self.dest_root}/2025-09-01/')
        # the link does not exist yet on the first run
        self.assertFalse(any(a.startswith('--link-dest') for a in args))

    def test_second_run_links_against_and_rotates_the_first(self):
        job = self.make_job()
        job.run(today=MONDAY_1ST)
        report = job.run(today=TUESDAY_2ND)

        args, _, _ = self.transfer.calls[1]
        self.assertIn(f'--link-dest={self.dest_root}/latest/', args)
        self.assertEqual(report.deleted, ['2025-09-01'])
        self.assertEqual(self.snapshots(), ['2025-09-02'])
        self.assertEqual(self.link_target(), '2025-09-02')

    def test_keeps_monday_with_weekly_depth(self):
        job = self.make_job(weekly=1)
        job.run(today=MONDAY_1ST)
        job.run(today=TUESDAY_2ND)
        self.assertEqual(self.snapshots(), ['2025-09-01', '2025-09-02'])

    def test_normalizes_modification_time(self):
        self.make_job().run(today=MONDAY_1ST)
        self.assertGreater(self.dest_root.joinpath('2025-09-01').stat().st_mtime, 0)

    def test_failed_transfer_leaves_everything_in_place(self):
        self.make_job().run(today=MONDAY_1ST)
        self.transfer.returncode = 23

        with self.assertRaises(TransferError) as cm:
            self.make_job().run(today=TUESDAY_2ND)
        self.assertEqual(cm.exception.returncode, 23)
        self.assertEqual(cm.exception.exit_code, 4)
        self.assertIn('2025-09-01', self.snapshots())
        self.assertEqual(self.link_target(), '2025-09-01')

    def test_works_without_link(self):
        report = self.make_job(link_dest=None).run(today=MONDAY_1ST)
        self.assertEqual(report.state, RunState.DONE)
        self.assertFalse(self.dest_root.joinpath('latest').exists())

    def test_passes_options_to_transfer(self):
        excludes = Path(self.tmp.name).joinpath('excludes')
        excludes.write_text('*.tmp\n')
        self.make_job(exclude_from=excludes, verbose=True, args='-a').run(today=MONDAY_1ST)
        args, _, _ = self.transfer.calls[0]
        self.assertEqual(args, ['-a', '--verbose', f'--exclude-from={excludes}'])

    def test_named_snapshot(self):
        report = self.make_job(name='before-upgrade').run(today=MONDAY_1ST)
        self.assertEqual(report.snapshot, 'before-upgrade')
        self.assertEqual(self.link_target(), 'before-upgrade')

    def test_remote_source_is_not_checked(self):
        self.make_job(source='backup@host:/srv/data').run(today=MONDAY_1ST)
        _, source, _ = self.transfer.calls[0]
        self.assertEqual(source, 'backup@host:/srv/data/')

    def test_fails_with_missing_source(self):
        with self.assertRaisesRegex(ValidationError, 'Source missing'):
            self.make_job(source=None).run(today=MONDAY_1ST)
        with self.assertRaisesRegex(ValidationError, 'Source not found'):
            self.make_job(source=str(self.source.joinpath('gone'))).run(today=MONDAY_1ST)
        self.assertEqual(self.transfer.calls, [])

    def test_fails_with_missing_dest_root(self):
        with self.assertRaisesRegex(ValidationError, 'Destination root missing'):
            self.make_job(dest_root=None).run(today=MONDAY_1ST)
        with self.assertRaisesRegex(ValidationError, 'Destination root not found'):
            self.make_job(dest_root=self.dest_root.joinpath('gone')).run(today=MONDAY_1ST)

    def test_fails_when_destination_exists(self):
        self.dest_root.joinpath('2025-09-01').mkdir()
        with self.assertRaisesRegex(ValidationError, 'Destination already exists'):
            self.make_job().run(today=MONDAY_1ST)
        self.assertEqual(self.transfer.calls, [])

    def test_fails_when_link_is_not_a_symlink(self):
        self.dest_root.joinpath('latest').mkdir()
        with self.assertRaisesRegex(ValidationError, 'must be a symlink'):
            self.make_job().run(today=MONDAY_1ST)
        self.assertEqual(self.transfer.calls, [])

    def test_fails_with_missing_exclude_file(self):
        with self.assertRaisesRegex(ValidationError, 'Exclude file not found'):
            self.make_job(exclude_from=Path(self.tmp.name).joinpath('gone')).run(today=MONDAY_1ST)
        self.assertEqual(self.transfer.calls, [])

    def test_dryrun_changes_nothing(self):
        job = self.make_job()
        job.run(today=MONDAY_1ST)
        self.dest_root.joinpath('.rotasync.lock').unlink()
        report = job.run(today=TUESDAY_2ND, dryrun=True)

        self.assertEqual(len(self.transfer.calls), 1)
        self.assertEqual(report.state, RunState.DONE)
        self.assertEqual(report.deleted, ['2025-09-01'])
        self.assertIn(f'--link-dest={self.dest_root}/latest/', report.arguments)
        self.assertEqual(self.snapshots(), ['2025-09-01'])
        self.assertEqual(self.link_target(), '2025-09-01')
        self.assertFalse(self.dest_root.joinpath('.rotasync.lock').exists())

    def test_skips_days_without_work(self):
        job = self.make_job(daily=0, weekly=2)
        with self.assertRaises(NothingToDoError) as cm:
            job.run(today=TUESDAY_2ND)
        self.assertEqual(cm.exception.exit_code, 0)
        self.assertEqual(self.transfer.calls, [])

        job.run(today=MONDAY_1ST)
        self.assertEqual(self.snapshots(), ['2025-09-01'])

    def test_depth_rotation_stays_bounded(self):
        job = self.make_job(daily=7, weekly=4, monthly=3)
        start = date(2025, 1, 1)
        for i in range(200):
            today = start + timedelta(days=i)
            job.run(today=today)
            snapshots = self.snapshots()
            self.assertEqual(self.link_target(), today.isoformat())
            # the last 7 days are always there
            for n in range(min(i + 1, 7)):
                self.assertIn((today - timedelta(days=n)).isoformat(), snapshots)
            self.assertLessEqual(len(snapshots), 25)

    def test_flags_rotation_stays_bounded(self):
        job = self.make_job(mode='flags', daily=1, weekly=1, monthly=1)
        start = date(2025, 1, 1)
        for i in range(120):
            today = start + timedelta(days=i)
            job.run(today=today)
            snapshots = self.snapshots()
            self.assertIn(today.isoformat(), snapshots)
            self.assertLessEqual(len(snapshots), 4)


if __name__ == '__main__':
    unittest.main(verbosity=2)
