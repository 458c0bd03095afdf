import unittest
from datetime import date

from rotasync.interfaces import (SnapshotName, Snapshot, Deletion, RotationDecision, LinkState,
                                 name_for)


class TestSnapshotName(unittest.TestCase):

    def test_can_create_valid(self):
        self.assertEqual(SnapshotName('2025-06-01'), '2025-06-01')
        self.assertEqual(SnapshotName('latest'), 'latest')

    def test_fails_with_slash(self):
        with self.assertRaisesRegex(ValueError, 'must be a single non-empty path component'):
            SnapshotName('backups/2025-06-01')

    def test_fails_with_empty_or_dots(self):
        for name in ('', '.', '..'):
            with self.assertRaises(ValueError):
                SnapshotName(name)


class TestNameFor(unittest.TestCase):

    def test_iso_format_is_ten_characters(self):
        for d in (date(2025, 1, 1), date(1999, 12, 31), date(2024, 2, 29)):
            name = name_for(d, '%Y-%m-%d')
            self.assertEqual(len(name), 10)
            self.assertEqual(name, d.isoformat())

    def test_is_deterministic(self):
        d = date(2025, 6, 1)
        self.assertEqual(name_for(d, '%Y%m%d-daily'), name_for(d, '%Y%m%d-daily'))
        self.assertEqual(name_for(d, '%Y%m%d-daily'), '20250601-daily')

    def test_defaults_to_iso_format(self):
        self.assertEqual(name_for(date(2025, 6, 1)), '2025-06-01')

    def test_fails_with_format_producing_a_path(self):
        with self.assertRaises(ValueError):
            name_for(date(2025, 6, 1), 'backups/%Y-%m-%d')


class TestSnapshot(unittest.TestCase):

    def test_name_follows_format(self):
        snapshot = Snapshot(date=date(2025, 6, 1), date_format='%d.%m.%Y')
        self.assertEqual(snapshot.name, '01.06.2025')
        self.assertEqual(str(snapshot), '01.06.2025')

    def test_is_frozen(self):
        snapshot = Snapshot(date=date(2025, 6, 1))
        with self.assertRaises(ValueError):
            snapshot.date = date(2025, 6, 2)


class TestRotationDecision(unittest.TestCase):

    def test_names_are_formatted_in_order(self):
        decision = RotationDecision(today=date(2025, 9, 2),
                                    deletions=(Deletion(date=date(2025, 8, 1), reason='new month'),
                                               Deletion(date=date(2025, 9, 1), reason='previous day')))
        self.assertEqual(decision.names(), ['2025-08-01', '2025-09-01'])
        self.assertEqual(decision.deletions[0].snapshot('%Y%m%d').name, '20250801')

    def test_defaults_to_no_deletions(self):
        decision = RotationDecision(today=date(2025, 9, 2))
        self.assertEqual(decision.deletions, ())
        self.assertEqual(decision.names(), [])

    def test_rejects_unknown_reason(self):
        with self.assertRaises(ValueError):
            Deletion(date=date(2025, 8, 1), reason='new year')


class TestLinkState(unittest.TestCase):

    def test_values(self):
        self.assertEqual({s.value for s in LinkState}, {'absent', 'reference', 'wrong_kind'})


if __name__ == '__main__':
    unittest.main(verbosity=2)
