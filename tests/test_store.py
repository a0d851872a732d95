import unittest
from datetime import datetime, timezone

import pytest

from models import ClaimKey, PayoutRecord
from storage.store import EXPECT_ABSENT, EXPECT_OPEN, SqliteClaimStore, normalize_pr_url

KEY = ClaimKey(1, 7)
URL = 'https://github.com/acme/widgets/pull/7'


class TestProjects(unittest.TestCase):
    def setUp(self):
        self.store = SqliteClaimStore(':memory:')

    def tearDown(self):
        self.store.close()

    def test_add_and_lookup(self):
        project = self.store.add_project('https://github.com/Acme/Widgets', 0.01, 0.10)
        self.assertEqual(project.repo_identifier, 'acme/widgets')
        self.assertEqual(self.store.get_project(project.id).highest_bounty, 0.10)
        self.assertEqual(self.store.find_project_by_repository('ACME/widgets').id, project.id)
        self.assertIsNone(self.store.find_project_by_repository('acme/gadgets'))
        self.assertEqual([p.id for p in self.store.list_projects()], [project.id])

    def test_invalid_range_rejected(self):
        for lowest, highest in ((0, 1), (0.5, 0.5), (2, 1), (-1, 1)):
            with self.assertRaises(ValueError):
                self.store.add_project('acme/widgets', lowest, highest)

    def test_duplicate_rejected(self):
        self.store.add_project('acme/widgets', 1, 2)
        with self.assertRaises(ValueError):
            self.store.add_project('ACME/Widgets', 1, 3)


class TestClaimableUnits(unittest.TestCase):
    def setUp(self):
        self.store = SqliteClaimStore(':memory:')

    def tearDown(self):
        self.store.close()

    def test_absent_fields_stay_absent(self):
        self.store.upsert_claimable_unit(KEY, {'pr_url': URL})
        unit = self.store.get_claimable_unit(KEY)
        self.assertIsNone(unit.bounty_claimed)
        self.assertIsNone(unit.amount_paid)
        defaults = unit.with_defaults()
        self.assertFalse(defaults.bounty_claimed)
        self.assertEqual(defaults.amount_paid, 0.0)

    def test_expect_absent_inserts_once(self):
        self.assertTrue(self.store.upsert_claimable_unit(KEY, {'score': 5.0}, expected_prior_state=EXPECT_ABSENT))
        self.assertFalse(self.store.upsert_claimable_unit(KEY, {'score': 9.0}, expected_prior_state=EXPECT_ABSENT))
        self.assertEqual(self.store.get_claimable_unit(KEY).score, 5.0)

    def test_expect_open_transitions_once(self):
        self.store.upsert_claimable_unit(KEY, {'merged': True})
        claim = {'bounty_claimed': True, 'bounty_claimed_by': 'alice', 'bounty_claimed_at': datetime(2025, 1, 13, tzinfo=timezone.utc)}
        self.assertTrue(self.store.upsert_claimable_unit(KEY, claim, expected_prior_state=EXPECT_OPEN))
        self.assertFalse(self.store.upsert_claimable_unit(KEY, dict(claim, bounty_claimed_by='bob'), expected_prior_state=EXPECT_OPEN))
        unit = self.store.get_claimable_unit(KEY)
        self.assertEqual(unit.bounty_claimed_by, 'alice')
        self.assertEqual(unit.bounty_claimed_at, datetime(2025, 1, 13, tzinfo=timezone.utc))

    def test_expect_open_on_missing_record(self):
        self.assertFalse(self.store.upsert_claimable_unit(KEY, {'bounty_claimed': True}, expected_prior_state=EXPECT_OPEN))
        self.assertIsNone(self.store.get_claimable_unit(KEY))

    def test_unconditional_upsert_merges(self):
        self.store.upsert_claimable_unit(KEY, {'score': 4.0, 'pr_url': URL})
        self.store.upsert_claimable_unit(KEY, {'bounty_amount': 0.05})
        unit = self.store.get_claimable_unit(KEY)
        self.assertEqual((unit.score, unit.bounty_amount), (4.0, 0.05))

    def test_url_index(self):
        self.store.upsert_claimable_unit(ClaimKey(1, 7), {'pr_url': URL + '/'})
        self.store.upsert_claimable_unit(ClaimKey(2, 7), {'pr_url': URL.upper()})
        self.store.upsert_claimable_unit(ClaimKey(3, 8), {'pr_url': 'https://github.com/acme/widgets/pull/8'})
        found = self.store.find_claimable_units_by_url(URL)
        self.assertEqual([u.key for u in found], [ClaimKey(1, 7), ClaimKey(2, 7)])
        self.assertEqual(self.store.find_claimable_units_by_url(''), [])

    def test_transaction_rolls_back(self):
        with self.assertRaises(RuntimeError):
            with self.store.transaction():
                self.store.upsert_claimable_unit(KEY, {'score': 1.0})
                raise RuntimeError('abort')
        self.assertIsNone(self.store.get_claimable_unit(KEY))

    def test_payouts(self):
        record = PayoutRecord('bounty-1-7-abc', 0.064, 'alice', 1, 'completed', datetime(2025, 1, 13, tzinfo=timezone.utc), unit_id=1)
        self.store.create_payout_record(record)
        self.assertEqual(self.store.list_payouts(1), [record])
        self.assertEqual(self.store.list_payouts(2), [])


def test_unknown_field_rejected():
    with SqliteClaimStore(':memory:') as store:
        with pytest.raises(ValueError):
            store.upsert_claimable_unit(KEY, {'owner': 'alice'})
        with pytest.raises(ValueError):
            store.upsert_claimable_unit(KEY, {'score': 1.0}, expected_prior_state='maybe')


def test_normalize_pr_url():
    assert normalize_pr_url(' https://GitHub.com/acme/widgets/pull/7/ ') == URL
    assert normalize_pr_url(None) is None


def test_file_backed_store_persists(tmp_path):
    path = str(tmp_path / 'ledger.db')
    with SqliteClaimStore(path) as store:
        store.add_project('acme/widgets', 1, 2)
        store.upsert_claimable_unit(KEY, {'score': 3.0})
    with SqliteClaimStore(path) as store:
        assert store.get_claimable_unit(KEY).score == 3.0
        assert store.find_project_by_repository('acme/widgets') is not None


if __name__ == '__main__':
    unittest.main()
