import unittest

from errors import AlreadyClaimed, NotAuthor, NotMerged, ProjectNotFound, SpamContribution, WrongRepository
from evaluator import ContributionPipeline
from models import ClaimKey, ContributionAnalysis, Credentials, MetricScoreSet, SOURCE_LOCAL, SOURCE_ORACLE
from storage.store import SqliteClaimStore

from helpers import FakeGitHubClient, PR_URL, pull_payload

ALICE = Credentials(github_token='alice-token', user_handle='alice')
BOB = Credentials(github_token='bob-token', user_handle='bob')


class StubOracle:
    """Returns a fixed analysis, or None to force the local fallback."""

    def __init__(self, analysis=None):
        self.analysis = analysis
        self.calls = []

    def try_oracle(self, signal, metric_scores, local_final_score=None, weights=None):
        self.calls.append((signal.number, local_final_score))
        return self.analysis


def _oracle_analysis(score=6.0):
    return ContributionAnalysis(
        category='medium',
        final_score=score,
        metric_scores=MetricScoreSet(6, 6, 6, 6, 6, 6),
        reasoning='balanced change',
        source=SOURCE_ORACLE,
    )


class TestContributionPipeline(unittest.TestCase):
    def setUp(self):
        self.store = SqliteClaimStore(':memory:')
        self.project = self.store.add_project('acme/widgets', 0.01, 0.10)
        self.clients = []

    def tearDown(self):
        self.store.close()

    def _pipeline(self, responses=None, oracle=None):
        def factory(token):
            client = FakeGitHubClient(responses, token=token)
            self.clients.append(client)
            return client
        return ContributionPipeline(self.store, client_factory=factory, oracle=oracle)

    def test_claim_example_amount(self):
        pipeline = self._pipeline(oracle=StubOracle(_oracle_analysis(6.0)))
        outcome = pipeline.claim_bounty(PR_URL, self.project.id, None, ALICE)
        self.assertEqual(outcome.payout.amount, 0.064)
        self.assertEqual(outcome.payout.developer_id, 'alice')
        self.assertEqual(outcome.analysis.source, SOURCE_ORACLE)
        self.assertEqual(outcome.breakdown['amount'], 0.064)
        self.assertEqual(self.clients[0].token, 'alice-token')
        unit = self.store.get_claimable_unit(ClaimKey(self.project.id, 7))
        self.assertTrue(unit.bounty_claimed)
        self.assertEqual(unit.score, 6.0)
        self.assertEqual(unit.pr_url, PR_URL)
        self.assertEqual(outcome.to_dict()['claimable_unit']['amount_paid'], 0.064)

    def test_second_claim_already_claimed(self):
        pipeline = self._pipeline(oracle=StubOracle(_oracle_analysis(6.0)))
        pipeline.claim_bounty(PR_URL, self.project.id, None, ALICE)
        with self.assertRaises(AlreadyClaimed) as ctx:
            pipeline.claim_bounty(PR_URL, self.project.id, None, ALICE)
        self.assertEqual(ctx.exception.unit.amount_paid, 0.064)
        self.assertEqual(len(self.store.list_payouts()), 1)

    def test_non_author_stops_before_aggregation(self):
        pipeline = self._pipeline()
        with self.assertRaises(NotAuthor):
            pipeline.claim_bounty(PR_URL, self.project.id, None, BOB)
        self.assertEqual(self.clients[0].called('list_files'), 0)
        self.assertIsNone(self.store.get_claimable_unit(ClaimKey(self.project.id, 7)))
        self.assertEqual(self.store.list_payouts(), [])

    def test_wrong_repository(self):
        other = self.store.add_project('acme/gadgets', 1, 2)
        with self.assertRaises(WrongRepository):
            self._pipeline().validate_and_score(PR_URL, other.id, ALICE)
        self.assertEqual(self.clients[0].calls, [])

    def test_oracle_failure_falls_back_to_local(self):
        oracle = StubOracle(None)
        analysis = self._pipeline(oracle=oracle).validate_and_score(PR_URL, self.project.id, ALICE)
        self.assertEqual(analysis.source, SOURCE_LOCAL)
        self.assertEqual(len(oracle.calls), 1)
        self.assertEqual(oracle.calls[0][0], 7)

    def test_without_oracle_scores_locally(self):
        analysis = self._pipeline().validate_and_score(PR_URL, self.project.id, ALICE)
        self.assertEqual(analysis.source, SOURCE_LOCAL)
        self.assertTrue(0 <= analysis.final_score <= 10)
        self.assertIsNone(self.store.get_claimable_unit(ClaimKey(self.project.id, 7)))

    def test_zero_score_is_spam(self):
        pipeline = self._pipeline(oracle=StubOracle(_oracle_analysis(0.0)))
        with self.assertRaises(SpamContribution):
            pipeline.claim_bounty(PR_URL, self.project.id, None, ALICE)
        self.assertEqual(self.store.list_payouts(), [])

    def test_project_resolved_by_repository(self):
        pipeline = self._pipeline(oracle=StubOracle(_oracle_analysis(10.0)))
        outcome = pipeline.claim_bounty(PR_URL, None, 'alice-payouts', ALICE)
        self.assertEqual(outcome.payout.project_id, self.project.id)
        self.assertEqual(outcome.payout.amount, 0.1)
        self.assertEqual(outcome.payout.developer_id, 'alice-payouts')

    def test_unknown_project(self):
        with self.assertRaises(ProjectNotFound):
            self._pipeline().validate_and_score('https://github.com/other/repo/pull/1', None, ALICE)
        with self.assertRaises(ProjectNotFound):
            self._pipeline().validate_and_score(PR_URL, 999, ALICE)

    def test_check_claim_status(self):
        pipeline = self._pipeline(oracle=StubOracle(_oracle_analysis(6.0)))
        before = pipeline.check_claim_status(PR_URL, self.project.id)
        self.assertFalse(before['claimed'])
        self.assertEqual(before['amount'], 0.0)
        pipeline.claim_bounty(PR_URL, self.project.id, None, ALICE)
        after = pipeline.check_claim_status(PR_URL)
        self.assertTrue(after['claimed'])
        self.assertEqual(after['claimed_by'], 'alice')
        self.assertEqual(after['amount'], 0.064)
        self.assertEqual(after['key'], {'project_id': self.project.id, 'pr_number': 7})

    def test_unmerged_claim_writes_nothing(self):
        pipeline = self._pipeline({'get_pull_request': pull_payload(merged=False)})
        with self.assertRaises(NotMerged):
            pipeline.claim_bounty(PR_URL, self.project.id, None, ALICE)
        self.assertEqual(self.store.list_payouts(), [])


if __name__ == '__main__':
    unittest.main()
