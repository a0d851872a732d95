import csv
import io
import json
import unittest

from models import ContributionAnalysis, MetricScoreSet, SOURCE_LOCAL
from report.renderer import render, render_status

ANALYSIS = ContributionAnalysis(
    category='medium',
    final_score=6.1,
    metric_scores=MetricScoreSet(4.6, 4.0, 6.5, 9.0, 2.8, 10.0),
    reasoning='Code size 4.6/10 <script>alert(1)</script>',
    source=SOURCE_LOCAL,
    key_insights={'risk_assessment': 'low risk & well tested'},
)

CLAIM = {
    'payout': {'id': 'bounty-1-7-abc123', 'amount': 0.064, 'developer_id': 'alice', 'status': 'completed'},
    'analysis': ANALYSIS.to_dict(),
    'bounty_calculation': {'formula': '0.01 + (0.1 - 0.01) * 6.0 / 10 = 0.064', 'amount': 0.064},
    'claimable_unit': None,
}


class TestRenderer(unittest.TestCase):
    def test_text(self):
        out = render(ANALYSIS, 'text', claim=CLAIM)
        self.assertIn('Category: medium', out)
        self.assertIn('Final score: 6.1/10 (source: local)', out)
        self.assertIn('Review depth: 2.8', out)
        self.assertIn('Bounty: 0.064 claimed by alice', out)

    def test_markdown(self):
        out = render(ANALYSIS, 'md', claim=CLAIM, pr_url='https://github.com/acme/widgets/pull/7', generated_at='2025-01-13T09:30:00+00:00')
        self.assertTrue(out.startswith('# Contribution Analysis'))
        self.assertIn('| First review wait | 9.0 |', out)
        self.assertIn('**risk assessment**', out)
        self.assertIn('`bounty-1-7-abc123`', out)
        self.assertIn('_Generated at 2025-01-13T09:30:00+00:00_', out)

    def test_html_escapes_untrusted_text(self):
        out = render(ANALYSIS, 'html', claim=CLAIM)
        self.assertIn('&lt;script&gt;', out)
        self.assertNotIn('<script>', out)
        self.assertIn('low risk &amp; well tested', out)
        self.assertIn('class="category-medium"', out)

    def test_csv(self):
        rows = list(csv.reader(io.StringIO(render(ANALYSIS, 'csv', claim=CLAIM))))
        self.assertEqual(rows[0][:3], ['category', 'final_score', 'source'])
        self.assertEqual(rows[0][-1], 'bounty_amount')
        self.assertEqual(rows[1][0], 'medium')
        self.assertEqual(rows[1][-1], '0.064')
        self.assertEqual(len(rows), 2)

    def test_json_analysis_and_claim(self):
        body = json.loads(render(ANALYSIS, 'json'))
        self.assertTrue(body['success'])
        self.assertEqual(body['analysis']['metric_scores']['code_quality'], 10.0)
        claim = json.loads(render(ANALYSIS, 'json', claim=CLAIM))
        self.assertEqual(claim['payout']['amount'], 0.064)

    def test_status(self):
        self.assertEqual(render_status({'claimed': False}), 'Bounty not claimed yet')
        claimed = {'claimed': True, 'claimed_by': 'alice', 'claimed_at': '2025-01-13T09:30:00+00:00', 'amount': 0.064}
        self.assertIn('Bounty claimed by alice', render_status(claimed))
        self.assertEqual(json.loads(render_status(claimed, 'json'))['amount'], 0.064)

    def test_nothing_to_render(self):
        self.assertEqual(render(None, 'text'), '')


if __name__ == '__main__':
    unittest.main()
