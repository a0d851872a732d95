import json
import unittest
from unittest.mock import Mock, patch

import pytest
import requests

from errors import OracleSchemaError, OracleUnavailable
from models import MetricScoreSet, SOURCE_ORACLE
from scoring.oracle import (
    CategorizationOracle,
    ExecutionNestedOracleResponse,
    FlatOracleResponse,
    extract_analysis_object,
    normalize_oracle_payload,
    oracle_from_env,
    parse_oracle_response,
)

from helpers import sample_signal

SCORES = {
    'code_size': 5,
    'review_cycles': 4,
    'review_time': 6,
    'first_review_wait': 8,
    'review_depth': 3,
    'code_quality': 9,
}

FLAT = {'category': 'Hard', 'final_score': 7.25, 'metric_scores': SCORES, 'reasoning': 'solid work'}

NESTED = {
    'category': 'medium-impact',
    'final_score': 5.4,
    'score_dimensions': {'execution_score': 5.5, 'impact_score': 5.3},
    'metric_scores': {'execution': SCORES, 'impact': {'architectural_significance': 4, 'blast_radius': 3, 'problem_criticality': 6}},
    'reasoning': 'fine',
    'key_insights': {'impact_assessment': 'moderate', 'risk_assessment': 'low'},
}

LOCAL_SCORES = MetricScoreSet(4.6, 4.0, 6.5, 9.0, 2.8, 10.0)


def _response(status=200, body=None, text=None):
    resp = Mock()
    resp.status_code = status
    if body is not None:
        resp.json.return_value = body
    else:
        resp.json.side_effect = ValueError('not json')
    resp.text = text if text is not None else json.dumps(body)
    return resp


class TestOracleNormalization(unittest.TestCase):
    def test_flat_shape(self):
        analysis = normalize_oracle_payload(FLAT)
        self.assertEqual(analysis.category, 'hard')
        self.assertEqual(analysis.final_score, 7.3)
        self.assertEqual(analysis.metric_scores.code_quality, 9)
        self.assertEqual(analysis.source, SOURCE_ORACLE)

    def test_execution_nested_shape_maps_category(self):
        parsed = parse_oracle_response(NESTED)
        self.assertIsInstance(parsed, ExecutionNestedOracleResponse)
        analysis = parsed.to_analysis()
        self.assertEqual(analysis.category, 'medium')
        self.assertEqual(analysis.metric_scores.review_time, 6)
        self.assertEqual(analysis.key_insights['impact_assessment'], 'moderate')

    def test_shape_detection(self):
        self.assertIsInstance(parse_oracle_response(FLAT), FlatOracleResponse)

    def test_missing_sub_score_rejected(self):
        broken = dict(FLAT, metric_scores={k: v for k, v in SCORES.items() if k != 'review_depth'})
        with self.assertRaises(OracleSchemaError):
            normalize_oracle_payload(broken)

    def test_nested_missing_sub_score_rejected(self):
        execution = {k: v for k, v in SCORES.items() if k != 'code_size'}
        broken = dict(NESTED, metric_scores={'execution': execution})
        with self.assertRaises(OracleSchemaError):
            normalize_oracle_payload(broken)

    def test_out_of_range_and_unknown_category_rejected(self):
        with self.assertRaises(OracleSchemaError):
            normalize_oracle_payload(dict(FLAT, metric_scores=dict(SCORES, code_size=11)))
        with self.assertRaises(OracleSchemaError):
            normalize_oracle_payload(dict(FLAT, category='legendary'))
        with self.assertRaises(OracleSchemaError):
            normalize_oracle_payload(dict(NESTED, category='hard'))

    def test_extraction_variants(self):
        self.assertEqual(extract_analysis_object({'success': True, 'analysis': FLAT}), FLAT)
        text = "Here is my analysis:\n```json\n" + json.dumps(NESTED) + "\n```"
        self.assertEqual(extract_analysis_object(text), NESTED)
        self.assertEqual(extract_analysis_object({'analysis': json.dumps(FLAT)}), FLAT)
        with self.assertRaises(OracleSchemaError):
            extract_analysis_object("no json here")
        with self.assertRaises(OracleSchemaError):
            extract_analysis_object([FLAT])
        with self.assertRaises(OracleUnavailable):
            extract_analysis_object({'success': False, 'error': 'quota'})


class TestOracleTransport(unittest.TestCase):
    def setUp(self):
        self.oracle = CategorizationOracle('https://oracle.example/analyze', token='secret', timeout=3)

    def test_request_payload_and_headers(self):
        with patch('scoring.oracle.requests.post', return_value=_response(body={'success': True, 'analysis': FLAT})) as post:
            analysis = self.oracle.try_oracle(sample_signal(), LOCAL_SCORES, 6.1, {'code_size': 0.2})
        self.assertEqual(analysis.category, 'hard')
        _, kwargs = post.call_args
        self.assertEqual(kwargs['timeout'], 3)
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer secret')
        payload = kwargs['json']
        self.assertEqual(payload['local_metric_scores']['code_size'], 4.6)
        self.assertEqual(payload['local_final_score'], 6.1)
        self.assertEqual(payload['github']['pr']['number'], 7)

    def test_text_body_is_parsed(self):
        resp = _response(body=None, text="analysis follows " + json.dumps(FLAT))
        with patch('scoring.oracle.requests.post', return_value=resp):
            analysis = self.oracle.try_oracle(sample_signal(), LOCAL_SCORES)
        self.assertEqual(analysis.final_score, 7.3)

    def test_timeout_falls_back(self):
        with patch('scoring.oracle.requests.post', side_effect=requests.Timeout('slow')):
            self.assertIsNone(self.oracle.try_oracle(sample_signal(), LOCAL_SCORES))

    def test_non_2xx_falls_back(self):
        with patch('scoring.oracle.requests.post', return_value=_response(status=502, body={'error': 'bad gateway'})):
            self.assertIsNone(self.oracle.try_oracle(sample_signal(), LOCAL_SCORES))

    def test_schema_failure_falls_back(self):
        with patch('scoring.oracle.requests.post', return_value=_response(body={'category': 'easy'})):
            self.assertIsNone(self.oracle.try_oracle(sample_signal(), LOCAL_SCORES))


def test_oracle_from_env(monkeypatch):
    monkeypatch.setattr('scoring.oracle.DEFAULT_ORACLE_URL', None)
    assert oracle_from_env() is None
    oracle = oracle_from_env('https://oracle.example', timeout=5)
    assert oracle.url == 'https://oracle.example'
    assert oracle.timeout == 5.0


@pytest.mark.parametrize('category,expected', [('low-impact', 'easy'), ('MEDIUM-IMPACT', 'medium'), ('high-impact', 'hard')])
def test_impact_vocabulary(category, expected):
    assert normalize_oracle_payload(dict(NESTED, category=category)).category == expected


if __name__ == '__main__':
    unittest.main()
