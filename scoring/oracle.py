"""
Categorization oracle adapter.

Sends the raw pull request signal plus the local metric scores to an external
categorization service and normalizes its answer into a ContributionAnalysis.
Two response shapes are recognized:

- flat: category in {easy, medium, hard} and the six sub-scores directly under metric_scores;
- execution-nested: sub-scores under metric_scores.execution and category in
  {low-impact, medium-impact, high-impact}.

Anything else, or any transport failure, makes try_oracle return None so the caller
keeps the local result.
"""
import json
import logging
import os
import re
from typing import Any, Dict, Literal, Optional, Union

import requests
from pydantic import BaseModel, Field, ValidationError, field_validator

from errors import OracleError, OracleSchemaError, OracleUnavailable
from models import ContributionAnalysis, MetricScoreSet, SOURCE_ORACLE
from normalize.models import PullRequestSignal
from scoring.utils import round1

logger = logging.getLogger(__name__)

DEFAULT_ORACLE_URL = os.getenv("BOUNTY_ORACLE_URL") or None
DEFAULT_ORACLE_TOKEN = os.getenv("BOUNTY_ORACLE_TOKEN") or None
DEFAULT_ORACLE_TIMEOUT = float(os.getenv("BOUNTY_ORACLE_TIMEOUT", "20"))

IMPACT_CATEGORY_MAP = {
    'low-impact': 'easy',
    'medium-impact': 'medium',
    'high-impact': 'hard',
}

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def _lower(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


def _insights_as_strings(value: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
    if not value:
        return None
    return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in value.items()}


class OracleMetricScores(BaseModel):
    code_size: float = Field(ge=0, le=10)
    review_cycles: float = Field(ge=0, le=10)
    review_time: float = Field(ge=0, le=10)
    first_review_wait: float = Field(ge=0, le=10)
    review_depth: float = Field(ge=0, le=10)
    code_quality: float = Field(ge=0, le=10)


class FlatOracleResponse(BaseModel):
    category: Literal['easy', 'medium', 'hard']
    final_score: float = Field(ge=0, le=10)
    metric_scores: OracleMetricScores
    reasoning: str = ''
    key_insights: Optional[Dict[str, Any]] = None

    @field_validator('category', mode='before')
    @classmethod
    def _normalize_category(cls, value):
        return _lower(value)

    def to_analysis(self) -> ContributionAnalysis:
        return ContributionAnalysis(
            category=self.category,
            final_score=round1(self.final_score),
            metric_scores=MetricScoreSet(**self.metric_scores.model_dump()),
            reasoning=self.reasoning,
            source=SOURCE_ORACLE,
            key_insights=_insights_as_strings(self.key_insights),
        )


class NestedMetricScores(BaseModel):
    execution: OracleMetricScores
    impact: Optional[Dict[str, float]] = None


class ExecutionNestedOracleResponse(BaseModel):
    category: Literal['low-impact', 'medium-impact', 'high-impact']
    final_score: float = Field(ge=0, le=10)
    metric_scores: NestedMetricScores
    reasoning: str = ''
    key_insights: Optional[Dict[str, Any]] = None

    @field_validator('category', mode='before')
    @classmethod
    def _normalize_category(cls, value):
        return _lower(value)

    def to_analysis(self) -> ContributionAnalysis:
        return ContributionAnalysis(
            category=IMPACT_CATEGORY_MAP[self.category],
            final_score=round1(self.final_score),
            metric_scores=MetricScoreSet(**self.metric_scores.execution.model_dump()),
            reasoning=self.reasoning,
            source=SOURCE_ORACLE,
            key_insights=_insights_as_strings(self.key_insights),
        )


OracleResponse = Union[FlatOracleResponse, ExecutionNestedOracleResponse]


def extract_analysis_object(body: Any) -> Dict[str, Any]:
    """
    Pull the analysis object out of an oracle response body.

    Accepts a bare object, an object wrapped under 'analysis' (optionally with a
    'success' flag), or text that embeds exactly one JSON object.
    """
    if isinstance(body, (bytes, bytearray)):
        body = body.decode('utf-8', errors='replace')
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError:
            match = _JSON_OBJECT.search(body)
            if not match:
                raise OracleSchemaError("oracle response contains no JSON object")
            try:
                body = json.loads(match.group(0))
            except ValueError as ex:
                raise OracleSchemaError(f"oracle response JSON is malformed: {ex}") from ex
    if not isinstance(body, dict):
        raise OracleSchemaError(f"oracle response must be a JSON object, got {type(body).__name__}")
    if body.get('success') is False:
        raise OracleUnavailable(f"oracle reported failure: {body.get('error') or 'unknown error'}")
    if 'analysis' in body:
        inner = body['analysis']
        return extract_analysis_object(inner) if isinstance(inner, str) else _require_dict(inner)
    return body


def _require_dict(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise OracleSchemaError("oracle 'analysis' must be a JSON object")
    return value


def parse_oracle_response(payload: Dict[str, Any]) -> OracleResponse:
    """Detect the response shape by the presence of metric_scores.execution and validate it."""
    metric_scores = payload.get('metric_scores')
    nested = isinstance(metric_scores, dict) and 'execution' in metric_scores
    model = ExecutionNestedOracleResponse if nested else FlatOracleResponse
    try:
        return model.model_validate(payload)
    except ValidationError as ex:
        raise OracleSchemaError(f"oracle response rejected ({model.__name__}): {ex.error_count()} error(s): {ex.errors()[0]['msg']}") from ex


def normalize_oracle_payload(body: Any) -> ContributionAnalysis:
    return parse_oracle_response(extract_analysis_object(body)).to_analysis()


class CategorizationOracle:
    """Client for the external categorization service."""

    def __init__(self, url: str, token: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url
        self.token = token
        self.timeout = DEFAULT_ORACLE_TIMEOUT if timeout is None else float(timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json', 'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f"Bearer {self.token}"
        return headers

    def build_payload(self, signal: PullRequestSignal, metric_scores: MetricScoreSet, local_final_score: Optional[float], weights: Dict[str, float]) -> Dict[str, Any]:
        return {
            'github': signal.to_dict(),
            'local_metric_scores': metric_scores.to_dict(),
            'local_final_score': local_final_score,
            'weights': dict(weights),
        }

    def request(
        self, signal: PullRequestSignal, metric_scores: MetricScoreSet, local_final_score: Optional[float] = None, weights: Optional[Dict[str, float]] = None
    ) -> ContributionAnalysis:
        """Call the service; raises OracleUnavailable or OracleSchemaError."""
        payload = self.build_payload(signal, metric_scores, local_final_score, weights or {})
        logger.debug("Requesting oracle categorization for %s#%s", signal.repository, signal.number)
        try:
            resp = requests.post(self.url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.Timeout as ex:
            raise OracleUnavailable(f"oracle timed out after {self.timeout}s") from ex
        except requests.RequestException as ex:
            raise OracleUnavailable(f"oracle request failed: {ex}") from ex
        status = getattr(resp, 'status_code', 0)
        if not 200 <= status < 300:
            raise OracleUnavailable(f"oracle returned HTTP {status}")
        try:
            body = resp.json()
        except ValueError:
            body = getattr(resp, 'text', '')
        return normalize_oracle_payload(body)

    def try_oracle(
        self, signal: PullRequestSignal, metric_scores: MetricScoreSet, local_final_score: Optional[float] = None, weights: Optional[Dict[str, float]] = None
    ) -> Optional[ContributionAnalysis]:
        """Return the oracle's analysis, or None when the local result must be used."""
        try:
            return self.request(signal, metric_scores, local_final_score, weights)
        except OracleError as ex:
            logger.warning("Oracle unavailable for %s#%s, using local scoring: %s", signal.repository, signal.number, ex)
            return None


def oracle_from_env(url: Optional[str] = None, token: Optional[str] = None, timeout: Optional[float] = None) -> Optional[CategorizationOracle]:
    """Build the oracle from explicit settings or BOUNTY_ORACLE_*; None when no URL is configured."""
    url = url or DEFAULT_ORACLE_URL
    if not url:
        return None
    return CategorizationOracle(url, token=token or DEFAULT_ORACLE_TOKEN, timeout=timeout)
