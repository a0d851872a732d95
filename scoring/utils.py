"""
Scoring utility functions.
Provides weight/threshold loading and aggregation helpers used by scoring.metrics.
"""
from typing import Dict, Any, Optional, NamedTuple
import math
import os

import yaml

from errors import ConfigError
from models import METRIC_NAMES

# filename used for weight YAML configuration
WEIGHTS_FILENAME = 'weights.yaml'

DEFAULT_WEIGHTS = {
    'code_size': 0.20,
    'review_cycles': 0.15,
    'review_time': 0.20,
    'first_review_wait': 0.15,
    'review_depth': 0.15,
    'code_quality': 0.15,
}

# final_score < medium -> easy; medium <= final_score < hard -> medium; otherwise hard
DEFAULT_THRESHOLDS = {'medium': 4.0, 'hard': 7.0}

WEIGHT_SUM_TOLERANCE = 1e-6


class ScoringConfig(NamedTuple):
    weights: Dict[str, float]
    thresholds: Dict[str, float]


def default_config() -> ScoringConfig:
    return ScoringConfig(DEFAULT_WEIGHTS.copy(), DEFAULT_THRESHOLDS.copy())


def default_weights_path() -> str:
    env_path = os.getenv('BOUNTY_WEIGHTS_FILE')
    if env_path:
        return env_path
    return os.path.join(os.path.dirname(os.path.dirname(__file__)), 'config', WEIGHTS_FILENAME)


def _read_yaml(path: str) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            doc = yaml.safe_load(f) or {}
    except yaml.YAMLError as ex:
        raise ConfigError(f"Failed to parse weights config {path}: {ex}") from ex
    if not isinstance(doc, dict):
        raise ConfigError(f"Weights config {path} must be a mapping")
    return doc


def validate_weights(weights: Dict[str, Any]) -> Dict[str, float]:
    """Return weights as floats; raise ConfigError unless exactly the six metrics, non-negative, summing to 1."""
    if not isinstance(weights, dict):
        raise ConfigError("weights must be a mapping of metric name to weight")
    missing = [k for k in METRIC_NAMES if k not in weights]
    unknown = [k for k in weights if k not in METRIC_NAMES]
    if missing or unknown:
        raise ConfigError(f"weights must name exactly {list(METRIC_NAMES)} (missing={missing}, unknown={unknown})")
    out: Dict[str, float] = {}
    for k in METRIC_NAMES:
        try:
            w = float(weights[k])
        except (TypeError, ValueError) as ex:
            raise ConfigError(f"weight {k!r} is not a number: {weights[k]!r}") from ex
        if not math.isfinite(w) or w < 0:
            raise ConfigError(f"weight {k!r} must be a non-negative number, got {w}")
        out[k] = w
    total = sum(out.values())
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise ConfigError(f"weights must sum to 1.0, got {total}")
    return out


def validate_thresholds(thresholds: Dict[str, Any]) -> Dict[str, float]:
    if not isinstance(thresholds, dict):
        raise ConfigError("thresholds must be a mapping with 'medium' and 'hard'")
    merged = DEFAULT_THRESHOLDS.copy()
    for k, v in thresholds.items():
        if k not in DEFAULT_THRESHOLDS:
            raise ConfigError(f"unknown threshold {k!r}")
        try:
            merged[k] = float(v)
        except (TypeError, ValueError) as ex:
            raise ConfigError(f"threshold {k!r} is not a number: {v!r}") from ex
    if not (0 < merged['medium'] < merged['hard'] <= 10):
        raise ConfigError(f"thresholds must satisfy 0 < medium < hard <= 10, got {merged}")
    return merged


def load_weights(path: Optional[str] = None) -> Dict[str, float]:
    """
    Load metric weights from a YAML file if it exists, otherwise return defaults.
    A present but invalid file raises ConfigError.
    """
    return load_config(path).weights


def load_config(path: Optional[str] = None, preset: Optional[str] = None) -> ScoringConfig:
    """
    Load weights and thresholds, optionally merging a named preset over the base weights.

    Behavior:
    - When the file does not exist the built-in defaults are returned (a preset then raises ConfigError).
    - The top-level 'weights' section may be partial; missing metrics keep their defaults.
    - A preset's values override the base weights; the merged result must still validate.
    """
    if not path:
        path = default_weights_path()
    if not os.path.exists(path):
        if preset:
            raise ConfigError(f"Weights config file not found at: {path}")
        return default_config()

    doc = _read_yaml(path)
    weights = DEFAULT_WEIGHTS.copy()
    base = doc.get('weights') or {}
    if not isinstance(base, dict):
        raise ConfigError(f"'weights' in {path} must be a mapping")
    weights.update(base)

    if preset:
        presets = doc.get('presets') or {}
        if not isinstance(presets, dict) or preset not in presets:
            raise ConfigError(f"Preset '{preset}' not found in {path}")
        preset_map = presets.get(preset) or {}
        if not isinstance(preset_map, dict):
            raise ConfigError(f"Preset '{preset}' in {path} must be a mapping")
        weights.update(preset_map)

    return ScoringConfig(validate_weights(weights), validate_thresholds(doc.get('thresholds') or {}))


def load_preset(preset_name: str, path: Optional[str] = None) -> Dict[str, float]:
    """Return the base weights with the named preset merged over them."""
    return load_config(path, preset=preset_name).weights


def list_presets(path: Optional[str] = None) -> list:
    """Return a list of available preset names from the weights YAML (or empty list)."""
    if not path:
        path = default_weights_path()
    if not os.path.exists(path):
        return []
    presets = _read_yaml(path).get('presets') or {}
    return list(presets.keys()) if isinstance(presets, dict) else []


def compute_weighted_score(metrics: Dict[str, Any], weights: Dict[str, float]) -> float:
    """
    Compute a single aggregate score from individual metric values using provided weights.
    Missing metrics are treated as zero.
    """
    total = 0.0
    for k, w in weights.items():
        val = float(metrics.get(k, 0.0) or 0.0)
        total += val * float(w)
    return total


def round1(value: float) -> float:
    """Round half away from zero to one decimal place."""
    return math.floor(value * 10 + 0.5) / 10 if value >= 0 else -math.floor(-value * 10 + 0.5) / 10


def clamp(value: float, low: float = 0.0, high: float = 10.0) -> float:
    if value is None or not math.isfinite(value):
        return low
    return max(low, min(high, value))


def categorize(final_score: float, thresholds: Optional[Dict[str, float]] = None) -> str:
    t = thresholds or DEFAULT_THRESHOLDS
    if final_score < t['medium']:
        return 'easy'
    if final_score < t['hard']:
        return 'medium'
    return 'hard'
