"""
Retry/backoff and rate-limit-aware HTTP GET helper.
Every platform request goes through perform_request_with_retries so that timeouts,
Retry-After parsing and backoff are handled in one place.
"""

import os
import time
import random
import logging
import email.utils
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import requests

logger = logging.getLogger(__name__)

# retry/backoff defaults from environment
# - BOUNTY_MAX_RETRIES: int, total attempts per request (1 = no transport-level retry)
# - BOUNTY_BACKOFF_BASE: float (seconds)
# - BOUNTY_BACKOFF_JITTER: float (seconds); defaults to the backoff base when unset
# - BOUNTY_MAX_BACKOFF: float (seconds)
# - BOUNTY_HTTP_TIMEOUT: float (seconds) per request
DEFAULT_MAX_RETRIES = int(os.getenv("BOUNTY_MAX_RETRIES", "1"))
DEFAULT_BACKOFF_BASE = float(os.getenv("BOUNTY_BACKOFF_BASE", "0.5"))
_env_jitter = os.getenv("BOUNTY_BACKOFF_JITTER")
DEFAULT_BACKOFF_JITTER = float(_env_jitter) if _env_jitter is not None and _env_jitter != "" else None
DEFAULT_MAX_BACKOFF = float(os.getenv("BOUNTY_MAX_BACKOFF", "30.0"))
DEFAULT_HTTP_TIMEOUT = float(os.getenv("BOUNTY_HTTP_TIMEOUT", "10.0"))

# runtime-overrides
_runtime_max_retries: Optional[int] = None
_runtime_backoff_base: Optional[float] = None
_runtime_backoff_jitter: Optional[float] = None
_runtime_max_backoff: Optional[float] = None
_runtime_timeout: Optional[float] = None


def configure_retry(
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
    backoff_jitter: Optional[float] = None,
    max_backoff: Optional[float] = None,
    timeout: Optional[float] = None,
):
    """Configure retry/backoff defaults at runtime (e.g. from CLI)."""
    global _runtime_max_retries, _runtime_backoff_base, _runtime_backoff_jitter, _runtime_max_backoff, _runtime_timeout
    if max_retries is not None:
        _runtime_max_retries = max(1, int(max_retries))
    if backoff_base is not None:
        _runtime_backoff_base = float(backoff_base)
    if backoff_jitter is not None:
        _runtime_backoff_jitter = float(backoff_jitter)
    if max_backoff is not None:
        _runtime_max_backoff = float(max_backoff)
    if timeout is not None:
        _runtime_timeout = float(timeout)


def reset_retry_config():
    """Drop runtime overrides and fall back to environment defaults."""
    global _runtime_max_retries, _runtime_backoff_base, _runtime_backoff_jitter, _runtime_max_backoff, _runtime_timeout
    _runtime_max_retries = None
    _runtime_backoff_base = None
    _runtime_backoff_jitter = None
    _runtime_max_backoff = None
    _runtime_timeout = None


def resolved_settings() -> Dict[str, Any]:
    """Effective retry settings (runtime overrides first, then environment defaults)."""
    base = _runtime_backoff_base if _runtime_backoff_base is not None else DEFAULT_BACKOFF_BASE
    if _runtime_backoff_jitter is not None:
        jitter = _runtime_backoff_jitter
    elif DEFAULT_BACKOFF_JITTER is not None:
        jitter = DEFAULT_BACKOFF_JITTER
    else:
        jitter = base
    return {
        'max_retries': _runtime_max_retries if _runtime_max_retries is not None else DEFAULT_MAX_RETRIES,
        'backoff_base': float(base),
        'backoff_jitter': float(jitter),
        'max_backoff': float(_runtime_max_backoff if _runtime_max_backoff is not None else DEFAULT_MAX_BACKOFF),
        'timeout': float(_runtime_timeout if _runtime_timeout is not None else DEFAULT_HTTP_TIMEOUT),
    }


def parse_retry_after(raw_ra: Optional[str]) -> Optional[float]:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP date)."""
    if not raw_ra:
        return None
    try:
        return max(0.0, float(raw_ra))
    except (TypeError, ValueError):
        pass
    try:
        dt = email.utils.parsedate_to_datetime(raw_ra)
    except (TypeError, ValueError, IndexError):
        return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return max(0.0, (dt - datetime.now(timezone.utc)).total_seconds())


def _safe_int_from_headers(headers: Dict[str, Any], key: str) -> Optional[int]:
    val = headers.get(key)
    try:
        return int(val) if val is not None else None
    except (TypeError, ValueError):
        return None


def _safe_float_from_headers(headers: Dict[str, Any], key: str) -> Optional[float]:
    val = headers.get(key)
    try:
        return float(val) if val is not None else None
    except (TypeError, ValueError):
        return None


def parse_rate_headers(headers: Dict[str, Any]):
    """Return (retry_after, rate_remaining, rate_reset) from response headers."""
    headers = headers or {}
    ra = parse_retry_after(headers.get('Retry-After'))
    rl_remaining = _safe_int_from_headers(headers, 'X-RateLimit-Remaining')
    rl_reset = _safe_float_from_headers(headers, 'X-RateLimit-Reset')
    return ra, rl_remaining, rl_reset


def is_rate_limited(status_code: int, rl_remaining: Optional[int]) -> bool:
    if status_code == 429:
        return True
    return status_code == 403 and rl_remaining is not None and rl_remaining <= 0


def _should_retry_response(status_code: int, ra_local: Optional[float], rl_remaining_local: Optional[int]) -> bool:
    if status_code in (429, 502, 503, 504):
        return True
    if is_rate_limited(status_code, rl_remaining_local):
        return True
    return status_code >= 500 and ra_local is not None


def compute_wait_seconds(
    ra_local: Optional[float], rl_reset_local: Optional[float], backoff_local: float, jitter_local: float, max_backoff: float
) -> float:
    """Wait before the next attempt: Retry-After first, then the rate-limit reset, then plain backoff."""
    if ra_local is not None:
        return min(float(ra_local) + random.uniform(0, jitter_local), max_backoff)
    if rl_reset_local:
        wait = max(0.0, float(rl_reset_local) - time.time())
        return min(wait + random.uniform(0, jitter_local), max_backoff)
    return min(backoff_local + random.uniform(0, jitter_local), max_backoff)


def _parse_body(resp_local):
    try:
        return resp_local.json()
    except ValueError:
        return getattr(resp_local, 'text', None)


def _attempt_request_once(url: str, headers: Dict[str, str], params: Dict[str, Any], timeout: float):
    try:
        resp = requests.get(url, headers=headers or {}, params=params or {}, timeout=timeout)
    except requests.RequestException as ex:
        return 'error', {'exception': str(ex)}

    status = getattr(resp, 'status_code', 0)
    resp_headers = dict(getattr(resp, 'headers', {}) or {})
    ra, rl_remaining, rl_reset = parse_rate_headers(resp_headers)
    data = {
        'body': _parse_body(resp),
        'status': status,
        'headers': resp_headers,
        'retry_after': ra,
        'rate_remaining': rl_remaining,
        'rate_reset': rl_reset,
    }
    if 200 <= status < 300:
        return 'success', data
    if _should_retry_response(status, ra, rl_remaining):
        return 'retry', data
    return 'fail', data


def _result_from(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'response': data.get('body'),
        'status': data.get('status', 0),
        'headers': data.get('headers') or {},
        'retry_after': data.get('retry_after'),
        'rate_remaining': data.get('rate_remaining'),
        'timestamp': time.time(),
    }


def _request_with_retries_core(
    url: str,
    headers: Dict[str, str],
    params: Dict[str, Any],
    timeout: float,
    base: float,
    jitter_val: float,
    max_backoff_resolved: float,
    effective_max_retries: int,
) -> Dict[str, Any]:
    attempt = 0
    backoff = base
    last_result: Dict[str, Any] = {'response': None, 'status': 0, 'headers': {}, 'retry_after': None, 'rate_remaining': None, 'timestamp': time.time()}
    wait_seconds = 0.0

    while attempt < effective_max_retries:
        if attempt > 0:
            time.sleep(wait_seconds)

        logger.debug("GET %s params=%s attempt=%d", url, params, attempt + 1)
        outcome, data = _attempt_request_once(url, headers, params, timeout)

        if outcome == 'success' or outcome == 'fail':
            return _result_from(data)

        if outcome == 'error':
            last_result = {
                'response': data.get('exception'),
                'status': 0,
                'headers': {},
                'retry_after': None,
                'rate_remaining': None,
                'timestamp': time.time(),
            }
            wait_seconds = min(backoff + random.uniform(0, jitter_val), max_backoff_resolved)
        else:
            last_result = _result_from(data)
            wait_seconds = compute_wait_seconds(data.get('retry_after'), data.get('rate_reset'), backoff, jitter_val, max_backoff_resolved)
        backoff = min(backoff * 2, max_backoff_resolved)
        attempt += 1

    return last_result


def perform_request_with_retries(
    url: str,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
    max_retries: Optional[int] = None,
    timeout: Optional[float] = None,
    backoff_base: Optional[float] = None,
    backoff_jitter: Optional[float] = None,
    max_backoff: Optional[float] = None,
) -> Dict[str, Any]:
    """Perform a GET, retrying transient failures up to max_retries total attempts.

    Returns a dict with 'response' (parsed JSON or text), 'status' (0 on transport error),
    'headers', 'retry_after' and 'rate_remaining'. Never raises for HTTP-level failures;
    callers map the status to their own errors.
    """
    settings = resolved_settings()
    base = float(backoff_base) if backoff_base is not None else settings['backoff_base']
    jitter_val = float(backoff_jitter) if backoff_jitter is not None else settings['backoff_jitter']
    max_backoff_resolved = float(max_backoff) if max_backoff is not None else settings['max_backoff']
    effective_timeout = float(timeout) if timeout is not None else settings['timeout']
    effective_max_retries = int(max_retries) if max_retries is not None else int(settings['max_retries'])
    return _request_with_retries_core(
        url, headers or {}, params or {}, effective_timeout, base, jitter_val, max_backoff_resolved, max(1, effective_max_retries)
    )


__all__ = [
    "configure_retry",
    "reset_retry_config",
    "resolved_settings",
    "perform_request_with_retries",
    "parse_retry_after",
    "parse_rate_headers",
    "compute_wait_seconds",
    "is_rate_limited",
]
