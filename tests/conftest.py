import sys
import os

import pytest

# Put the project root and this directory on sys.path so tests can import top-level modules
# ('cli', 'evaluator', 'storage', 'scoring', ...) and the shared 'helpers' module.
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
TESTS = os.path.dirname(os.path.abspath(__file__))
for path in (ROOT, TESTS):
    if path not in sys.path:
        sys.path.insert(0, path)

from storage.retry import reset_retry_config  # noqa: E402
from ingest.aggregator import reset_aggregation_config  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_runtime_overrides():
    """CLI tests call configure_* helpers; keep those overrides from leaking across tests."""
    yield
    reset_retry_config()
    reset_aggregation_config()
