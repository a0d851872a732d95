"""
Linker heuristics to associate a pull request with the issue it addresses.
Simple, dependency-free heuristics, strongest evidence first:
- closing keyword reference (fixes #123, closes #123, resolves #123)
- issue URL (.../issues/123)
- bare reference (#123)
"""
import re
from typing import List, Optional
from correlate.models import IssueReference

CLOSING_KEYWORD_PATTERN = re.compile(r"\b(close[sd]?|fix(?:e[sd])?|resolve[sd]?)\s*:?\s+#(\d+)\b", re.IGNORECASE)
ISSUE_URL_PATTERN = re.compile(r"issues/(\d+)\b", re.IGNORECASE)
BARE_REFERENCE_PATTERN = re.compile(r"(?<![\w&/])#(\d+)\b")

# ordered by strength of evidence
_PATTERNS = (
    ('keyword', CLOSING_KEYWORD_PATTERN),
    ('url', ISSUE_URL_PATTERN),
    ('bare', BARE_REFERENCE_PATTERN),
)


def _number_from_match(kind: str, match) -> int:
    return int(match.group(2) if kind == 'keyword' else match.group(1))


def find_issue_references_in_text(text: str) -> List[IssueReference]:
    """Return every issue reference in text, strongest kind first, without duplicates."""
    if not text:
        return []
    refs: List[IssueReference] = []
    seen = set()
    for kind, pattern in _PATTERNS:
        for m in pattern.finditer(text):
            number = _number_from_match(kind, m)
            if number in seen:
                continue
            seen.add(number)
            refs.append(IssueReference(number=number, kind=kind, evidence=m.group(0)))
    return refs


def find_linked_issue(title: str, body: str, exclude: Optional[int] = None) -> Optional[IssueReference]:
    """
    Pick the single issue a pull request most plausibly addresses.

    Parameters:
        title: PR title.
        body: PR description.
        exclude: a number that must not be returned (the PR's own number).

    Returns:
        the strongest IssueReference across title and body, or None when nothing matches.
    """
    candidates: List[IssueReference] = []
    for text in (title, body):
        candidates.extend(r for r in find_issue_references_in_text(text or '') if r.number != exclude)
    if not candidates:
        return None
    rank = {kind: i for i, (kind, _) in enumerate(_PATTERNS)}
    # stable sort keeps title before body within the same kind
    return sorted(candidates, key=lambda r: rank[r.kind])[0]
