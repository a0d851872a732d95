"""
Correlate package: expose linker functionality for linking pull requests to issues.
"""

from .linker import find_linked_issue, find_issue_references_in_text

__all__ = ["find_linked_issue", "find_issue_references_in_text"]
