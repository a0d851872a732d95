"""
Data models produced by the correlate package.
"""


class IssueReference:
    """
    A textual reference from a pull request to an issue.
    """

    def __init__(self, number: int, kind: str, evidence: str):
        self.number = number
        self.kind = kind  # keyword/url/bare
        self.evidence = evidence

    def __eq__(self, other):
        if not isinstance(other, IssueReference):
            return NotImplemented
        return (self.number, self.kind, self.evidence) == (other.number, other.kind, other.evidence)

    def __repr__(self):
        return f"IssueReference(number={self.number}, kind={self.kind!r}, evidence={self.evidence!r})"
