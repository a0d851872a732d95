"""
Local metric scoring engine.
Turns a PullRequestSignal into six bounded sub-scores, a weighted final score and a category.
Pure and deterministic: the same signal always yields the same ContributionAnalysis.
"""
from datetime import datetime
from typing import Dict, List, Optional

from models import ContributionAnalysis, MetricScoreSet, METRIC_NAMES, SOURCE_LOCAL
from normalize.models import PullRequestSignal, Review, ReviewComment
from .utils import DEFAULT_THRESHOLDS, DEFAULT_WEIGHTS, categorize, clamp, compute_weighted_score, round1

# check-run conclusions that count as passing
PASSING_CONCLUSIONS = ('success', 'neutral', 'skipped')


def scale_linear(value: float, in_min: float, in_max: float, out_min: float, out_max: float) -> float:
    """Map value from [in_min, in_max] onto [out_min, out_max], clamping to the input range."""
    if in_max == in_min:
        return out_max
    v = max(in_min, min(in_max, value))
    return out_min + (v - in_min) * (out_max - out_min) / (in_max - in_min)


def _hours_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    if start is None or end is None:
        return None
    return max(0.0, (end - start).total_seconds() / 3600.0)


def _human_reviews(signal: PullRequestSignal) -> List[Review]:
    return [r for r in signal.reviews if not r.is_bot]


def _human_comments(signal: PullRequestSignal) -> List[ReviewComment]:
    return [c for c in signal.review_comments if not c.is_bot]


def has_review_trail(signal: PullRequestSignal) -> bool:
    return bool(_human_reviews(signal)) or bool(_human_comments(signal))


# changed lines in documentation/config files count at this weight
LIGHT_LINE_WEIGHT = 0.5


def effective_changed_lines(signal: PullRequestSignal) -> float:
    """Changed lines with docs/config lines discounted; lines missing from a truncated file list count in full."""
    totals = signal.additions + signal.deletions
    if not signal.files:
        return float(totals)
    effective = 0.0
    listed = 0
    for f in signal.files:
        lines = f.additions + f.deletions
        listed += lines
        effective += lines * (LIGHT_LINE_WEIGHT if f.file_type in ('documentation', 'config') else 1.0)
    return effective + max(0, totals - listed)


def score_code_size(signal: PullRequestSignal) -> float:
    effective = effective_changed_lines(signal)
    files = max(signal.changed_files, len(signal.files))
    if effective <= 0:
        return 0.0
    if effective < 50 and files <= 2:
        return scale_linear(effective, 0, 50, 1, 3)
    if effective <= 300 and files <= 10:
        return scale_linear(effective, 50, 300, 4, 7)
    return scale_linear(effective, 300, 1500, 8, 10)


def review_cycle_count(signal: PullRequestSignal) -> int:
    reviews = _human_reviews(signal)
    changes_requested = sum(1 for r in reviews if r.state == 'changes_requested')
    approved = any(r.state == 'approved' for r in reviews)
    return changes_requested + (1 if approved else 0)


def score_review_cycles(signal: PullRequestSignal) -> float:
    if not _human_reviews(signal):
        return 0.0
    return scale_linear(review_cycle_count(signal), 0, 5, 0, 10)


def score_review_time(signal: PullRequestSignal) -> float:
    hours = _hours_between(signal.created_at, signal.merged_at)
    if hours is None:
        return 0.0
    if hours * 60 < 10:
        score = scale_linear(hours * 60, 0, 10, 0, 1)
    elif hours <= 24:
        score = scale_linear(hours, 10 / 60, 24, 1, 6)
    elif hours <= 168:
        score = scale_linear(hours, 24, 168, 6, 9)
    else:
        score = scale_linear(hours, 168, 720, 9, 10)
    # merges nobody looked at
    if not has_review_trail(signal):
        score /= 2
    return score


def first_review_at(signal: PullRequestSignal) -> Optional[datetime]:
    stamps = [r.submitted_at for r in _human_reviews(signal) if r.submitted_at is not None]
    return min(stamps) if stamps else None


def score_first_review_wait(signal: PullRequestSignal) -> float:
    hours = _hours_between(signal.created_at, first_review_at(signal))
    if hours is None:
        return 0.0
    if hours <= 4:
        return 9.0
    if hours <= 24:
        return scale_linear(hours, 4, 24, 9, 6)
    if hours <= 168:
        return scale_linear(hours, 24, 168, 6, 2)
    return 2.0


def score_review_depth(signal: PullRequestSignal) -> float:
    comments = _human_comments(signal)
    if not comments:
        return 0.0
    distinct_files = len({c.path for c in comments if c.path})
    return scale_linear(len(comments), 0, 15, 0, 6) + scale_linear(distinct_files, 0, 5, 0, 4)


def _latest_statuses(signal: PullRequestSignal) -> List[str]:
    # the platform lists statuses newest first; keep the newest per context
    seen: Dict[str, str] = {}
    for s in signal.statuses:
        seen.setdefault(s.context, s.state)
    return list(seen.values())


def ci_outcome(signal: PullRequestSignal) -> Optional[bool]:
    """True when every CI result passed, False when any did not, None without CI data."""
    states = _latest_statuses(signal)
    runs = signal.check_runs
    if not states and not runs:
        return None
    statuses_ok = all(s == 'success' for s in states)
    runs_ok = all(r.status == 'completed' and r.conclusion in PASSING_CONCLUSIONS for r in runs)
    return statuses_ok and runs_ok


def average_patch_changes(signal: PullRequestSignal) -> Optional[float]:
    sized = [f.changes for f in signal.files if f.patch]
    return sum(sized) / len(sized) if sized else None


def has_tests(signal: PullRequestSignal) -> bool:
    return any(f.file_type == 'test' for f in signal.files)


def score_code_quality(signal: PullRequestSignal) -> float:
    score = 3.0 if has_tests(signal) else 0.0
    if ci_outcome(signal):
        score += 4.0
    avg = average_patch_changes(signal)
    if avg is not None:
        score += scale_linear(avg, 50, 400, 3, 0)
    return score


SUB_SCORERS = {
    'code_size': score_code_size,
    'review_cycles': score_review_cycles,
    'review_time': score_review_time,
    'first_review_wait': score_first_review_wait,
    'review_depth': score_review_depth,
    'code_quality': score_code_quality,
}


def compute_metric_scores(signal: PullRequestSignal) -> MetricScoreSet:
    return MetricScoreSet(**{name: round1(clamp(SUB_SCORERS[name](signal))) for name in METRIC_NAMES})


def build_reasoning(signal: PullRequestSignal, scores: MetricScoreSet) -> str:
    hours = _hours_between(signal.created_at, signal.merged_at)
    wait = _hours_between(signal.created_at, first_review_at(signal))
    ci = ci_outcome(signal)
    parts = [
        f"Code size {scores.code_size}/10: {signal.additions + signal.deletions} lines changed across {signal.changed_files} files.",
        f"Review cycles {scores.review_cycles}/10: {review_cycle_count(signal)} cycle(s) from {len(_human_reviews(signal))} human review(s).",
        f"Review time {scores.review_time}/10: " + (f"merged after {hours:.1f}h." if hours is not None else "not merged."),
        f"First review wait {scores.first_review_wait}/10: " + (f"first review after {wait:.1f}h." if wait is not None else "no human review."),
        f"Review depth {scores.review_depth}/10: {len(_human_comments(signal))} inline comment(s).",
        f"Code quality {scores.code_quality}/10: tests {'included' if has_tests(signal) else 'absent'}, CI "
        + {True: 'passing', False: 'not passing', None: 'absent'}[ci] + ".",
    ]
    return ' '.join(parts)


def build_key_insights(signal: PullRequestSignal, scores: MetricScoreSet) -> Dict[str, str]:
    docs_config = sum(1 for f in signal.files if f.file_type in ('documentation', 'config'))
    risks = []
    if not has_review_trail(signal):
        risks.append('merged without any human review')
    if ci_outcome(signal) is False:
        risks.append('CI not passing at merge')
    if signal.merged_at is None:
        risks.append('no merge timestamp')
    return {
        'complexity_indicators': f"{signal.changed_files} files, +{signal.additions}/-{signal.deletions}, {docs_config} docs/config file(s)",
        'quality_indicators': f"tests {'present' if has_tests(signal) else 'absent'}, {len(signal.check_runs)} check run(s), {len(signal.statuses)} status(es)",
        'timeline_analysis': f"review time score {scores.review_time}, first review wait score {scores.first_review_wait}",
        'risk_assessment': '; '.join(risks) if risks else 'no notable risks',
    }


def score_signal(
    signal: PullRequestSignal, weights: Optional[Dict[str, float]] = None, thresholds: Optional[Dict[str, float]] = None
) -> ContributionAnalysis:
    """
    Score a pull request locally.

    Parameters:
        weights: sub-score weights summing to 1 (defaults to DEFAULT_WEIGHTS).
        thresholds: {'medium', 'hard'} category boundaries (defaults to DEFAULT_THRESHOLDS).
    """
    weights = weights or DEFAULT_WEIGHTS
    thresholds = thresholds or DEFAULT_THRESHOLDS
    scores = compute_metric_scores(signal)
    final_score = round1(clamp(compute_weighted_score(scores.to_dict(), weights)))
    return ContributionAnalysis(
        category=categorize(final_score, thresholds),
        final_score=final_score,
        metric_scores=scores,
        reasoning=build_reasoning(signal, scores),
        source=SOURCE_LOCAL,
        key_insights=build_key_insights(signal, scores),
    )
