"""
Report renderer: text/Markdown/CSV/JSON/HTML views of contribution analyses and claim outcomes.
Markdown and HTML are rendered with the Jinja2 templates in report/templates.
"""

from typing import Optional, Dict, Any
import os
import json
import io
import csv

from jinja2 import Environment, FileSystemLoader, select_autoescape

from models import ContributionAnalysis, METRIC_NAMES

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), 'templates')

_env: Optional[Environment] = None


def _environment() -> Environment:
    global _env
    if _env is None:
        _env = Environment(loader=FileSystemLoader(TEMPLATE_DIR), autoescape=select_autoescape(['html', 'xml', 'html.j2']), trim_blocks=True, lstrip_blocks=True)
    return _env


def _metric_label(name: str) -> str:
    return name.replace('_', ' ').capitalize()


def _context(analysis: Optional[ContributionAnalysis], claim: Optional[Dict[str, Any]], pr_url: Optional[str], generated_at: Optional[str]) -> Dict[str, Any]:
    metrics = []
    if analysis is not None:
        scores = analysis.metric_scores.to_dict()
        metrics = [{'name': n, 'label': _metric_label(n), 'score': scores[n]} for n in METRIC_NAMES]
    return {
        'analysis': analysis,
        'metrics': metrics,
        'insights': (analysis.key_insights or {}) if analysis else {},
        'claim': claim,
        'pr_url': pr_url,
        'generated_at': generated_at,
    }


def render_text(analysis: ContributionAnalysis, claim: Optional[Dict[str, Any]] = None) -> str:
    """Render a simple plain-text summary."""
    lines = [
        f"Category: {analysis.category}",
        f"Final score: {analysis.final_score}/10 (source: {analysis.source})",
    ]
    scores = analysis.metric_scores.to_dict()
    lines.extend(f"  {_metric_label(n)}: {scores[n]}" for n in METRIC_NAMES)
    if analysis.reasoning:
        lines.append(f"Reasoning: {analysis.reasoning}")
    if claim:
        payout = claim.get('payout') or {}
        calc = claim.get('bounty_calculation') or {}
        lines.append(f"Bounty: {payout.get('amount')} claimed by {payout.get('developer_id')} (payout {payout.get('id')})")
        if calc.get('formula'):
            lines.append(f"Formula: {calc['formula']}")
    return "\n".join(lines)


def render_csv(analysis: ContributionAnalysis, claim: Optional[Dict[str, Any]] = None) -> str:
    """Render a single-row CSV summary with a header."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator='\n')
    header = ['category', 'final_score', 'source'] + list(METRIC_NAMES) + ['bounty_amount']
    scores = analysis.metric_scores.to_dict()
    amount = ((claim or {}).get('payout') or {}).get('amount', '')
    writer.writerow(header)
    writer.writerow([analysis.category, analysis.final_score, analysis.source] + [scores[n] for n in METRIC_NAMES] + [amount])
    return output.getvalue()


def render_json(analysis: Optional[ContributionAnalysis] = None, claim: Optional[Dict[str, Any]] = None, status: Optional[Dict[str, Any]] = None) -> str:
    """Export whatever is available (claim outcome, analysis or claim status) as JSON."""
    if claim is not None:
        payload = claim
    elif analysis is not None:
        payload = {'success': True, 'analysis': analysis.to_dict()}
    else:
        payload = status or {}
    return json.dumps(payload, indent=2, default=str)


def render_markdown(analysis: ContributionAnalysis, claim: Optional[Dict[str, Any]] = None, pr_url: Optional[str] = None, generated_at: Optional[str] = None) -> str:
    tmpl = _environment().get_template('analysis.md.j2')
    return tmpl.render(**_context(analysis, claim, pr_url, generated_at))


def render_html(analysis: ContributionAnalysis, claim: Optional[Dict[str, Any]] = None, pr_url: Optional[str] = None, generated_at: Optional[str] = None) -> str:
    tmpl = _environment().get_template('analysis.html.j2')
    return tmpl.render(**_context(analysis, claim, pr_url, generated_at))


def render_status(status: Dict[str, Any], fmt: str = 'text') -> str:
    """Render the result of a claim status check."""
    if (fmt or 'text').lower() in ('json', 'js'):
        return render_json(status=status)
    if not status.get('claimed'):
        return "Bounty not claimed yet"
    return f"Bounty claimed by {status.get('claimed_by')} at {status.get('claimed_at')} for {status.get('amount')}"


def render(
    analysis: Optional[ContributionAnalysis] = None,
    fmt: str = 'text',
    claim: Optional[Dict[str, Any]] = None,
    pr_url: Optional[str] = None,
    generated_at: Optional[str] = None,
) -> str:
    """Main render function.

    claim is a ClaimOutcome.to_dict() payload; when given it is rendered alongside the analysis.
    """
    fmt_l = (fmt or 'text').lower()
    if fmt_l in ('json', 'js'):
        return render_json(analysis, claim)
    if analysis is None:
        return ''
    if fmt_l in ('md', 'markdown'):
        return render_markdown(analysis, claim, pr_url, generated_at)
    if fmt_l == 'csv':
        return render_csv(analysis, claim)
    if fmt_l in ('html', 'htm'):
        return render_html(analysis, claim, pr_url, generated_at)
    return render_text(analysis, claim)
