"""
CLI entry point for the contribution bounty pipeline.
Wires: eligibility -> aggregate -> score -> bounty -> claim ledger -> report
"""

import argparse
import logging
import os
import sys
from datetime import datetime, timezone

from errors import AlreadyClaimed, BountyPipelineError
from evaluator import ContributionPipeline
from ingest.aggregator import configure_aggregation
from ingest.github import GitHubClient
from models import Credentials
from report.renderer import render, render_json, render_status
from scoring.oracle import oracle_from_env
from scoring.utils import list_presets, load_config
from storage.retry import configure_retry
from storage.store import DB_PATH, SqliteClaimStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _resolve_token(args):
    """Resolve the platform token from the CLI flag or GITHUB_TOKEN and attach it to args."""
    args.github_token = args.github_token if args.github_token else os.getenv('GITHUB_TOKEN')


def _configure_runtime(args):
    # CLI flags take precedence over environment variables
    configure_retry(
        max_retries=args.max_retries,
        backoff_base=args.backoff_base,
        backoff_jitter=args.backoff_jitter,
        max_backoff=args.max_backoff,
        timeout=args.http_timeout,
    )
    configure_aggregation(optional_timeout=args.optional_timeout)


def build_pipeline(args, store: SqliteClaimStore) -> ContributionPipeline:
    config = load_config(args.weights_file or None, preset=args.weights_preset or None)
    oracle = None if args.no_oracle else oracle_from_env(args.oracle_url, timeout=args.oracle_timeout)
    return ContributionPipeline(
        store,
        client_factory=lambda token: GitHubClient(token=token),
        oracle=oracle,
        weights=config.weights,
        thresholds=config.thresholds,
    )


def write_output(fmt: str, rendered: str, args):
    """Write output to file or stdout."""
    out_file = (getattr(args, 'out_file', '') or '').strip()
    if not out_file:
        print(rendered)
        return
    out_dir = os.path.dirname(out_file)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    # newline='' is safe for CSV on Windows and harmless for other formats
    with open(out_file, 'w', encoding='utf-8', newline='') as fh:
        fh.write(rendered)
    print(f"Wrote {fmt} report to {out_file}")


def _credentials(args) -> Credentials:
    return Credentials(github_token=args.github_token, user_handle=args.user)


def cmd_score(args, store) -> int:
    pipeline = build_pipeline(args, store)
    analysis = pipeline.validate_and_score(args.pr_url, args.project_id, _credentials(args))
    fmt = (args.output or 'text').lower()
    rendered = render(analysis, fmt=fmt, pr_url=args.pr_url, generated_at=datetime.now(timezone.utc).isoformat())
    write_output(fmt, rendered, args)
    return 0


def cmd_claim(args, store) -> int:
    pipeline = build_pipeline(args, store)
    fmt = (args.output or 'text').lower()
    try:
        outcome = pipeline.claim_bounty(args.pr_url, args.project_id, args.developer or None, _credentials(args))
    except AlreadyClaimed as ex:
        unit = ex.unit
        status = {
            'claimed': True,
            'claimed_by': unit.bounty_claimed_by if unit else None,
            'claimed_at': unit.bounty_claimed_at.isoformat() if unit and unit.bounty_claimed_at else None,
            'amount': unit.amount_paid if unit else None,
        }
        print(render_status(status, fmt), file=sys.stderr)
        return 3
    rendered = render(outcome.analysis, fmt=fmt, claim=outcome.to_dict(), pr_url=args.pr_url, generated_at=outcome.payout.created_at.isoformat())
    write_output(fmt, rendered, args)
    return 0


def cmd_status(args, store) -> int:
    pipeline = ContributionPipeline(store)
    status = pipeline.check_claim_status(args.pr_url, args.project_id)
    print(render_status(status, args.output))
    return 0


def cmd_project_add(args, store) -> int:
    try:
        project = store.add_project(args.repo, args.lowest, args.highest)
    except ValueError as ex:
        print(f"Error: {ex}", file=sys.stderr)
        return 2
    print(render_json(status=project.to_dict()))
    return 0


def cmd_project_list(args, store) -> int:
    print(render_json(status={'projects': [p.to_dict() for p in store.list_projects()]}))
    return 0


def cmd_presets(args, store) -> int:
    for name in list_presets(args.weights_file or None):
        print(name)
    return 0


def _add_scoring_args(p):
    p.add_argument("pr_url", type=str, help="Pull request URL, e.g. https://github.com/owner/repo/pull/123")
    p.add_argument("--project-id", type=int, default=None, help="Project id (looked up by repository when omitted)")
    p.add_argument("--user", type=str, default=None, help="Authenticated user handle")
    p.add_argument("--github-token", type=str, default=None, help="Platform token (defaults to GITHUB_TOKEN env)")
    p.add_argument("--output", type=str, default="text", help="Output format (text, md, csv, json, html)")
    p.add_argument("--out-file", type=str, default="", help="Write the report to this file instead of stdout")
    p.add_argument("--weights-file", type=str, default="", help="Weights YAML (overrides BOUNTY_WEIGHTS_FILE env)")
    p.add_argument("--weights-preset", type=str, default="", help="Named preset from the weights YAML")
    p.add_argument("--oracle-url", type=str, default=None, help="Categorization oracle URL (overrides BOUNTY_ORACLE_URL env)")
    p.add_argument("--oracle-timeout", type=float, default=None, help="Oracle timeout seconds (overrides BOUNTY_ORACLE_TIMEOUT env)")
    p.add_argument("--no-oracle", action="store_true", help="Score locally only")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Contribution scoring and bounty claim CLI")
    parser.add_argument("--db", type=str, default="", help=f"Path to the SQLite claim ledger (default BOUNTY_DB env or {DB_PATH})")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    # retry/backoff knobs: optional CLI overrides. Environment variables BOUNTY_MAX_RETRIES, BOUNTY_BACKOFF_BASE,
    # BOUNTY_BACKOFF_JITTER, BOUNTY_MAX_BACKOFF, BOUNTY_HTTP_TIMEOUT may also be used to set defaults.
    parser.add_argument("--max-retries", type=int, default=None, help="Maximum attempts per HTTP request (overrides BOUNTY_MAX_RETRIES env)")
    parser.add_argument("--backoff-base", type=float, default=None, help="Base backoff seconds (overrides BOUNTY_BACKOFF_BASE env)")
    parser.add_argument("--backoff-jitter", type=float, default=None, help="Jitter seconds added to backoff (overrides BOUNTY_BACKOFF_JITTER env)")
    parser.add_argument("--max-backoff", type=float, default=None, help="Maximum backoff cap in seconds (overrides BOUNTY_MAX_BACKOFF env)")
    parser.add_argument("--http-timeout", type=float, default=None, help="Per-request timeout in seconds (overrides BOUNTY_HTTP_TIMEOUT env)")
    parser.add_argument(
        "--optional-timeout", type=float, default=None, help="Join timeout for optional signals (overrides BOUNTY_OPTIONAL_FETCH_TIMEOUT env)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_score = sub.add_parser("score", help="Validate eligibility and score a merged pull request")
    _add_scoring_args(p_score)
    p_score.set_defaults(func=cmd_score)

    p_claim = sub.add_parser("claim", help="Score a pull request and claim its bounty")
    _add_scoring_args(p_claim)
    p_claim.add_argument("--developer", type=str, default="", help="Developer id recorded on the payout (defaults to --user)")
    p_claim.set_defaults(func=cmd_claim)

    p_status = sub.add_parser("status", help="Check whether a pull request's bounty was claimed")
    p_status.add_argument("pr_url", type=str)
    p_status.add_argument("--project-id", type=int, default=None)
    p_status.add_argument("--output", type=str, default="text", help="Output format (text, json)")
    p_status.set_defaults(func=cmd_status)

    p_project = sub.add_parser("project", help="Manage registered projects")
    project_sub = p_project.add_subparsers(dest="project_command", required=True)
    p_add = project_sub.add_parser("add", help="Register a repository with a bounty range")
    p_add.add_argument("repo", type=str, help="Repository URL or owner/repo")
    p_add.add_argument("--lowest", type=float, required=True)
    p_add.add_argument("--highest", type=float, required=True)
    p_add.set_defaults(func=cmd_project_add)
    p_list = project_sub.add_parser("list", help="List registered projects")
    p_list.set_defaults(func=cmd_project_list)

    p_presets = sub.add_parser("presets", help="List weight presets")
    p_presets.add_argument("--weights-file", type=str, default="")
    p_presets.set_defaults(func=cmd_presets)
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING), format=LOG_FORMAT)

    _configure_runtime(args)
    if hasattr(args, 'github_token'):
        _resolve_token(args)

    store = SqliteClaimStore(args.db or DB_PATH)
    try:
        return args.func(args, store)
    except BountyPipelineError as ex:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {ex}", file=sys.stderr)
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
