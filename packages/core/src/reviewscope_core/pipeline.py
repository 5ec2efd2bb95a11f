"""Review orchestration for one job.

    validate tenant → plan limits → repo quota → rate-limit gates
      → diff → ignore/noise filter → static rules
      → complexity → route → AI review (optional)
      → merge → reconcile against open threads → validate against hunks
      → post the delta → persist threads, usage and the Review result

Every terminal state is written to the Review row. Plan and rate limits end
in ``completed`` with an explanation; configuration problems end in
``failed`` without being re-raised; anything else ends in ``failed`` and is
re-raised so the job system can retry.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Callable, Sequence

from rich.console import Console

from reviewscope_core.ai_review import AIReviewer
from reviewscope_core.complexity import calculate_complexity
from reviewscope_core.config import RepoConfig, load_repo_config, server_keys
from reviewscope_core.diff import parse_diff
from reviewscope_core.exceptions import ConfigurationError, PlanLimitError
from reviewscope_core.filters import IGNORE_FILE, parse_ignore_file, select_review_sets
from reviewscope_core.issues import fetch_issue_context, parse_issue_references
from reviewscope_core.plans import PlanTier, get_plan_limits
from reviewscope_core.posting import build_summary, post_findings, resolve_fixed_threads
from reviewscope_core.providers.factory import create_provider
from reviewscope_core.rag import NullRetriever, fetch_rag_context
from reviewscope_core.rate_limit import check_rate_limits, check_repo_quota, log_review_usage
from reviewscope_core.reconcile import merge_findings, reconcile, validate_against_diff
from reviewscope_core.related import build_related_section, gather_related_files
from reviewscope_core.response import apply_rule_validations
from reviewscope_core.routing import DEFAULT_PREFERENCE, Ok, resolve_credentials, select_model
from reviewscope_core.rules.engine import run_rules
from reviewscope_core.scoring import sort_and_limit_files
from reviewscope_store.models import CommentThread, ReviewStatus, ThreadStatus, utcnow

if TYPE_CHECKING:
    from datetime import datetime

    from reviewscope_core.diff import ParsedFile
    from reviewscope_core.findings import Finding
    from reviewscope_core.job import ReviewJob
    from reviewscope_core.plans import PlanLimits
    from reviewscope_core.providers.base import BaseProvider
    from reviewscope_core.rag import ContextRetriever
    from reviewscope_core.vcs import VersionControlClient
    from reviewscope_store.base import BaseStore
    from reviewscope_store.models import Installation, Repository, Review

console = Console()
logger = logging.getLogger(__name__)

CONTEXT_HASH_VERSION = "v1"

# Below this many added characters the model has nothing useful to say.
MIN_AI_DIFF_CHARS = 50
# Free plan: a single-file change this small is left to the static rules.
FREE_TINY_DIFF_CHARS = 200

STATUS_COMPLETED = "completed"
STATUS_LIMITED = "limited"
STATUS_REUSED = "reused"
STATUS_FAILED = "failed"


@dataclass
class ReviewOutcome:
    """What one run did, returned to the worker and the CLI."""

    status: str
    summary: str
    review_id: int | None = None
    posted: list[Finding] = field(default_factory=list)
    suppressed: int = 0
    resolved: int = 0
    dropped: int = 0
    ai_skipped_reason: str | None = None
    context_hash: str = ""
    error: str | None = None


def compute_context_hash(head_sha: str, files: Sequence[ParsedFile]) -> str:
    """Fingerprint of what the model would see: head commit plus the added lines per file."""
    digest = hashlib.sha256()
    digest.update(head_sha.encode("utf-8"))
    payload = [{"p": f.path, "h": "".join(a.content for a in f.additions)} for f in files]
    digest.update(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    digest.update(CONTEXT_HASH_VERSION.encode("utf-8"))
    return digest.hexdigest()


def ai_skip_reason(files: Sequence[ParsedFile], limits: PlanLimits, repository: Repository) -> str | None:
    added_chars = sum(len(a.content) for f in files for a in f.additions)
    if not limits.allow_ai:
        return "AI review is not included in this plan"
    if not files:
        return "No reviewable files for AI review"
    if added_chars < MIN_AI_DIFF_CHARS:
        return "Change too small for meaningful AI review"
    if limits.tier == PlanTier.FREE and len(files) == 1 and added_chars < FREE_TINY_DIFF_CHARS:
        return "Tiny diff (Free plan)"
    if repository.status != "active":
        return "Repository is not active (static analysis only)"
    return None


def _validate_tenant(store: BaseStore, job: ReviewJob) -> tuple[Installation, Repository]:
    installation = store.get_installation(job.installation_id)
    if installation is None:
        raise ConfigurationError(f"Installation {job.installation_id} not found")
    if installation.status != "active":
        raise ConfigurationError(f"Installation {job.installation_id} is {installation.status}")
    repository = store.get_repository(job.repository_id)
    if repository is None or repository.installation_id != job.installation_id:
        raise ConfigurationError(f"Repository {job.repository_full_name} is not registered for this installation")
    return installation, repository


def _notify(vcs: VersionControlClient, job: ReviewJob, body: str) -> None:
    try:
        vcs.post_comment(job.pr_number, body)
    except Exception as e:
        logger.error("Failed to post notice on %s#%d: %s", job.repository_full_name, job.pr_number, e)


def _fetch_contents(vcs: VersionControlClient, files: Sequence[ParsedFile], head_sha: str) -> list[ParsedFile]:
    result = []
    for f in files:
        if not f.additions:
            result.append(f)
            continue
        try:
            content = vcs.get_file_content(f.path, head_sha)
        except Exception as e:
            logger.warning("Could not fetch %s at %s: %s", f.path, head_sha[:7], e)
            content = None
        result.append(replace(f, content=content) if content is not None else f)
    return result


class ReviewPipeline:
    """Runs review jobs against injected collaborators.

    The store, the version-control client and the retriever are passed in;
    LLM provider clients are built per job through ``provider_factory``.
    """

    def __init__(
        self,
        store: BaseStore,
        config: dict,
        retriever: ContextRetriever | None = None,
        provider_factory: Callable[[str, str], BaseProvider] = create_provider,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.config = config
        self.retriever = retriever or NullRetriever()
        self.provider_factory = provider_factory
        self.clock = clock

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def run(self, job: ReviewJob, vcs: VersionControlClient) -> ReviewOutcome:
        previous = self.store.get_review(job.repository_id, job.pr_number)
        review = self.store.upsert_review(
            job.repository_id, job.pr_number, ReviewStatus.PROCESSING, delivery_id=job.delivery_id
        )
        console.print(f"[cyan]Reviewing {job.repository_full_name}#{job.pr_number} @ {job.head_sha[:7]}[/cyan]")

        try:
            return self._run(job, vcs, review, previous)
        except PlanLimitError as e:
            logger.warning("Limit reached for %s#%d: %s", job.repository_full_name, job.pr_number, e.message)
            summary = f"Review skipped\n\n{e.message}"
            self.store.update_review(
                review.id,
                status=ReviewStatus.COMPLETED,
                result={
                    "summary": summary,
                    "comments": [],
                    "limit": e.kind,
                    "reset_at": e.reset_at.isoformat() if e.reset_at else None,
                },
                # A skip notice must never be reused as the review of this head.
                context_hash="",
                processed_at=self.clock(),
            )
            _notify(vcs, job, f"## Review skipped\n\n{e.message}")
            console.print(f"[yellow]{e.message}[/yellow]")
            return ReviewOutcome(status=STATUS_LIMITED, summary=summary, review_id=review.id, error=e.message)
        except ConfigurationError as e:
            logger.error("Configuration error for %s#%d: %s", job.repository_full_name, job.pr_number, e)
            self._fail(review, job, vcs, str(e))
            return ReviewOutcome(status=STATUS_FAILED, summary=f"Review failed: {e}", review_id=review.id, error=str(e))
        except Exception as e:
            logger.error("Review of %s#%d failed: %s", job.repository_full_name, job.pr_number, e)
            self._fail(review, job, vcs, str(e))
            raise

    # ------------------------------------------------------------------ #
    # Stages                                                               #
    # ------------------------------------------------------------------ #

    def _fail(self, review: Review, job: ReviewJob, vcs: VersionControlClient, message: str) -> None:
        self.store.update_review(
            review.id,
            status=ReviewStatus.FAILED,
            result={"summary": f"Review failed: {message}", "comments": []},
            error=message,
            processed_at=self.clock(),
        )
        _notify(
            vcs,
            job,
            "## Review failed\n\nReviewScope could not review this pull request:\n\n"
            f"> {message}\n\nPush a new commit or re-run the review to try again.",
        )

    def _run(self, job: ReviewJob, vcs: VersionControlClient, review: Review, previous: Review | None) -> ReviewOutcome:
        now = self.clock()
        installation, repository = _validate_tenant(self.store, job)
        limits = get_plan_limits(installation.plan_id, installation.plan_expires_at, now)
        check_repo_quota(self.store, job.installation_id, limits)
        check_rate_limits(self.store, job.installation_id, job.repository_id, job.pr_number, limits, now)

        repo_config = load_repo_config(vcs, job.head_sha) or RepoConfig()
        degraded = False

        files = parse_diff(vcs.get_diff(job.pr_number))
        try:
            ignore_patterns = parse_ignore_file(vcs.get_file_content(IGNORE_FILE, job.head_sha))
        except Exception as e:
            logger.warning("Could not read %s: %s", IGNORE_FILE, e)
            ignore_patterns = []

        sets = select_review_sets(files, ignore_patterns)
        ai_files = sort_and_limit_files(sets.ai_files, limits.max_files)
        context_hash = compute_context_hash(job.head_sha, ai_files)

        if (
            previous is not None
            and previous.status == ReviewStatus.COMPLETED
            and previous.context_hash == context_hash
            and "limit" not in previous.result
            and not repo_config.force_review
        ):
            console.print("[yellow]No changes since the last completed review. Nothing to do.[/yellow]")
            self.store.update_review(
                review.id,
                status=ReviewStatus.COMPLETED,
                result=previous.result,
                context_hash=context_hash,
                processed_at=now,
            )
            return ReviewOutcome(
                status=STATUS_REUSED,
                summary=previous.result.get("summary", "Review reused from previous identical run."),
                review_id=review.id,
                context_hash=context_hash,
            )

        if not sets.static_files:
            summary = "Skipped: no relevant code changes to review."
            self.store.update_review(
                review.id,
                status=ReviewStatus.COMPLETED,
                result={"summary": summary, "comments": []},
                context_hash=context_hash,
                processed_at=now,
            )
            return ReviewOutcome(status=STATUS_COMPLETED, summary=summary, review_id=review.id)

        # Full contents make the AST detectors precise; the AI set needs them for imports.
        wanted = {f.path for f in ai_files} | {f.path for f in sets.static_files if f.path.endswith(".py")}
        to_fetch = [f for f in sets.static_files if f.path in wanted]
        fetched = {f.path: f for f in _fetch_contents(vcs, to_fetch, job.head_sha)}
        static_files = [fetched.get(f.path, f) for f in sets.static_files]
        ai_files = [fetched.get(f.path, f) for f in ai_files]

        issue_context = ""
        issue_numbers = parse_issue_references(job.pr_body)
        if issue_numbers:
            issue_context = fetch_issue_context(vcs, issue_numbers)
            degraded = degraded or not issue_context

        static_findings = run_rules(
            static_files,
            disabled_rules=repo_config.disabled_rules,
            pr_body=job.pr_body,
            issue_context=issue_context,
        )
        logger.info("Static analysis: %d finding(s) on %d file(s)", len(static_findings), len(static_files))

        complexity = calculate_complexity(len(ai_files), ai_files)
        ai_findings: list[Finding] = []
        ai_summary = ""
        assessment: dict | None = None
        notes: list[str] = []

        skip_reason = ai_skip_reason(ai_files, limits, repository)
        if skip_reason is None:
            preference = self.config.get("provider_preference") or DEFAULT_PREFERENCE
            credentials = resolve_credentials(
                installation,
                server_keys(self.config),
                preference,
                allow_server_keys=not limits.requires_custom_key,
            )
            if not isinstance(credentials, Ok):
                if repo_config.ai_model:
                    raise ConfigurationError(
                        f"Model {repo_config.ai_model!r} is configured but no LLM key is usable: {credentials.reason}"
                    )
                skip_reason = credentials.reason
            else:
                override = None if installation.smart_routing else repo_config.ai_model
                route = select_model(credentials.value.providers, complexity.tier, preference, override)
                if route.is_none:
                    skip_reason = route.reason
                else:
                    logger.info("Routing %s complexity to %s (%s)", complexity.tier, route.model, route.reason)
                    provider = self.provider_factory(route.provider, credentials.value.keys[route.provider])

                    related_context = ""
                    try:
                        related = gather_related_files(vcs, ai_files, job.head_sha)
                        related_context = build_related_section(related)
                    except Exception as e:
                        logger.warning("Related-file context unavailable: %s", e)
                        degraded = True
                    rag_context = fetch_rag_context(self.retriever, job, repository, limits, ai_files)

                    reviewer = AIReviewer(
                        provider,
                        route,
                        temperature=repo_config.ai_temperature,
                        max_comments=self.config.get("max_comments", 7),
                        batch_size=self.config.get("batch_size", 10),
                    )
                    result = reviewer.review(
                        job,
                        ai_files,
                        limits,
                        complexity,
                        static_findings=static_findings,
                        issue_context=issue_context,
                        related_context=related_context,
                        rag_context=rag_context,
                        guidelines=repo_config.ai_guidelines,
                        degraded=degraded,
                    )
                    ai_findings = result.comments
                    ai_summary = result.summary
                    assessment = result.assessment
                    static_findings = apply_rule_validations(static_findings, result.rule_validations)

        if skip_reason is not None:
            logger.info("AI review skipped for %s#%d: %s", job.repository_full_name, job.pr_number, skip_reason)
            notes.append(f"AI review skipped: {skip_reason}. Static analysis only.")

        merged = merge_findings(static_findings, ai_findings, job.repository_id, job.pr_number)
        open_threads = self.store.list_threads(review.id, ThreadStatus.OPEN)
        recon = reconcile(merged, open_threads)
        valid, dropped = validate_against_diff(recon.new, files)

        summary = build_summary(
            ai_summary,
            valid,
            assessment,
            notes,
            suppressed=len(recon.suppressed),
            resolved=len(recon.resolved),
        )

        posted: list[Finding] = []
        first_run = previous is None or previous.status != ReviewStatus.COMPLETED
        posting_enabled = self.config.get("post_comments", True) and repo_config.post_comments
        if not posting_enabled:
            logger.info("Posting disabled; %d comment(s) not posted.", len(valid))
        elif valid or recon.resolved or first_run:
            posted = post_findings(vcs, job, summary, valid)

        self.store.insert_threads(
            CommentThread(
                review_id=review.id,
                issue_key=f.issue_key,
                file_path=f.file,
                line=f.line,
                severity=f.severity,
                rule_id=f.rule_id,
                created_at=now,
            )
            for f in valid
        )
        resolved = self.store.resolve_threads(review.id, recon.resolved, now)
        if posting_enabled and recon.resolved:
            resolve_fixed_threads(vcs, job.pr_number, recon.resolved)
        log_review_usage(self.store, job, now)

        self.store.update_review(
            review.id,
            status=ReviewStatus.COMPLETED,
            result={
                "summary": summary,
                "assessment": assessment,
                "complexity": complexity.to_dict(),
                "comments": [f.to_dict() for f in valid],
                "suppressed": len(recon.suppressed),
                "resolved": recon.resolved,
                "dropped": len(dropped),
                "ai_skipped_reason": skip_reason,
            },
            context_hash=context_hash,
            processed_at=now,
        )
        console.print(
            f"[green]Review completed: {len(valid)} new, {len(recon.suppressed)} already reported, "
            f"{resolved} resolved.[/green]"
        )
        return ReviewOutcome(
            status=STATUS_COMPLETED,
            summary=summary,
            review_id=review.id,
            posted=posted,
            suppressed=len(recon.suppressed),
            resolved=resolved,
            dropped=len(dropped),
            ai_skipped_reason=skip_reason,
            context_hash=context_hash,
        )


def run_review(
    job: ReviewJob,
    store: BaseStore,
    vcs: VersionControlClient,
    config: dict,
    retriever: ContextRetriever | None = None,
    provider_factory: Callable[[str, str], BaseProvider] = create_provider,
    clock: Callable[[], datetime] = utcnow,
) -> ReviewOutcome:
    """Run one review job end to end. See ReviewPipeline for the error policy."""
    pipeline = ReviewPipeline(store, config, retriever=retriever, provider_factory=provider_factory, clock=clock)
    return pipeline.run(job, vcs)
