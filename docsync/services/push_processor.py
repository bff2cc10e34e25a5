"""Queue job processor that documents every commit of a push."""

from __future__ import annotations

import asyncio
from typing import Callable, List, Sequence

from docsync.audit_log import AuditLog, get_audit_log
from docsync.config import Settings, SettingsError, get_settings
from docsync.github_client import GitHubClient
from docsync.logger import get_logger, log_failure, log_success, log_timing, log_with_context
from docsync.models.changes import CommitOutcome, CommitRef, DocMeta, RenderedDoc
from docsync.notifier import TeamsNotifier
from docsync.queue.models import PushJob
from docsync.services.change_extractor import ChangeAnalyzer, LexicalChangeExtractor
from docsync.services.diff_ingestor import ingest
from docsync.services.doc_composer import DocumentComposer
from docsync.services.git_publisher import (
    GitIdentity,
    PagesPublisher,
    PublishError,
    WIKI_FILENAME,
    WikiPublisher,
    build_remote_url,
)

logger = get_logger()

WikiPublisherFactory = Callable[[str, "str | None"], WikiPublisher]
PagesPublisherFactory = Callable[[str, "str | None"], PagesPublisher]


class CommitProcessingError(RuntimeError):
    """Raised when one step of a commit's pipeline fails."""

    def __init__(self, message: str, step: str, original_error: Exception | None = None):
        super().__init__(message)
        self.step = step
        self.original_error = original_error


def _wiki_factory(settings: Settings) -> WikiPublisherFactory:
    def build(full_name: str, token: str | None) -> WikiPublisher:
        return WikiPublisher(
            build_remote_url(settings.normalized_github_web_base_url, full_name, wiki=True, token=token),
            tmp_base=settings.tmp_base / "wiki",
            identity=GitIdentity(settings.git_author_name, settings.git_author_email),
            token=token,
        )

    return build


def _pages_factory(settings: Settings) -> PagesPublisherFactory:
    def build(full_name: str, token: str | None) -> PagesPublisher:
        return PagesPublisher(
            build_remote_url(settings.normalized_github_web_base_url, full_name, token=token),
            branch=settings.pages_branch,
            tmp_base=settings.tmp_base / "pages",
            identity=GitIdentity(settings.git_author_name, settings.git_author_email),
            token=token,
        )

    return build


class PushProcessor:
    """Runs fetch -> ingest -> analyze -> compose -> publish for each commit in order.

    A failure in one commit is logged, written to the audit ledger and sent to
    the alert sink; the next commit is then processed as if nothing happened.
    Nothing is retried.
    """

    def __init__(
        self,
        *,
        github_client: GitHubClient,
        composer: DocumentComposer,
        wiki_publisher_factory: WikiPublisherFactory,
        pages_publisher_factory: PagesPublisherFactory,
        audit_log: AuditLog,
        notifier: TeamsNotifier | None = None,
        analyzer: ChangeAnalyzer | None = None,
        default_repository: str | None = None,
    ) -> None:
        self._github = github_client
        self._composer = composer
        self._wiki_factory = wiki_publisher_factory
        self._pages_factory = pages_publisher_factory
        self._audit_log = audit_log
        self._notifier = notifier or TeamsNotifier(None)
        self._analyzer = analyzer or LexicalChangeExtractor()
        self._default_repository = default_repository

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PushProcessor":
        settings = settings or get_settings()
        return cls(
            github_client=GitHubClient(
                base_url=settings.normalized_github_api_base_url,
                token=settings.github_token,
                app_id=settings.github_app_id,
                private_key_pem=settings.github_private_key_pem,
            ),
            composer=DocumentComposer.from_settings(settings),
            wiki_publisher_factory=_wiki_factory(settings),
            pages_publisher_factory=_pages_factory(settings),
            audit_log=get_audit_log(),
            notifier=TeamsNotifier(str(settings.teams_webhook_url) if settings.teams_webhook_url else None),
            default_repository=settings.repository_full_name,
        )

    async def __call__(self, job: PushJob) -> List[CommitOutcome]:
        repository = job.repository.full_name or self._default_repository
        if not repository:
            raise SettingsError("Push job has no repository and GITHUB_OWNER/GITHUB_REPO are not set.")
        return await self.process_push(
            repository,
            [CommitRef(id=sha) for sha in job.commits],
            installation_id=job.installation_id,
        )

    async def process_push(
        self,
        repository: str,
        commits: Sequence[CommitRef | str],
        *,
        installation_id: int | None = None,
    ) -> List[CommitOutcome]:
        batch_logger = log_with_context(logger, repository=repository)
        batch_logger.info(f"Processing push event: {len(commits)} commit(s)")

        outcomes: List[CommitOutcome] = []
        for commit in commits:
            sha = commit.id if isinstance(commit, CommitRef) else commit
            try:
                outcome = await self._process_commit(repository, sha, installation_id)
            except Exception as exc:
                step = exc.step if isinstance(exc, CommitProcessingError) else "unknown"
                cause = exc.original_error if isinstance(exc, CommitProcessingError) and exc.original_error else exc
                outcome = CommitOutcome(sha=sha, succeeded=False, error=str(cause), failed_step=step)
            if not outcome.succeeded:
                log_failure(logger, f"Error processing commit {sha} at {outcome.failed_step}: {outcome.error}",
                            repository=repository, commit=sha[:7])
            outcomes.append(outcome)
            try:
                await self._report(repository, outcome)
            except Exception as exc:
                log_failure(logger, f"Failed to report outcome of commit {sha}", exc,
                            repository=repository, commit=sha[:7])

        succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
        batch_logger.info(f"Push event processed: {succeeded}/{len(outcomes)} commit(s) documented")
        return outcomes

    async def _process_commit(self, repository: str, sha: str, installation_id: int | None) -> CommitOutcome:
        owner, repo = repository.split("/", 1) if "/" in repository else (repository, "")
        if not owner or not repo:
            raise CommitProcessingError(f"Repository full name '{repository}' is invalid.", "load_repository")

        ctx_logger = log_with_context(logger, repository=repository, commit=sha[:7])
        ctx_logger.info(f"=== Processing Commit {sha} ===")

        try:
            with log_timing(ctx_logger, "fetch_commit"):
                token = await self._github.resolve_token(installation_id)
                raw_files = await self._github.get_commit_files(
                    owner=owner, repo=repo, sha=sha, installation_id=installation_id
                )
        except Exception as exc:
            raise CommitProcessingError("Failed to fetch commit diff", "fetch_commit", exc) from exc

        diffs = ingest(raw_files)
        summary = self._analyzer.analyze(diffs)
        ctx_logger.info(
            f"Detected changes in {len(summary.modules_affected)} module(s) "
            f"({len(diffs)} of {len(raw_files)} file(s) with patches)"
        )

        try:
            doc = await self._composer.compose(summary, DocMeta(sha=sha, repo_full_name=repository))
        except Exception as exc:
            raise CommitProcessingError("Failed to generate documentation", "compose", exc) from exc

        return await self._publish(repository, doc, token, ctx_logger)

    async def _publish(self, repository: str, doc: RenderedDoc, token: str | None, ctx_logger) -> CommitOutcome:
        outcome = CommitOutcome(sha=doc.meta.sha, succeeded=False)
        errors: List[PublishError] = []

        # The two destinations are independent; neither is rolled back when the other fails.
        try:
            wiki = self._wiki_factory(repository, token)
            await asyncio.to_thread(wiki.publish, doc)
            outcome.wiki_published = True
        except PublishError as exc:
            errors.append(exc)

        try:
            pages = self._pages_factory(repository, token)
            await asyncio.to_thread(pages.publish, doc)
            outcome.pages_published = True
        except PublishError as exc:
            errors.append(exc)

        if errors:
            outcome.error = "; ".join(str(error) for error in errors)
            outcome.failed_step = "publish_" + "_".join(error.destination for error in errors)
            return outcome

        outcome.succeeded = True
        ctx_logger.info(f"=== Finished Commit {doc.meta.sha} ===")
        return outcome

    async def _report(self, repository: str, outcome: CommitOutcome) -> None:
        sha7 = outcome.sha[:7]
        if outcome.succeeded:
            self._audit_log.record(
                f"Commit {outcome.sha} processed -> {WIKI_FILENAME}, docs/{sha7}/index.html"
            )
            log_success(logger, f"Documentation published for commit {sha7}", repository=repository, commit=sha7)
            await self._notifier.notify(
                f"Documentation updated for {repository}",
                f"Commit `{sha7}` was documented in the wiki and on the pages site.",
            )
        else:
            self._audit_log.record(f"ERROR processing commit {outcome.sha}: {outcome.error}")
            await self._notifier.notify(
                f"Documentation sync failed for {repository}",
                f"Commit `{sha7}` failed at step `{outcome.failed_step}`: {outcome.error}",
            )

    async def aclose(self) -> None:
        await self._github.aclose()
        await self._composer.aclose()
        await self._notifier.aclose()
