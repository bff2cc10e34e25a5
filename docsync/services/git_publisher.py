"""Publish rendered documentation into git-backed destinations.

Two destinations are supported:

* ``WikiPublisher`` overwrites ``AutoDocs.md`` in the repository wiki.
* ``PagesPublisher`` writes a versioned HTML page per commit on the pages
  branch (``docs/<sha7>/index.html``), refreshes ``docs/latest/index.html`` and
  appends one entry to the ``docs/history.json`` ledger.

Every publish works in a fresh clone inside a uniquely named temporary
directory that is removed on every exit path. Nothing is kept between calls,
so a failed publish is retried by calling ``publish`` again from scratch.
"""

from __future__ import annotations

import html
import json
import shutil
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, List
from urllib.parse import urlsplit, urlunsplit

import markdown
from git import Actor, Repo
from git.exc import GitCommandError

from docsync.config import DEFAULT_GIT_AUTHOR_EMAIL, DEFAULT_GIT_AUTHOR_NAME
from docsync.logger import get_logger, log_success, log_with_context
from docsync.models.changes import PublishRecord, RenderedDoc, utc_timestamp

logger = get_logger()

WIKI_FILENAME = "AutoDocs.md"
WIKI_BRANCHES = ("main", "master")
DOCS_DIR = "docs"
LATEST_DIR = "latest"
INDEX_FILENAME = "index.html"
HISTORY_FILENAME = "history.json"
DEFAULT_PAGES_BRANCH = "gh-pages"


class PublishError(RuntimeError):
    """Raised when a destination could not be updated."""

    def __init__(self, destination: str, cause: BaseException, *, step: str | None = None, secrets: tuple[str, ...] = ()):
        detail = _scrub(str(cause) or cause.__class__.__name__, secrets)
        where = f" during {step}" if step else ""
        super().__init__(f"Publishing to {destination} failed{where}: {detail}")
        self.destination = destination
        self.cause = cause
        self.step = step


@dataclass(frozen=True)
class GitIdentity:
    name: str = DEFAULT_GIT_AUTHOR_NAME
    email: str = DEFAULT_GIT_AUTHOR_EMAIL

    def actor(self) -> Actor:
        return Actor(self.name, self.email)


@contextmanager
def ephemeral_checkout(base_dir: str | Path) -> Iterator[Path]:
    """Yield a new, uniquely named directory under ``base_dir`` and always remove it."""

    path = Path(base_dir) / uuid.uuid4().hex
    path.mkdir(parents=True)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            logger.warning(f"Failed to remove temporary checkout: {path}")
        else:
            logger.debug(f"Cleaned temporary checkout: {path}")


def build_remote_url(web_base_url: str, full_name: str, *, wiki: bool = False, token: str | None = None) -> str:
    """Return the git remote for a repository (or its wiki), embedding ``token`` when given."""

    suffix = ".wiki.git" if wiki else ".git"
    url = f"{web_base_url.rstrip('/')}/{full_name}{suffix}"
    if not token:
        return url
    parts = urlsplit(url)
    return urlunsplit(parts._replace(netloc=f"x-access-token:{token}@{parts.netloc}"))


def redact_url(url: str) -> str:
    parts = urlsplit(url)
    if "@" not in parts.netloc:
        return url
    return urlunsplit(parts._replace(netloc=f"***@{parts.netloc.rsplit('@', 1)[1]}"))


def _scrub(text: str, secrets: tuple[str, ...]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text


HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8" />
<title>{title}</title>
<meta name="viewport" content="width=device-width, initial-scale=1.0" />
<style>
    body {{
        font-family: Arial, sans-serif;
        margin: 40px;
        line-height: 1.6;
        max-width: 900px;
    }}
    pre {{
        background: #f4f4f4;
        padding: 12px;
        border-radius: 6px;
        overflow-x: auto;
    }}
    code {{
        color: #c7254e;
        background: #f9f2f4;
        padding: 3px 4px;
        border-radius: 4px;
    }}
    h1, h2, h3, h4 {{
        color: #333;
    }}
</style>
</head>
<body>
{content}
</body>
</html>
"""


def render_html(doc: RenderedDoc) -> str:
    """Render the document's markdown body into a standalone HTML page."""
    content = markdown.markdown(doc.body, extensions=["tables", "fenced_code"])
    return HTML_TEMPLATE.format(title=html.escape(doc.title), content=content)


def load_history(path: Path) -> List[Any]:
    """Read the publish ledger, treating a missing or unreadable file as empty."""

    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info(f"No {HISTORY_FILENAME} found - creating a new one")
        return []
    except OSError as exc:
        logger.warning(f"Could not read {HISTORY_FILENAME} ({exc}) - starting a new ledger")
        return []

    try:
        history = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning(f"{HISTORY_FILENAME} is not valid JSON ({exc}) - starting a new ledger")
        return []
    if not isinstance(history, list):
        logger.warning(f"{HISTORY_FILENAME} is not a JSON array - starting a new ledger")
        return []
    return history


class _GitPublisher:
    destination = "git"

    def __init__(
        self,
        remote_url: str,
        *,
        tmp_base: str | Path = "./tmp",
        identity: GitIdentity | None = None,
        token: str | None = None,
    ) -> None:
        self._remote_url = remote_url
        self._tmp_base = Path(tmp_base)
        self._identity = identity or GitIdentity()
        self._secrets = (token,) if token else ()

    @property
    def remote_display(self) -> str:
        return redact_url(self._remote_url)

    def _error(self, cause: BaseException, step: str) -> PublishError:
        return PublishError(self.destination, cause, step=step, secrets=self._secrets)

    def _clone(self, workdir: Path, branch: str | None = None) -> Repo:
        if branch is None:
            return Repo.clone_from(self._remote_url, workdir)
        return Repo.clone_from(self._remote_url, workdir, branch=branch, single_branch=True)

    def _commit(self, repo: Repo, message: str) -> None:
        with repo.config_writer() as config:
            config.set_value("user", "name", self._identity.name)
            config.set_value("user", "email", self._identity.email)
        repo.git.add(A=True)
        actor = self._identity.actor()
        repo.index.commit(message, author=actor, committer=actor)


class WikiPublisher(_GitPublisher):
    """Overwrite ``AutoDocs.md`` in a wiki repository with raw markdown."""

    destination = "wiki"

    def publish(self, doc: RenderedDoc) -> str:
        """Publish ``doc`` and return the branch that accepted the push."""

        ctx_logger = log_with_context(
            logger, destination=self.destination, repository=doc.meta.repo_full_name, commit=doc.meta.sha_short
        )
        ctx_logger.info(f"Cloning wiki {self.remote_display}")
        step = "clone"
        try:
            with ephemeral_checkout(self._tmp_base) as checkout:
                workdir = checkout / "repo"
                repo = self._clone(workdir)

                step = "write"
                (workdir / WIKI_FILENAME).write_text(doc.body, encoding="utf-8")

                step = "commit"
                self._commit(repo, f"Auto-update documentation for {doc.meta.sha_short}")

                step = "push"
                branch = self._push(repo, ctx_logger)
        except Exception as exc:
            raise self._error(exc, step) from exc

        log_success(logger, f"Wiki updated: {WIKI_FILENAME} ({branch})",
                    destination=self.destination, commit=doc.meta.sha_short)
        return branch

    @staticmethod
    def _push(repo: Repo, ctx_logger) -> str:
        primary, fallback = WIKI_BRANCHES
        try:
            repo.git.push("origin", primary)
            return primary
        except GitCommandError:
            ctx_logger.info(f"Push to '{primary}' rejected - retrying with '{fallback}'")
        repo.git.push("origin", fallback)
        return fallback


class PagesPublisher(_GitPublisher):
    """Publish versioned HTML documentation to a pages branch with a history ledger."""

    destination = "pages"

    def __init__(self, remote_url: str, *, branch: str = DEFAULT_PAGES_BRANCH, **kwargs: Any) -> None:
        super().__init__(remote_url, **kwargs)
        self._branch = branch

    @property
    def branch(self) -> str:
        return self._branch

    def _clone_or_create_branch(self, workdir: Path, ctx_logger) -> Repo:
        try:
            return self._clone(workdir, branch=self._branch)
        except GitCommandError:
            ctx_logger.info(f"Branch '{self._branch}' not found - creating a new one")
        shutil.rmtree(workdir, ignore_errors=True)
        repo = self._clone(workdir)
        repo.git.checkout("-b", self._branch)
        return repo

    def publish(self, doc: RenderedDoc) -> PublishRecord:
        """Publish ``doc`` and return the ledger record that was appended."""

        sha7 = doc.meta.sha_short
        ctx_logger = log_with_context(
            logger, destination=self.destination, repository=doc.meta.repo_full_name, commit=sha7
        )
        ctx_logger.info(f"Cloning {self.remote_display} ({self._branch}) to publish pages")

        step = "clone"
        try:
            with ephemeral_checkout(self._tmp_base) as checkout:
                workdir = checkout / "repo"
                repo = self._clone_or_create_branch(workdir, ctx_logger)

                step = "write"
                page = render_html(doc)
                docs_dir = workdir / DOCS_DIR
                for target in (docs_dir / sha7, docs_dir / LATEST_DIR):
                    target.mkdir(parents=True, exist_ok=True)
                    (target / INDEX_FILENAME).write_text(page, encoding="utf-8")

                step = "ledger"
                history_path = docs_dir / HISTORY_FILENAME
                history = load_history(history_path)
                record = PublishRecord(
                    sha_short=sha7,
                    timestamp=utc_timestamp(),
                    relative_path=f"{DOCS_DIR}/{sha7}/{INDEX_FILENAME}",
                )
                history.append(record.to_json())
                history_path.write_text(json.dumps(history, indent=2), encoding="utf-8")

                step = "commit"
                self._commit(repo, f"Publish docs for commit {sha7}")

                step = "push"
                repo.git.push("origin", self._branch)
        except Exception as exc:
            raise self._error(exc, step) from exc

        log_success(logger, f"Pages updated for commit {sha7} ({len(history)} version(s) in history)",
                    destination=self.destination, commit=sha7)
        return record
