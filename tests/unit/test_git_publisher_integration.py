"""End-to-end publisher tests against local bare repositories."""

import json
import shutil
from unittest.mock import AsyncMock, Mock

import pytest
from git import Actor, Repo

from docsync.audit_log import AuditLog
from docsync.models import DocMeta, RenderedDoc
from docsync.services.git_publisher import PagesPublisher, PublishError, WikiPublisher
from docsync.services.push_processor import PushProcessor

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")

SEED_AUTHOR = Actor("Seeder", "seeder@example.com")


def _doc(sha, title):
    return RenderedDoc(title=title, body=f"# {title}\n\nGenerated.", meta=DocMeta(sha=sha, repo_full_name="octo/widgets"))


@pytest.fixture
def bare_remote(tmp_path):
    """A bare repository with one commit on 'master'."""
    seed_path = tmp_path / "seed"
    seed = Repo.init(seed_path, initial_branch="master")
    (seed_path / "Home.md").write_text("# Home\n", encoding="utf-8")
    seed.index.add(["Home.md"])
    seed.index.commit("seed", author=SEED_AUTHOR, committer=SEED_AUTHOR)
    remote_path = tmp_path / "remote.git"
    seed.clone(str(remote_path), bare=True)
    return str(remote_path)


def _checkout(remote, tmp_path, name, branch=None):
    target = tmp_path / name
    if branch:
        return Repo.clone_from(remote, target, branch=branch)
    return Repo.clone_from(remote, target)


class TestWikiPublisherIntegration:
    """WikiPublisher against a real remote."""

    def test_publish_overwrites_autodocs(self, bare_remote, tmp_path):
        """The wiki page is replaced on every publish and pushed to master when main is absent."""
        work = tmp_path / "work"
        publisher = WikiPublisher(bare_remote, tmp_base=work)

        assert publisher.publish(_doc("abc1234aaaa", "First")) == "master"
        assert publisher.publish(_doc("def5678bbbb", "Second")) == "master"

        checkout = _checkout(bare_remote, tmp_path, "verify")
        content = (tmp_path / "verify" / "AutoDocs.md").read_text(encoding="utf-8")
        assert content.startswith("# Second")
        assert checkout.head.commit.author.name == "doc-sync-agent"
        assert list(work.iterdir()) == []

    def test_unreachable_remote(self, tmp_path):
        """A remote that cannot be cloned fails the publish without leaving files behind."""
        work = tmp_path / "work"
        publisher = WikiPublisher(str(tmp_path / "missing.git"), tmp_base=work)

        with pytest.raises(PublishError) as exc_info:
            publisher.publish(_doc("abc1234aaaa", "First"))

        assert exc_info.value.step == "clone"
        assert list(work.iterdir()) == []


class TestPagesPublisherIntegration:
    """PagesPublisher against a real remote."""

    def test_history_is_append_only_and_latest_tracks_last_publish(self, bare_remote, tmp_path):
        """Two publishes create the branch, keep both versions and append two ledger records in order."""
        work = tmp_path / "work"
        publisher = PagesPublisher(bare_remote, tmp_base=work)

        first = publisher.publish(_doc("abc1234aaaa", "First release"))
        second = publisher.publish(_doc("def5678bbbb", "Second release"))

        _checkout(bare_remote, tmp_path, "site", branch="gh-pages")
        docs = tmp_path / "site" / "docs"
        history = json.loads((docs / "history.json").read_text(encoding="utf-8"))
        assert [entry["sha"] for entry in history] == ["abc1234", "def5678"]
        assert history == [first.to_json(), second.to_json()]

        latest = (docs / "latest" / "index.html").read_text(encoding="utf-8")
        assert "Second release" in latest
        assert "First release" not in latest
        assert "First release" in (docs / "abc1234" / "index.html").read_text(encoding="utf-8")
        assert (docs / "def5678" / "index.html").read_text(encoding="utf-8") == latest
        assert list(work.iterdir()) == []

    def test_republishing_same_sha_overwrites_version_dir(self, bare_remote, tmp_path):
        """Same key, last write wins; the ledger still records both publishes."""
        publisher = PagesPublisher(bare_remote, tmp_base=tmp_path / "work")

        publisher.publish(_doc("abc1234aaaa", "Draft"))
        publisher.publish(_doc("abc1234aaaa", "Final"))

        _checkout(bare_remote, tmp_path, "site", branch="gh-pages")
        docs = tmp_path / "site" / "docs"
        assert "Final" in (docs / "abc1234" / "index.html").read_text(encoding="utf-8")
        history = json.loads((docs / "history.json").read_text(encoding="utf-8"))
        assert [entry["sha"] for entry in history] == ["abc1234", "abc1234"]

    def test_corrupt_ledger_is_replaced(self, bare_remote, tmp_path):
        """An unparseable history.json on the branch is treated as empty."""
        publisher = PagesPublisher(bare_remote, tmp_base=tmp_path / "work")
        publisher.publish(_doc("abc1234aaaa", "First"))

        editor = _checkout(bare_remote, tmp_path, "editor", branch="gh-pages")
        (tmp_path / "editor" / "docs" / "history.json").write_text("{broken", encoding="utf-8")
        editor.index.add(["docs/history.json"])
        editor.index.commit("break ledger", author=SEED_AUTHOR, committer=SEED_AUTHOR)
        editor.git.push("origin", "gh-pages")

        publisher.publish(_doc("def5678bbbb", "Second"))

        _checkout(bare_remote, tmp_path, "site", branch="gh-pages")
        history = json.loads((tmp_path / "site" / "docs" / "history.json").read_text(encoding="utf-8"))
        assert [entry["sha"] for entry in history] == ["def5678"]


class TestPipelineRoundTrip:
    """PushProcessor wired to real publishers."""

    @pytest.mark.asyncio
    async def test_commit_lands_in_pages_history(self, bare_remote, tmp_path):
        """One processed commit yields exactly one ledger record keyed by its short sha."""
        github = Mock()
        github.resolve_token = AsyncMock(return_value=None)
        github.get_commit_files = AsyncMock(
            return_value=[{"filename": "app.py", "status": "modified", "patch": "+def handler(event):"}]
        )
        composer = Mock()
        composer.compose = AsyncMock(side_effect=lambda summary, meta: _doc(meta.sha, "Round trip"))
        audit_log = AuditLog(tmp_path / "history.log")
        processor = PushProcessor(
            github_client=github,
            composer=composer,
            wiki_publisher_factory=lambda full_name, token: WikiPublisher(bare_remote, tmp_base=tmp_path / "wiki"),
            pages_publisher_factory=lambda full_name, token: PagesPublisher(bare_remote, tmp_base=tmp_path / "pages"),
            audit_log=audit_log,
        )

        try:
            outcomes = await processor.process_push("octo/widgets", ["9f8e7d6c5b4a"])
        finally:
            audit_log.close()

        assert outcomes[0].succeeded is True
        summary = composer.compose.await_args.args[0]
        assert summary.functions_added == ["handler"]
        _checkout(bare_remote, tmp_path, "site", branch="gh-pages")
        history = json.loads((tmp_path / "site" / "docs" / "history.json").read_text(encoding="utf-8"))
        assert len(history) == 1
        assert history[0]["sha"] == "9f8e7d6"
        assert history[0]["file"] == "docs/9f8e7d6/index.html"
