"""Application configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, BaseModel, ValidationError

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DEFAULT_GIT_AUTHOR_NAME: Final[str] = "doc-sync-agent"
DEFAULT_GIT_AUTHOR_EMAIL: Final[str] = "doc-sync-agent@example.com"


class SettingsError(RuntimeError):
    """Raised when application configuration is invalid or incomplete."""


@dataclass(frozen=True)
class GitHubAppCredentials:
    app_id: int
    private_key_pem: str


class Settings(BaseModel):
    """Runtime settings loaded from environment variables."""

    github_api_base_url: AnyHttpUrl = "https://api.github.com"
    github_web_base_url: AnyHttpUrl = "https://github.com"
    github_token: str | None = None
    github_webhook_secret: str | None = None
    github_owner: str | None = None
    github_repo: str | None = None
    github_app_id: int | None = None
    github_private_key_pem: str | None = None
    openai_api_key: str | None = None
    openai_model: str = "gpt-4.1"
    flowise_url: AnyHttpUrl | None = None
    teams_webhook_url: AnyHttpUrl | None = None
    tmp_base: Path = Path("./tmp")
    audit_log_path: Path = Path("logs/history.log")
    pages_branch: str = "gh-pages"
    git_author_name: str = DEFAULT_GIT_AUTHOR_NAME
    git_author_email: str = DEFAULT_GIT_AUTHOR_EMAIL

    @property
    def normalized_github_api_base_url(self) -> str:
        """Return the GitHub API base URL without a trailing slash."""
        return str(self.github_api_base_url).rstrip("/")

    @property
    def normalized_github_web_base_url(self) -> str:
        """Return the GitHub web base URL (used for git remotes) without a trailing slash."""
        return str(self.github_web_base_url).rstrip("/")

    @property
    def repository_full_name(self) -> str | None:
        """Return the configured ``owner/repo`` fallback, if both halves are set."""
        if self.github_owner and self.github_repo:
            return f"{self.github_owner}/{self.github_repo}"
        return None

    @property
    def has_app_credentials(self) -> bool:
        return self.github_app_id is not None and bool(self.github_private_key_pem)

    def require_app_credentials(self) -> GitHubAppCredentials:
        """Ensure GitHub App secrets are configured and return them."""

        missing = []
        if self.github_app_id is None:
            missing.append("GITHUB_APP_ID")
        if not self.github_private_key_pem:
            missing.append("GITHUB_PRIVATE_KEY")

        if missing:
            missing_vars = ", ".join(missing)
            raise SettingsError(
                "GitHub App authentication is not configured. Missing environment variables: "
                f"{missing_vars}."
            )

        return GitHubAppCredentials(
            app_id=int(self.github_app_id),
            private_key_pem=self.github_private_key_pem,
        )


def _optional_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _build_settings() -> Settings:
    github_app_id = _optional_env("GITHUB_APP_ID")

    try:
        github_app_id_value: int | None
        if github_app_id:
            github_app_id_value = int(github_app_id)
        else:
            github_app_id_value = None

        values = {
            "github_api_base_url": _optional_env("GITHUB_API_BASE_URL") or "https://api.github.com",
            "github_web_base_url": _optional_env("GITHUB_WEB_BASE_URL") or "https://github.com",
            "github_token": _optional_env("GITHUB_TOKEN"),
            "github_webhook_secret": _optional_env("GITHUB_WEBHOOK_SECRET"),
            "github_owner": _optional_env("GITHUB_OWNER"),
            "github_repo": _optional_env("GITHUB_REPO"),
            "github_app_id": github_app_id_value,
            "github_private_key_pem": _optional_env("GITHUB_PRIVATE_KEY"),
            "openai_api_key": _optional_env("OPENAI_API_KEY"),
            "openai_model": _optional_env("OPENAI_MODEL") or "gpt-4.1",
            "flowise_url": _optional_env("FLOWISE_URL"),
            "teams_webhook_url": _optional_env("TEAMS_WEBHOOK_URL"),
            "pages_branch": _optional_env("PAGES_BRANCH") or "gh-pages",
            "git_author_name": _optional_env("GIT_AUTHOR_NAME") or DEFAULT_GIT_AUTHOR_NAME,
            "git_author_email": _optional_env("GIT_AUTHOR_EMAIL") or DEFAULT_GIT_AUTHOR_EMAIL,
        }
        if tmp_base := _optional_env("TMP_BASE"):
            values["tmp_base"] = Path(tmp_base)
        if audit_log_path := _optional_env("AUDIT_LOG_PATH"):
            values["audit_log_path"] = Path(audit_log_path)

        return Settings(**values)
    except ValidationError as exc:
        raise SettingsError(f"Invalid application configuration: {exc}") from exc
    except ValueError as exc:
        raise SettingsError("Invalid value for GITHUB_APP_ID. It must be an integer.") from exc


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return _build_settings()


def get_settings() -> Settings:
    """Retrieve cached application settings."""
    return _cached_settings()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for tests)."""
    _cached_settings.cache_clear()
