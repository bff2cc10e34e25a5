"""GitHub API client helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import httpx
import jwt


class GitHubAPIError(RuntimeError):
    """Raised when a GitHub API request fails."""

    def __init__(self, message: str, status_code: int, response_body: Any | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


DEFAULT_ACCEPT_HEADER = "application/vnd.github+json"
DEFAULT_API_VERSION = "2022-11-28"


@dataclass
class InstallationToken:
    token: str
    expires_at: datetime
    permissions: Dict[str, Any] | None = None

    def is_active(self, *, skew_seconds: int = 60) -> bool:
        """Return True if the token is still valid accounting for clock skew."""

        return self.expires_at - timedelta(seconds=skew_seconds) > datetime.now(timezone.utc)


class GitHubClient:
    """Fetches commit details from GitHub.

    Requests are authenticated with a static token (``GITHUB_TOKEN``) or, when
    GitHub App credentials are supplied and the caller passes an installation
    id, with a short-lived installation token minted from an app JWT.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str | None = None,
        app_id: int | None = None,
        private_key_pem: str | None = None,
        timeout: float = 10.0,
        user_agent: str = "DocSync-Agent/1.0",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._user_agent = user_agent
        self._token = token
        self._app_id = app_id
        # Normalize private key: handle escaped newlines from environment variables
        self._private_key = private_key_pem.replace("\\n", "\n") if private_key_pem else None
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers={
                "User-Agent": self._user_agent,
                "Accept": DEFAULT_ACCEPT_HEADER,
                "X-GitHub-Api-Version": DEFAULT_API_VERSION,
            },
        )
        self._owns_client = client is None
        self._installation_tokens: Dict[int, InstallationToken] = {}

    @property
    def uses_app_auth(self) -> bool:
        return self._app_id is not None and bool(self._private_key)

    def _build_jwt(self) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "iat": int((now - timedelta(seconds=60)).timestamp()),
            "exp": int((now + timedelta(minutes=10)).timestamp()),
            "iss": str(self._app_id),
        }
        try:
            return jwt.encode(payload, self._private_key, algorithm="RS256")
        except Exception as exc:
            raise GitHubAPIError(
                f"Failed to encode JWT: {exc}. Check that GITHUB_PRIVATE_KEY is a valid RSA private key in PEM format.",
                0,
                None,
            ) from exc

    def _app_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._build_jwt()}"}

    @staticmethod
    def _token_headers(token: str | None) -> Dict[str, str]:
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: Dict[str, str],
        params: Dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, url, headers=headers, params=params, json=json)
        except httpx.HTTPError as exc:
            raise GitHubAPIError(f"GitHub API request to {url} failed: {exc}", 0, None) from exc
        if response.status_code >= 400:
            detail: Any | None
            if response.content:
                try:
                    detail = response.json()
                except ValueError:
                    detail = response.text
            else:
                detail = None
            raise GitHubAPIError(
                f"GitHub API request to {url} failed with status {response.status_code}.",
                response.status_code,
                detail,
            )
        return response

    async def _fetch_installation_token(self, installation_id: int) -> InstallationToken:
        response = await self._request(
            "POST",
            f"/app/installations/{installation_id}/access_tokens",
            headers=self._app_headers(),
        )
        data = response.json()
        token_value = data.get("token")
        if not token_value:
            raise GitHubAPIError(
                "GitHub did not return an installation token.",
                response.status_code,
                data,
            )

        expires_at_raw = data.get("expires_at")
        if not expires_at_raw:
            raise GitHubAPIError(
                "GitHub did not return an expires_at value for installation token.",
                response.status_code,
                data,
            )
        return InstallationToken(
            token=token_value,
            expires_at=_parse_github_timestamp(expires_at_raw),
            permissions=data.get("permissions"),
        )

    async def get_installation_token(self, installation_id: int) -> InstallationToken:
        cached = self._installation_tokens.get(installation_id)
        if cached and cached.is_active():
            return cached

        token = await self._fetch_installation_token(installation_id)
        self._installation_tokens[installation_id] = token
        return token

    async def resolve_token(self, installation_id: int | None = None) -> str | None:
        """Return the token to use for API calls and git remotes.

        App installation tokens take precedence when both app credentials and
        an installation id are available.
        """

        if installation_id is not None and self.uses_app_auth:
            installation_token = await self.get_installation_token(installation_id)
            return installation_token.token
        return self._token

    async def get_commit_files(
        self,
        *,
        owner: str,
        repo: str,
        sha: str,
        installation_id: int | None = None,
    ) -> List[Dict[str, Any]]:
        """Return the ``files`` list of a single commit."""

        token = await self.resolve_token(installation_id)
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/commits/{sha}",
            headers=self._token_headers(token),
        )
        data = response.json()
        files = data.get("files") if isinstance(data, dict) else None
        if files is None:
            return []
        if not isinstance(files, list):
            raise GitHubAPIError(
                "Unexpected response while fetching commit files.",
                response.status_code,
                data,
            )
        return files

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


def _parse_github_timestamp(raw: str) -> datetime:
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return datetime.fromisoformat(raw).astimezone(timezone.utc)
