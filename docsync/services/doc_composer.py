"""Turn a commit's change summary into a Markdown document via a text-generation backend."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Protocol, Sequence

import httpx
from openai import AsyncOpenAI, OpenAIError

from docsync.config import Settings
from docsync.logger import get_logger, log_failure, log_timing, log_with_context
from docsync.models.changes import ChangeSummary, DocMeta, RenderedDoc

logger = get_logger()

FLOWISE_CONTENT_FIELDS = ("output", "result", "text")


class ComposerError(RuntimeError):
    """Base class for document composition failures."""


class ComposerUnavailable(ComposerError):
    """Raised when no text-generation backend is configured."""


class ComposerBackendError(ComposerError):
    """Raised when the active backend fails or returns no usable content."""

    def __init__(self, backend: str, message: str):
        super().__init__(f"{backend}: {message}")
        self.backend = backend


class ComposerBackend(Protocol):
    name: str

    @property
    def configured(self) -> bool: ...

    async def generate(self, prompt: str) -> str: ...

    async def aclose(self) -> None: ...


class OpenAIBackend:
    name = "openai"

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = "gpt-4.1",
        max_tokens: int = 2000,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._max_tokens = max_tokens
        self._client = client
        self._owns_client = client is None

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def generate(self, prompt: str) -> str:
        try:
            response = await self._get_client().chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self._max_tokens,
            )
        except OpenAIError as exc:
            raise ComposerBackendError(self.name, f"request failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise ComposerBackendError(self.name, "response did not include message content")
        return content

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None


class FlowiseBackend:
    name = "flowise"

    def __init__(
        self,
        url: str | None,
        *,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def configured(self) -> bool:
        return bool(self._url)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def generate(self, prompt: str) -> str:
        try:
            response = await self._get_client().post(self._url, json={"input": prompt})
        except httpx.HTTPError as exc:
            raise ComposerBackendError(self.name, f"request failed: {exc}") from exc

        if response.status_code >= 400:
            raise ComposerBackendError(self.name, f"status={response.status_code}, detail={response.text[:500]}")

        try:
            data = response.json()
        except ValueError as exc:
            raise ComposerBackendError(self.name, "response was not valid JSON") from exc

        content = _first_text_field(data, FLOWISE_CONTENT_FIELDS)
        if content is None:
            raise ComposerBackendError(
                self.name, f"response missing content field (expected one of {', '.join(FLOWISE_CONTENT_FIELDS)})"
            )
        return content

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


def _first_text_field(data: Any, fields: Sequence[str]) -> str | None:
    if not isinstance(data, dict):
        return None
    for field_name in fields:
        value = data.get(field_name)
        if isinstance(value, str) and value.strip():
            return value
    return None


class DocumentComposer:
    """Compose documentation with the first configured backend.

    Backends are listed in priority order. Only the first configured one is
    ever called: a failure there is reported, the next backend is not tried.
    """

    def __init__(self, backends: Sequence[ComposerBackend]) -> None:
        self._backends: List[ComposerBackend] = list(backends)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocumentComposer":
        return cls(
            [
                OpenAIBackend(settings.openai_api_key, model=settings.openai_model),
                FlowiseBackend(str(settings.flowise_url) if settings.flowise_url else None),
            ]
        )

    def active_backend(self) -> ComposerBackend:
        for backend in self._backends:
            if backend.configured:
                return backend
        raise ComposerUnavailable("No OpenAI API key or Flowise URL configured.")

    async def compose(self, summary: ChangeSummary, meta: DocMeta) -> RenderedDoc:
        backend = self.active_backend()
        ctx_logger = log_with_context(logger, repository=meta.repo_full_name, commit=meta.sha_short)
        ctx_logger.info(f"Generating documentation via {backend.name}")

        prompt = build_prompt(summary, meta)
        try:
            with log_timing(ctx_logger, f"{backend.name}_generate"):
                content = await backend.generate(prompt)
        except ComposerBackendError as exc:
            log_failure(logger, "Documentation generation failed", exc, repository=meta.repo_full_name, commit=meta.sha_short)
            raise

        ctx_logger.debug(f"Generated {len(content)} characters of documentation")
        return format_document(content, meta)

    async def aclose(self) -> None:
        for backend in self._backends:
            await backend.aclose()


def build_prompt(summary: ChangeSummary, meta: DocMeta) -> str:
    context: Dict[str, Any] = {
        "repository": meta.repo_full_name,
        "commit": meta.sha,
        "diff": [diff.to_dict() for diff in summary.diffs],
        "semantic": {
            "files": [analysis.to_dict() for analysis in summary.files],
            "summary": summary.to_dict(),
        },
    }
    return (
        "You are an expert code documentation generator.\n"
        "Generate documentation for the following code changes:\n\n"
        f"{json.dumps(context, indent=2)}\n\n"
        "Return:\n"
        "1. Markdown formatted documentation\n"
        "2. Changelog summary\n"
        "3. Function/class descriptions\n"
        "4. Clear explanations of added/removed logic\n"
    )


def format_document(content: str, meta: DocMeta) -> RenderedDoc:
    title = f"Documentation for {meta.repo_full_name} @ {meta.sha_short}"
    header = "\n".join(
        [
            f"# {title}",
            "",
            f"- **Repository:** {meta.repo_full_name}",
            f"- **Commit:** `{meta.sha}`",
            f"- **Generated:** {meta.timestamp}",
        ]
    )
    body = f"{header}\n\n---\n\n{content.strip()}\n"
    return RenderedDoc(title=title, body=body, meta=meta)
