"""Provider-agnostic code review models and the shared hosting client base."""

from __future__ import annotations

import asyncio
import json
import logging as py_logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from treehouse.errors import HostingError, HostingErrorKind
from treehouse.git.service import GitService
from treehouse.security import sanitize_log_text
from treehouse.workspace.models import Workspace

logger = py_logging.getLogger(__name__)


class ProviderType(str, Enum):
    GITLAB = "GitLab"
    GITHUB = "GitHub"

    @property
    def code_review_name(self) -> str:
        return "Merge Request" if self == ProviderType.GITLAB else "Pull Request"

    @property
    def code_review_abbreviation(self) -> str:
        return "MR" if self == ProviderType.GITLAB else "PR"

    @property
    def number_prefix(self) -> str:
        return "!" if self == ProviderType.GITLAB else "#"


class CodeReviewState(str, Enum):
    OPEN = "open"
    MERGED = "merged"
    CLOSED = "closed"


@dataclass(frozen=True)
class CIPipelineStatus:
    """Normalized CI status; anything a provider reports outside the known set keeps its raw text."""

    value: str
    raw: str = ""

    SUCCESS = "success"
    RUNNING = "running"
    PENDING = "pending"
    FAILED = "failed"
    CANCELED = "canceled"
    SKIPPED = "skipped"
    MANUAL = "manual"
    CREATED = "created"
    WAITING = "waiting"
    PREPARING = "preparing"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str) -> CIPipelineStatus:
        normalized = raw.strip().lower()
        aliases = {
            "passed": cls.SUCCESS,
            "failure": cls.FAILED,
            "cancelled": cls.CANCELED,
            "in_progress": cls.RUNNING,
            "queued": cls.PENDING,
            "waiting_for_resource": cls.WAITING,
        }
        if normalized in _KNOWN_STATUSES:
            return cls(normalized)
        if normalized in aliases:
            return cls(aliases[normalized])
        return cls.unknown(raw)

    @classmethod
    def unknown(cls, raw: str) -> CIPipelineStatus:
        return cls(cls.UNKNOWN, raw=raw)

    @property
    def display_name(self) -> str:
        if self.value == self.UNKNOWN:
            return self.raw.capitalize()
        if self.value == self.SUCCESS:
            return "Passed"
        return self.value.capitalize()

    @property
    def is_running(self) -> bool:
        return self.value in (self.RUNNING, self.PENDING)


_KNOWN_STATUSES = {
    CIPipelineStatus.SUCCESS,
    CIPipelineStatus.RUNNING,
    CIPipelineStatus.PENDING,
    CIPipelineStatus.FAILED,
    CIPipelineStatus.CANCELED,
    CIPipelineStatus.SKIPPED,
    CIPipelineStatus.MANUAL,
    CIPipelineStatus.CREATED,
    CIPipelineStatus.WAITING,
    CIPipelineStatus.PREPARING,
}


@dataclass(frozen=True)
class CIPipeline:
    id: int
    status: CIPipelineStatus
    web_url: str | None = None


@dataclass(frozen=True)
class CodeReview:
    id: int
    number: int
    title: str
    state: CodeReviewState
    web_url: str
    pipeline: CIPipeline | None = None


@dataclass(frozen=True)
class HostingConfig:
    provider_type: ProviderType
    base_url: str = ""
    token: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url.strip()) and bool(self.token.strip())


HttpResponse = tuple[int, str, dict[str, str]]


class HttpRequester(Protocol):
    def __call__(self, url: str, headers: dict[str, str]) -> HttpResponse: ...


def default_requester(url: str, headers: dict[str, str]) -> HttpResponse:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise HostingError.of(HostingErrorKind.NETWORK_ERROR, f"Unsupported API URL: {url}")
    request = Request(url, headers=headers, method="GET")
    try:
        with urlopen(request, timeout=20) as response:  # nosec B310
            status = int(getattr(response, "status", response.getcode()))
            body = response.read().decode("utf-8")
            response_headers = {key.lower(): value for key, value in response.headers.items()}
            return status, body, response_headers
    except HTTPError as exc:
        payload = ""
        if exc.fp is not None:
            payload = exc.read().decode("utf-8", errors="replace")
        response_headers = {key.lower(): value for key, value in (exc.headers.items() if exc.headers else [])}
        return exc.code, payload, response_headers
    except URLError as exc:
        raise HostingError.of(
            HostingErrorKind.NETWORK_ERROR,
            str(exc.reason),
            hint="Check network access to the hosting server.",
        ) from exc


def extract_project_path(remote_url: str) -> str | None:
    """Turn ``git@host:group/project.git`` or ``https://host/group/project.git`` into ``group/project``."""
    url = remote_url.strip()
    if url.startswith("git@"):
        if ":" not in url:
            return None
        url = url.split(":", 1)[1]
    elif url.startswith(("https://", "http://")):
        url = urlparse(url).path.lstrip("/")
    if url.endswith(".git"):
        url = url[: -len(".git")]
    return url or None


def extract_message(payload: str) -> str:
    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError:
        return payload.strip()
    if isinstance(parsed, dict):
        for key in ("message", "error"):
            value = parsed.get(key)
            if isinstance(value, str):
                return value
    return ""


class HostingProvider:
    provider_type: ProviderType

    def __init__(
        self,
        config: HostingConfig,
        *,
        requester: HttpRequester | None = None,
        git: GitService | None = None,
    ) -> None:
        self.config = config
        self._requester = requester or default_requester
        self._git = git or GitService()

    async def find_code_review(self, project_path: str, branch: str) -> CodeReview | None:
        raise NotImplementedError

    def new_code_review_url(self, project_path: str, branch: str) -> str | None:
        raise NotImplementedError

    async def find_code_review_for_workspace(self, workspace: Workspace) -> CodeReview | None:
        root = workspace.root_path
        branch = workspace.current_branch
        if root is None or not branch:
            return None
        remote_url = await self._git.remote_url(root)
        if remote_url is None:
            logger.warning("No origin remote path=%s", root)
            raise HostingError.of(HostingErrorKind.INVALID_REMOTE_URL, str(root))
        project_path = extract_project_path(remote_url)
        if project_path is None:
            raise HostingError.of(HostingErrorKind.INVALID_REMOTE_URL, sanitize_log_text(remote_url))
        logger.debug("Looking up code review project=%s branch=%s", project_path, branch)
        return await self.find_code_review(project_path, branch)

    def _require_config(self) -> tuple[str, str]:
        if not self.config.is_configured:
            raise HostingError.of(
                HostingErrorKind.NOT_CONFIGURED,
                hint="Set hosting_url and hosting_token in preferences.",
            )
        return self.config.base_url.strip().rstrip("/"), self.config.token.strip()

    async def _get_json(self, url: str, headers: dict[str, str]) -> object:
        status, payload, _ = await asyncio.to_thread(self._requester, url, headers)
        if status != 200:
            message = extract_message(payload) or "Unknown error"
            logger.warning("Hosting API request failed status=%s url=%s", status, sanitize_log_text(url))
            raise HostingError.of(HostingErrorKind.API_ERROR, sanitize_log_text(message), status=status)
        try:
            return json.loads(payload)
        except json.JSONDecodeError as exc:
            raise HostingError.of(HostingErrorKind.NETWORK_ERROR, "Response was not valid JSON") from exc
