"""GitHub pull request lookup."""

from __future__ import annotations

import logging as py_logging
from urllib.parse import quote, urlencode, urlparse

from treehouse.errors import HostingError, HostingErrorKind
from treehouse.hosting.base import CodeReview, CodeReviewState, HostingProvider, ProviderType

logger = py_logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


def api_base_url(base_url: str) -> str:
    """Public github.com uses api.github.com; Enterprise servers serve the API under /api/v3."""
    cleaned = base_url.strip().rstrip("/")
    host = urlparse(cleaned).netloc.lower()
    if host in ("github.com", "www.github.com", "api.github.com"):
        return GITHUB_API_URL
    return f"{cleaned}/api/v3"


def parse_pull_request(entry: dict[str, object]) -> CodeReview:
    if entry.get("merged_at"):
        state = CodeReviewState.MERGED
    elif entry.get("state") == "closed":
        state = CodeReviewState.CLOSED
    else:
        state = CodeReviewState.OPEN
    return CodeReview(
        id=int(entry["id"]),
        number=int(entry["number"]),
        title=str(entry.get("title", "")),
        state=state,
        web_url=str(entry.get("html_url", "")),
    )


class GitHubProvider(HostingProvider):
    provider_type = ProviderType.GITHUB

    async def find_code_review(self, project_path: str, branch: str) -> CodeReview | None:
        base_url, token = self._require_config()
        owner = project_path.split("/", 1)[0]
        query = urlencode({"head": f"{owner}:{branch}", "state": "all"})
        url = f"{api_base_url(base_url)}/repos/{quote(project_path, safe='/')}/pulls?{query}"
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "treehouse",
        }

        entries = await self._get_json(url, headers)
        if not isinstance(entries, list):
            raise HostingError.of(HostingErrorKind.API_ERROR, "Unexpected pull request payload")
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            try:
                return parse_pull_request(entry)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed pull request error=%s", exc)
        return None

    def new_code_review_url(self, project_path: str, branch: str) -> str | None:
        base_url = self.config.base_url.strip().rstrip("/") or "https://github.com"
        return f"{base_url}/{project_path}/compare/{branch}?expand=1"
