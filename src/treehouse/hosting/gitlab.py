"""GitLab merge request lookup."""

from __future__ import annotations

import logging as py_logging
from urllib.parse import quote, urlencode

from treehouse.errors import HostingError, HostingErrorKind
from treehouse.hosting.base import (
    CIPipeline,
    CIPipelineStatus,
    CodeReview,
    CodeReviewState,
    HostingProvider,
    ProviderType,
)

logger = py_logging.getLogger(__name__)

_STATES = {
    "opened": CodeReviewState.OPEN,
    "merged": CodeReviewState.MERGED,
    "closed": CodeReviewState.CLOSED,
    "locked": CodeReviewState.CLOSED,
}


def parse_merge_request(entry: dict[str, object]) -> CodeReview:
    pipeline = None
    raw_pipeline = entry.get("head_pipeline") or entry.get("pipeline")
    if isinstance(raw_pipeline, dict) and isinstance(raw_pipeline.get("id"), int):
        web_url = raw_pipeline.get("web_url")
        pipeline = CIPipeline(
            id=int(raw_pipeline["id"]),
            status=CIPipelineStatus.parse(str(raw_pipeline.get("status", ""))),
            web_url=web_url if isinstance(web_url, str) else None,
        )
    return CodeReview(
        id=int(entry["id"]),
        number=int(entry["iid"]),
        title=str(entry.get("title", "")),
        state=_STATES.get(str(entry.get("state", "")), CodeReviewState.OPEN),
        web_url=str(entry.get("web_url", "")),
        pipeline=pipeline,
    )


class GitLabProvider(HostingProvider):
    provider_type = ProviderType.GITLAB

    async def find_code_review(self, project_path: str, branch: str) -> CodeReview | None:
        base_url, token = self._require_config()
        # GitLab wants the project path as a single segment, so "/" is encoded too.
        encoded_project = quote(project_path, safe="")
        query = urlencode({"source_branch": branch, "state": "opened"})
        url = f"{base_url}/api/v4/projects/{encoded_project}/merge_requests?{query}"
        headers = {"PRIVATE-TOKEN": token, "Accept": "application/json"}

        entries = await self._get_json(url, headers)
        if not isinstance(entries, list):
            raise HostingError.of(HostingErrorKind.API_ERROR, "Unexpected merge request payload")
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            try:
                return parse_merge_request(entry)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed merge request error=%s", exc)
        return None

    def new_code_review_url(self, project_path: str, branch: str) -> str | None:
        base_url = self.config.base_url.strip().rstrip("/")
        if not base_url:
            return None
        query = urlencode({"merge_request[source_branch]": branch})
        return f"{base_url}/{project_path}/-/merge_requests/new?{query}"
