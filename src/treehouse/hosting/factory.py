"""Pick the hosting provider implementation for the configured provider type."""

from __future__ import annotations

import os

from treehouse.config import HOSTING_TOKEN_ENV, Preferences
from treehouse.git.service import GitService
from treehouse.hosting.base import HostingConfig, HostingProvider, HttpRequester, ProviderType
from treehouse.hosting.github import GitHubProvider
from treehouse.hosting.gitlab import GitLabProvider

_PROVIDERS: dict[ProviderType, type[HostingProvider]] = {
    ProviderType.GITLAB: GitLabProvider,
    ProviderType.GITHUB: GitHubProvider,
}


def config_from_preferences(preferences: Preferences) -> HostingConfig:
    token = os.getenv(HOSTING_TOKEN_ENV, "").strip() or preferences.hosting_token
    return HostingConfig(
        provider_type=ProviderType(preferences.hosting_provider),
        base_url=preferences.hosting_url,
        token=token,
    )


def make_provider(
    config: HostingConfig,
    *,
    requester: HttpRequester | None = None,
    git: GitService | None = None,
) -> HostingProvider:
    provider_cls = _PROVIDERS[config.provider_type]
    return provider_cls(config, requester=requester, git=git)
