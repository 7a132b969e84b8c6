"""Git hosting provider integrations."""

from .base import (
    CIPipeline,
    CIPipelineStatus,
    CodeReview,
    CodeReviewState,
    HostingConfig,
    HostingProvider,
    ProviderType,
    extract_project_path,
)
from .factory import config_from_preferences, make_provider
from .github import GitHubProvider
from .gitlab import GitLabProvider

__all__ = [
    "CIPipeline",
    "CIPipelineStatus",
    "CodeReview",
    "CodeReviewState",
    "config_from_preferences",
    "extract_project_path",
    "GitHubProvider",
    "GitLabProvider",
    "HostingConfig",
    "HostingProvider",
    "make_provider",
    "ProviderType",
]
