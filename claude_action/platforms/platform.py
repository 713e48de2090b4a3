"""Platform capability contract and environment-driven adapter selection."""

from __future__ import annotations

import os
from typing import Protocol

import requests

from claude_action.models.canonical import (
    BranchComparison,
    Comment,
    Commit,
    EntityType,
    FileChange,
    Issue,
    MergeRequest,
    Repository,
    Review,
    RunContext,
    UserProfile,
)
from claude_action.platforms.credentials import Credential
from claude_action.shared.settings import detect_provider

# Common ordinal scale for repository roles (GitLab access levels).
ROLE_NO_ACCESS = 0
ROLE_MINIMAL = 5
ROLE_GUEST = 10
ROLE_REPORTER = 20
ROLE_DEVELOPER = 30
ROLE_MAINTAINER = 40
ROLE_OWNER = 50

ROLE_NAMES = {
    ROLE_NO_ACCESS: "No access",
    ROLE_MINIMAL: "Minimal access",
    ROLE_GUEST: "Guest",
    ROLE_REPORTER: "Reporter",
    ROLE_DEVELOPER: "Developer",
    ROLE_MAINTAINER: "Maintainer",
    ROLE_OWNER: "Owner",
}


class Platform(Protocol):
    """Capability interface both adapters implement in canonical terms."""

    name: str
    ci_job_label: str
    has_ambient_credential: bool
    credential: Credential

    def get_repository(self) -> Repository: ...

    def get_issue(self, number: int) -> Issue: ...

    def get_merge_request(self, number: int) -> MergeRequest: ...

    def list_comments(self, entity_type: EntityType, number: int) -> list[Comment]: ...

    def list_commits(self, number: int) -> list[Commit]: ...

    def list_file_changes(self, number: int) -> list[FileChange]: ...

    def list_reviews(self, number: int) -> list[Review]: ...

    def get_member_access_level(self, username: str) -> int: ...

    def get_user_profile(self, username: str) -> UserProfile: ...

    def branch_exists(self, branch: str) -> bool: ...

    def create_branch(self, branch: str, ref: str) -> None: ...

    def delete_branch(self, branch: str) -> None: ...

    def compare_branches(self, base: str, head: str) -> BranchComparison: ...

    def create_comment(self, entity_type: EntityType, number: int, body: str) -> str: ...

    def get_comment(self, entity_type: EntityType, number: int, comment_id: str) -> Comment: ...

    def update_comment(
        self, entity_type: EntityType, number: int, comment_id: str, body: str
    ) -> None: ...

    def branch_url(self, branch: str) -> str: ...

    def merge_request_link(self, context: RunContext, base_branch: str, branch: str) -> str: ...

    def job_url(self) -> str: ...


def build_platform_from_env(
    env: dict[str, str] | None = None,
    session: requests.Session | None = None,
) -> tuple[Platform, RunContext]:
    """Detect the provider, resolve its run context, and build the matching adapter."""

    env_map = os.environ if env is None else env
    provider = detect_provider(env_map)

    if provider == "gitlab":
        from claude_action.platforms.gitlab_client import GitLabPlatform
        from claude_action.platforms.gitlab_context import parse_gitlab_context

        context = parse_gitlab_context(env_map)
        return GitLabPlatform.from_env(context, env=env_map, session=session), context

    from claude_action.platforms.github_client import GitHubPlatform
    from claude_action.platforms.github_context import parse_github_context

    context = parse_github_context(env_map)
    return GitHubPlatform.from_env(context, env=env_map, session=session), context


__all__ = [
    "ROLE_DEVELOPER",
    "ROLE_GUEST",
    "ROLE_MAINTAINER",
    "ROLE_NAMES",
    "ROLE_NO_ACCESS",
    "ROLE_OWNER",
    "ROLE_REPORTER",
    "Platform",
    "build_platform_from_env",
]
