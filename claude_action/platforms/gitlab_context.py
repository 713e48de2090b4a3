"""Resolve a RunContext from GitLab CI variables."""

from __future__ import annotations

import os

from claude_action.errors import ConfigurationError
from claude_action.models.canonical import Author, Repository, RunContext
from claude_action.shared.settings import (
    DEFAULT_BRANCH,
    clean,
    first_set,
    load_action_inputs_from_env,
    resolve_entity,
)


def parse_gitlab_context(env: dict[str, str] | None = None) -> RunContext:
    env_map = os.environ if env is None else env

    project_path = clean(env_map.get("CI_PROJECT_PATH"))
    if not project_path:
        raise ConfigurationError(
            "CI_PROJECT_PATH environment variable is required. "
            "This should be automatically set in GitLab CI/CD pipelines."
        )
    project_id = clean(env_map.get("CI_PROJECT_ID"))
    if not project_id:
        raise ConfigurationError(
            "CI_PROJECT_ID environment variable is required. "
            "This should be automatically set in GitLab CI/CD pipelines."
        )
    if not project_id.isdigit():
        raise ConfigurationError(f"CI_PROJECT_ID must be numeric, got {project_id!r}")

    default_branch = clean(env_map.get("CI_DEFAULT_BRANCH")) or DEFAULT_BRANCH
    branch = clean(env_map.get("CI_COMMIT_REF_NAME")) or default_branch
    inputs = load_action_inputs_from_env(env_map)

    entity_type, entity_number = resolve_entity(
        merge_request_id=clean(env_map.get("CI_MERGE_REQUEST_IID")),
        issue_id=clean(env_map.get("GITLAB_ISSUE_IID")),
        direct_prompt=inputs.direct_prompt,
        merge_request_var="CI_MERGE_REQUEST_IID",
        issue_var="GITLAB_ISSUE_IID",
    )

    # Empty actor is allowed; permission and human checks treat it as "cannot verify".
    actor = first_set(env_map, "GITLAB_USER_LOGIN", "CI_COMMIT_AUTHOR", "TRIGGER_USERNAME") or ""

    return RunContext(
        provider="gitlab",
        repository=Repository.from_path(project_path, default_branch),
        project_id=project_id,
        branch=branch,
        entity_type=entity_type,
        entity_number=entity_number,
        actor=Author(username=actor, display_name=clean(env_map.get("GITLAB_USER_NAME"))),
        inputs=inputs,
    )
