"""Shared runtime settings read from the CI environment."""

from __future__ import annotations

import os

from claude_action.errors import ConfigurationError
from claude_action.models.canonical import ActionInputs, EntityType, ProviderName
from claude_action.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TRIGGER_PHRASE = "@claude"
DEFAULT_BRANCH = "main"

_GITLAB_MARKERS = ("GITLAB_CI", "CI_PROJECT_ID", "CI_MERGE_REQUEST_IID")
_GITHUB_MARKERS = ("GITHUB_ACTIONS", "GITHUB_EVENT_NAME", "GITHUB_REPOSITORY")


def clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def first_set(env: dict[str, str], *names: str) -> str | None:
    for name in names:
        value = clean(env.get(name))
        if value:
            return value
    return None


def load_action_inputs_from_env(env: dict[str, str] | None = None) -> ActionInputs:
    env_map = os.environ if env is None else env
    tools = clean(env_map.get("ALLOWED_TOOLS")) or ""
    return ActionInputs(
        trigger_phrase=clean(env_map.get("TRIGGER_PHRASE")) or DEFAULT_TRIGGER_PHRASE,
        assignee_trigger=clean(env_map.get("ASSIGNEE_TRIGGER")),
        base_branch=clean(env_map.get("BASE_BRANCH")),
        direct_prompt=clean(env_map.get("DIRECT_PROMPT")),
        allowed_tools=tuple(tool.strip() for tool in tools.split(",") if tool.strip()),
        custom_instructions=clean(env_map.get("CUSTOM_INSTRUCTIONS")),
        additional_runner_config=clean(env_map.get("MCP_CONFIG")),
    )


def detect_provider(env: dict[str, str] | None = None) -> ProviderName:
    """Pick the platform from an explicit override, then CI markers."""

    env_map = os.environ if env is None else env
    override = (clean(env_map.get("GIT_PROVIDER")) or "").lower()
    if override in {"github", "gitlab"}:
        return override  # type: ignore[return-value]

    if any(clean(env_map.get(name)) for name in _GITLAB_MARKERS):
        return "gitlab"
    if any(clean(env_map.get(name)) for name in _GITHUB_MARKERS):
        return "github"

    logger.warning("Could not detect provider, defaulting to GitHub")
    return "github"


def resolve_entity(
    *,
    merge_request_id: str | None,
    issue_id: str | None,
    direct_prompt: str | None,
    merge_request_var: str,
    issue_var: str,
) -> tuple[EntityType | None, int | None]:
    """Pick the entity identity; a merge request wins when both are present."""

    if merge_request_id and issue_id:
        logger.warning(
            "Both %s and %s are set; using merge request %s",
            merge_request_var,
            issue_var,
            merge_request_id,
        )
    if merge_request_id:
        return "merge_request", parse_entity_number(merge_request_id)
    if issue_id:
        return "issue", parse_entity_number(issue_id)
    if direct_prompt:
        return None, None
    raise ConfigurationError(
        f"No entity ID found. Either {merge_request_var} or {issue_var} must be set "
        "(or DIRECT_PROMPT for a manual run)."
    )


def parse_entity_number(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ConfigurationError(
            f"Invalid entity ID: {value}. Expected a positive integer."
        ) from exc
    if parsed <= 0:
        raise ConfigurationError(f"Invalid entity ID: {value}. Expected a positive integer.")
    return parsed
