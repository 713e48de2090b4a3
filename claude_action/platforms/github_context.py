"""Resolve a RunContext from GitHub Actions variables and the event payload."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from claude_action.errors import ConfigurationError
from claude_action.models.canonical import Author, Repository, RunContext
from claude_action.shared.settings import (
    DEFAULT_BRANCH,
    clean,
    first_set,
    load_action_inputs_from_env,
    resolve_entity,
)


def load_event_payload(env: dict[str, str]) -> dict[str, Any]:
    event_path = clean(env.get("GITHUB_EVENT_PATH"))
    if not event_path:
        return {}
    path = Path(event_path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"GITHUB_EVENT_PATH is not a readable JSON file: {exc}") from exc
    return payload if isinstance(payload, dict) else {}


def entity_ids_from_payload(payload: dict[str, Any]) -> tuple[str | None, str | None]:
    """Return (pull_request_number, issue_number) as found in an event payload."""

    pull_request = payload.get("pull_request")
    if isinstance(pull_request, dict) and pull_request.get("number"):
        return str(pull_request["number"]), None

    issue = payload.get("issue")
    if isinstance(issue, dict) and issue.get("number"):
        # issue_comment events on pull requests carry the PR as an "issue"
        if issue.get("pull_request"):
            return str(issue["number"]), None
        return None, str(issue["number"])
    return None, None


def parse_github_context(env: dict[str, str] | None = None) -> RunContext:
    env_map = os.environ if env is None else env

    repository_path = clean(env_map.get("GITHUB_REPOSITORY"))
    if not repository_path:
        raise ConfigurationError(
            "GITHUB_REPOSITORY environment variable is required. "
            "This should be automatically set in GitHub Actions workflows."
        )
    repository_id = clean(env_map.get("GITHUB_REPOSITORY_ID"))
    if not repository_id:
        raise ConfigurationError(
            "GITHUB_REPOSITORY_ID environment variable is required. "
            "This should be automatically set in GitHub Actions workflows."
        )
    if not repository_id.isdigit():
        raise ConfigurationError(f"GITHUB_REPOSITORY_ID must be numeric, got {repository_id!r}")

    payload = load_event_payload(env_map)
    payload_repo = payload.get("repository") if isinstance(payload.get("repository"), dict) else {}
    default_branch = clean(str(payload_repo.get("default_branch") or "")) or DEFAULT_BRANCH
    branch = first_set(env_map, "GITHUB_HEAD_REF", "GITHUB_REF_NAME") or default_branch
    inputs = load_action_inputs_from_env(env_map)

    pull_number, issue_number = entity_ids_from_payload(payload)
    entity_type, entity_number = resolve_entity(
        merge_request_id=pull_number,
        issue_id=issue_number,
        direct_prompt=inputs.direct_prompt,
        merge_request_var="pull_request.number",
        issue_var="issue.number",
    )

    sender = payload.get("sender") if isinstance(payload.get("sender"), dict) else {}
    actor = (
        clean(env_map.get("GITHUB_ACTOR"))
        or clean(str(sender.get("login") or ""))
        or clean(env_map.get("TRIGGER_USERNAME"))
        or ""
    )

    return RunContext(
        provider="github",
        repository=Repository.from_path(repository_path, default_branch),
        project_id=repository_id,
        branch=branch,
        entity_type=entity_type,
        entity_number=entity_number,
        actor=Author(username=actor),
        inputs=inputs,
    )
