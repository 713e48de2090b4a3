"""Tool-server configuration handed to the assistant runner.

Each provider gets a file-ops server bound to the working branch and, when a
tracking comment exists, to that comment so progress can be written while the
assistant runs. A user-supplied JSON object is merged on top, with its servers
overriding the built-in ones of the same name.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from claude_action.models.canonical import ProviderName, Repository
from claude_action.shared.logging import get_logger

logger = get_logger(__name__)

RUNNER_CONFIG_VARIABLE = "CLAUDE_RUNNER_CONFIG"
RUNNER_CONFIG_FILENAME = "claude-runner-config.json"

GITHUB_MCP_TOOL_PREFIX = "mcp__github__"
GITHUB_MCP_IMAGE = "ghcr.io/github/github-mcp-server:sha-e9f748f"


def _github_servers(
    branch: str,
    comment_id: str | None,
    allowed_tools: tuple[str, ...],
    repository: Repository,
    token: str,
    env: dict[str, str],
) -> dict[str, Any]:
    server_env = {
        "GITHUB_TOKEN": token,
        "REPO_OWNER": repository.owner,
        "REPO_NAME": repository.name,
        "BRANCH_NAME": branch,
        "REPO_DIR": env.get("GITHUB_WORKSPACE") or os.getcwd(),
        "GITHUB_EVENT_NAME": env.get("GITHUB_EVENT_NAME", ""),
        "IS_PR": env.get("IS_PR", "false"),
    }
    if comment_id:
        server_env["CLAUDE_COMMENT_ID"] = comment_id

    action_path = env.get("GITHUB_ACTION_PATH", "")
    servers: dict[str, Any] = {
        "github_file_ops": {
            "command": "bun",
            "args": ["run", f"{action_path}/src/mcp/github-file-ops-server.ts"],
            "env": server_env,
        }
    }
    if any(tool.startswith(GITHUB_MCP_TOOL_PREFIX) for tool in allowed_tools):
        servers["github"] = {
            "command": "docker",
            "args": ["run", "-i", "--rm", "-e", "GITHUB_PERSONAL_ACCESS_TOKEN", GITHUB_MCP_IMAGE],
            "env": {"GITHUB_PERSONAL_ACCESS_TOKEN": token},
        }
    return servers


def _gitlab_servers(
    branch: str,
    comment_id: str | None,
    repository: Repository,
    token: str,
    env: dict[str, str],
) -> dict[str, Any]:
    project_dir = env.get("CI_PROJECT_DIR") or os.getcwd()
    server_env = {
        "GITLAB_TOKEN": token,
        "PROJECT_PATH": repository.path,
        "BRANCH_NAME": branch,
        "REPO_DIR": project_dir,
        "GITLAB_SERVER_URL": env.get("CI_SERVER_URL") or "https://gitlab.com",
        "GITLAB_EVENT_TYPE": env.get("CI_PIPELINE_SOURCE", ""),
        "CI_MERGE_REQUEST_IID": env.get("CI_MERGE_REQUEST_IID", ""),
        "GITLAB_ISSUE_IID": env.get("GITLAB_ISSUE_IID", ""),
    }
    if comment_id:
        server_env["CLAUDE_COMMENT_ID"] = comment_id

    return {
        "gitlab_file_ops": {
            "command": "bun",
            "args": ["run", f"{project_dir}/src/mcp/gitlab-file-ops-server.ts"],
            "env": server_env,
        }
    }


def merge_additional_config(base: dict[str, Any], additional: str | None) -> dict[str, Any]:
    if not additional:
        return base
    try:
        extra = json.loads(additional)
    except ValueError as exc:
        logger.warning("Failed to parse additional runner config: %s. Using base config only.", exc)
        return base
    if not isinstance(extra, dict):
        logger.warning("Additional runner config must be a JSON object. Using base config only.")
        return base

    logger.info("Merging additional runner server configuration with built-in servers")
    extra_servers = extra.get("mcpServers")
    return {
        **base,
        **extra,
        "mcpServers": {
            **base["mcpServers"],
            **(extra_servers if isinstance(extra_servers, dict) else {}),
        },
    }


def build_runner_config(
    provider: ProviderName,
    branch: str,
    comment_id: str | None,
    allowed_tools: tuple[str, ...],
    repository: Repository,
    token: str,
    additional_config: str | None = None,
    env: dict[str, str] | None = None,
) -> dict[str, Any]:
    env_map = dict(os.environ if env is None else env)
    if provider == "gitlab":
        servers = _gitlab_servers(branch, comment_id, repository, token, env_map)
    else:
        servers = _github_servers(branch, comment_id, allowed_tools, repository, token, env_map)
    return merge_additional_config({"mcpServers": servers}, additional_config)


def write_runner_config(config: dict[str, Any], directory: Path) -> Path:
    """Write the config next to the task file; it carries a token, so owner-only."""

    directory.mkdir(parents=True, exist_ok=True)
    path = directory / RUNNER_CONFIG_FILENAME
    path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    path.chmod(0o600)
    logger.info("Wrote runner config %s", path)
    return path
