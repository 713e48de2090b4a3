"""Credential loading with a fixed precedence order per platform."""

from __future__ import annotations

import os
from dataclasses import dataclass

from claude_action.errors import ConfigurationError
from claude_action.shared.logging import get_logger
from claude_action.shared.settings import clean

logger = get_logger(__name__)

SOURCE_OVERRIDE = "override"
SOURCE_CI_JOB = "ci_job"
SOURCE_PERSONAL = "personal"
SOURCE_PROJECT = "project"

# Precedence is part of the contract: override > ambient CI > personal > project-scoped.
GITHUB_TOKEN_SOURCES: tuple[tuple[str, str], ...] = (
    ("OVERRIDE_GITHUB_TOKEN", SOURCE_OVERRIDE),
    ("GITHUB_TOKEN", SOURCE_CI_JOB),
    ("GH_TOKEN", SOURCE_PERSONAL),
    ("GITHUB_INSTALLATION_TOKEN", SOURCE_PROJECT),
)
GITLAB_TOKEN_SOURCES: tuple[tuple[str, str], ...] = (
    ("OVERRIDE_GITLAB_TOKEN", SOURCE_OVERRIDE),
    ("CI_JOB_TOKEN", SOURCE_CI_JOB),
    ("GITLAB_TOKEN", SOURCE_PERSONAL),
    ("GITLAB_PROJECT_TOKEN", SOURCE_PROJECT),
)


@dataclass(frozen=True)
class Credential:
    token: str
    source: str
    env_var: str

    @property
    def is_ci_job(self) -> bool:
        return self.source == SOURCE_CI_JOB

    def redacted(self) -> str:
        return _redact_token(self.token)


def resolve_credential(
    sources: tuple[tuple[str, str], ...],
    platform_label: str,
    env: dict[str, str] | None = None,
) -> Credential:
    env_map = os.environ if env is None else env
    for env_var, source in sources:
        token = clean(env_map.get(env_var))
        if token:
            logger.info("Using %s %s token from %s", platform_label, source, env_var)
            return Credential(token=token, source=source, env_var=env_var)

    options = ", ".join(env_var for env_var, _ in sources)
    raise ConfigurationError(
        f"No {platform_label} credential found. Set one of (highest precedence first): {options}"
    )


def load_github_credential_from_env(env: dict[str, str] | None = None) -> Credential:
    return resolve_credential(GITHUB_TOKEN_SOURCES, "GitHub", env)


def load_gitlab_credential_from_env(env: dict[str, str] | None = None) -> Credential:
    return resolve_credential(GITLAB_TOKEN_SOURCES, "GitLab", env)


def has_ambient_ci_credential(
    sources: tuple[tuple[str, str], ...], env: dict[str, str] | None = None
) -> bool:
    """True when the run-scoped CI job token is present, whichever credential won."""

    env_map = os.environ if env is None else env
    return any(
        clean(env_map.get(env_var)) for env_var, source in sources if source == SOURCE_CI_JOB
    )


def _redact_token(token: str | None) -> str:
    if token is None:
        return "unset"
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}...{token[-4:]}"
