from __future__ import annotations

import pytest

from claude_action.errors import (
    AuthenticationError,
    AuthorizationError,
    BotActorError,
    UpstreamAPIError,
    UpstreamUnavailableError,
)
from claude_action.models.canonical import (
    ActionInputs,
    Author,
    Repository,
    RunContext,
    UserProfile,
)
from claude_action.pipeline.actor import assert_human
from claude_action.pipeline.permissions import has_write_access
from claude_action.platforms.platform_inmemory import InMemoryPlatform


def _context(actor: str = "alice") -> RunContext:
    return RunContext(
        provider="gitlab",
        repository=Repository("acme", "widgets", "main"),
        project_id="1",
        branch="main",
        entity_type="issue",
        entity_number=1,
        actor=Author(actor),
        inputs=ActionInputs(),
    )


@pytest.mark.parametrize(
    ("level", "expected"),
    [(0, False), (10, False), (20, False), (30, True), (40, True), (50, True)],
)
def test_write_access_is_monotonic_in_role(level: int, expected: bool) -> None:
    platform = InMemoryPlatform()
    platform.access_levels["alice"] = level
    assert has_write_access(_context(), platform) is expected


def test_role_lookup_path_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level("INFO")
    platform = InMemoryPlatform()
    platform.access_levels["alice"] = 40
    assert has_write_access(_context(), platform)
    assert "verified by role lookup" in caplog.text


def test_lookup_404_with_ambient_credential_grants_access(
    caplog: pytest.LogCaptureFixture,
) -> None:
    platform = InMemoryPlatform(has_ambient_credential=True)
    assert has_write_access(_context(), platform) is True
    assert "granted by ambient CI credential" in caplog.text


def test_lookup_404_without_ambient_credential_fails_closed() -> None:
    platform = InMemoryPlatform(has_ambient_credential=False)
    assert has_write_access(_context(), platform) is False


def test_empty_actor_has_no_write_access() -> None:
    platform = InMemoryPlatform(has_ambient_credential=True)
    assert has_write_access(_context(actor=""), platform) is False
    assert platform.calls == []


def test_bot_actor_is_rejected() -> None:
    platform = InMemoryPlatform()
    platform.profiles["renovate"] = UserProfile("renovate", is_bot=True)
    with pytest.raises(BotActorError, match="renovate"):
        assert_human(_context(actor="renovate"), platform)
    assert issubclass(BotActorError, AuthorizationError)


def test_human_actor_passes() -> None:
    platform = InMemoryPlatform()
    platform.profiles["alice"] = UserProfile("alice", display_name="Alice")
    assert_human(_context(), platform)


@pytest.mark.parametrize(
    "error",
    [
        UpstreamAPIError(404, "not found"),
        UpstreamUnavailableError("timeout"),
        AuthenticationError(401, "token expired"),
    ],
)
def test_profile_lookup_failure_degrades_to_warning(
    error: Exception, caplog: pytest.LogCaptureFixture
) -> None:
    platform = InMemoryPlatform()
    platform.failures["get_user_profile"] = error
    assert_human(_context(), platform)
    assert "Could not verify actor alice is human" in caplog.text


def test_empty_actor_skips_human_check() -> None:
    platform = InMemoryPlatform()
    assert_human(_context(actor=""), platform)
    assert platform.calls == []
