from __future__ import annotations

from typing import Any

import pytest

from claude_action.errors import (
    AuthenticationError,
    CommentStateError,
    ConfigurationError,
    UpstreamAPIError,
    UpstreamUnavailableError,
)
from claude_action.models.canonical import (
    ActionInputs,
    Author,
    ExecutionDetails,
    Repository,
    RunContext,
)
from claude_action.pipeline.tracking_comment import (
    MARKER,
    FinalizeOutcome,
    TrackingComment,
    announce_branch,
    create_tracking_comment,
    finalize_comment,
    format_footer,
    parse_comment,
    render_comment,
)
from claude_action.platforms.platform_inmemory import InMemoryPlatform

PENDING_HEADER = "## 🤖 Claude is thinking..."
SUCCESS_HEADER = "## ✅ Claude completed the task"
ERROR_HEADER = "## ❌ Claude encountered an error"
BRANCH_URL = "https://example.test/acme/widgets/tree/claude-issue-1"


def _context(entity_type: Any = "issue", number: int | None = 1) -> RunContext:
    return RunContext(
        provider="gitlab",
        repository=Repository("acme", "widgets", "main"),
        project_id="1",
        branch="main",
        entity_type=entity_type,
        entity_number=number,
        actor=Author("alice"),
        inputs=ActionInputs(),
    )


def _outcome(**overrides: Any) -> FinalizeOutcome:
    values: dict[str, Any] = {
        "success": True,
        "job_url": "https://example.test/acme/widgets/jobs/1",
        "trigger_username": "alice",
    }
    values.update(overrides)
    return FinalizeOutcome(**values)


def test_create_posts_pending_template() -> None:
    platform = InMemoryPlatform()
    comment_id = create_tracking_comment(_context(), platform)

    assert platform.comment_body(comment_id) == (
        f"{PENDING_HEADER}\n\n"
        "I'll analyze this issue and start working on it.\n\n"
        f"{MARKER}"
    )


def test_create_requires_entity_identity() -> None:
    with pytest.raises(ConfigurationError):
        create_tracking_comment(_context(entity_type=None, number=None), InMemoryPlatform())


def test_finalize_success_replaces_pending_header_and_places_footer_before_marker() -> None:
    platform = InMemoryPlatform()
    comment = platform.add_merge_request_comment(
        5, f"{PENDING_HEADER}\n\nI'll analyze this merge request.\n\n{MARKER}"
    )

    body = finalize_comment(
        _context("merge_request", 5),
        platform,
        comment.id,
        _outcome(details=ExecutionDetails(duration_ms=30500)),
    )

    assert PENDING_HEADER not in body
    assert body.startswith(SUCCESS_HEADER)
    assert "30.5s" in body
    assert MARKER in body
    assert body.index("Duration: 30.5s") < body.index(MARKER)
    assert "I'll analyze this merge request." in body
    assert platform.comment_body(comment.id) == body


def test_refinalize_replaces_header_and_footer_instead_of_duplicating() -> None:
    platform = InMemoryPlatform()
    comment_id = create_tracking_comment(_context(), platform)

    finalize_comment(_context(), platform, comment_id, _outcome(success=False, error_details="x"))
    body = finalize_comment(
        _context(), platform, comment_id, _outcome(details=ExecutionDetails(duration_ms=1000))
    )

    assert body.count("## ") == 1
    assert body.startswith(SUCCESS_HEADER)
    assert ERROR_HEADER not in body
    assert "### Error Details" not in body
    assert body.count("---\n\n") == 1
    assert "Duration: 1.0s" in body


def test_finalize_error_appends_error_block_before_marker() -> None:
    platform = InMemoryPlatform()
    comment_id = create_tracking_comment(_context(), platform)

    body = finalize_comment(
        _context(),
        platform,
        comment_id,
        _outcome(success=False, error_details="Traceback\nValueError: bad"),
    )

    assert body.startswith(ERROR_HEADER)
    assert "### Error Details\n```\nTraceback\nValueError: bad\n```" in body
    assert body.index("### Error Details") < body.index("---") < body.index(MARKER)


def test_announce_branch_inserts_line_before_marker_once() -> None:
    platform = InMemoryPlatform()
    comment_id = create_tracking_comment(_context(), platform)

    assert announce_branch(_context(), platform, comment_id, "claude-issue-1") is True
    body = platform.comment_body(comment_id)
    assert body.endswith(
        f"**Working on branch:** [claude-issue-1]({BRANCH_URL})\n\n{MARKER}"
    )
    assert body.startswith(PENDING_HEADER)

    updates = platform.calls.count("update_comment")
    assert announce_branch(_context(), platform, comment_id, "claude-issue-1") is False
    assert platform.calls.count("update_comment") == updates
    assert platform.comment_body(comment_id) == body


@pytest.mark.parametrize(
    ("capability", "error"),
    [
        ("get_comment", UpstreamAPIError(404, "gone")),
        ("update_comment", UpstreamAPIError(500, "boom")),
        ("update_comment", UpstreamUnavailableError("timeout")),
        ("get_comment", AuthenticationError(401, "token expired")),
    ],
)
def test_announce_branch_failures_are_a_logged_no_op(
    capability: str, error: Exception, caplog: pytest.LogCaptureFixture
) -> None:
    platform = InMemoryPlatform()
    comment_id = create_tracking_comment(_context(), platform)
    platform.failures[capability] = error

    assert announce_branch(_context(), platform, comment_id, "claude-issue-1") is False
    assert "Error updating comment" in caplog.text


def test_finalize_keeps_announced_branch_and_offers_merge_request() -> None:
    platform = InMemoryPlatform()
    comment_id = create_tracking_comment(_context(), platform)
    announce_branch(_context(), platform, comment_id, "claude-issue-1")

    body = finalize_comment(
        _context(),
        platform,
        comment_id,
        _outcome(
            branch_name="claude-issue-1",
            base_branch="main",
            branch_link="[View branch](https://example.test/other)",
            offer_merge_request=True,
        ),
    )

    assert body.count("**Working on branch:**") == 1
    assert f"[claude-issue-1]({BRANCH_URL})" in body
    assert "[Create a MR](https://example.test/acme/widgets/compare/main...claude-issue-1)" in body
    assert (
        body.index("**Working on branch:**")
        < body.index("[Create a MR]")
        < body.index("---")
        < body.index(MARKER)
    )


def test_finalize_uses_cleanup_link_when_branch_was_never_announced() -> None:
    platform = InMemoryPlatform()
    comment_id = create_tracking_comment(_context(), platform)

    body = finalize_comment(
        _context(),
        platform,
        comment_id,
        _outcome(branch_name="claude-issue-1", branch_link="[View branch](https://x.test/b)"),
    )
    assert "**Working on branch:** [View branch](https://x.test/b)" in body
    assert "[Create a" not in body


def test_finalize_drops_branch_line_when_branch_was_deleted() -> None:
    platform = InMemoryPlatform()
    comment_id = create_tracking_comment(_context(), platform)
    announce_branch(_context(), platform, comment_id, "claude-issue-1")

    body = finalize_comment(
        _context(),
        platform,
        comment_id,
        _outcome(
            branch_name="claude-issue-1",
            base_branch="main",
            branch_deleted=True,
            offer_merge_request=True,
        ),
    )
    assert "Working on branch" not in body
    assert "[Create a" not in body


def test_finalize_missing_comment_raises_comment_state_error() -> None:
    platform = InMemoryPlatform()
    with pytest.raises(CommentStateError) as excinfo:
        finalize_comment(_context(), platform, "404", _outcome())
    assert excinfo.value.comment_id == "404"


def test_finalize_update_failure_propagates() -> None:
    platform = InMemoryPlatform()
    comment_id = create_tracking_comment(_context(), platform)
    platform.failures["update_comment"] = UpstreamAPIError(500, "boom")
    with pytest.raises(UpstreamAPIError):
        finalize_comment(_context(), platform, comment_id, _outcome())


def test_parse_recovers_every_section() -> None:
    state = TrackingComment(
        header="error",
        content="I'll analyze this issue and start working on it.",
        error_details="boom\n\nstack",
        branch_link="[claude-issue-1](https://x.test/tree/claude-issue-1)",
        request_link="[Create a PR](https://x.test/compare/main...claude-issue-1?quick_pull=1)",
        footer="🐙 [View GitHub Actions run](https://x.test/runs/1) • Triggered by @alice",
        trailer="\n<!-- extra -->",
    )
    assert parse_comment(render_comment(state)) == state


def test_parse_body_without_marker_or_header() -> None:
    state = parse_comment("Some text written by a human")
    assert state.header is None
    assert not state.has_marker
    assert state.content == "Some text written by a human"
    assert render_comment(state) == "Some text written by a human"


def test_format_footer_metrics() -> None:
    footer = format_footer(
        "🦊 [View GitLab CI Job]",
        "https://gitlab.example.com/g/p/-/jobs/9",
        "alice",
        ExecutionDetails(cost_usd=0.12345, duration_ms=30500, duration_api_ms=12300),
    )
    assert footer == (
        "🦊 [View GitLab CI Job](https://gitlab.example.com/g/p/-/jobs/9)"
        " • Triggered by @alice • Duration: 30.5s • API: 12.3s • Cost: $0.1235"
    )
    assert format_footer("[View]", "u", None, None) == "[View](u)"
