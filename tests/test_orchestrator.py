from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import requests

from claude_action.errors import (
    AuthenticationError,
    AuthorizationError,
    BotActorError,
    BranchSetupError,
    CommentStateError,
    RequiredResourceError,
    UpstreamAPIError,
)
from claude_action.models.canonical import (
    ActionInputs,
    Author,
    BranchComparison,
    ExecutionDetails,
    Issue,
    Repository,
    RunContext,
    UserProfile,
)
from claude_action.models.handoff_contracts import HandoffRecordV1
from claude_action.pipeline.orchestrator import TaskFileWriter, finalize_run, prepare_run
from claude_action.platforms.platform_inmemory import InMemoryPlatform

REPOSITORY = Repository("acme", "widgets", "main")


def _context(entity_type: Any = "issue", number: int | None = 789, **inputs: Any) -> RunContext:
    return RunContext(
        provider="gitlab",
        repository=REPOSITORY,
        project_id="1",
        branch="main",
        entity_type=entity_type,
        entity_number=number,
        actor=Author("alice"),
        inputs=ActionInputs(**inputs),
    )


def _platform(description: str = "@claude please fix this") -> InMemoryPlatform:
    platform = InMemoryPlatform(repository=REPOSITORY)
    platform.access_levels["alice"] = 30
    platform.issues[789] = Issue(
        title="Crash on start",
        description=description,
        author=Author("reporter"),
        created_at="2024-01-01T00:00:00Z",
        state="open",
    )
    return platform


def test_prepare_issue_end_to_end(tmp_path: Path) -> None:
    platform = _platform()
    context = _context(allowed_tools=("Edit", "Read"))

    result = prepare_run(platform, context, prompt_builder=TaskFileWriter(tmp_path))

    assert result.succeeded
    assert result.triggered
    assert result.plan is not None
    assert result.plan.base_branch == "main"
    assert result.plan.current_branch == "claude-issue-789"
    assert result.plan.claude_branch == "claude-issue-789"
    assert platform.branches["claude-issue-789"] == "main"

    handoff = result.handoff
    assert handoff.comment_id is not None
    assert handoff.claude_branch == "claude-issue-789"
    assert handoff.base_branch == "main"
    assert handoff.job_url == "https://example.test/acme/widgets/jobs/1"
    assert handoff.trigger_username == "alice"
    assert handoff.prepare_success

    body = platform.comment_body(handoff.comment_id)
    assert "**Working on branch:** [claude-issue-789]" in body

    launch = result.launch
    assert launch is not None
    assert launch.working_branch == "claude-issue-789"
    assert launch.comment_id == handoff.comment_id
    assert launch.allowed_tools == ("Edit", "Read")
    task = json.loads(launch.task_file.read_text(encoding="utf-8"))
    assert task["comment_id"] == handoff.comment_id
    assert task["claude_branch"] == "claude-issue-789"
    assert task["data"]["issue"]["title"] == "Crash on start"


def test_stage_order_permission_then_trigger_then_actor(tmp_path: Path) -> None:
    platform = _platform()
    prepare_run(platform, _context(), prompt_builder=TaskFileWriter(tmp_path))

    order = [
        platform.calls.index("get_member_access_level"),
        platform.calls.index("get_issue"),
        platform.calls.index("get_user_profile"),
        platform.calls.index("create_comment"),
        platform.calls.index("create_branch"),
    ]
    assert order == sorted(order)


def test_finalize_deletes_empty_branch_and_drops_branch_line(tmp_path: Path) -> None:
    platform = _platform()
    context = _context()
    prepared = prepare_run(platform, context, prompt_builder=TaskFileWriter(tmp_path))

    result = finalize_run(
        platform, context, prepared.handoff, details=ExecutionDetails(duration_ms=30500)
    )

    assert result.comment_updated
    assert result.cleanup.should_delete
    assert "claude-issue-789" not in platform.branches
    assert result.body is not None
    assert result.body.startswith("## ✅ Claude completed the task")
    assert "Working on branch" not in result.body
    assert "Duration: 30.5s" in result.body


def test_finalize_keeps_branch_with_commits_and_offers_merge_request(tmp_path: Path) -> None:
    platform = _platform()
    context = _context()
    prepared = prepare_run(platform, context, prompt_builder=TaskFileWriter(tmp_path))
    platform.comparisons[("main", "claude-issue-789")] = BranchComparison(commits=2, files=3)

    result = finalize_run(platform, context, prepared.handoff, assistant_succeeded=False)

    assert not result.cleanup.should_delete
    assert result.body is not None
    assert result.body.startswith("## ❌ Claude encountered an error")
    assert result.body.count("**Working on branch:**") == 1
    assert "[Create a MR]" in result.body


def test_prepare_denies_actor_without_write_access(tmp_path: Path) -> None:
    platform = _platform()
    platform.access_levels["alice"] = 20

    result = prepare_run(platform, _context(), prompt_builder=TaskFileWriter(tmp_path))

    assert isinstance(result.error, AuthorizationError)
    assert not result.handoff.prepare_success
    assert "write permissions" in (result.handoff.prepare_error or "")
    assert result.handoff.comment_id is None
    assert "create_comment" not in platform.calls


def test_prepare_stops_cleanly_when_trigger_not_found(tmp_path: Path) -> None:
    platform = _platform(description="unrelated")

    result = prepare_run(platform, _context(), prompt_builder=TaskFileWriter(tmp_path))

    assert result.succeeded
    assert not result.triggered
    assert result.launch is None
    assert "create_comment" not in platform.calls
    assert not list(tmp_path.iterdir())


def test_prepare_rejects_bot_actor_before_comment(tmp_path: Path) -> None:
    platform = _platform()
    platform.profiles["alice"] = UserProfile("alice", is_bot=True)

    result = prepare_run(platform, _context(), prompt_builder=TaskFileWriter(tmp_path))

    assert isinstance(result.error, BotActorError)
    assert "create_comment" not in platform.calls


def test_failure_after_comment_is_reported_by_finalize(tmp_path: Path) -> None:
    platform = _platform()
    platform.failures["create_branch"] = UpstreamAPIError(403, "protected")
    context = _context()

    prepared = prepare_run(platform, context, prompt_builder=TaskFileWriter(tmp_path))

    assert isinstance(prepared.error, BranchSetupError)
    assert prepared.handoff.comment_id is not None
    assert not prepared.handoff.prepare_success

    record = HandoffRecordV1.from_json(prepared.handoff.model_dump_json())
    result = finalize_run(platform, context, record)

    assert result.comment_updated
    assert result.body is not None
    assert result.body.startswith("## ❌ Claude encountered an error")
    assert "### Error Details" in result.body
    assert "protected" in result.body


def test_direct_prompt_without_entity_skips_comment(tmp_path: Path) -> None:
    platform = _platform()
    context = _context(entity_type=None, number=None, direct_prompt="bump deps", base_branch="dev")

    result = prepare_run(platform, context, prompt_builder=TaskFileWriter(tmp_path))

    assert result.succeeded
    assert result.launch is not None
    assert result.launch.comment_id is None
    assert result.plan is not None
    assert result.plan.base_branch == "dev"
    assert result.plan.current_branch == "main"
    assert "create_comment" not in platform.calls

    finalized = finalize_run(platform, context, result.handoff)
    assert not finalized.comment_updated


def test_finalize_with_deleted_comment_warns_without_raising(
    tmp_path: Path,
) -> None:
    platform = _platform()
    context = _context()
    prepared = prepare_run(platform, context, prompt_builder=TaskFileWriter(tmp_path))
    platform.comments.clear()

    result = finalize_run(platform, context, prepared.handoff)

    assert not result.comment_updated
    assert isinstance(result.error, CommentStateError)


def test_finalize_locates_entity_from_handoff_record() -> None:
    platform = _platform()
    comment = platform.add_issue_comment(789, "## 🤖 Claude is thinking...\n\n<!-- claude-tracker -->")
    record = HandoffRecordV1(
        provider="gitlab",
        entity_type="issue",
        entity_number=789,
        comment_id=comment.id,
        job_url="https://ci.test/jobs/5",
    )

    result = finalize_run(platform, _context("merge_request", 1), record)

    assert result.comment_updated
    assert "https://ci.test/jobs/5" in platform.comment_body(comment.id)


def test_undecodable_response_after_comment_is_recorded_in_handoff(tmp_path: Path) -> None:
    platform = _platform()
    platform.failures["get_repository"] = requests.JSONDecodeError("Expecting value", "<html>", 0)
    context = _context()

    prepared = prepare_run(platform, context, prompt_builder=TaskFileWriter(tmp_path))

    assert isinstance(prepared.error, RequiredResourceError)
    assert prepared.handoff.comment_id is not None
    assert not prepared.handoff.prepare_success

    result = finalize_run(platform, context, prepared.handoff)
    assert result.body is not None
    assert result.body.startswith("## ❌ Claude encountered an error")
    assert "Claude is thinking" not in result.body


def test_finalize_writes_comment_when_branch_comparison_is_rejected(tmp_path: Path) -> None:
    platform = _platform()
    context = _context()
    prepared = prepare_run(platform, context, prompt_builder=TaskFileWriter(tmp_path))
    platform.failures["compare_branches"] = AuthenticationError(401, "token expired")

    result = finalize_run(platform, context, prepared.handoff)

    assert result.comment_updated
    assert not result.cleanup.should_delete
    assert "claude-issue-789" in platform.branches
    assert result.body is not None
    assert result.body.startswith("## ✅ Claude completed the task")


def test_launch_carries_runner_config_bound_to_branch_and_comment(tmp_path: Path) -> None:
    platform = _platform()
    context = _context()

    result = prepare_run(
        platform,
        context,
        prompt_builder=TaskFileWriter(tmp_path),
        env={"CI_PROJECT_DIR": "/builds/acme/widgets"},
    )

    assert result.launch is not None
    server = result.launch.runner_config["mcpServers"]["gitlab_file_ops"]
    assert server["env"]["BRANCH_NAME"] == "claude-issue-789"
    assert server["env"]["CLAUDE_COMMENT_ID"] == result.handoff.comment_id
    assert server["env"]["GITLAB_TOKEN"] == "test-token"
    assert server["env"]["PROJECT_PATH"] == "acme/widgets"
