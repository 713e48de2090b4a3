"""End-to-end sequencing of the prepare and finalize invocations."""

from __future__ import annotations

import json
import tempfile
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Protocol

from claude_action.errors import (
    ActionError,
    AuthorizationError,
    CommentStateError,
    TriggerNotFoundError,
)
from claude_action.models.canonical import (
    BranchCleanup,
    BranchPlan,
    ExecutionDetails,
    ProviderData,
    RunContext,
)
from claude_action.models.handoff_contracts import HandoffRecordV1
from claude_action.pipeline.actor import assert_human
from claude_action.pipeline.branches import cleanup_if_empty, setup_branch
from claude_action.pipeline.fetcher import fetch_provider_data
from claude_action.pipeline.permissions import has_write_access
from claude_action.pipeline.runner_config import build_runner_config
from claude_action.pipeline.tracking_comment import (
    FinalizeOutcome,
    announce_branch,
    create_tracking_comment,
    finalize_comment,
)
from claude_action.pipeline.trigger import evaluate_trigger
from claude_action.platforms.platform import Platform
from claude_action.shared.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PromptRequest:
    comment_id: str | None
    base_branch: str
    claude_branch: str | None
    data: ProviderData | None
    context: RunContext


class PromptBuilder(Protocol):
    def build(self, request: PromptRequest) -> Path: ...


class TaskFileWriter:
    """Writes the prompt request as an opaque JSON task file for the assistant runner."""

    def __init__(self, output_dir: Path | None = None) -> None:
        self.output_dir = output_dir or Path(tempfile.gettempdir()) / "claude-prompts"

    def build(self, request: PromptRequest) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / "claude-task.json"
        path.write_text(json.dumps(asdict(request), indent=2, sort_keys=True), encoding="utf-8")
        logger.info("Wrote task file %s", path)
        return path


@dataclass(frozen=True)
class AssistantLaunch:
    working_branch: str
    comment_id: str | None
    allowed_tools: tuple[str, ...]
    task_file: Path
    runner_config: dict[str, Any]


@dataclass(frozen=True)
class PrepareResult:
    handoff: HandoffRecordV1
    triggered: bool = True
    plan: BranchPlan | None = None
    launch: AssistantLaunch | None = None
    error: ActionError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class FinalizeResult:
    cleanup: BranchCleanup
    comment_updated: bool
    body: str | None = None
    error: CommentStateError | None = None


def _initial_handoff(context: RunContext, platform: Platform) -> HandoffRecordV1:
    return HandoffRecordV1(
        provider=context.provider,
        entity_type=context.entity_type,
        entity_number=context.entity_number,
        current_branch=context.branch,
        job_url=platform.job_url(),
        trigger_username=context.actor.username or None,
        allowed_tools=list(context.inputs.allowed_tools),
    )


def prepare_run(
    platform: Platform,
    context: RunContext,
    prompt_builder: PromptBuilder | None = None,
    env: dict[str, str] | None = None,
) -> PrepareResult:
    """Gate the run, open the tracking comment, and hand off to the assistant runner.

    Every ActionError is captured in the returned handoff record so the
    finalize invocation can report it in the tracking comment.
    """

    builder = prompt_builder or TaskFileWriter()
    handoff = _initial_handoff(context, platform)
    try:
        if not has_write_access(context, platform):
            raise AuthorizationError("Actor does not have write permissions to the repository")

        if not evaluate_trigger(context, platform):
            raise TriggerNotFoundError(
                f"No trigger found for {context.entity_label} {context.entity_number}"
            )

        assert_human(context, platform)

        comment_id = None
        data = None
        if context.has_entity:
            _, entity_number = context.require_entity()
            comment_id = create_tracking_comment(context, platform)
            handoff = handoff.model_copy(update={"comment_id": comment_id})
            data = fetch_provider_data(
                platform, context.repository.path, entity_number, context.is_issue
            )
            plan = setup_branch(data, context, platform)
        else:
            default_branch = context.repository.default_branch
            plan = BranchPlan(
                base_branch=context.inputs.base_branch or default_branch,
                current_branch=context.branch or default_branch,
            )

        handoff = handoff.model_copy(
            update={
                "base_branch": plan.base_branch,
                "claude_branch": plan.claude_branch,
                "current_branch": plan.current_branch,
            }
        )
        if plan.claude_branch and comment_id:
            announce_branch(context, platform, comment_id, plan.claude_branch)

        task_file = builder.build(
            PromptRequest(
                comment_id=comment_id,
                base_branch=plan.base_branch,
                claude_branch=plan.claude_branch,
                data=data,
                context=context,
            )
        )
        runner_config = build_runner_config(
            provider=context.provider,
            branch=plan.claude_branch or plan.current_branch,
            comment_id=comment_id,
            allowed_tools=context.inputs.allowed_tools,
            repository=context.repository,
            token=platform.credential.token,
            additional_config=context.inputs.additional_runner_config,
            env=env,
        )
    except TriggerNotFoundError as exc:
        logger.info("%s, skipping remaining steps", exc)
        return PrepareResult(handoff=handoff, triggered=False)
    except ActionError as exc:
        logger.error("Prepare step failed with error: %s", exc)
        failed = handoff.model_copy(update={"prepare_success": False, "prepare_error": str(exc)})
        return PrepareResult(handoff=failed, error=exc)

    launch = AssistantLaunch(
        working_branch=plan.current_branch,
        comment_id=comment_id,
        allowed_tools=context.inputs.allowed_tools,
        task_file=task_file,
        runner_config=runner_config,
    )
    return PrepareResult(handoff=handoff, plan=plan, launch=launch)


def finalize_run(
    platform: Platform,
    context: RunContext,
    handoff: HandoffRecordV1,
    details: ExecutionDetails | None = None,
    assistant_succeeded: bool = True,
) -> FinalizeResult:
    """Clean up an unused bot branch, then write the terminal comment state."""

    if handoff.entity_type is not None and handoff.entity_number is not None:
        context = replace(
            context, entity_type=handoff.entity_type, entity_number=handoff.entity_number
        )

    if not handoff.comment_id or not context.has_entity:
        logger.warning("No tracking comment recorded for this run; nothing to finalize")
        return FinalizeResult(cleanup=BranchCleanup(should_delete=False), comment_updated=False)

    cleanup = cleanup_if_empty(platform, handoff.claude_branch, handoff.base_branch)

    if handoff.prepare_success:
        outcome = FinalizeOutcome(
            success=assistant_succeeded,
            job_url=handoff.job_url or platform.job_url(),
            trigger_username=handoff.trigger_username,
            details=details,
            branch_name=handoff.claude_branch,
            base_branch=handoff.base_branch,
            branch_link=cleanup.branch_link,
            branch_deleted=cleanup.should_delete,
            offer_merge_request=bool(handoff.claude_branch),
        )
    else:
        outcome = FinalizeOutcome(
            success=False,
            job_url=handoff.job_url or platform.job_url(),
            trigger_username=handoff.trigger_username,
            error_details=handoff.prepare_error,
            branch_name=handoff.claude_branch,
            base_branch=handoff.base_branch,
            branch_link=cleanup.branch_link,
            branch_deleted=cleanup.should_delete,
        )

    try:
        body = finalize_comment(context, platform, handoff.comment_id, outcome)
    except CommentStateError as exc:
        logger.warning("Tracking comment was not updated: %s", exc)
        return FinalizeResult(cleanup=cleanup, comment_updated=False, error=exc)
    return FinalizeResult(cleanup=cleanup, comment_updated=True, body=body)
