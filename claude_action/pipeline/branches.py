"""Working-branch setup and post-run cleanup."""

from __future__ import annotations

from claude_action.errors import ActionError, BranchSetupError
from claude_action.models.canonical import BranchCleanup, BranchPlan, ProviderData, RunContext
from claude_action.platforms.platform import Platform
from claude_action.shared.logging import get_logger

logger = get_logger(__name__)

BRANCH_PREFIX = "claude-issue-"


def issue_branch_name(issue_number: int) -> str:
    return f"{BRANCH_PREFIX}{issue_number}"


def setup_branch(data: ProviderData, context: RunContext, platform: Platform) -> BranchPlan:
    default_branch = data.repository.default_branch

    if context.is_merge_request and data.merge_request is not None:
        return BranchPlan(
            base_branch=data.merge_request.target_branch,
            current_branch=data.merge_request.source_branch,
        )

    if context.is_issue and data.issue is not None:
        _, issue_number = context.require_entity()
        base_branch = context.inputs.base_branch or default_branch
        branch_name = issue_branch_name(issue_number)
        try:
            if platform.branch_exists(branch_name):
                logger.info("Branch %s already exists", branch_name)
            else:
                platform.create_branch(branch_name, base_branch)
                logger.info("Created new branch: %s from %s", branch_name, base_branch)
        except ActionError as exc:
            raise BranchSetupError(f"Failed to create branch {branch_name}: {exc}") from exc
        return BranchPlan(
            base_branch=base_branch,
            current_branch=branch_name,
            claude_branch=branch_name,
        )

    return BranchPlan(
        base_branch=default_branch,
        current_branch=context.branch or default_branch,
    )


def cleanup_if_empty(
    platform: Platform, branch_name: str | None, base_branch: str | None
) -> BranchCleanup:
    """Delete a bot branch that gained no commits; otherwise return a link to it.

    Any failure of the comparison keeps the branch and says nothing. A failed
    delete is logged and the branch is still reported as deleted.
    """

    if not branch_name or not base_branch or branch_name == base_branch:
        return BranchCleanup(should_delete=False)

    try:
        comparison = platform.compare_branches(base_branch, branch_name)
    except ActionError as exc:
        logger.error("Error checking branch status for %s: %s", branch_name, exc)
        return BranchCleanup(should_delete=False)

    if not comparison.is_empty:
        logger.info("Branch %s has changes, keeping it", branch_name)
        return BranchCleanup(
            should_delete=False,
            branch_link=f"[View branch]({platform.branch_url(branch_name)})",
        )

    logger.info("Branch %s has no changes compared to %s", branch_name, base_branch)
    try:
        platform.delete_branch(branch_name)
    except ActionError as exc:
        logger.warning("Failed to delete branch %s: %s", branch_name, exc)
    else:
        logger.info("Deleted empty branch: %s", branch_name)
    return BranchCleanup(should_delete=True)
