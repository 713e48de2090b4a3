"""Tracking comment lifecycle: pending -> branch announced -> finalized.

The comment body is parsed into a `TrackingComment` value and re-rendered by
`render_comment` on every transition. All optional sections are rendered in a
fixed order immediately before the hidden marker, so a transition never
depends on which other sections an earlier invocation already wrote, and
re-running a transition replaces its section instead of duplicating it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Literal

from claude_action.errors import ActionError, CommentStateError, UpstreamAPIError
from claude_action.models.canonical import ExecutionDetails, RunContext
from claude_action.platforms.platform import Platform
from claude_action.shared.logging import get_logger

logger = get_logger(__name__)

HeaderKind = Literal["pending", "success", "error"]

MARKER = "<!-- claude-tracker -->"
HEADERS: dict[str, str] = {
    "pending": "## 🤖 Claude is thinking...",
    "success": "## ✅ Claude completed the task",
    "error": "## ❌ Claude encountered an error",
}
BRANCH_PREFIX = "**Working on branch:** "
ERROR_HEADING = "### Error Details"
FOOTER_RULE = "---"

# Tail sections peeled off the end of the body, in any order.
_TAIL_PATTERNS = (
    ("footer", re.compile(r"(?:\A|\n\n)---\n\n(?P<value>[^\n]*\[View [^\n]*)\Z")),
    ("request_link", re.compile(r"(?:\A|\n\n)(?P<value>\[Create a [^\]\n]*\]\([^\n]*\))\Z")),
    ("branch_link", re.compile(r"(?:\A|\n\n)\*\*Working on branch:\*\* (?P<value>[^\n]+)\Z")),
    (
        "error_details",
        re.compile(r"(?:\A|\n\n)### Error Details\n```\n(?P<value>.*?)\n```\Z", re.DOTALL),
    ),
)


@dataclass(frozen=True)
class TrackingComment:
    header: HeaderKind | None = None
    content: str = ""
    error_details: str | None = None
    branch_link: str | None = None
    request_link: str | None = None
    footer: str | None = None
    has_marker: bool = True
    trailer: str = ""


@dataclass(frozen=True)
class FinalizeOutcome:
    """Everything the finalize transition needs besides the current body."""

    success: bool
    job_url: str
    trigger_username: str | None = None
    error_details: str | None = None
    details: ExecutionDetails | None = None
    branch_name: str | None = None
    base_branch: str | None = None
    branch_link: str = ""
    branch_deleted: bool = False
    offer_merge_request: bool = False


def parse_comment(body: str) -> TrackingComment:
    before, marker, trailer = body.partition(MARKER)

    text = before.strip()
    header: HeaderKind | None = None
    stripping = True
    while stripping:
        stripping = False
        for kind, heading in HEADERS.items():
            if text.startswith(heading):
                header = header or kind  # type: ignore[assignment]
                text = text[len(heading) :].lstrip("\n")
                stripping = True
                break

    sections: dict[str, str] = {}
    peeling = True
    while peeling:
        peeling = False
        for key, pattern in _TAIL_PATTERNS:
            if key in sections:
                continue
            match = pattern.search(text)
            if match:
                sections[key] = match.group("value")
                text = text[: match.start()].rstrip()
                peeling = True

    return TrackingComment(
        header=header,
        content=text.strip(),
        error_details=sections.get("error_details"),
        branch_link=sections.get("branch_link"),
        request_link=sections.get("request_link"),
        footer=sections.get("footer"),
        has_marker=bool(marker),
        trailer=trailer,
    )


def render_comment(state: TrackingComment) -> str:
    parts: list[str] = []
    if state.header:
        parts.append(HEADERS[state.header])
    if state.content:
        parts.append(state.content)
    if state.error_details:
        parts.append(f"{ERROR_HEADING}\n```\n{state.error_details}\n```")
    if state.branch_link:
        parts.append(f"{BRANCH_PREFIX}{state.branch_link}")
    if state.request_link:
        parts.append(state.request_link)
    if state.footer:
        parts.append(f"{FOOTER_RULE}\n\n{state.footer}")

    body = "\n\n".join(parts)
    if not state.has_marker:
        return body
    if body:
        return f"{body}\n\n{MARKER}{state.trailer}"
    return f"{MARKER}{state.trailer}"


def pending_comment(context: RunContext) -> TrackingComment:
    return TrackingComment(
        header="pending",
        content=f"I'll analyze this {context.entity_label} and start working on it.",
    )


def format_footer(
    job_label: str,
    job_url: str,
    trigger_username: str | None,
    details: ExecutionDetails | None,
) -> str:
    footer = f"{job_label}({job_url})"
    if trigger_username:
        footer += f" • Triggered by @{trigger_username}"

    metrics = []
    if details is not None:
        if details.duration_ms:
            metrics.append(f"Duration: {details.duration_ms / 1000:.1f}s")
        if details.duration_api_ms:
            metrics.append(f"API: {details.duration_api_ms / 1000:.1f}s")
        if details.cost_usd:
            metrics.append(f"Cost: ${details.cost_usd:.4f}")
    if metrics:
        footer += " • " + " • ".join(metrics)
    return footer


def branch_markdown(platform: Platform, branch_name: str) -> str:
    return f"[{branch_name}]({platform.branch_url(branch_name)})"


def create_tracking_comment(context: RunContext, platform: Platform) -> str:
    entity_type, number = context.require_entity()
    comment_id = platform.create_comment(
        entity_type, number, render_comment(pending_comment(context))
    )
    logger.info("Created initial comment with ID: %s", comment_id)
    return comment_id


def announce_branch(
    context: RunContext, platform: Platform, comment_id: str, branch_name: str
) -> bool:
    """Add the working-branch line. Returns False when nothing was written.

    Any platform failure is logged and turns the announcement into a no-op.
    """

    entity_type, number = context.require_entity()
    try:
        current = platform.get_comment(entity_type, number, comment_id)
        state = parse_comment(current.body)
        link = branch_markdown(platform, branch_name)
        if state.branch_link == link:
            logger.info("Comment %s already announces branch %s", comment_id, branch_name)
            return False
        platform.update_comment(
            entity_type, number, comment_id, render_comment(replace(state, branch_link=link))
        )
    except ActionError as exc:
        logger.warning("Error updating comment %s with branch %s: %s", comment_id, branch_name, exc)
        return False

    logger.info("Updated comment %s with branch: %s", comment_id, branch_name)
    return True


def finalize_comment(
    context: RunContext,
    platform: Platform,
    comment_id: str,
    outcome: FinalizeOutcome,
) -> str:
    """Write the terminal state and return the new body.

    Raises CommentStateError when the comment no longer exists; any other
    upstream failure propagates.
    """

    entity_type, number = context.require_entity()
    try:
        current = platform.get_comment(entity_type, number, comment_id)
    except UpstreamAPIError as exc:
        if exc.not_found:
            raise CommentStateError(comment_id) from exc
        raise

    state = parse_comment(current.body)
    branch_link = state.branch_link
    request_link = state.request_link
    if outcome.branch_deleted:
        branch_link = None
        request_link = None
    elif outcome.branch_name:
        if not branch_link:
            branch_link = outcome.branch_link or branch_markdown(platform, outcome.branch_name)
        if outcome.offer_merge_request and outcome.base_branch and not request_link:
            request_link = platform.merge_request_link(
                context, outcome.base_branch, outcome.branch_name
            )

    error_details = None
    if not outcome.success and outcome.error_details:
        error_details = outcome.error_details

    final = replace(
        state,
        header="success" if outcome.success else "error",
        error_details=error_details,
        branch_link=branch_link,
        request_link=request_link,
        footer=format_footer(
            platform.ci_job_label, outcome.job_url, outcome.trigger_username, outcome.details
        ),
    )
    body = render_comment(final)
    try:
        platform.update_comment(entity_type, number, comment_id, body)
    except UpstreamAPIError as exc:
        if exc.not_found:
            raise CommentStateError(comment_id) from exc
        raise

    logger.info(
        "Updated comment %s with final status: %s",
        comment_id,
        "success" if outcome.success else "error",
    )
    return body
