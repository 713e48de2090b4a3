"""Decide whether an invocation should proceed."""

from __future__ import annotations

from claude_action.errors import UpstreamAPIError
from claude_action.models.canonical import Issue, MergeRequest, RunContext
from claude_action.platforms.platform import Platform
from claude_action.shared.logging import get_logger

logger = get_logger(__name__)


def _contains(text: str | None, phrase: str) -> bool:
    # Unanchored substring match: "@claude" also matches inside "@claudexyz".
    return bool(text) and phrase.lower() in str(text).lower()


def _fetch_entity(context: RunContext, platform: Platform) -> Issue | MergeRequest:
    entity_type, number = context.require_entity()
    if entity_type == "merge_request":
        return platform.get_merge_request(number)
    return platform.get_issue(number)


def _phrase_in_entity(context: RunContext, platform: Platform, phrase: str) -> bool:
    try:
        entity = _fetch_entity(context, platform)
    except UpstreamAPIError as exc:
        logger.error("Error checking trigger phrase in %s: %s", context.entity_label, exc)
        return False

    for field_name, text in (("description", entity.description), ("title", entity.title)):
        if _contains(text, phrase):
            logger.info(
                "Trigger phrase '%s' found in %s %s", phrase, context.entity_label, field_name
            )
            return True
    return False


def _phrase_in_comments(context: RunContext, platform: Platform, phrase: str) -> bool:
    entity_type, number = context.require_entity()
    try:
        comments = platform.list_comments(entity_type, number)
    except UpstreamAPIError as exc:
        logger.error("Error checking trigger phrase in comments: %s", exc)
        return False

    if any(_contains(comment.body, phrase) for comment in comments):
        logger.info("Trigger phrase '%s' found in comment", phrase)
        return True
    return False


def _assigned_to(context: RunContext, platform: Platform, assignee_trigger: str) -> bool:
    username = assignee_trigger.replace("@", "", 1)
    try:
        entity = _fetch_entity(context, platform)
    except UpstreamAPIError as exc:
        logger.error("Error checking assignee trigger: %s", exc)
        return False

    if isinstance(entity, MergeRequest):
        matched = entity.assignee == username
    else:
        matched = username in entity.assignees
    if matched:
        logger.info("%s assigned to trigger user '%s'", context.entity_label, username)
    return matched


def evaluate_trigger(context: RunContext, platform: Platform) -> bool:
    """Return True when the run was explicitly requested.

    Upstream API errors inside a sub-check count as "not found" for that check.
    Connectivity and authentication failures propagate.
    """

    inputs = context.inputs
    if inputs.direct_prompt:
        logger.info("Direct prompt provided, triggering action")
        return True

    if not context.has_entity:
        logger.info("No merge request or issue identity found")
        return False

    if inputs.trigger_phrase:
        phrase = inputs.trigger_phrase
        if _phrase_in_entity(context, platform, phrase):
            return True
        if _phrase_in_comments(context, platform, phrase):
            return True
        logger.warning(
            "Trigger phrase '%s' not found in %s %s or its comments",
            phrase,
            context.entity_label,
            context.entity_number,
        )
        return False

    if inputs.assignee_trigger:
        return _assigned_to(context, platform, inputs.assignee_trigger)

    return False
