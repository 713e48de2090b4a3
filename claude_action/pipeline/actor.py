"""Refuse runs triggered by automation accounts."""

from __future__ import annotations

from claude_action.errors import ActionError, BotActorError
from claude_action.models.canonical import RunContext
from claude_action.platforms.platform import Platform
from claude_action.shared.logging import get_logger

logger = get_logger(__name__)


def assert_human(context: RunContext, platform: Platform) -> None:
    actor = context.actor.username
    if not actor:
        logger.warning("No actor resolved for this run; skipping human actor check")
        return

    try:
        profile = platform.get_user_profile(actor)
    except ActionError as exc:
        # Webhook routing already filters bot loops; an unreachable profile does not block.
        logger.warning("Could not verify actor %s is human, proceeding: %s", actor, exc)
        return

    if profile.is_bot:
        raise BotActorError(
            f"Workflow initiated by non-human actor: {actor} (bot account). "
            "Bot-triggered runs are not allowed."
        )
    logger.info("Verified human actor: %s", actor)
