"""Write-access gate for the triggering actor."""

from __future__ import annotations

from claude_action.errors import UpstreamAPIError
from claude_action.models.canonical import RunContext
from claude_action.platforms.platform import ROLE_DEVELOPER, ROLE_NAMES, Platform
from claude_action.shared.logging import get_logger

logger = get_logger(__name__)

WRITE_ACCESS_THRESHOLD = ROLE_DEVELOPER


def has_write_access(context: RunContext, platform: Platform) -> bool:
    """True iff the actor's role is developer-equivalent or higher.

    A failed membership lookup is treated as authorized only while an ambient
    CI job credential is present, since that token is scoped to the run the
    platform already authorized. Every other failure fails closed.
    """

    actor = context.actor.username
    if not actor:
        logger.warning("No actor resolved for this run; denying write access")
        return False

    logger.info("Checking permissions for actor: %s", actor)
    try:
        level = platform.get_member_access_level(actor)
    except UpstreamAPIError as exc:
        if platform.has_ambient_credential:
            logger.warning(
                "Membership lookup for %s failed (%s); write access granted by ambient CI credential",
                actor,
                exc,
            )
            return True
        logger.error("Failed to check permissions for %s: %s", actor, exc)
        return False

    role = ROLE_NAMES.get(level, f"level {level}")
    if level >= WRITE_ACCESS_THRESHOLD:
        logger.info("Actor %s has write access (%s), verified by role lookup", actor, role)
        return True

    logger.warning("Actor %s has insufficient permissions (%s)", actor, role)
    return False
