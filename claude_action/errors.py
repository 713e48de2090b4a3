"""Error taxonomy shared by every pipeline stage and platform adapter."""

from __future__ import annotations


class ActionError(RuntimeError):
    """Base class for failures raised by claude-action."""


class ConfigurationError(ActionError):
    """A required ambient signal or credential is missing or malformed."""


class AuthenticationError(ActionError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Authentication rejected by upstream ({status_code}): {message}")
        self.status_code = status_code
        self.message = message


class AuthorizationError(ActionError):
    """The triggering actor is not allowed to cause side effects."""


class BotActorError(AuthorizationError):
    pass


class TriggerNotFoundError(ActionError):
    """Negative trigger determination. Stops the pipeline successfully."""


class UpstreamAPIError(ActionError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Upstream API error: {status_code} - {message}")
        self.status_code = status_code
        self.message = message

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class UpstreamUnavailableError(ActionError):
    """The platform API could not be reached at all."""


class RequiredResourceError(ActionError):
    def __init__(self, resource: str, cause: BaseException) -> None:
        super().__init__(f"Failed to fetch required resource '{resource}': {cause}")
        self.resource = resource
        self.cause = cause


class CommentStateError(ActionError):
    def __init__(self, comment_id: str, message: str = "tracking comment not found") -> None:
        super().__init__(f"Comment {comment_id}: {message}")
        self.comment_id = comment_id


class BranchSetupError(ActionError):
    """The working branch for an issue run could not be created."""
