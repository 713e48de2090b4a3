"""Versioned record passed from the prepare invocation to the finalize invocation."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

HANDOFF_VARIABLE = "CLAUDE_HANDOFF"


class HandoffRecordV1(BaseModel):
    """Everything finalize needs; never re-derived by querying the platform."""

    model_config = ConfigDict(extra="forbid")

    schema_version: Literal["handoff/v1"] = "handoff/v1"
    provider: Literal["github", "gitlab"]
    entity_type: Literal["issue", "merge_request"] | None = None
    entity_number: int | None = Field(default=None, ge=1)
    comment_id: str | None = None
    base_branch: str | None = None
    claude_branch: str | None = None
    current_branch: str | None = None
    job_url: str = ""
    trigger_username: str | None = None
    allowed_tools: list[str] = Field(default_factory=list)
    prepare_success: bool = True
    prepare_error: str | None = None

    def to_env_line(self) -> str:
        return f"{HANDOFF_VARIABLE}={self.model_dump_json()}"

    @classmethod
    def from_json(cls, payload: str) -> "HandoffRecordV1":
        return cls.model_validate_json(payload)
