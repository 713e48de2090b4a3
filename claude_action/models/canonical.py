"""Platform-independent value types produced and consumed by both adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from claude_action.errors import ConfigurationError

ProviderName = Literal["github", "gitlab"]
EntityType = Literal["issue", "merge_request"]


@dataclass(frozen=True)
class Author:
    username: str
    display_name: str | None = None


UNKNOWN_AUTHOR = Author(username="unknown", display_name="Unknown")


@dataclass(frozen=True)
class Repository:
    owner: str
    name: str
    default_branch: str

    @property
    def path(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def from_path(cls, path: str, default_branch: str) -> "Repository":
        owner, _, name = path.strip().rpartition("/")
        if not owner or not name:
            raise ConfigurationError(
                f"Invalid repository path format: {path}. Expected 'namespace/project-name'"
            )
        return cls(owner=owner, name=name, default_branch=default_branch)


@dataclass(frozen=True)
class Comment:
    id: str
    body: str
    author: Author
    created_at: str


@dataclass(frozen=True)
class ReviewComment(Comment):
    path: str = ""
    line: int | None = None


@dataclass(frozen=True)
class CommitAuthor:
    name: str
    email: str


@dataclass(frozen=True)
class Commit:
    sha: str
    message: str
    author: CommitAuthor


@dataclass(frozen=True)
class FileChange:
    path: str
    additions: int
    deletions: int
    change_type: str


@dataclass(frozen=True)
class Review:
    id: str
    author: Author
    body: str
    state: str
    submitted_at: str
    comments: list[ReviewComment] = field(default_factory=list)


@dataclass(frozen=True)
class Issue:
    title: str
    description: str
    author: Author
    created_at: str
    state: str
    comments: list[Comment] = field(default_factory=list)
    assignees: tuple[str, ...] = ()


@dataclass(frozen=True)
class MergeRequest:
    title: str
    description: str
    author: Author
    source_branch: str
    target_branch: str
    head_sha: str
    created_at: str
    additions: int
    deletions: int
    state: str
    commits: list[Commit] = field(default_factory=list)
    files: list[FileChange] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)
    assignee: str | None = None


@dataclass(frozen=True)
class ProviderData:
    """Fetched run data. Exactly one of issue / merge_request is populated."""

    repository: Repository
    issue: Issue | None = None
    merge_request: MergeRequest | None = None

    def __post_init__(self) -> None:
        if (self.issue is None) == (self.merge_request is None):
            raise ValueError("ProviderData requires exactly one of issue or merge_request")


@dataclass(frozen=True)
class ActionInputs:
    trigger_phrase: str = "@claude"
    assignee_trigger: str | None = None
    base_branch: str | None = None
    direct_prompt: str | None = None
    allowed_tools: tuple[str, ...] = ()
    custom_instructions: str | None = None
    additional_runner_config: str | None = None


@dataclass(frozen=True)
class RunContext:
    """Immutable per-invocation context. Stages never mutate it."""

    provider: ProviderName
    repository: Repository
    project_id: str
    branch: str
    entity_type: EntityType | None
    entity_number: int | None
    actor: Author
    inputs: ActionInputs

    def __post_init__(self) -> None:
        if (self.entity_type is None) != (self.entity_number is None):
            raise ValueError("entity_type and entity_number must be set together")
        if self.entity_number is not None and self.entity_number <= 0:
            raise ValueError(f"entity_number must be positive, got {self.entity_number}")

    @property
    def has_entity(self) -> bool:
        return self.entity_number is not None

    @property
    def is_issue(self) -> bool:
        return self.entity_type == "issue"

    @property
    def is_merge_request(self) -> bool:
        return self.entity_type == "merge_request"

    @property
    def entity_label(self) -> str:
        return "merge request" if self.is_merge_request else "issue"

    def require_entity(self) -> tuple[EntityType, int]:
        """The run's (entity_type, entity_number); direct-prompt runs have none."""
        if self.entity_type is None or self.entity_number is None:
            raise ConfigurationError("No merge request or issue identity found for this run")
        return self.entity_type, self.entity_number


@dataclass(frozen=True)
class BranchPlan:
    base_branch: str
    current_branch: str
    claude_branch: str | None = None


@dataclass(frozen=True)
class BranchCleanup:
    should_delete: bool
    branch_link: str = ""


@dataclass(frozen=True)
class BranchComparison:
    commits: int
    files: int

    @property
    def is_empty(self) -> bool:
        return self.commits == 0 and self.files == 0


@dataclass(frozen=True)
class UserProfile:
    username: str
    display_name: str | None = None
    is_bot: bool = False


@dataclass(frozen=True)
class ExecutionDetails:
    cost_usd: float | None = None
    duration_ms: float | None = None
    duration_api_ms: float | None = None
