"""In-memory platform adapter for deterministic pipeline tests."""

from __future__ import annotations

from dataclasses import replace

from claude_action.errors import UpstreamAPIError
from claude_action.models.canonical import (
    Author,
    BranchComparison,
    Comment,
    Commit,
    EntityType,
    FileChange,
    Issue,
    MergeRequest,
    Repository,
    Review,
    RunContext,
    UserProfile,
)
from claude_action.platforms.credentials import SOURCE_OVERRIDE, Credential


class InMemoryPlatform:
    """In-memory adapter; `failures` maps a capability name to the error it raises."""

    name = "inmemory"
    ci_job_label = "[View CI job]"

    def __init__(
        self,
        repository: Repository | None = None,
        has_ambient_credential: bool = False,
        server_url: str = "https://example.test",
        credential: Credential | None = None,
    ) -> None:
        self.repository = repository or Repository("acme", "widgets", "main")
        self.has_ambient_credential = has_ambient_credential
        self.credential = credential or Credential("test-token", SOURCE_OVERRIDE, "OVERRIDE_TOKEN")
        self.server_url = server_url
        self.issues: dict[int, Issue] = {}
        self.merge_requests: dict[int, MergeRequest] = {}
        self.comments: dict[tuple[EntityType, int], list[Comment]] = {}
        self.commits: dict[int, list[Commit]] = {}
        self.files: dict[int, list[FileChange]] = {}
        self.reviews: dict[int, list[Review]] = {}
        self.access_levels: dict[str, int] = {}
        self.profiles: dict[str, UserProfile] = {}
        self.branches: dict[str, str] = {self.repository.default_branch: "base"}
        self.comparisons: dict[tuple[str, str], BranchComparison] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[str] = []
        self._next_comment_id = 1000

    def _call(self, capability: str) -> None:
        self.calls.append(capability)
        error = self.failures.get(capability)
        if error is not None:
            raise error

    def add_issue_comment(self, number: int, body: str, username: str = "reviewer") -> Comment:
        return self._store_comment("issue", number, body, username)

    def add_merge_request_comment(
        self, number: int, body: str, username: str = "reviewer"
    ) -> Comment:
        return self._store_comment("merge_request", number, body, username)

    def _store_comment(
        self, entity_type: EntityType, number: int, body: str, username: str
    ) -> Comment:
        self._next_comment_id += 1
        comment = Comment(
            id=str(self._next_comment_id),
            body=body,
            author=Author(username=username),
            created_at="2024-01-01T00:00:00Z",
        )
        self.comments.setdefault((entity_type, number), []).append(comment)
        return comment

    def comment_body(self, comment_id: str) -> str:
        for comments in self.comments.values():
            for comment in comments:
                if comment.id == comment_id:
                    return comment.body
        raise KeyError(comment_id)

    def get_repository(self) -> Repository:
        self._call("get_repository")
        return self.repository

    def get_issue(self, number: int) -> Issue:
        self._call("get_issue")
        if number not in self.issues:
            raise UpstreamAPIError(404, f"issue {number} not found")
        return self.issues[number]

    def get_merge_request(self, number: int) -> MergeRequest:
        self._call("get_merge_request")
        if number not in self.merge_requests:
            raise UpstreamAPIError(404, f"merge request {number} not found")
        return self.merge_requests[number]

    def list_comments(self, entity_type: EntityType, number: int) -> list[Comment]:
        self._call("list_comments")
        return list(self.comments.get((entity_type, number), []))

    def list_commits(self, number: int) -> list[Commit]:
        self._call("list_commits")
        return list(self.commits.get(number, []))

    def list_file_changes(self, number: int) -> list[FileChange]:
        self._call("list_file_changes")
        return list(self.files.get(number, []))

    def list_reviews(self, number: int) -> list[Review]:
        self._call("list_reviews")
        return list(self.reviews.get(number, []))

    def get_member_access_level(self, username: str) -> int:
        self._call("get_member_access_level")
        if username not in self.access_levels:
            raise UpstreamAPIError(404, "404 Not found")
        return self.access_levels[username]

    def get_user_profile(self, username: str) -> UserProfile:
        self._call("get_user_profile")
        return self.profiles.get(username, UserProfile(username=username))

    def branch_exists(self, branch: str) -> bool:
        self._call("branch_exists")
        return branch in self.branches

    def create_branch(self, branch: str, ref: str) -> None:
        self._call("create_branch")
        if ref not in self.branches:
            raise UpstreamAPIError(404, f"ref {ref} not found")
        self.branches[branch] = ref

    def delete_branch(self, branch: str) -> None:
        self._call("delete_branch")
        self.branches.pop(branch, None)

    def compare_branches(self, base: str, head: str) -> BranchComparison:
        self._call("compare_branches")
        return self.comparisons.get((base, head), BranchComparison(commits=0, files=0))

    def create_comment(self, entity_type: EntityType, number: int, body: str) -> str:
        self._call("create_comment")
        return self._store_comment(entity_type, number, body, "claude-bot").id

    def get_comment(self, entity_type: EntityType, number: int, comment_id: str) -> Comment:
        self._call("get_comment")
        for comment in self.comments.get((entity_type, number), []):
            if comment.id == comment_id:
                return comment
        raise UpstreamAPIError(404, f"comment {comment_id} not found")

    def update_comment(
        self, entity_type: EntityType, number: int, comment_id: str, body: str
    ) -> None:
        self._call("update_comment")
        comments = self.comments.get((entity_type, number), [])
        for index, comment in enumerate(comments):
            if comment.id == comment_id:
                comments[index] = replace(comment, body=body)
                return
        raise UpstreamAPIError(404, f"comment {comment_id} not found")

    def branch_url(self, branch: str) -> str:
        return f"{self.server_url}/{self.repository.path}/tree/{branch}"

    def merge_request_link(self, context: RunContext, base_branch: str, branch: str) -> str:
        return (
            f"[Create a MR]({self.server_url}/{self.repository.path}"
            f"/compare/{base_branch}...{branch})"
        )

    def job_url(self) -> str:
        return f"{self.server_url}/{self.repository.path}/jobs/1"
