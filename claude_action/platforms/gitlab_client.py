"""GitLab REST v4 adapter for the platform capability interface."""

from __future__ import annotations

import os
from typing import Any
from urllib.parse import quote, urlencode

import requests

from claude_action.errors import UpstreamAPIError
from claude_action.models.canonical import (
    BranchComparison,
    Comment,
    Commit,
    CommitAuthor,
    EntityType,
    FileChange,
    Issue,
    MergeRequest,
    Repository,
    Review,
    RunContext,
    UserProfile,
)
from claude_action.platforms.credentials import (
    GITLAB_TOKEN_SOURCES,
    Credential,
    has_ambient_ci_credential,
    load_gitlab_credential_from_env,
)
from claude_action.platforms.http import ApiClient
from claude_action.platforms.normalize import (
    as_list,
    author_from,
    count_diff_lines,
    normalize_state,
)
from claude_action.shared.settings import clean

DEFAULT_SERVER_URL = "https://gitlab.com"

_ENTITY_SEGMENT = {"issue": "issues", "merge_request": "merge_requests"}


def _encode(value: str) -> str:
    return quote(value, safe="")


def _change_type(diff: dict[str, Any]) -> str:
    if diff.get("new_file"):
        return "added"
    if diff.get("deleted_file"):
        return "removed"
    if diff.get("renamed_file"):
        return "renamed"
    return "modified"


def _comment_from_note(note: dict[str, Any]) -> Comment:
    return Comment(
        id=str(note.get("id", "")),
        body=str(note.get("body") or ""),
        author=author_from(note.get("author")),
        created_at=str(note.get("created_at") or ""),
    )


class GitLabPlatform:
    name = "gitlab"
    ci_job_label = "🦊 [View GitLab CI Job]"

    def __init__(
        self,
        project_path: str,
        credential: Credential,
        api_url: str = f"{DEFAULT_SERVER_URL}/api/v4",
        server_url: str = DEFAULT_SERVER_URL,
        project_url: str | None = None,
        job_id: str | None = None,
        has_ambient_credential: bool = False,
        session: requests.Session | None = None,
    ) -> None:
        self.project_path = project_path
        self.server_url = server_url.rstrip("/")
        self.project_url = (project_url or f"{self.server_url}/{project_path}").rstrip("/")
        self.job_id = job_id
        self.has_ambient_credential = has_ambient_credential
        self.credential = credential
        header = "JOB-TOKEN" if credential.is_ci_job else "PRIVATE-TOKEN"
        self.client = ApiClient(
            api_url,
            headers={header: credential.token, "Content-Type": "application/json"},
            session=session,
        )

    @classmethod
    def from_env(
        cls,
        context: RunContext,
        env: dict[str, str] | None = None,
        session: requests.Session | None = None,
    ) -> "GitLabPlatform":
        env_map = os.environ if env is None else env
        server_url = clean(env_map.get("CI_SERVER_URL")) or DEFAULT_SERVER_URL
        return cls(
            project_path=context.repository.path,
            credential=load_gitlab_credential_from_env(env_map),
            api_url=clean(env_map.get("GITLAB_API_URL")) or f"{server_url.rstrip('/')}/api/v4",
            server_url=server_url,
            project_url=clean(env_map.get("CI_PROJECT_URL")),
            job_id=clean(env_map.get("CI_JOB_ID")),
            has_ambient_credential=has_ambient_ci_credential(GITLAB_TOKEN_SOURCES, env_map),
            session=session,
        )

    @property
    def _project(self) -> str:
        return f"/projects/{_encode(self.project_path)}"

    def _entity(self, entity_type: EntityType, number: int) -> str:
        return f"{self._project}/{_ENTITY_SEGMENT[entity_type]}/{number}"

    def get_repository(self) -> Repository:
        project = self.client.get(self._project)
        namespace = project.get("namespace") or {}
        owner = str(namespace.get("full_path") or namespace.get("path") or "")
        if not owner:
            owner = self.project_path.rpartition("/")[0]
        return Repository(
            owner=owner,
            name=str(project.get("path") or self.project_path.rpartition("/")[2]),
            default_branch=str(project.get("default_branch") or "main"),
        )

    def get_issue(self, number: int) -> Issue:
        issue = self.client.get(self._entity("issue", number))
        return Issue(
            title=str(issue.get("title") or ""),
            description=str(issue.get("description") or ""),
            author=author_from(issue.get("author")),
            created_at=str(issue.get("created_at") or ""),
            state="open" if issue.get("state") == "opened" else "closed",
            assignees=tuple(
                str(assignee.get("username"))
                for assignee in as_list(issue.get("assignees"))
                if assignee.get("username")
            ),
        )

    def get_merge_request(self, number: int) -> MergeRequest:
        mr = self.client.get(self._entity("merge_request", number))
        assignee = mr.get("assignee") if isinstance(mr.get("assignee"), dict) else {}
        return MergeRequest(
            title=str(mr.get("title") or ""),
            description=str(mr.get("description") or ""),
            author=author_from(mr.get("author")),
            source_branch=str(mr.get("source_branch") or ""),
            target_branch=str(mr.get("target_branch") or ""),
            head_sha=str(mr.get("sha") or ""),
            created_at=str(mr.get("created_at") or ""),
            additions=0,
            deletions=0,
            state=normalize_state(mr.get("state")),
            assignee=assignee.get("username") or None,
        )

    def list_comments(self, entity_type: EntityType, number: int) -> list[Comment]:
        notes = self.client.paginate(
            f"{self._entity(entity_type, number)}/notes", params={"sort": "asc"}
        )
        return [_comment_from_note(note) for note in notes if not note.get("system")]

    def list_commits(self, number: int) -> list[Commit]:
        commits = self.client.paginate(f"{self._entity('merge_request', number)}/commits")
        return [
            Commit(
                sha=str(commit.get("id") or ""),
                message=str(commit.get("message") or ""),
                author=CommitAuthor(
                    name=str(commit.get("author_name") or "unknown"),
                    email=str(commit.get("author_email") or ""),
                ),
            )
            for commit in commits
        ]

    def list_file_changes(self, number: int) -> list[FileChange]:
        diffs = self.client.paginate(f"{self._entity('merge_request', number)}/diffs")
        changes = []
        for diff in diffs:
            additions, deletions = count_diff_lines(diff.get("diff"))
            changes.append(
                FileChange(
                    path=str(diff.get("new_path") or diff.get("old_path") or ""),
                    additions=additions,
                    deletions=deletions,
                    change_type=_change_type(diff),
                )
            )
        return changes

    def list_reviews(self, number: int) -> list[Review]:
        # No review objects are surfaced through the GitLab API used here.
        return []

    def get_member_access_level(self, username: str) -> int:
        member = self.client.get(f"{self._project}/members/all/{_encode(username)}")
        return int(member.get("access_level") or 0)

    def get_user_profile(self, username: str) -> UserProfile:
        user = self.client.get(f"/users/{_encode(username)}")
        if isinstance(user, list):
            # /users?username= style responses
            user = user[0] if user else {}
        return UserProfile(
            username=str(user.get("username") or username),
            display_name=user.get("name"),
            is_bot=user.get("bot") is True,
        )

    def branch_exists(self, branch: str) -> bool:
        try:
            self.client.get(f"{self._project}/repository/branches/{_encode(branch)}")
        except UpstreamAPIError as exc:
            if exc.not_found:
                return False
            raise
        return True

    def create_branch(self, branch: str, ref: str) -> None:
        self.client.request(
            "POST",
            f"{self._project}/repository/branches",
            json={"branch": branch, "ref": ref},
        )

    def delete_branch(self, branch: str) -> None:
        self.client.request("DELETE", f"{self._project}/repository/branches/{_encode(branch)}")

    def compare_branches(self, base: str, head: str) -> BranchComparison:
        comparison = self.client.get(
            f"{self._project}/repository/compare", params={"from": base, "to": head}
        )
        return BranchComparison(
            commits=len(as_list(comparison.get("commits"))),
            files=len(as_list(comparison.get("diffs"))),
        )

    def create_comment(self, entity_type: EntityType, number: int, body: str) -> str:
        note = self.client.request(
            "POST", f"{self._entity(entity_type, number)}/notes", json={"body": body}
        )
        return str(note.get("id", ""))

    def get_comment(self, entity_type: EntityType, number: int, comment_id: str) -> Comment:
        note = self.client.get(f"{self._entity(entity_type, number)}/notes/{comment_id}")
        return _comment_from_note(note)

    def update_comment(
        self, entity_type: EntityType, number: int, comment_id: str, body: str
    ) -> None:
        self.client.request(
            "PUT",
            f"{self._entity(entity_type, number)}/notes/{comment_id}",
            json={"body": body},
        )

    def branch_url(self, branch: str) -> str:
        return f"{self.project_url}/-/tree/{_encode(branch)}"

    def merge_request_link(self, context: RunContext, base_branch: str, branch: str) -> str:
        entity = "Issue" if context.is_issue else "Merge Request"
        query = urlencode(
            {
                "merge_request[source_branch]": branch,
                "merge_request[target_branch]": base_branch,
                "merge_request[title]": f"{entity} #{context.entity_number}: Changes from Claude",
                "merge_request[description]": (
                    f"This MR addresses {entity.lower()} #{context.entity_number}"
                ),
            }
        )
        return f"[Create a MR]({self.project_url}/-/merge_requests/new?{query})"

    def job_url(self) -> str:
        return f"{self.project_url}/-/jobs/{self.job_id or ''}"
