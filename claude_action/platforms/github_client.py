"""GitHub REST adapter for the platform capability interface."""

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
    ReviewComment,
    RunContext,
    UserProfile,
)
from claude_action.platforms.credentials import (
    GITHUB_TOKEN_SOURCES,
    Credential,
    has_ambient_ci_credential,
    load_github_credential_from_env,
)
from claude_action.platforms.http import ApiClient
from claude_action.platforms.normalize import as_list, author_from, normalize_state
from claude_action.platforms.platform import (
    ROLE_DEVELOPER,
    ROLE_MAINTAINER,
    ROLE_NO_ACCESS,
    ROLE_OWNER,
    ROLE_REPORTER,
)
from claude_action.shared.settings import clean

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_SERVER_URL = "https://github.com"

# Repository role names onto the shared ordinal scale.
_ROLE_LEVELS = {
    "admin": ROLE_OWNER,
    "maintain": ROLE_MAINTAINER,
    "write": ROLE_DEVELOPER,
    "triage": ROLE_REPORTER,
    "read": ROLE_REPORTER,
    "none": ROLE_NO_ACCESS,
}

_CHANGE_TYPES = {
    "added": "added",
    "removed": "removed",
    "renamed": "renamed",
    "copied": "added",
}


def _comment_from_payload(payload: dict[str, Any]) -> Comment:
    return Comment(
        id=str(payload.get("id", "")),
        body=str(payload.get("body") or ""),
        author=author_from(payload.get("user"), login_key="login"),
        created_at=str(payload.get("created_at") or ""),
    )


def _pull_state(pull: dict[str, Any]) -> str:
    if pull.get("merged") or pull.get("merged_at"):
        return "merged"
    return normalize_state(pull.get("state"))


class GitHubPlatform:
    name = "github"
    ci_job_label = "🐙 [View GitHub Actions run]"

    def __init__(
        self,
        repository_path: str,
        credential: Credential,
        api_url: str = DEFAULT_API_URL,
        server_url: str = DEFAULT_SERVER_URL,
        run_id: str | None = None,
        has_ambient_credential: bool = False,
        session: requests.Session | None = None,
    ) -> None:
        self.repository_path = repository_path
        self.server_url = server_url.rstrip("/")
        self.run_id = run_id
        self.has_ambient_credential = has_ambient_credential
        self.credential = credential
        self.client = ApiClient(
            api_url,
            headers={
                "Authorization": f"Bearer {credential.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            session=session,
        )

    @classmethod
    def from_env(
        cls,
        context: RunContext,
        env: dict[str, str] | None = None,
        session: requests.Session | None = None,
    ) -> "GitHubPlatform":
        env_map = os.environ if env is None else env
        # GITHUB_TOKEN only counts as the run-scoped token inside an Actions runner.
        in_actions = clean(env_map.get("GITHUB_ACTIONS")) == "true"
        return cls(
            repository_path=context.repository.path,
            credential=load_github_credential_from_env(env_map),
            api_url=clean(env_map.get("GITHUB_API_URL")) or DEFAULT_API_URL,
            server_url=clean(env_map.get("GITHUB_SERVER_URL")) or DEFAULT_SERVER_URL,
            run_id=clean(env_map.get("GITHUB_RUN_ID")),
            has_ambient_credential=in_actions
            and has_ambient_ci_credential(GITHUB_TOKEN_SOURCES, env_map),
            session=session,
        )

    @property
    def _repo(self) -> str:
        return f"/repos/{self.repository_path}"

    def get_repository(self) -> Repository:
        repo = self.client.get(self._repo)
        owner = repo.get("owner") if isinstance(repo.get("owner"), dict) else {}
        return Repository(
            owner=str(owner.get("login") or self.repository_path.partition("/")[0]),
            name=str(repo.get("name") or self.repository_path.partition("/")[2]),
            default_branch=str(repo.get("default_branch") or "main"),
        )

    def get_issue(self, number: int) -> Issue:
        issue = self.client.get(f"{self._repo}/issues/{number}")
        return Issue(
            title=str(issue.get("title") or ""),
            description=str(issue.get("body") or ""),
            author=author_from(issue.get("user"), login_key="login"),
            created_at=str(issue.get("created_at") or ""),
            state=normalize_state(issue.get("state")),
            assignees=tuple(
                str(assignee.get("login"))
                for assignee in as_list(issue.get("assignees"))
                if assignee.get("login")
            ),
        )

    def get_merge_request(self, number: int) -> MergeRequest:
        pull = self.client.get(f"{self._repo}/pulls/{number}")
        head = pull.get("head") if isinstance(pull.get("head"), dict) else {}
        base = pull.get("base") if isinstance(pull.get("base"), dict) else {}
        assignee = pull.get("assignee") if isinstance(pull.get("assignee"), dict) else {}
        return MergeRequest(
            title=str(pull.get("title") or ""),
            description=str(pull.get("body") or ""),
            author=author_from(pull.get("user"), login_key="login"),
            source_branch=str(head.get("ref") or ""),
            target_branch=str(base.get("ref") or ""),
            head_sha=str(head.get("sha") or ""),
            created_at=str(pull.get("created_at") or ""),
            additions=int(pull.get("additions") or 0),
            deletions=int(pull.get("deletions") or 0),
            state=_pull_state(pull),
            assignee=assignee.get("login") or None,
        )

    def list_comments(self, entity_type: EntityType, number: int) -> list[Comment]:
        # Pull request conversation comments live on the issues endpoint.
        comments = self.client.paginate(f"{self._repo}/issues/{number}/comments")
        return [_comment_from_payload(comment) for comment in comments]

    def list_commits(self, number: int) -> list[Commit]:
        commits = self.client.paginate(f"{self._repo}/pulls/{number}/commits")
        result = []
        for item in commits:
            commit = item.get("commit") if isinstance(item.get("commit"), dict) else {}
            author = commit.get("author") if isinstance(commit.get("author"), dict) else {}
            result.append(
                Commit(
                    sha=str(item.get("sha") or ""),
                    message=str(commit.get("message") or ""),
                    author=CommitAuthor(
                        name=str(author.get("name") or "unknown"),
                        email=str(author.get("email") or ""),
                    ),
                )
            )
        return result

    def list_file_changes(self, number: int) -> list[FileChange]:
        files = self.client.paginate(f"{self._repo}/pulls/{number}/files")
        return [
            FileChange(
                path=str(item.get("filename") or ""),
                additions=int(item.get("additions") or 0),
                deletions=int(item.get("deletions") or 0),
                change_type=_CHANGE_TYPES.get(str(item.get("status") or ""), "modified"),
            )
            for item in files
        ]

    def list_reviews(self, number: int) -> list[Review]:
        reviews = self.client.paginate(f"{self._repo}/pulls/{number}/reviews")
        inline = self.client.paginate(f"{self._repo}/pulls/{number}/comments")

        by_review: dict[str, list[ReviewComment]] = {}
        for item in inline:
            review_id = str(item.get("pull_request_review_id") or "")
            line = item.get("line") or item.get("original_line")
            by_review.setdefault(review_id, []).append(
                ReviewComment(
                    id=str(item.get("id", "")),
                    body=str(item.get("body") or ""),
                    author=author_from(item.get("user"), login_key="login"),
                    created_at=str(item.get("created_at") or ""),
                    path=str(item.get("path") or ""),
                    line=int(line) if line else None,
                )
            )

        return [
            Review(
                id=str(review.get("id", "")),
                author=author_from(review.get("user"), login_key="login"),
                body=str(review.get("body") or ""),
                state=str(review.get("state") or ""),
                submitted_at=str(review.get("submitted_at") or ""),
                comments=by_review.get(str(review.get("id", "")), []),
            )
            for review in reviews
        ]

    def get_member_access_level(self, username: str) -> int:
        payload = self.client.get(
            f"{self._repo}/collaborators/{quote(username, safe='')}/permission"
        )
        role = str(payload.get("role_name") or payload.get("permission") or "none")
        return _ROLE_LEVELS.get(role, ROLE_NO_ACCESS)

    def get_user_profile(self, username: str) -> UserProfile:
        user = self.client.get(f"/users/{quote(username, safe='')}")
        return UserProfile(
            username=str(user.get("login") or username),
            display_name=user.get("name"),
            is_bot=user.get("type") == "Bot",
        )

    def branch_exists(self, branch: str) -> bool:
        try:
            self.client.get(f"{self._repo}/git/ref/heads/{quote(branch)}")
        except UpstreamAPIError as exc:
            if exc.not_found:
                return False
            raise
        return True

    def create_branch(self, branch: str, ref: str) -> None:
        base = self.client.get(f"{self._repo}/git/ref/heads/{quote(ref)}")
        target = base.get("object") if isinstance(base.get("object"), dict) else {}
        self.client.request(
            "POST",
            f"{self._repo}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": str(target.get("sha") or "")},
        )

    def delete_branch(self, branch: str) -> None:
        self.client.request("DELETE", f"{self._repo}/git/refs/heads/{quote(branch)}")

    def compare_branches(self, base: str, head: str) -> BranchComparison:
        comparison = self.client.get(f"{self._repo}/compare/{quote(base)}...{quote(head)}")
        return BranchComparison(
            commits=int(comparison.get("total_commits") or len(as_list(comparison.get("commits")))),
            files=len(as_list(comparison.get("files"))),
        )

    def create_comment(self, entity_type: EntityType, number: int, body: str) -> str:
        comment = self.client.request(
            "POST", f"{self._repo}/issues/{number}/comments", json={"body": body}
        )
        return str(comment.get("id", ""))

    def get_comment(self, entity_type: EntityType, number: int, comment_id: str) -> Comment:
        return _comment_from_payload(self.client.get(f"{self._repo}/issues/comments/{comment_id}"))

    def update_comment(
        self, entity_type: EntityType, number: int, comment_id: str, body: str
    ) -> None:
        self.client.request(
            "PATCH", f"{self._repo}/issues/comments/{comment_id}", json={"body": body}
        )

    def branch_url(self, branch: str) -> str:
        return f"{self.server_url}/{self.repository_path}/tree/{quote(branch)}"

    def merge_request_link(self, context: RunContext, base_branch: str, branch: str) -> str:
        entity = "Issue" if context.is_issue else "Pull Request"
        query = urlencode(
            {
                "quick_pull": "1",
                "title": f"{entity} #{context.entity_number}: Changes from Claude",
                "body": f"This PR addresses {entity.lower()} #{context.entity_number}",
            }
        )
        return (
            f"[Create a PR]({self.server_url}/{self.repository_path}"
            f"/compare/{quote(base_branch)}...{quote(branch)}?{query})"
        )

    def job_url(self) -> str:
        return f"{self.server_url}/{self.repository_path}/actions/runs/{self.run_id or ''}"
