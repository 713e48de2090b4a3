"""Concurrent fetch of the run's entity data into the canonical model."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Any, Callable, Literal

from claude_action.errors import RequiredResourceError
from claude_action.models.canonical import ProviderData
from claude_action.platforms.platform import Platform
from claude_action.shared.logging import get_logger

logger = get_logger(__name__)

FetchStatus = Literal["ok", "degraded", "fatal"]

MAX_WORKERS = 6


@dataclass(frozen=True)
class FetchOutcome:
    name: str
    status: FetchStatus
    value: Any = None
    error: Exception | None = None


@dataclass(frozen=True)
class _FetchRequest:
    name: str
    call: Callable[[], Any]
    required: bool
    default: Callable[[], Any] = list


def _settle(request: _FetchRequest, future: Future) -> FetchOutcome:
    # Settled, not raised: every outcome is recorded before any of them is acted on.
    try:
        return FetchOutcome(name=request.name, status="ok", value=future.result())
    except Exception as exc:
        if request.required:
            return FetchOutcome(name=request.name, status="fatal", error=exc)
        logger.warning("Optional fetch '%s' failed, using empty default: %s", request.name, exc)
        return FetchOutcome(
            name=request.name, status="degraded", value=request.default(), error=exc
        )


def run_fetches(fetches: list[_FetchRequest]) -> dict[str, FetchOutcome]:
    """Issue every request concurrently and settle all of them before returning."""

    with ThreadPoolExecutor(max_workers=MAX_WORKERS) as pool:
        futures = [(request, pool.submit(request.call)) for request in fetches]
        outcomes = {request.name: _settle(request, future) for request, future in futures}
    return outcomes


def fetch_provider_data(
    platform: Platform,
    repository_path: str,
    entity_number: int,
    is_issue: bool,
) -> ProviderData:
    entity_type = "issue" if is_issue else "merge_request"
    fetches = [
        _FetchRequest("repository", platform.get_repository, required=True),
        _FetchRequest(
            entity_type,
            (lambda: platform.get_issue(entity_number))
            if is_issue
            else (lambda: platform.get_merge_request(entity_number)),
            required=True,
        ),
        _FetchRequest(
            "comments", lambda: platform.list_comments(entity_type, entity_number), required=False
        ),
    ]
    if not is_issue:
        fetches += [
            _FetchRequest("commits", lambda: platform.list_commits(entity_number), required=False),
            _FetchRequest(
                "files", lambda: platform.list_file_changes(entity_number), required=False
            ),
            _FetchRequest("reviews", lambda: platform.list_reviews(entity_number), required=False),
        ]

    outcomes = run_fetches(fetches)
    for outcome in outcomes.values():
        if outcome.status == "fatal" and outcome.error is not None:
            raise RequiredResourceError(f"{repository_path} {outcome.name}", outcome.error)

    degraded = sorted(name for name, outcome in outcomes.items() if outcome.status == "degraded")
    if degraded:
        logger.warning("Fetched %s #%s with degraded fields: %s", entity_type, entity_number, degraded)

    repository = outcomes["repository"].value
    comments = outcomes["comments"].value
    if is_issue:
        return ProviderData(
            repository=repository,
            issue=replace(outcomes["issue"].value, comments=comments),
        )

    files = outcomes["files"].value
    merge_request = replace(
        outcomes["merge_request"].value,
        comments=comments,
        commits=outcomes["commits"].value,
        files=files,
        reviews=outcomes["reviews"].value,
    )
    if files:
        merge_request = replace(
            merge_request,
            additions=sum(change.additions for change in files),
            deletions=sum(change.deletions for change in files),
        )
    return ProviderData(repository=repository, merge_request=merge_request)
