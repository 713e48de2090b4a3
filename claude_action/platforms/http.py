"""Thin requests wrapper that maps transport outcomes onto the error taxonomy."""

from __future__ import annotations

from typing import Any

import requests

from claude_action.errors import AuthenticationError, UpstreamAPIError, UpstreamUnavailableError

PER_PAGE = 100
MAX_PAGES = 20


class ApiClient:
    def __init__(
        self,
        base_url: str,
        headers: dict[str, str],
        session: requests.Session | None = None,
        timeout_s: float = 15,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers)
        self.session = session or requests.Session()
        self.timeout_s = timeout_s

    def request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = self.session.request(
                method=method,
                url=f"{self.base_url}{path}",
                headers=self.headers,
                json=json,
                params=params,
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise UpstreamUnavailableError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 401:
            raise AuthenticationError(response.status_code, _error_message(response))
        if response.status_code >= 400:
            raise UpstreamAPIError(response.status_code, _error_message(response))
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamAPIError(response.status_code, "invalid JSON body") from exc

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self.request("GET", path, params=params)

    def paginate(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for page in range(1, MAX_PAGES + 1):
            batch = self.get(path, params={**(params or {}), "per_page": PER_PAGE, "page": page})
            if not isinstance(batch, list):
                break
            rows.extend(row for row in batch if isinstance(row, dict))
            if len(batch) < PER_PAGE:
                break
        return rows


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or ""
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error") or payload
        return str(message)
    return str(payload)
