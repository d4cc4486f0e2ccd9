"""Issue tracker access for Retrobot.

This module provides the tracker protocol the orchestrator programs against and two
implementations with the same public surface:

- `GitHubTracker`: the real implementation, talking to the GitHub REST API for one
  repository through a `requests.Session`.
- `DryRunTracker`: a wrapper used by `--dry-run` that forwards reads to another tracker and
  turns every mutation into a log line, so the decision logic runs against real data
  without changing anything.

Data model
- `TrackerRecord`: one repository project board (`id`, `name`, `body`, `state`, `url`).
  `body` is the free-text description Retrobot uses as its store; GitHub returns `null`
  for boards without one, which is read as `""`.
- `CreatedRecord`, `CreatedIssue`, `IssueState`: the parts of tracker responses the
  orchestrator needs.

TrackerClient API
Each method maps to a single REST call so callers can reason about side effects.

- `list_records() -> Iterator[list[TrackerRecord]]`
  Lazily yields pages of repository projects (open and closed). The next page is only
  requested when the caller asks for it; pagination follows the `Link: rel="next"` header.
- `create_record(name, body) -> CreatedRecord`
- `update_record(record_id, body=..., state=...)`: only the given fields are sent.
- `create_column(record_id, name) -> int` (column id)
- `create_card(column_id, text)`: the tracker inserts new cards at the top of the column.
- `create_issue(title, body) -> CreatedIssue`: issues are labelled `retrobot`.
- `get_issue(number) -> IssueState`
- `update_issue(number, state=...)`
- `assign_issue(number, handles)`

Failure semantics
Any transport error, HTTP status >= 400 or unexpected payload raises `TrackerError`. The
client performs no retries; a failed call fails the run unless the caller catches it.
Timeouts are per request (`timeout`, default 30 seconds).

Dry-run placeholders
`DryRunTracker` returns id `0` and an empty URL for anything the tracker would have
assigned. Reads still hit the wrapped tracker, so dry-run needs valid credentials unless
the wrapped tracker is itself a fake.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Protocol

import requests

from .defaults import ISSUE_LABEL

DEFAULT_API_URL = "https://api.github.com"

# Repository projects (classic) still need the inertia preview media type.
PROJECTS_ACCEPT = "application/vnd.github.inertia-preview+json"


class TrackerError(RuntimeError):
    """A tracker call failed."""


@dataclass(frozen=True)
class TrackerRecord:
    id: int
    name: str
    body: str
    state: str
    url: str


@dataclass(frozen=True)
class CreatedRecord:
    id: int
    url: str


@dataclass(frozen=True)
class CreatedIssue:
    number: int
    url: str


@dataclass(frozen=True)
class IssueState:
    state: str
    url: str

    @property
    def is_open(self) -> bool:
        return self.state == "open"


class TrackerClient(Protocol):
    def list_records(self) -> Iterator[list[TrackerRecord]]: ...

    def create_record(self, *, name: str, body: str) -> CreatedRecord: ...

    def update_record(self, record_id: int, *, body: str | None = None, state: str | None = None) -> None: ...

    def create_column(self, record_id: int, *, name: str) -> int: ...

    def create_card(self, column_id: int, *, text: str) -> None: ...

    def create_issue(self, *, title: str, body: str) -> CreatedIssue: ...

    def get_issue(self, number: int) -> IssueState: ...

    def update_issue(self, number: int, *, state: str) -> None: ...

    def assign_issue(self, number: int, *, handles: list[str]) -> None: ...


class GitHubTracker:
    def __init__(
        self,
        *,
        repo: str,
        token: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.repo = repo
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": PROJECTS_ACCEPT})
        if token:
            self.session.headers.update({"Authorization": f"token {token}"})

    def list_records(self) -> Iterator[list[TrackerRecord]]:
        url: str | None = f"{self.api_url}/repos/{self.repo}/projects"
        params: dict[str, Any] | None = {"state": "all", "per_page": 100}

        while url:
            resp = self._request("GET", url, params=params)
            data = self._json(resp)
            if not isinstance(data, list):
                raise TrackerError(f"Unexpected projects response: {data!r}")
            try:
                page = [_record_from_json(p) for p in data]
            except (KeyError, TypeError, ValueError) as exc:
                raise TrackerError(f"Malformed project in response: {exc}") from exc
            yield page

            # The next link already carries the query string.
            url = resp.links.get("next", {}).get("url")
            params = None

    def create_record(self, *, name: str, body: str) -> CreatedRecord:
        resp = self._request("POST", f"/repos/{self.repo}/projects", json={"name": name, "body": body})
        data = self._object(resp)
        return CreatedRecord(id=_int_field(data, "id"), url=str(data.get("html_url") or ""))

    def update_record(self, record_id: int, *, body: str | None = None, state: str | None = None) -> None:
        payload: dict[str, Any] = {}
        if body is not None:
            payload["body"] = body
        if state is not None:
            payload["state"] = state
        if not payload:
            return
        self._request("PATCH", f"/projects/{record_id}", json=payload)

    def create_column(self, record_id: int, *, name: str) -> int:
        resp = self._request("POST", f"/projects/{record_id}/columns", json={"name": name})
        return _int_field(self._object(resp), "id")

    def create_card(self, column_id: int, *, text: str) -> None:
        self._request("POST", f"/projects/columns/{column_id}/cards", json={"note": text})

    def create_issue(self, *, title: str, body: str) -> CreatedIssue:
        resp = self._request(
            "POST",
            f"/repos/{self.repo}/issues",
            json={"title": title, "body": body, "labels": [ISSUE_LABEL]},
        )
        data = self._object(resp)
        return CreatedIssue(number=_int_field(data, "number"), url=str(data.get("html_url") or ""))

    def get_issue(self, number: int) -> IssueState:
        resp = self._request("GET", f"/repos/{self.repo}/issues/{number}")
        data = self._object(resp)
        return IssueState(state=str(data.get("state") or ""), url=str(data.get("html_url") or ""))

    def update_issue(self, number: int, *, state: str) -> None:
        self._request("PATCH", f"/repos/{self.repo}/issues/{number}", json={"state": state})

    def assign_issue(self, number: int, *, handles: list[str]) -> None:
        self._request("POST", f"/repos/{self.repo}/issues/{number}/assignees", json={"assignees": list(handles)})

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> requests.Response:
        url = path if path.startswith(("http://", "https://")) else f"{self.api_url}{path}"
        try:
            resp = self.session.request(method, url, json=json, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TrackerError(f"{method} {url} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise TrackerError(f"{method} {url} failed with status {resp.status_code}: {resp.text}")
        return resp

    @staticmethod
    def _json(resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise TrackerError(f"Invalid JSON from {resp.url}: {exc}") from exc

    @classmethod
    def _object(cls, resp: requests.Response) -> dict[str, Any]:
        data = cls._json(resp)
        if not isinstance(data, dict):
            raise TrackerError(f"Unexpected response from {resp.url}: {data!r}")
        return data


class DryRunTracker:
    """Forwards reads to `inner` and only logs mutations."""

    def __init__(self, inner: TrackerClient) -> None:
        self.inner = inner

    def list_records(self) -> Iterator[list[TrackerRecord]]:
        return self.inner.list_records()

    def get_issue(self, number: int) -> IssueState:
        return self.inner.get_issue(number)

    def create_record(self, *, name: str, body: str) -> CreatedRecord:
        _log(f"dry-run: would create project board {name!r}")
        return CreatedRecord(id=0, url="")

    def update_record(self, record_id: int, *, body: str | None = None, state: str | None = None) -> None:
        fields = [k for k, v in (("body", body), ("state", state)) if v is not None]
        _log(f"dry-run: would update project board {record_id} ({', '.join(fields) or 'no fields'})")

    def create_column(self, record_id: int, *, name: str) -> int:
        _log(f"dry-run: would create column {name!r}")
        return 0

    def create_card(self, column_id: int, *, text: str) -> None:
        _log(f"dry-run: would create card {text!r}")

    def create_issue(self, *, title: str, body: str) -> CreatedIssue:
        _log(f"dry-run: would create issue {title!r}")
        return CreatedIssue(number=0, url="")

    def update_issue(self, number: int, *, state: str) -> None:
        _log(f"dry-run: would set issue {number} to {state}")

    def assign_issue(self, number: int, *, handles: list[str]) -> None:
        _log(f"dry-run: would assign issue {number} to {', '.join(handles)}")


def _record_from_json(d: dict[str, Any]) -> TrackerRecord:
    return TrackerRecord(
        id=int(d["id"]),
        name=str(d.get("name") or ""),
        body=str(d.get("body") or ""),
        state=str(d.get("state") or ""),
        url=str(d.get("html_url") or ""),
    )


def _int_field(data: dict[str, Any], key: str) -> int:
    try:
        return int(data[key])
    except (KeyError, TypeError, ValueError) as exc:
        raise TrackerError(f"Response is missing a valid {key!r}: {data!r}") from exc


def _log(msg: str) -> None:
    print(f"[retrobot] {msg}", file=sys.stderr)
