"""retrobot.retro_info

This module defines Retrobot's only persisted format: the tagged description stored in the
free-text body of each retro project board, plus the in-memory models built from it.

Persisted shape
The board description is the ASCII marker ``"Retrobot: "`` immediately followed by a
compact JSON object:

- `team` (string): team name, `""` when the retro is not team-scoped.
- `date` (string): ISO-8601 timestamp of the scheduled retro, written in UTC with a
  trailing `Z` (e.g. `"2020-09-30T12:00:00Z"`).
- `driver` (string): handle of the driver for that cycle.
- `offset` (integer): index of `driver` in the roster when the record was written.
- `issue` (integer, optional): number of the tracking issue; omitted when none exists.

The marker is what distinguishes boards owned by Retrobot from unrelated projects in the
same repository. Boards without it are never decoded.

Decoding rules
- Text without the marker, a payload that is not a JSON object, or an unparseable `date`
  raise `FormatError`.
- Records written before `offset`/`issue` existed still decode: a missing or null
  `offset` becomes `0`, a falsy or missing `issue` becomes `None`.
- A present but non-integer `offset` (or truthy non-integer `issue`) raises `FormatError`
  rather than carrying a sentinel value into the rotation logic.
- Naive dates are interpreted as UTC.

`decode(encode(info)) == info` for every `RetroInfo` with a timezone-aware date.

In-memory models
- `RetroInfo`: the encodable record.
- `Retro`: `RetroInfo` plus the board metadata (`title`, `url`, `project_id`, `state`). It
  is rebuilt from the tracker on every lookup and never written back as a whole; only the
  description (`encode(...)`) and the board state are ever updated.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .tracker import TrackerRecord

BODY_PREFIX = "Retrobot: "


class FormatError(ValueError):
    """A description is not a valid tagged retro record."""


@dataclass(frozen=True)
class RetroInfo:
    team: str
    date: datetime
    driver: str
    offset: int = 0
    issue: int | None = None

    def with_issue(self, number: int | None) -> "RetroInfo":
        return replace(self, issue=number)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "team": self.team,
            "date": _format_date(self.date),
            "driver": self.driver,
            "offset": self.offset,
        }
        if self.issue:
            d["issue"] = self.issue
        return d


@dataclass(frozen=True)
class Retro(RetroInfo):
    title: str = ""
    url: str = ""
    project_id: int = 0
    state: str = "open"

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    @staticmethod
    def from_record(record: "TrackerRecord") -> "Retro":
        info = decode(record.body)
        return Retro(
            team=info.team,
            date=info.date,
            driver=info.driver,
            offset=info.offset,
            issue=info.issue,
            title=record.name,
            url=record.url,
            project_id=record.id,
            state=record.state,
        )


def is_tagged(text: str | None) -> bool:
    return bool(text) and text.startswith(BODY_PREFIX)


def encode(info: RetroInfo) -> str:
    return BODY_PREFIX + json.dumps(info.to_dict(), separators=(",", ":"))


def decode(text: str | None) -> RetroInfo:
    if text is None or not is_tagged(text):
        raise FormatError(f"not a valid retro body: {text!r}")

    try:
        content = json.loads(text[len(BODY_PREFIX) :])
    except json.JSONDecodeError as exc:
        raise FormatError(f"retro body is not valid JSON: {exc}") from exc
    if not isinstance(content, dict):
        raise FormatError(f"retro body must be a JSON object, got {type(content).__name__}")

    issue_raw = content.get("issue")
    return RetroInfo(
        team=str(content.get("team") or ""),
        date=_parse_date(content.get("date")),
        driver=str(content.get("driver") or ""),
        offset=_parse_int(content.get("offset"), field="offset", default=0),
        issue=(_parse_int(issue_raw, field="issue", default=0) if issue_raw else None),
    )


def _format_date(date: datetime) -> str:
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    return date.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_date(raw: object) -> datetime:
    if not isinstance(raw, str) or not raw.strip():
        raise FormatError(f"retro body has no valid date: {raw!r}")
    value = raw.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        date = datetime.fromisoformat(value)
    except ValueError as exc:
        raise FormatError(f"retro body has an invalid date: {raw!r}") from exc
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    return date


def _parse_int(raw: object, *, field: str, default: int) -> int:
    if raw is None:
        return default
    if isinstance(raw, bool):
        raise FormatError(f"retro body has a non-integer {field}: {raw!r}")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            pass
    raise FormatError(f"retro body has a non-integer {field}: {raw!r}")
