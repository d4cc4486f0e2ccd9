"""Locate the most recent retro board for a team.

`find_latest_retro(...)` scans every project board in the repository (open and closed),
decodes the ones tagged by Retrobot and returns the latest one that matches:

- Team: a non-empty `team_name` matches boards with exactly that team (no case folding);
  an empty `team_name` matches only boards without a team.
- `before`: when given, only boards dated strictly before it are considered. The retention
  pass uses this to find boards old enough to close.
- Latest: the greatest `date` wins. On equal dates the board seen last in retrieval order
  wins.

Boards are consumed page by page from `TrackerClient.list_records()`. A tagged board whose
description fails to decode is reported as a warning and skipped.
"""

from __future__ import annotations

import sys
from datetime import datetime

from .retro_info import FormatError, Retro, is_tagged
from .tracker import TrackerClient


def find_latest_retro(tracker: TrackerClient, team_name: str, before: datetime | None = None) -> Retro | None:
    print("[retrobot] locating the last retro...", file=sys.stderr)

    retros: list[Retro] = []
    for page in tracker.list_records():
        print(f"[retrobot] loading page containing {len(page)} projects", file=sys.stderr)
        for record in page:
            if not is_tagged(record.body):
                continue
            try:
                retros.append(Retro.from_record(record))
            except FormatError as exc:
                print(f"[retrobot] warning: skipping project {record.id} ({record.name!r}): {exc}", file=sys.stderr)

    matches = [
        retro
        for retro in retros
        if (retro.team == team_name if team_name else not retro.team)
        and (before is None or retro.date < before)
    ]
    print(f"[retrobot] found {len(matches)} retro projects for this repo", file=sys.stderr)

    if not matches:
        return None

    latest = matches[0]
    for retro in matches[1:]:
        if retro.date >= latest.date:
            latest = retro
    return latest
