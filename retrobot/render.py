"""Template rendering for Retrobot (titles, issue bodies, notifications, cards).

All human-facing text is produced from operator-authored mustache templates rendered with
`chevron`. Templates may use:

- `{{ key }}`: HTML-escaped substitution (handles, team names).
- `{{{ key }}}`: raw substitution; URLs must use this form or `&`/`=` in query strings get
  escaped.
- `{{# key }}...{{/ key }}`: a section rendered only when `key` is present and truthy
  (e.g. `{{# last-retro }}Last time: {{{ last-retro.url }}}{{/ last-retro }}`).

Views
`create_view(...)` builds the view used for the board title, cards and tracking issue:

- `date`: readable date of the new retro (`MM/DD/YYYY`)
- `driver`, `team`, `next-driver` (the driver after this one, for previews)
- `last-retro` (only when a previous retro exists): `{title, date, driver, url}`

The orchestrator adds `title` after rendering it and `url` once the board exists, so the
issue template can link to the board.

`notification_view(...)` describes the retro being announced today: `title, url, date,
driver, team`.

Cards
The cards option is one card per line, `<template> => <column name>`:

    Driver: @{{ driver }} => Action items!
    {{# last-retro }}Last retro: {{{ last-retro.url }}}{{/ last-retro }} => Action items!

`parse_cards(...)` returns the lines in reverse order. The tracker inserts each new card at
the top of its column, so creating the last line first leaves the column reading in input
order. Lines that render to empty text, or name a column that does not exist, are skipped
by the orchestrator rather than treated as errors.

Malformed templates raise `TemplateError`; templates are configuration, so this is fatal.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any

import chevron
from chevron.tokenizer import ChevronError

from .retro_info import Retro, RetroInfo
from .schedule import to_readable_date

CARD_SEPARATOR = "=>"


class TemplateError(ValueError):
    """A mustache template could not be parsed."""


@dataclass(frozen=True)
class CardSpec:
    template: str
    column: str


def render(template: str, view: Mapping[str, Any]) -> str:
    try:
        return chevron.render(template, dict(view))
    except ChevronError as exc:
        raise TemplateError(f"Invalid template {template!r}: {exc}") from exc


def _readable(date: datetime, tz: tzinfo | None) -> str:
    if tz is not None:
        date = date.astimezone(tz)
    return to_readable_date(date)


def create_view(
    info: RetroInfo,
    last_retro: Retro | None,
    future_driver: str,
    *,
    tz: tzinfo | None = None,
) -> dict[str, Any]:
    view: dict[str, Any] = {
        "date": _readable(info.date, tz),
        "driver": info.driver,
        "team": info.team,
        "next-driver": future_driver,
    }

    if last_retro is not None:
        view["last-retro"] = {
            "title": last_retro.title,
            "date": _readable(last_retro.date, tz),
            "driver": last_retro.driver,
            "url": last_retro.url,
        }

    return view


def notification_view(retro: Retro, *, tz: tzinfo | None = None) -> dict[str, Any]:
    return {
        "title": retro.title,
        "url": retro.url,
        "date": _readable(retro.date, tz),
        "driver": retro.driver,
        "team": retro.team,
    }


def parse_cards(cards: str) -> list[CardSpec]:
    """Parse the cards option into specs, last line first."""
    specs: list[CardSpec] = []
    for line in (cards or "").splitlines():
        line = line.strip()
        if not line:
            continue
        template, _, column = line.partition(CARD_SEPARATOR)
        specs.append(CardSpec(template=template.strip(), column=column.strip()))
    specs.reverse()
    return specs
