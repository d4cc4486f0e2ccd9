"""Retrobot orchestrator: close stale retros, then notify, skip, or schedule the next one.

This module is the decision procedure run once per invocation (typically a daily cron job
scheduled before the retro's time of day). It owns no state: everything it knows about past
retros is read back from the tracker through `find_latest_retro(...)`, and everything it
decides is written back as project boards, issues and board descriptions.

Lifecycle of a run
1. Validate
  - `RetroConfig.validate()` rejects an empty roster, a weekday outside 0-6, a cadence below
    one week, a negative retention window or an unknown time zone with `ConfigError`, before
    any external call.
  - With `dry_run`, the tracker and notifier are wrapped in `DryRunTracker` /
    `DryRunNotifier`: reads still happen, mutations only log.

2. Close (retention)
  - When `close_after_days > 0`, find the latest retro dated before `now - close_after_days`.
    If its board is still open, close it, and close its tracking issue if it has one.
  - Closing an issue first fetches it. An issue that is already closed is only logged. A
    failed fetch is logged and the run continues; every other tracker failure is fatal.

3. Decide
  With `today` and `tomorrow` being midnight of the current and next day in `now`'s zone,
  and `last` the latest retro for the team (any state, any date):
  - `today < last.date < tomorrow`: the retro is today, send the notification (NOTIFIED).
  - `last.date >= tomorrow`: a retro is already scheduled, nothing to do (SKIPPED).
  - no `last`, or `last.date <= today`: schedule the next retro (CREATED).

4. Create
  - Date: `next_date(last.date or now, day_of_week, cadence_weeks)`.
  - Driver: `next_driver(handles, last.driver, last.offset)` (first handle without history);
    the driver after that is computed for previews only (`next-driver` in templates).
  - The board is created with the title template rendered against the view and the encoded
    `RetroInfo` as its description; `offset` is always the roster index of the new driver.
  - Columns come from the config or `DEFAULT_COLUMN_NAMES`; cards are rendered and added
    last line first. Empty cards and cards for unknown columns are logged and skipped.
  - With `create_tracking_issue`, an issue is opened and assigned to the driver, then the
    board description is rewritten with the issue number attached.

Time
`run(now=...)` captures the current time once and threads it through every date decision.
A naive `now` is taken as local time. With `timezone` set (an IANA name such as
`Europe/Berlin`), `now` is converted to that zone first, so midnight boundaries and the
weekly step follow its DST rules and a retro keeps its wall-clock time across a change.
Without it the local zone is a fixed UTC offset taken at run time.

Concurrency
None. The design relies on runs being serialized (at most one a day); two overlapping runs
can both decide to create a board.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .defaults import (
    DEFAULT_CADENCE_WEEKS,
    DEFAULT_COLUMN_NAMES,
    DEFAULT_DAY_OF_WEEK,
    DEFAULT_ISSUE_TEMPLATE,
    DEFAULT_NOTIFICATION_TEMPLATE,
    DEFAULT_TITLE_TEMPLATE,
)
from .locator import find_latest_retro
from .notify import DryRunNotifier, Notifier, SlackMessage
from .render import create_view, notification_view, parse_cards, render
from .retro_info import Retro, RetroInfo, encode
from .rotation import next_driver
from .schedule import new_date, next_date
from .tracker import CreatedIssue, CreatedRecord, DryRunTracker, TrackerClient, TrackerError


class ConfigError(ValueError):
    """The run configuration is invalid."""


@dataclass(frozen=True)
class RetroConfig:
    handles: list[str]
    tracker: TrackerClient
    notifier: Notifier
    team_name: str = ""
    cadence_weeks: int = DEFAULT_CADENCE_WEEKS
    day_of_week: int = DEFAULT_DAY_OF_WEEK
    title_template: str = DEFAULT_TITLE_TEMPLATE
    notification_url: str = ""
    notification_template: str = DEFAULT_NOTIFICATION_TEMPLATE
    close_after_days: int = 0
    create_tracking_issue: bool = False
    issue_template: str = DEFAULT_ISSUE_TEMPLATE
    columns: list[str] = field(default_factory=list)
    cards: str = ""
    dry_run: bool = False
    timezone: str = ""

    @property
    def column_names(self) -> list[str]:
        return list(self.columns) if self.columns else list(DEFAULT_COLUMN_NAMES)

    def validate(self) -> None:
        if not self.handles:
            raise ConfigError("requires at least one handle")
        if not 0 <= self.day_of_week <= 6:
            raise ConfigError(f"day of week must be between 0 and 6, got {self.day_of_week}")
        if self.cadence_weeks < 1:
            raise ConfigError(f"retro cadence must be at least 1 week, got {self.cadence_weeks}")
        if self.close_after_days < 0:
            raise ConfigError(f"close-after-days must not be negative, got {self.close_after_days}")
        if self.timezone:
            try:
                ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise ConfigError(f"unknown time zone: {self.timezone!r}") from exc


class RunOutcome(str, Enum):
    CREATED = "created"
    NOTIFIED = "notified"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class RunResult:
    outcome: RunOutcome
    retro: RetroInfo | None = None
    board: CreatedRecord | None = None
    issue: CreatedIssue | None = None
    closed: Retro | None = None


class RetroOrchestrator:
    def __init__(self, cfg: RetroConfig) -> None:
        self.cfg = cfg
        self.tracker: TrackerClient = DryRunTracker(cfg.tracker) if cfg.dry_run else cfg.tracker
        self.notifier: Notifier = DryRunNotifier() if cfg.dry_run else cfg.notifier

    def run(self, *, now: datetime | None = None) -> RunResult:
        """Entry point for the CLI."""
        self.cfg.validate()
        if now is None:
            now = datetime.now().astimezone()
        elif now.tzinfo is None:
            now = now.astimezone()
        if self.cfg.timezone:
            now = now.astimezone(ZoneInfo(self.cfg.timezone))

        if self.cfg.dry_run:
            print("[retrobot] dry-run is set, will not make any changes", file=sys.stderr)

        closed = self._close_old_retro(now=now)

        today = new_date(now, 0, at_midnight=True)
        tomorrow = new_date(now, 1, at_midnight=True)
        last_retro = find_latest_retro(self.tracker, self.cfg.team_name)

        if last_retro is not None:
            print(
                f"[retrobot] last retro occurred on {last_retro.date.isoformat()} with {last_retro.driver} driving",
                file=sys.stderr,
            )

            if last_retro.date > today:
                if last_retro.date < tomorrow:
                    print("[retrobot] retro happening today, sending notification", file=sys.stderr)
                    self._send_notification(last_retro, now=now)
                    return RunResult(outcome=RunOutcome.NOTIFIED, retro=last_retro, closed=closed)

                print("[retrobot] next retro is already scheduled, nothing to do", file=sys.stderr)
                return RunResult(outcome=RunOutcome.SKIPPED, retro=last_retro, closed=closed)

        return self._create_retro(last_retro, now=now, closed=closed)

    def _create_retro(self, last_retro: Retro | None, *, now: datetime, closed: Retro | None) -> RunResult:
        handles = self.cfg.handles
        last_date = last_retro.date.astimezone(now.tzinfo) if last_retro is not None else now
        last_driver = last_retro.driver if last_retro is not None else ""
        last_offset = last_retro.offset if last_retro is not None else 0

        retro_date = next_date(last_date, self.cfg.day_of_week, self.cfg.cadence_weeks, now=now)
        driver = next_driver(handles, last_driver, last_offset)
        future_driver = next_driver(handles, driver)

        print(f"[retrobot] next retro scheduled for {retro_date.isoformat()} with {driver} driving", file=sys.stderr)

        new_retro = RetroInfo(
            team=self.cfg.team_name,
            date=retro_date,
            driver=driver,
            offset=list(handles).index(driver),
            issue=None,
        )

        view = create_view(new_retro, last_retro, future_driver, tz=now.tzinfo)
        title = render(self.cfg.title_template, view)
        print(f"[retrobot] using title {title!r}", file=sys.stderr)
        view["title"] = title

        board = self.tracker.create_record(name=title, body=encode(new_retro))
        view["url"] = board.url
        column_ids = self._populate_columns(board.id)
        self._populate_cards(view, column_ids)
        print(f"[retrobot] created retro board at {board.url}", file=sys.stderr)

        issue: CreatedIssue | None = None
        if self.cfg.create_tracking_issue:
            issue = self.tracker.create_issue(title=title, body=render(self.cfg.issue_template, view))
            self.tracker.assign_issue(issue.number, handles=[driver])
            print(f"[retrobot] created tracking issue at {issue.url}", file=sys.stderr)

            new_retro = new_retro.with_issue(issue.number)
            self.tracker.update_record(board.id, body=encode(new_retro))
            print(f"[retrobot] updated description of project board {board.id}", file=sys.stderr)

        return RunResult(outcome=RunOutcome.CREATED, retro=new_retro, board=board, issue=issue, closed=closed)

    def _populate_columns(self, board_id: int) -> dict[str, int]:
        column_ids: dict[str, int] = {}
        for name in self.cfg.column_names:
            print(f"[retrobot] creating column {name!r}", file=sys.stderr)
            column_ids[name] = self.tracker.create_column(board_id, name=name)
        return column_ids

    def _populate_cards(self, view: dict, column_ids: dict[str, int]) -> None:
        if not self.cfg.cards:
            print("[retrobot] no cards to render", file=sys.stderr)
            return

        for card in parse_cards(self.cfg.cards):
            text = render(card.template, view)
            if not text:
                print(f"[retrobot] card not rendered, text is empty: {card.template!r}", file=sys.stderr)
                continue

            column_id = column_ids.get(card.column)
            if column_id is None:
                print(f"[retrobot] card not rendered, no matching column: {card.column!r}", file=sys.stderr)
                continue

            print(f"[retrobot] adding card {text!r} to column {card.column!r}", file=sys.stderr)
            self.tracker.create_card(column_id, text=text)

    def _close_old_retro(self, *, now: datetime) -> Retro | None:
        if self.cfg.close_after_days <= 0:
            return None

        old_retro = find_latest_retro(self.tracker, self.cfg.team_name, new_date(now, -self.cfg.close_after_days))
        if old_retro is None or not old_retro.is_open:
            return None

        self.tracker.update_record(old_retro.project_id, state="closed")
        print(f"[retrobot] closed old project board from {old_retro.date.isoformat()}", file=sys.stderr)

        if old_retro.issue:
            self._close_issue(old_retro.issue)

        return old_retro

    def _close_issue(self, number: int) -> None:
        try:
            issue = self.tracker.get_issue(number)
        except TrackerError as exc:
            print(f"[retrobot] failed to get issue {number}: {exc}", file=sys.stderr)
            return

        if not issue.is_open:
            print(f"[retrobot] issue {issue.url} is already closed", file=sys.stderr)
            return

        self.tracker.update_issue(number, state="closed")
        print(f"[retrobot] closed issue {issue.url}", file=sys.stderr)

    def _send_notification(self, retro: Retro, *, now: datetime) -> None:
        if not self.cfg.notification_url:
            print("[retrobot] no notification url configured, skipping notification", file=sys.stderr)
            return

        text = render(self.cfg.notification_template, notification_view(retro, tz=now.tzinfo))
        self.notifier.post(self.cfg.notification_url, SlackMessage(text=text))
