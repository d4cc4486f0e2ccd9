from __future__ import annotations

from collections.abc import Iterator
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any

import pytest

from retrobot.notify import SlackMessage
from retrobot.orchestrator import ConfigError, RetroConfig, RetroOrchestrator, RunOutcome
from retrobot.retro_info import RetroInfo, decode, encode
from retrobot.tracker import CreatedIssue, CreatedRecord, GitHubTracker, IssueState, TrackerError, TrackerRecord

UTC = timezone.utc
NOW = datetime(2020, 9, 15, 8, tzinfo=UTC)  # a Tuesday


class FakeTracker:
    def __init__(self, records: list[TrackerRecord] | None = None, *, page_size: int = 2) -> None:
        self.records = list(records or [])
        self.page_size = page_size
        self.calls: list[tuple[Any, ...]] = []
        self.columns: dict[int, str] = {}
        self.cards: list[tuple[int, str]] = []
        self.issues: dict[int, str] = {}
        self.fail_get_issue = False

    def list_records(self) -> Iterator[list[TrackerRecord]]:
        self.calls.append(("list_records",))
        snapshot = list(self.records)
        for i in range(0, len(snapshot), self.page_size):
            yield snapshot[i : i + self.page_size]

    def create_record(self, *, name: str, body: str) -> CreatedRecord:
        project_id = 1000 + len(self.records)
        url = f"https://github.com/my-org/my-repo/projects/{project_id}"
        self.records.append(TrackerRecord(id=project_id, name=name, body=body, state="open", url=url))
        self.calls.append(("create_record", name, body))
        return CreatedRecord(id=project_id, url=url)

    def update_record(self, record_id: int, *, body: str | None = None, state: str | None = None) -> None:
        self.calls.append(("update_record", record_id, body, state))
        for i, record in enumerate(self.records):
            if record.id == record_id:
                self.records[i] = replace(
                    record,
                    body=record.body if body is None else body,
                    state=record.state if state is None else state,
                )

    def create_column(self, record_id: int, *, name: str) -> int:
        column_id = 100 + len(self.columns)
        self.columns[column_id] = name
        self.calls.append(("create_column", record_id, name))
        return column_id

    def create_card(self, column_id: int, *, text: str) -> None:
        self.cards.append((column_id, text))
        self.calls.append(("create_card", column_id, text))

    def create_issue(self, *, title: str, body: str) -> CreatedIssue:
        number = 1347
        self.issues[number] = "open"
        self.calls.append(("create_issue", title, body))
        return CreatedIssue(number=number, url=f"https://github.com/my-org/my-repo/issues/{number}")

    def get_issue(self, number: int) -> IssueState:
        self.calls.append(("get_issue", number))
        if self.fail_get_issue:
            raise TrackerError(f"GET issue {number} failed with status 404")
        return IssueState(state=self.issues[number], url=f"https://github.com/my-org/my-repo/issues/{number}")

    def update_issue(self, number: int, *, state: str) -> None:
        self.calls.append(("update_issue", number, state))
        self.issues[number] = state

    def assign_issue(self, number: int, *, handles: list[str]) -> None:
        self.calls.append(("assign_issue", number, list(handles)))

    def mutations(self) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] not in ("list_records", "get_issue")]

    def by_name(self, name: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]


class FakeNotifier:
    def __init__(self) -> None:
        self.posts: list[tuple[str, SlackMessage]] = []

    def post(self, url: str, message: SlackMessage) -> int:
        self.posts.append((url, message))
        return 200


def _board(
    project_id: int,
    date: datetime,
    driver: str,
    *,
    offset: int = 0,
    issue: int | None = None,
    state: str = "open",
    team: str = "Core",
) -> TrackerRecord:
    info = RetroInfo(team=team, date=date, driver=driver, offset=offset, issue=issue)
    return TrackerRecord(
        id=project_id,
        name=f"{team} Retro {project_id}",
        body=encode(info),
        state=state,
        url=f"https://github.com/my-org/my-repo/projects/{project_id}",
    )


def _cfg(tracker: FakeTracker, notifier: FakeNotifier | None = None, **kwargs: Any) -> RetroConfig:
    base: dict[str, Any] = {
        "handles": ["alice", "bob"],
        "tracker": tracker,
        "notifier": notifier or FakeNotifier(),
        "team_name": "Core",
        "cadence_weeks": 2,
        "day_of_week": 3,
    }
    base.update(kwargs)
    return RetroConfig(**base)


def _created_info(tracker: FakeTracker) -> RetroInfo:
    (call,) = tracker.by_name("create_record")
    return decode(call[2])


def test_first_retro_is_created_with_first_driver_and_default_columns() -> None:
    tracker = FakeTracker([TrackerRecord(id=1, name="Roadmap", body="", state="open", url="")])

    result = RetroOrchestrator(_cfg(tracker)).run(now=NOW)

    assert result.outcome is RunOutcome.CREATED
    info = _created_info(tracker)
    assert info == RetroInfo(team="Core", date=datetime(2020, 9, 30, 8, tzinfo=UTC), driver="alice", offset=0)
    assert result.retro == info
    assert tracker.by_name("create_record")[0][1] == "Core Retro on 09/30/2020"
    assert list(tracker.columns.values()) == ["Went well", "Went meh", "Could have gone better", "Action items!"]
    assert result.board == CreatedRecord(id=1001, url="https://github.com/my-org/my-repo/projects/1001")
    assert result.issue is None
    assert tracker.by_name("create_issue") == []


def test_driver_rotates_after_past_retro() -> None:
    tracker = FakeTracker([_board(1, NOW - timedelta(days=1), "alice", offset=0)])

    result = RetroOrchestrator(_cfg(tracker)).run(now=NOW)

    assert result.outcome is RunOutcome.CREATED
    info = _created_info(tracker)
    assert info.driver == "bob"
    assert info.offset == 1
    assert info.date == datetime(2020, 9, 30, 8, tzinfo=UTC)


def test_latest_retro_drives_rotation_when_several_exist() -> None:
    tracker = FakeTracker(
        [
            _board(1, NOW - timedelta(days=15), "bob", offset=1),
            _board(2, NOW - timedelta(days=1), "alice", offset=0),
            _board(3, NOW - timedelta(days=29), "alice", offset=0),
        ]
    )

    RetroOrchestrator(_cfg(tracker)).run(now=NOW)

    assert _created_info(tracker).driver == "bob"


def test_retros_of_other_teams_are_ignored() -> None:
    tracker = FakeTracker([_board(1, NOW + timedelta(days=3), "bob", offset=1, team="Other")])

    result = RetroOrchestrator(_cfg(tracker)).run(now=NOW)

    assert result.outcome is RunOutcome.CREATED
    assert _created_info(tracker).driver == "alice"


def test_future_retro_means_nothing_to_do() -> None:
    tracker = FakeTracker([_board(1, NOW + timedelta(days=1), "alice")])
    notifier = FakeNotifier()

    result = RetroOrchestrator(_cfg(tracker, notifier, notification_url="https://hooks.slack.com/x")).run(now=NOW)

    assert result.outcome is RunOutcome.SKIPPED
    assert result.retro is not None and result.retro.project_id == 1
    assert tracker.mutations() == []
    assert notifier.posts == []


def test_same_day_retro_sends_notification() -> None:
    tracker = FakeTracker([_board(7, NOW + timedelta(hours=4), "alice")])
    notifier = FakeNotifier()

    result = RetroOrchestrator(_cfg(tracker, notifier, notification_url="https://hooks.slack.com/x")).run(now=NOW)

    assert result.outcome is RunOutcome.NOTIFIED
    assert tracker.mutations() == []
    assert len(notifier.posts) == 1
    url, message = notifier.posts[0]
    assert url == "https://hooks.slack.com/x"
    assert message.text == (
        "<!here|here> A retro is scheduled for today! Visit "
        "<https://github.com/my-org/my-repo/projects/7|the retro board> to add your cards. "
        "CC retro driver @alice."
    )
    assert message.username == "Retrobot"


def test_same_day_retro_uses_custom_notification_template() -> None:
    tracker = FakeTracker([_board(7, NOW + timedelta(hours=4), "alice")])
    notifier = FakeNotifier()
    cfg = _cfg(
        tracker,
        notifier,
        notification_url="https://hooks.slack.com/x",
        notification_template="{{ team }} retro today ({{ date }}), driven by {{ driver }}: {{{ url }}}",
    )

    RetroOrchestrator(cfg).run(now=NOW)

    assert notifier.posts[0][1].text == (
        "Core retro today (09/15/2020), driven by alice: https://github.com/my-org/my-repo/projects/7"
    )


def test_same_day_retro_without_notification_url_only_logs(capsys: pytest.CaptureFixture[str]) -> None:
    tracker = FakeTracker([_board(7, NOW + timedelta(hours=4), "alice")])
    notifier = FakeNotifier()

    result = RetroOrchestrator(_cfg(tracker, notifier)).run(now=NOW)

    assert result.outcome is RunOutcome.NOTIFIED
    assert notifier.posts == []
    assert "no notification url configured" in capsys.readouterr().err


def test_retro_exactly_at_midnight_today_schedules_next_one() -> None:
    tracker = FakeTracker([_board(1, datetime(2020, 9, 15, tzinfo=UTC), "alice")])

    result = RetroOrchestrator(_cfg(tracker)).run(now=NOW)

    assert result.outcome is RunOutcome.CREATED


def test_retention_closes_old_board_and_issue_before_deciding() -> None:
    tracker = FakeTracker(
        [
            _board(1, NOW - timedelta(days=8), "alice", issue=42),
            _board(2, NOW + timedelta(days=3), "bob", offset=1),
        ]
    )
    tracker.issues[42] = "open"

    result = RetroOrchestrator(_cfg(tracker, close_after_days=7)).run(now=NOW)

    assert result.outcome is RunOutcome.SKIPPED
    assert result.closed is not None and result.closed.project_id == 1
    assert tracker.mutations() == [("update_record", 1, None, "closed"), ("update_issue", 42, "closed")]


def test_retention_closes_prior_retro_and_still_schedules_next() -> None:
    tracker = FakeTracker([_board(1, NOW - timedelta(days=10), "bob", offset=1, issue=42)])
    tracker.issues[42] = "open"

    result = RetroOrchestrator(_cfg(tracker, close_after_days=7)).run(now=NOW)

    assert result.outcome is RunOutcome.CREATED
    assert tracker.by_name("update_record")[0] == ("update_record", 1, None, "closed")
    assert tracker.by_name("update_issue") == [("update_issue", 42, "closed")]
    info = _created_info(tracker)
    assert info.driver == "alice"
    assert info.date == datetime(2020, 9, 23, 8, tzinfo=UTC)


def test_retention_ignores_recent_boards() -> None:
    tracker = FakeTracker([_board(1, NOW - timedelta(days=3), "alice")])

    RetroOrchestrator(_cfg(tracker, close_after_days=7)).run(now=NOW)

    assert ("update_record", 1, None, "closed") not in tracker.calls


def test_retention_is_disabled_by_default() -> None:
    tracker = FakeTracker([_board(1, NOW - timedelta(days=30), "alice")])

    RetroOrchestrator(_cfg(tracker)).run(now=NOW)

    assert tracker.records[0].state == "open"


def test_retention_skips_already_closed_board() -> None:
    tracker = FakeTracker([_board(1, NOW - timedelta(days=8), "alice", issue=42, state="closed")])
    tracker.issues[42] = "open"

    RetroOrchestrator(_cfg(tracker, close_after_days=7)).run(now=NOW)

    assert ("update_record", 1, None, "closed") not in tracker.calls
    assert tracker.by_name("get_issue") == []
    assert tracker.issues[42] == "open"


def test_retention_leaves_already_closed_issue_alone(capsys: pytest.CaptureFixture[str]) -> None:
    tracker = FakeTracker([_board(1, NOW - timedelta(days=8), "alice", issue=42)])
    tracker.issues[42] = "closed"

    RetroOrchestrator(_cfg(tracker, close_after_days=7)).run(now=NOW)

    assert tracker.by_name("update_issue") == []
    assert "issue https://github.com/my-org/my-repo/issues/42 is already closed" in capsys.readouterr().err


def test_retention_continues_when_issue_cannot_be_fetched(capsys: pytest.CaptureFixture[str]) -> None:
    tracker = FakeTracker([_board(1, NOW - timedelta(days=8), "alice", issue=42)])
    tracker.fail_get_issue = True

    result = RetroOrchestrator(_cfg(tracker, close_after_days=7)).run(now=NOW)

    assert result.outcome is RunOutcome.CREATED
    assert tracker.by_name("update_issue") == []
    assert "failed to get issue 42" in capsys.readouterr().err


def test_retention_continues_when_issue_payload_is_not_an_object(capsys: pytest.CaptureFixture[str]) -> None:
    resp = SimpleNamespace(status_code=200, json=lambda: None, url="https://api.github.com/x", text="null", links={})
    session = SimpleNamespace(headers={}, request=lambda *args, **kwargs: resp)
    github = GitHubTracker(repo="my-org/my-repo", token="secret", session=session)  # type: ignore[arg-type]

    class IssueFromGitHub(FakeTracker):
        def get_issue(self, number: int) -> IssueState:
            self.calls.append(("get_issue", number))
            return github.get_issue(number)

    tracker = IssueFromGitHub([_board(1, NOW - timedelta(days=8), "alice", issue=5)])

    result = RetroOrchestrator(_cfg(tracker, close_after_days=7)).run(now=NOW)

    assert result.outcome is RunOutcome.CREATED
    assert tracker.by_name("update_issue") == []
    assert "failed to get issue 5" in capsys.readouterr().err


def test_tracking_issue_is_created_assigned_and_linked() -> None:
    tracker = FakeTracker()
    cfg = _cfg(tracker, create_tracking_issue=True, issue_template="Board: {{{ url }}} driver {{ driver }}")

    result = RetroOrchestrator(cfg).run(now=NOW)

    assert result.issue == CreatedIssue(number=1347, url="https://github.com/my-org/my-repo/issues/1347")
    assert tracker.by_name("create_issue") == [
        ("create_issue", "Core Retro on 09/30/2020", "Board: https://github.com/my-org/my-repo/projects/1000 driver alice")
    ]
    assert tracker.by_name("assign_issue") == [("assign_issue", 1347, ["alice"])]
    (update,) = tracker.by_name("update_record")
    assert update[1] == 1000
    assert decode(update[2]).issue == 1347
    assert result.retro is not None and result.retro.issue == 1347


def test_cards_are_created_last_line_first() -> None:
    tracker = FakeTracker()
    cards = "First => Went well\nSecond => Went well\nDriver: @{{ driver }} => Action items!"

    RetroOrchestrator(_cfg(tracker, cards=cards)).run(now=NOW)

    assert tracker.cards == [(103, "Driver: @alice"), (100, "Second"), (100, "First")]


def test_cards_can_reference_last_retro() -> None:
    tracker = FakeTracker([_board(5, NOW - timedelta(days=13), "alice")])
    cards = "{{# last-retro }}Last: {{{ last-retro.url }}} by {{ last-retro.driver }}{{/ last-retro }} => Went meh"

    RetroOrchestrator(_cfg(tracker, cards=cards)).run(now=NOW)

    assert tracker.cards == [(101, "Last: https://github.com/my-org/my-repo/projects/5 by alice")]


def test_empty_and_unmatched_cards_are_skipped(capsys: pytest.CaptureFixture[str]) -> None:
    tracker = FakeTracker()
    cards = "{{# last-retro }}x{{/ last-retro }} => Went well\nfoo => Nope\nno separator"

    RetroOrchestrator(_cfg(tracker, cards=cards)).run(now=NOW)

    assert tracker.cards == []
    err = capsys.readouterr().err
    assert "text is empty" in err
    assert "no matching column: 'Nope'" in err
    assert "no matching column: ''" in err


def test_custom_columns_replace_defaults() -> None:
    tracker = FakeTracker()

    RetroOrchestrator(_cfg(tracker, columns=["Keep", "Drop"], cards="x => Drop")).run(now=NOW)

    assert list(tracker.columns.values()) == ["Keep", "Drop"]
    assert tracker.cards == [(101, "x")]


def test_driver_missing_from_roster_falls_back_to_offset() -> None:
    tracker = FakeTracker([_board(1, NOW - timedelta(days=1), "frank", offset=1)])

    RetroOrchestrator(_cfg(tracker, handles=["alice", "bob", "carol"])).run(now=NOW)

    info = _created_info(tracker)
    assert info.driver == "bob"
    assert info.offset == 1


def test_dry_run_makes_no_changes(capsys: pytest.CaptureFixture[str]) -> None:
    tracker = FakeTracker([_board(1, NOW - timedelta(days=10), "alice", issue=42)])
    tracker.issues[42] = "open"
    cfg = _cfg(tracker, dry_run=True, close_after_days=7, create_tracking_issue=True, cards="x => Went well")

    result = RetroOrchestrator(cfg).run(now=NOW)

    assert result.outcome is RunOutcome.CREATED
    assert result.board == CreatedRecord(id=0, url="")
    assert result.retro is not None and result.retro.driver == "bob"
    assert tracker.mutations() == []
    assert tracker.records[0].state == "open"
    err = capsys.readouterr().err
    assert "dry-run is set" in err
    assert "dry-run: would create project board 'Core Retro on 09/23/2020'" in err
    assert "dry-run: would set issue 42 to closed" in err


def test_dry_run_does_not_notify() -> None:
    tracker = FakeTracker([_board(7, NOW + timedelta(hours=4), "alice")])
    notifier = FakeNotifier()
    cfg = _cfg(tracker, notifier, notification_url="https://hooks.slack.com/x", dry_run=True)

    result = RetroOrchestrator(cfg).run(now=NOW)

    assert result.outcome is RunOutcome.NOTIFIED
    assert notifier.posts == []


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"handles": []}, "at least one handle"),
        ({"day_of_week": 7}, "between 0 and 6"),
        ({"cadence_weeks": 0}, "at least 1 week"),
        ({"close_after_days": -1}, "must not be negative"),
    ],
)
def test_invalid_config_fails_before_any_tracker_call(kwargs: dict[str, Any], message: str) -> None:
    tracker = FakeTracker()

    with pytest.raises(ConfigError, match=message):
        RetroOrchestrator(_cfg(tracker, **kwargs)).run(now=NOW)

    assert tracker.calls == []


def test_tracker_failure_propagates() -> None:
    class BrokenTracker(FakeTracker):
        def create_record(self, *, name: str, body: str) -> CreatedRecord:
            raise TrackerError("POST projects failed with status 403")

    with pytest.raises(TrackerError, match="403"):
        RetroOrchestrator(_cfg(BrokenTracker())).run(now=NOW)


def test_time_zone_keeps_wall_clock_time_across_dst_change() -> None:
    # 10:00 EDT on Tuesday 2020-10-27; clocks go back on 2020-11-01.
    tracker = FakeTracker([_board(1, datetime(2020, 10, 27, 14, tzinfo=UTC), "alice")])
    cfg = _cfg(tracker, cadence_weeks=1, day_of_week=2, timezone="America/New_York")

    result = RetroOrchestrator(cfg).run(now=datetime(2020, 10, 28, 12, tzinfo=UTC))

    assert result.outcome is RunOutcome.CREATED
    assert _created_info(tracker).date == datetime(2020, 11, 3, 15, tzinfo=UTC)


def test_unknown_time_zone_is_a_config_error() -> None:
    tracker = FakeTracker()

    with pytest.raises(ConfigError, match="unknown time zone"):
        RetroOrchestrator(_cfg(tracker, timezone="Mars/Olympus_Mons")).run(now=NOW)

    assert tracker.calls == []
