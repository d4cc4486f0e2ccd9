"""retrobot.cli

Command-line entrypoint for Retrobot, which runs recurring team retrospectives on GitHub:
1) closes retro boards (and their tracking issues) older than the retention window,
2) sends a Slack notification on the day of a retro,
3) otherwise schedules the next retro: project board, columns, cards, rotated driver and an
   optional tracking issue.

Entry points
- `retrobot.cli:main` (console script `retrobot`)
- `python3 -m retrobot ...` (delegates to this module)

Run it once a day, before the retro's time of day, e.g. from a scheduled CI workflow:

    retrobot --repo my-org/my-repo --handles alice,bob,carol --day-of-week wed \\
        --cadence-weeks 2 --close-after-days 7 --create-tracking-issue

Flags and environment
Every option falls back to an environment variable so CI jobs can configure the tool
without long command lines:

- `--repo` (`GITHUB_REPOSITORY`): repository in `owner/name` form. Required.
- `--token` (`GITHUB_TOKEN`): API token. Required unless `--dry-run`.
- `--api-url` (`GITHUB_API_URL`): API base URL (default `https://api.github.com`).
- `--team-name` (`RETROBOT_TEAM_NAME`): scopes retros to a team; boards of other teams
  are ignored. Empty means "no team".
- `--handles` (`RETROBOT_HANDLES`): comma-separated roster of driver handles. Required.
- `--cadence-weeks` (`RETROBOT_CADENCE_WEEKS`, default 1)
- `--day-of-week` (`RETROBOT_DAY_OF_WEEK`, default 5): `0`-`6` with 0 = Sunday, or a
  weekday name/prefix such as `fri` or `Wednesday`.
- `--title-template`, `--notification-template`, `--issue-template`: mustache templates
  (defaults in `retrobot.defaults`).
- `--notification-url` (`RETROBOT_NOTIFICATION_URL`): Slack incoming webhook; without it
  no notification is sent.
- `--close-after-days` (`RETROBOT_CLOSE_AFTER_DAYS`, default 0 = never close).
- `--timezone` (`RETROBOT_TIMEZONE`): IANA zone the team schedules in, e.g.
  `America/New_York`. Defaults to the machine's local offset.
- `--create-tracking-issue`: open an issue assigned to the driver for each retro.
- `--columns`: comma-separated column names (default columns otherwise).
- `--cards`: card lines `<template> => <column>`; literal text, a file path, or `-` for
  stdin.
- `--dry-run` / `--only-log`: make every decision and log it, but change nothing.

Exit status
0 on success (including "nothing to do"). Configuration, format, template, tracker and
notification errors print one `[retrobot] error: ...` line and exit 1. Argument parsing
errors exit 2 (argparse).
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from .defaults import (
    DEFAULT_CADENCE_WEEKS,
    DEFAULT_DAY_OF_WEEK,
    DEFAULT_ISSUE_TEMPLATE,
    DEFAULT_NOTIFICATION_TEMPLATE,
    DEFAULT_TITLE_TEMPLATE,
)
from .notify import NotificationError, SlackNotifier
from .orchestrator import ConfigError, RetroConfig, RetroOrchestrator
from .render import TemplateError
from .retro_info import FormatError
from .schedule import parse_day_of_week
from .tracker import DEFAULT_API_URL, GitHubTracker, TrackerError


def _read_cards_input(arg: str) -> str:
    if not arg:
        return ""
    if arg == "-":
        return _read_text(Path("/dev/stdin"))
    if "\n" in arg:
        return arg
    p = Path(arg)
    try:
        is_file = p.is_file()
    except OSError:
        # e.g. a long single-line card spec exceeding the path length limit
        is_file = False
    if is_file:
        return _read_text(p)
    return arg


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"cannot read cards from {path}: {exc}") from exc


def _csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [s.strip() for s in value.split(",") if s.strip()]


def _day_of_week(value: str) -> int:
    try:
        return parse_day_of_week(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() == "true"


def build_parser() -> argparse.ArgumentParser:
    env = os.environ
    p = argparse.ArgumentParser(prog="retrobot", description="Schedule and run recurring team retrospectives.")
    p.add_argument(
        "--repo",
        default=env.get("GITHUB_REPOSITORY", ""),
        help="Repository in owner/name form (default: $GITHUB_REPOSITORY).",
    )
    p.add_argument(
        "--token",
        default=env.get("GITHUB_TOKEN", ""),
        help="GitHub API token (default: $GITHUB_TOKEN).",
    )
    p.add_argument(
        "--api-url",
        default=env.get("GITHUB_API_URL", DEFAULT_API_URL),
        help=f"GitHub API base URL (default: {DEFAULT_API_URL}).",
    )
    p.add_argument(
        "--team-name",
        default=env.get("RETROBOT_TEAM_NAME", ""),
        help="Team name, used when several teams share a repository.",
    )
    p.add_argument(
        "--handles",
        default=env.get("RETROBOT_HANDLES", ""),
        help="Comma-separated handles of the retro drivers, in rotation order.",
    )
    p.add_argument(
        "--cadence-weeks",
        type=int,
        default=env.get("RETROBOT_CADENCE_WEEKS", str(DEFAULT_CADENCE_WEEKS)),
        help="Weeks between retros (default: 1).",
    )
    p.add_argument(
        "--day-of-week",
        type=_day_of_week,
        default=env.get("RETROBOT_DAY_OF_WEEK", str(DEFAULT_DAY_OF_WEEK)),
        help="Day of the retro: 0-6 (0 is Sunday) or a weekday name (default: friday).",
    )
    p.add_argument(
        "--title-template",
        default=env.get("RETROBOT_TITLE_TEMPLATE") or DEFAULT_TITLE_TEMPLATE,
        help="Mustache template for the board and issue title.",
    )
    p.add_argument(
        "--notification-url",
        default=env.get("RETROBOT_NOTIFICATION_URL", ""),
        help="Slack incoming webhook URL for same-day notifications.",
    )
    p.add_argument(
        "--notification-template",
        default=env.get("RETROBOT_NOTIFICATION_TEMPLATE") or DEFAULT_NOTIFICATION_TEMPLATE,
        help="Mustache template for the notification text.",
    )
    p.add_argument(
        "--close-after-days",
        type=int,
        default=env.get("RETROBOT_CLOSE_AFTER_DAYS", "0"),
        help="Close retro boards and issues older than this many days (default: 0, never).",
    )
    p.add_argument(
        "--create-tracking-issue",
        action="store_true",
        default=_truthy(env.get("RETROBOT_CREATE_TRACKING_ISSUE")),
        help="Open a tracking issue assigned to the retro driver.",
    )
    p.add_argument(
        "--issue-template",
        default=env.get("RETROBOT_ISSUE_TEMPLATE") or DEFAULT_ISSUE_TEMPLATE,
        help="Mustache template for the tracking issue body.",
    )
    p.add_argument(
        "--columns",
        default=env.get("RETROBOT_COLUMNS", ""),
        help="Comma-separated column names (default: the standard retro columns).",
    )
    p.add_argument(
        "--cards",
        default=env.get("RETROBOT_CARDS", ""),
        help="Cards as '<template> => <column>' lines. Either a filepath or literal text; '-' reads stdin.",
    )
    p.add_argument(
        "--timezone",
        default=env.get("RETROBOT_TIMEZONE", ""),
        help="IANA time zone for day boundaries and retro times (default: local offset).",
    )
    p.add_argument(
        "--dry-run",
        "--only-log",
        dest="dry_run",
        action="store_true",
        default=_truthy(env.get("RETROBOT_DRY_RUN")),
        help="Log what would happen without changing anything.",
    )
    return p


def main(argv: list[str] | None = None) -> int:
    raw_argv = list(sys.argv[1:] if argv is None else argv)
    args = build_parser().parse_args(raw_argv)

    print("[retrobot] starting retro creator", file=sys.stderr)

    try:
        repo = str(args.repo).strip()
        if repo.count("/") != 1 or not all(repo.split("/")):
            raise ConfigError(f"repository must be in the form owner/name, got {repo!r}")
        if not args.token and not args.dry_run:
            raise ConfigError("a GitHub token is required (--token or $GITHUB_TOKEN)")

        cfg = RetroConfig(
            handles=_csv(args.handles),
            tracker=GitHubTracker(repo=repo, token=args.token, api_url=args.api_url),
            notifier=SlackNotifier(),
            team_name=str(args.team_name).strip(),
            cadence_weeks=int(args.cadence_weeks),
            day_of_week=int(args.day_of_week),
            title_template=args.title_template,
            notification_url=str(args.notification_url).strip(),
            notification_template=args.notification_template,
            close_after_days=int(args.close_after_days),
            create_tracking_issue=bool(args.create_tracking_issue),
            issue_template=args.issue_template,
            columns=_csv(args.columns),
            cards=_read_cards_input(args.cards),
            dry_run=bool(args.dry_run),
            timezone=str(args.timezone).strip(),
        )
        print("[retrobot] arguments parsed, starting creation", file=sys.stderr)

        result = RetroOrchestrator(cfg).run()
    except (ConfigError, FormatError, TemplateError, TrackerError, NotificationError) as exc:
        print(f"[retrobot] error: {exc}", file=sys.stderr)
        return 1

    print(f"[retrobot] done: {result.outcome.value}", file=sys.stderr)
    return 0
