"""retrobot: recurring team retrospectives on top of GitHub projects and Slack.

This package implements a once-a-day decision loop as a CLI (`retrobot.cli:main`,
runnable via `python -m retrobot`). Each run looks at the retro boards already in the
repository and decides whether to close stale ones, announce today's retro, do nothing,
or schedule the next retro with a freshly rotated driver.

What Retrobot provides
- A CLI entrypoint (`retrobot.cli:main`) that reads flags/environment and wires the
  GitHub tracker and Slack notifier into the orchestrator.
- An orchestrator (`retrobot.orchestrator.RetroOrchestrator`) that:
  - closes boards (and their tracking issues) older than the retention window,
  - sends a notification on the day of a retro,
  - creates the next board with columns, cards and an optional tracking issue.
- Pure scheduling helpers: driver rotation (`retrobot.rotation`) and date arithmetic
  (`retrobot.schedule`).
- The board description codec (`retrobot.retro_info`), the only persisted format.

Important invariants and conventions
- The tracker is the single source of truth: a retro board's description is
  `Retrobot: ` followed by JSON (`team`, `date`, `driver`, `offset`, `issue`).
- A board's `offset` is the roster index of its driver when the board was created; it keeps
  the rotation fair when that driver later leaves the roster.
- Runs are expected to be serialized, at most one a day; there is no locking.

Key exports from this module
- `__version__`: the package version string. (`__all__` is intentionally limited to this.)
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
