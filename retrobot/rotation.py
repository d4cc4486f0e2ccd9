"""Driver rotation for Retrobot.

Drivers are picked in roster order, one per retro, wrapping around at the end of the
roster. The previous driver is read back from the last retro board, so rotation survives
across runs without any local state.

When the previous driver is no longer in the roster (someone left the team), the stored
`offset` (their roster index at the time) is used as the anchor instead, so the next
person in line is whoever now occupies the position after the departed driver.
"""

from __future__ import annotations

from collections.abc import Sequence


def next_driver(handles: Sequence[str], last_driver: str, last_offset: int = 0) -> str:
    """Return the handle that drives the retro after `last_driver`.

    `last_driver` is `""` when there is no previous retro, in which case the first handle
    is returned.
    """
    if not handles:
        raise ValueError("requires at least one handle")
    if not last_driver:
        return handles[0]

    try:
        pos = list(handles).index(last_driver)
    except ValueError:
        pos = last_offset - 1

    return handles[(pos + 1) % len(handles)]
