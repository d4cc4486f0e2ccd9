"""Default templates and board layout used when the operator does not configure them."""

from __future__ import annotations

DEFAULT_TITLE_TEMPLATE = "{{{ team }}} Retro on {{{ date }}}"

DEFAULT_ISSUE_TEMPLATE = """Hey {{ driver }},

You are scheduled to drive the next retro on {{ date }}. The retro board has been created at {{{ url }}}. \
Please remind the team beforehand to fill out their cards.

Best Regards,

Retrobot"""

DEFAULT_NOTIFICATION_TEMPLATE = (
    "<!here|here> A retro is scheduled for today! Visit <{{{ url }}}|the retro board> to add your cards. "
    "CC retro driver @{{ driver }}."
)

DEFAULT_NOTIFICATION_EMOJI = ":rocket:"

DEFAULT_NOTIFICATION_USERNAME = "Retrobot"

DEFAULT_COLUMN_NAMES = ["Went well", "Went meh", "Could have gone better", "Action items!"]

DEFAULT_CADENCE_WEEKS = 1

# Friday
DEFAULT_DAY_OF_WEEK = 5

ISSUE_LABEL = "retrobot"
