"""Module entrypoint for ``python -m retrobot``.

A thin wrapper around :func:`retrobot.cli.main`: all argument parsing and orchestration
happen in the CLI module, and ``SystemExit(main())`` makes the CLI return code the process
exit status. Equivalent to the ``retrobot`` console script.

Exit status
-----------
- ``0``: the run completed (a board was created, a notification sent, or nothing was due).
- ``1``: a configuration, format, template, tracker or notification error; a single
  ``[retrobot] error: ...`` line is printed on stderr.
- ``2``: invalid command-line arguments (argparse).
"""

from __future__ import annotations

from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
