"""Command accessor.

Runs an arbitrary command on the target. Use for facts not covered by the
other accessors. The command is the literal selector; parameters are never
substituted into it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from baseline._types import Fact

if TYPE_CHECKING:
    from baseline.transport import Session


COMMAND_PROPERTIES = frozenset({"stdout", "stderr", "exit_status"})


def _query_command(session: Session, cmd: str) -> Fact:
    """Run a command; the fact is its stripped stdout, stderr and exit status."""
    result = session.run(cmd)
    return Fact(
        exists=True,
        value={"stdout": result.stdout.strip(), "stderr": result.stderr.strip(), "exit_status": result.exit_code},
    )
