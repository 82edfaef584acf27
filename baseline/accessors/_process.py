"""Process accessor."""

from __future__ import annotations

from typing import TYPE_CHECKING

from baseline import shell_util
from baseline._types import Fact
from baseline.errors import AccessorError

if TYPE_CHECKING:
    from baseline.transport import Session


PROCESS_PROPERTIES = frozenset({"running", "count", "users", "pids"})


def _query_process(session: Session, name: str) -> Fact:
    """List processes whose command name equals ``name``."""
    result = session.run("ps -eo user=,pid=,comm=")
    if shell_util.command_missing(result):
        raise AccessorError("process", name, "ps not available on target")
    if not result.ok:
        raise AccessorError("process", name, result.stderr.strip() or f"ps exited {result.exit_code}")

    users: list[str] = []
    pids: list[int] = []
    for line in result.stdout.splitlines():
        parts = line.split(None, 2)
        if len(parts) == 3 and parts[2].strip() == name:
            users.append(parts[0])
            pids.append(int(parts[1]))

    if not pids:
        return Fact.absent()
    return Fact(
        exists=True,
        value={"running": True, "count": len(pids), "users": sorted(set(users)), "pids": pids},
    )
