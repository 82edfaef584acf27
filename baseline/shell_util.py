"""Shell command utilities for fact gathering on the target.

Provides safe, consistent helpers for the shell operations shared by the
accessors. All functions use proper quoting to prevent shell injection.

Example::

    from baseline import shell_util

    result = shell_util.grep_config_key(session, ["/etc/login.defs"], "PASS_MAX_DAYS")
    if result.ok:
        print(shell_util.parse_config_value(result.stdout, "PASS_MAX_DAYS"))

"""

from __future__ import annotations

import re
import shlex
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from baseline._types import Result
    from baseline.transport import Session


# ── Quoting utilities ─────────────────────────────────────────────────────


def quote(value: str) -> str:
    r"""Quote a value for safe shell interpolation.

    Example:
    -------
        >>> quote("hello world")
        "'hello world'"

    """
    return shlex.quote(str(value))


# ── Result classification ─────────────────────────────────────────────────


def command_missing(result: Result) -> bool:
    """Return True if the shell could not find the command (exit 126/127)."""
    return result.exit_code in (126, 127)


def permission_denied(result: Result) -> bool:
    """Return True if the command failed because of file permissions."""
    return "permission denied" in result.stderr.lower()


def no_such_file(result: Result) -> bool:
    """Return True if the command failed because the path does not exist."""
    return "no such file" in result.stderr.lower()


# ── File operations ───────────────────────────────────────────────────────


def path_exists(session: Session, path: str) -> bool:
    """Check if any filesystem entry exists at ``path``."""
    return session.run(f"test -e {quote(path)}").ok


def read_file(session: Session, path: str) -> Result:
    """Read file contents. Stderr is kept so callers can classify failures."""
    return session.run(f"cat {quote(path)}")


def get_file_stat(session: Session, path: str) -> Result:
    """Get type, mode, owner, group, size, uid and gid of a path.

    Returns:
        Result with stdout format: "type|mode|owner|group|size|uid|gid".

    """
    return session.run(f"stat -c '%F|%a|%U|%G|%s|%u|%g' {quote(path)}")


# ── Config file lookups ───────────────────────────────────────────────────


def grep_config_key(
    session: Session,
    paths: list[str],
    key: str,
    *,
    first: bool = False,
    ignore_case: bool = False,
) -> Result:
    """Search for a config key across one or more files.

    Matches lines starting with the key (optional leading whitespace) followed
    by whitespace or ``=``. Missing files are ignored.

    Args:
        session: Active session to the target.
        paths: Files (or shell globs) to search, in precedence order.
        key: Config key to search for.
        first: Return the first match instead of the last one.
        ignore_case: Match the key case-insensitively (sshd semantics).

    Returns:
        Result with the single matching line in stdout (empty if none).

    """
    flags = "-hE" + ("i" if ignore_case else "")
    pattern = quote(f"^[[:space:]]*{re.escape(key)}([[:space:]]|=)")
    targets = " ".join(p if any(ch in p for ch in "*?[") else quote(p) for p in paths)
    pick = "head -1" if first else "tail -1"
    return session.run(f"grep {flags} {pattern} {targets} 2>/dev/null | {pick}")


def parse_config_value(line: str, key: str) -> str:
    """Parse a config value from a ``key=value`` or ``key value`` line.

    Example:
    -------
        >>> parse_config_value("PermitRootLogin no", "PermitRootLogin")
        'no'
        >>> parse_config_value("MaxAuthTries=4", "MaxAuthTries")
        '4'
        >>> parse_config_value('Banner="/etc/issue"', "Banner")
        '/etc/issue'

    """
    stripped = line.strip()
    if stripped.lower().startswith(key.lower()):
        after_key = stripped[len(key) :]
    else:
        parts = stripped.split(None, 1)
        after_key = parts[1] if len(parts) > 1 else ""
    return after_key.lstrip("= \t").strip().strip('"').strip("'")
