"""User database accessors: single users, passwd and shadow tables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from baseline import shell_util
from baseline._types import Fact
from baseline.errors import AccessorError

if TYPE_CHECKING:
    from baseline.transport import Session


USER_PROPERTIES = frozenset({"uid", "gid", "home", "shell", "groups"})
TABLE_PROPERTIES = frozenset({"users", "uids", "count"})

PASSWD_FIELDS = ("user", "password", "uid", "gid", "gecos", "home", "shell")
SHADOW_FIELDS = (
    "user",
    "password",
    "last_change",
    "min_days",
    "max_days",
    "warn_days",
    "inactive_days",
    "expiry_date",
)


def _query_user(session: Session, name: str) -> Fact:
    """Look up one account through NSS (``getent passwd``)."""
    quoted = shell_util.quote(name)
    result = session.run(f"getent passwd {quoted} && id -Gn {quoted}")
    if shell_util.command_missing(result):
        raise AccessorError("user", name, "getent not available on target")
    if not result.ok:
        return Fact.absent()

    lines = result.stdout.splitlines()
    fields = lines[0].split(":") if lines else []
    if len(fields) < 7:
        raise AccessorError("user", name, f"unexpected getent output: {result.stdout!r}")
    return Fact(
        exists=True,
        value={
            "uid": int(fields[2]),
            "gid": int(fields[3]),
            "home": fields[5],
            "shell": fields[6],
            "groups": lines[1].split() if len(lines) > 1 else [],
        },
    )


def parse_table(content: str, field_names: tuple[str, ...]) -> list[dict[str, str]]:
    """Parse a colon-separated account table into records."""
    rows = []
    for line in content.splitlines():
        if not line.strip() or line.startswith("#"):
            continue
        values = line.split(":")
        values += [""] * (len(field_names) - len(values))
        rows.append(dict(zip(field_names, values)))
    return rows


def filter_rows(rows: list[dict[str, str]], selector: str, kind: str) -> list[dict[str, str]]:
    """Filter rows with a ``field=value`` / ``field!=value`` selector (``*`` = all).

    Example:
    -------
        >>> rows = [{"user": "root", "uid": "0"}, {"user": "bin", "uid": "1"}]
        >>> [r["user"] for r in filter_rows(rows, "uid=0", "passwd")]
        ['root']

    """
    if selector.strip() in ("", "*"):
        return rows
    negate = "!=" in selector
    field, _, value = selector.partition("!=" if negate else "=")
    field = field.strip()
    if not rows or field not in rows[0]:
        if rows:
            raise AccessorError(kind, selector, f"unknown field {field!r}")
        return rows
    if negate:
        return [r for r in rows if r[field] != value]
    return [r for r in rows if r[field] == value]


def _table_fact(session: Session, kind: str, path: str, fields: tuple[str, ...], selector: str) -> Fact:
    result = shell_util.read_file(session, path)
    if not result.ok:
        if shell_util.permission_denied(result):
            raise AccessorError(kind, selector, f"permission denied reading {path}")
        raise AccessorError(kind, selector, result.stderr.strip() or f"cannot read {path}")

    rows = filter_rows(parse_table(result.stdout, fields), selector, kind)
    return Fact(
        exists=True,
        value={
            "users": [r["user"] for r in rows],
            "uids": [int(r["uid"]) for r in rows if r.get("uid", "").isdigit()],
            "count": len(rows),
        },
    )


def _query_passwd(session: Session, selector: str) -> Fact:
    """Query /etc/passwd, e.g. selector ``uid=0`` lists every UID 0 account."""
    return _table_fact(session, "passwd", "/etc/passwd", PASSWD_FIELDS, selector)


def _query_shadow(session: Session, selector: str) -> Fact:
    """Query /etc/shadow, e.g. selector ``password=`` lists empty passwords."""
    return _table_fact(session, "shadow", "/etc/shadow", SHADOW_FIELDS, selector)
