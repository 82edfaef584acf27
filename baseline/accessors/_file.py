"""File-related accessors: metadata, content, and JSON documents."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from baseline import shell_util
from baseline._types import Fact
from baseline.errors import AccessorError

if TYPE_CHECKING:
    from baseline.transport import Session


FILE_PROPERTIES = frozenset(
    {
        "type",
        "mode",
        "owner",
        "group",
        "size",
        "uid",
        "gid",
        "readable_by_group",
        "readable_by_others",
        "writable_by_group",
        "writable_by_others",
        "executable",
    }
)

_TYPE_NAMES = {
    "regular file": "file",
    "regular empty file": "file",
    "directory": "directory",
    "symbolic link": "symlink",
    "socket": "socket",
    "fifo": "pipe",
    "character special file": "character_device",
    "block special file": "block_device",
}


def _query_file(session: Session, path: str) -> Fact:
    """Stat a path.

    Value is a record with ``type``, ``mode`` (zero-padded octal string such
    as ``"0644"``), ``owner``, ``group``, ``size``, ``uid``, ``gid`` and the
    derived permission booleans (``writable_by_others``...). A missing path
    is an absent fact; a permission problem is an accessor error.
    """
    result = shell_util.get_file_stat(session, path)
    if not result.ok:
        if shell_util.no_such_file(result):
            return Fact.absent()
        if shell_util.command_missing(result):
            raise AccessorError("file", path, "stat not available on target")
        raise AccessorError("file", path, result.stderr.strip() or f"stat exited {result.exit_code}")

    line = result.stdout.strip().splitlines()[0] if result.stdout.strip() else ""
    parts = line.split("|")
    if len(parts) != 7:
        raise AccessorError("file", path, f"unexpected stat output: {line!r}")
    ftype, mode, owner, group, size, uid, gid = parts
    bits = int(mode, 8)
    return Fact(
        exists=True,
        value={
            "type": _TYPE_NAMES.get(ftype, ftype.replace(" ", "_")),
            "mode": mode.zfill(4),
            "owner": owner,
            "group": group,
            "size": int(size),
            "uid": int(uid),
            "gid": int(gid),
            "readable_by_group": bool(bits & 0o040),
            "readable_by_others": bool(bits & 0o004),
            "writable_by_group": bool(bits & 0o020),
            "writable_by_others": bool(bits & 0o002),
            "executable": bool(bits & 0o111),
        },
    )


def _read(session: Session, kind: str, path: str) -> str | None:
    result = shell_util.read_file(session, path)
    if result.ok:
        return result.stdout
    if shell_util.no_such_file(result):
        return None
    if shell_util.permission_denied(result):
        raise AccessorError(kind, path, "permission denied")
    raise AccessorError(kind, path, result.stderr.strip() or f"cat exited {result.exit_code}")


def _query_file_content(session: Session, path: str) -> Fact:
    """Read a file's full content as a string."""
    content = _read(session, "file_content", path)
    if content is None:
        return Fact.absent()
    return Fact(exists=True, value=content)


def _query_json(session: Session, selector: str) -> Fact:
    """Read a value out of a JSON document.

    Selector is ``path`` or ``path#dotted.key`` (list indices are numeric
    segments). A missing file or key is an absent fact.
    """
    path, _, key = selector.partition("#")
    content = _read(session, "json", path)
    if content is None:
        return Fact.absent()
    try:
        value = json.loads(content)
    except json.JSONDecodeError as exc:
        raise AccessorError("json", selector, f"invalid JSON: {exc}") from exc

    for segment in [s for s in key.split(".") if s]:
        if isinstance(value, dict) and segment in value:
            value = value[segment]
        elif isinstance(value, list) and segment.isdigit() and int(segment) < len(value):
            value = value[int(segment)]
        else:
            return Fact.absent()
    return Fact(exists=True, value=value)
