"""Service and package accessors."""

from __future__ import annotations

from typing import TYPE_CHECKING

from baseline import shell_util
from baseline._types import Fact
from baseline.errors import AccessorError

if TYPE_CHECKING:
    from baseline.transport import Session


SERVICE_PROPERTIES = frozenset({"installed", "enabled", "running", "enabled_state", "active_state"})
PACKAGE_PROPERTIES = frozenset({"installed", "version"})


def _query_service(session: Session, name: str) -> Fact:
    """Read a systemd unit's load, enablement and activity state.

    Units systemd does not know about are absent facts.
    """
    unit = name if "." in name else f"{name}.service"
    result = session.run(f"systemctl show -p LoadState -p ActiveState -p UnitFileState {shell_util.quote(unit)}")
    if shell_util.command_missing(result):
        raise AccessorError("service", name, "systemctl not available on target")
    if not result.ok:
        raise AccessorError("service", name, result.stderr.strip() or f"systemctl exited {result.exit_code}")

    props: dict[str, str] = {}
    for line in result.stdout.splitlines():
        if "=" in line:
            k, _, v = line.partition("=")
            props[k.strip()] = v.strip()

    if props.get("LoadState", "not-found") == "not-found":
        return Fact.absent()

    enabled_state = props.get("UnitFileState", "")
    active_state = props.get("ActiveState", "")
    return Fact(
        exists=True,
        value={
            "installed": True,
            "enabled": enabled_state in ("enabled", "enabled-runtime", "static", "alias"),
            "running": active_state == "active",
            "enabled_state": enabled_state,
            "active_state": active_state,
        },
    )


_PACKAGE_QUERY = (
    "if command -v rpm >/dev/null 2>&1; then rpm -q --qf '%{{VERSION}}-%{{RELEASE}}' {name}; "
    "elif command -v dpkg-query >/dev/null 2>&1; then dpkg-query -W -f='${{Status}} ${{Version}}' {name}; "
    "else exit 127; fi"
)


def _query_package(session: Session, name: str) -> Fact:
    """Report whether a package is installed (rpm or dpkg) and its version."""
    result = session.run(_PACKAGE_QUERY.format(name=shell_util.quote(name)))
    if shell_util.command_missing(result):
        raise AccessorError("package", name, "no supported package manager (rpm, dpkg) on target")
    if not result.ok:
        return Fact.absent()

    out = result.stdout.strip()
    if out.startswith("install ") or out.startswith("deinstall ") or out.startswith("purge "):
        # dpkg status: "<want> <error> <status> <version>"
        parts = out.split()
        if len(parts) < 3 or parts[2] != "installed":
            return Fact.absent()
        version = parts[3] if len(parts) > 3 else ""
    else:
        version = out
    return Fact(exists=True, value={"installed": True, "version": version})
