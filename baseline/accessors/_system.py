"""System-related accessors: sysctl parameters, kernel modules, mounts, OS."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from baseline import shell_util
from baseline._types import Fact
from baseline.errors import AccessorError
from baseline.predicates import to_number

if TYPE_CHECKING:
    from baseline.transport import Session


KERNEL_MODULE_PROPERTIES = frozenset({"loaded", "disabled", "blacklisted"})
MOUNT_PROPERTIES = frozenset({"device", "type", "options"})
OS_PROPERTIES = frozenset({"family", "version", "id", "name", "release"})

# OS IDs that are RHEL-compatible and normalized to family "rhel"
RHEL_FAMILY = {"rhel", "centos", "rocky", "almalinux", "ol", "fedora"}
DEBIAN_FAMILY = {"debian", "ubuntu", "linuxmint", "raspbian"}


def _query_kernel_parameter(session: Session, key: str) -> Fact:
    """Read a kernel parameter via sysctl.

    Numeric values are returned as numbers; multi-valued parameters
    (tab-separated) are normalized to single spaces.
    """
    result = session.run(f"sysctl -n {shell_util.quote(key)}")
    if shell_util.command_missing(result):
        raise AccessorError("kernel_parameter", key, "sysctl not available on target")
    if not result.ok:
        if shell_util.permission_denied(result):
            raise AccessorError("kernel_parameter", key, "permission denied")
        return Fact.absent()

    raw = " ".join(result.stdout.split())
    number = to_number(raw)
    return Fact(exists=True, value=number if number is not None else raw)


def _query_kernel_module(session: Session, name: str) -> Fact:
    """Report whether a kernel module is loaded, disabled, or blacklisted.

    ``disabled`` means modprobe resolves the module to ``install /bin/true``
    or ``/bin/false``; ``blacklisted`` means a blacklist directive exists.
    """
    quoted = shell_util.quote(name)
    loaded = session.run(f"lsmod | grep -q {shell_util.quote('^' + name + ' ')}")
    dry_run = session.run(f"modprobe -n -v {quoted} 2>&1")
    blacklist = session.run(f"grep -rhsE {shell_util.quote('^[[:space:]]*blacklist[[:space:]]+' + name + '$')} /etc/modprobe.d/")
    if shell_util.command_missing(dry_run):
        raise AccessorError("kernel_module", name, "modprobe not available on target")

    disabled = bool(re.search(r"install\s+/(usr/)?bin/(true|false)", dry_run.stdout))
    return Fact(
        exists=True,
        value={
            "loaded": loaded.ok,
            "disabled": disabled,
            "blacklisted": blacklist.ok and bool(blacklist.stdout.strip()),
        },
    )


def _query_mount(session: Session, mountpoint: str) -> Fact:
    """Describe a mount point; absent when nothing is mounted there."""
    result = session.run(f"findmnt -n -o SOURCE,FSTYPE,OPTIONS --mountpoint {shell_util.quote(mountpoint)}")
    if shell_util.command_missing(result):
        raise AccessorError("mount", mountpoint, "findmnt not available on target")
    if not result.ok or not result.stdout.strip():
        return Fact.absent()

    parts = result.stdout.strip().splitlines()[0].split()
    if len(parts) < 3:
        raise AccessorError("mount", mountpoint, f"unexpected findmnt output: {result.stdout!r}")
    return Fact(
        exists=True,
        value={"device": parts[0], "type": parts[1], "options": parts[2].split(",")},
    )


def _query_os(session: Session, selector: str) -> Fact:
    """Detect the target's OS family and version.

    Uses /etc/os-release, falling back to /etc/redhat-release and
    /etc/debian_version. RHEL derivatives are normalized to family "rhel"
    and Debian derivatives to "debian". The selector is ignored.
    """
    result = session.run("cat /etc/os-release 2>/dev/null")
    if result.ok and result.stdout.strip():
        fields: dict[str, str] = {}
        for line in result.stdout.splitlines():
            if "=" in line:
                k, _, v = line.partition("=")
                fields[k.strip()] = v.strip().strip('"')

        os_id = fields.get("ID", "").lower()
        release = fields.get("VERSION_ID", "")
        return Fact(
            exists=True,
            value={
                "family": _family(os_id, fields.get("ID_LIKE", "")),
                "version": _major(release),
                "id": os_id,
                "name": fields.get("PRETTY_NAME") or fields.get("NAME", ""),
                "release": release,
            },
        )

    result = session.run("cat /etc/redhat-release 2>/dev/null")
    if result.ok and result.stdout.strip():
        match = re.search(r"(\d+(\.\d+)*)", result.stdout)
        release = match.group(1) if match else ""
        return Fact(
            exists=True,
            value={"family": "rhel", "version": _major(release), "id": "rhel", "name": result.stdout.strip(), "release": release},
        )

    result = session.run("cat /etc/debian_version 2>/dev/null")
    if result.ok and result.stdout.strip():
        release = result.stdout.strip()
        return Fact(
            exists=True,
            value={"family": "debian", "version": _major(release), "id": "debian", "name": f"Debian {release}", "release": release},
        )

    return Fact.absent()


def _family(os_id: str, id_like: str) -> str:
    if os_id in RHEL_FAMILY:
        return "rhel"
    if os_id in DEBIAN_FAMILY:
        return "debian"
    like = set(id_like.lower().split())
    if like & RHEL_FAMILY:
        return "rhel"
    if like & DEBIAN_FAMILY:
        return "debian"
    return os_id


def _major(release: str) -> int:
    try:
        return int(release.split(".")[0])
    except (ValueError, IndexError):
        return 0
