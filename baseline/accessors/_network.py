"""Network accessors: listening ports."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from baseline import shell_util
from baseline._types import Fact
from baseline.errors import AccessorError

if TYPE_CHECKING:
    from baseline.transport import Session


PORT_PROPERTIES = frozenset({"listening", "protocols", "addresses", "processes"})

# Addresses that accept connections on every interface
WILDCARD_ADDRESSES = frozenset({"0.0.0.0", "::", "*"})

_PROCESS_RE = re.compile(r'"([^"]+)"')


def parse_ss_output(stdout: str) -> list[dict]:
    """Parse ``ss -H -tulnp`` output into socket records.

    Example:
    -------
        >>> parse_ss_output('tcp LISTEN 0 128 0.0.0.0:22 0.0.0.0:* users:(("sshd",pid=1,fd=3))')
        [{'protocol': 'tcp', 'address': '0.0.0.0', 'port': 22, 'processes': ['sshd']}]

    """
    sockets = []
    for line in stdout.splitlines():
        parts = line.split()
        if len(parts) < 5:
            continue
        address, _, port = parts[4].rpartition(":")
        if not port.isdigit():
            continue
        sockets.append(
            {
                "protocol": parts[0],
                "address": address.strip("[]"),
                "port": int(port),
                "processes": _PROCESS_RE.findall(" ".join(parts[6:])),
            }
        )
    return sockets


def _list_sockets(session: Session, kind: str, selector: str) -> list[dict]:
    result = session.run("ss -H -tulnp")
    if shell_util.command_missing(result):
        raise AccessorError(kind, selector, "ss not available on target")
    if not result.ok:
        raise AccessorError(kind, selector, result.stderr.strip() or f"ss exited {result.exit_code}")
    return parse_ss_output(result.stdout)


def _query_port(session: Session, selector: str) -> Fact:
    """Describe listeners on a port.

    Selector is ``"22"`` or ``"tcp/22"``. Absent when nothing listens.
    """
    proto, _, number = selector.rpartition("/")
    if not number.isdigit():
        raise AccessorError("port", selector, "selector must be a port number or proto/port")

    port = int(number)
    matches = [
        s
        for s in _list_sockets(session, "port", selector)
        if s["port"] == port and (not proto or s["protocol"] == proto.lower())
    ]
    if not matches:
        return Fact.absent()
    return Fact(
        exists=True,
        value={
            "listening": True,
            "protocols": sorted({s["protocol"] for s in matches}),
            "addresses": sorted({s["address"] for s in matches}),
            "processes": sorted({p for s in matches for p in s["processes"]}),
        },
    )


def _query_listening_ports(session: Session, selector: str) -> Fact:
    """Sorted port numbers that listen on every interface.

    Selector is ``"tcp"``, ``"udp"`` or ``"*"`` for both. Listeners bound to
    loopback or a single address are left out. Always present; an empty list
    means nothing is exposed.
    """
    proto = selector.strip().lower()
    if proto not in ("tcp", "udp", "*"):
        raise AccessorError("listening_ports", selector, "selector must be tcp, udp or *")

    ports = {
        s["port"]
        for s in _list_sockets(session, "listening_ports", selector)
        if s["address"] in WILDCARD_ADDRESSES and (proto == "*" or s["protocol"] == proto)
    }
    return Fact(exists=True, value=sorted(ports))
