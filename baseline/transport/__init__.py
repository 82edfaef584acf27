"""Target connectors.

A target is written as a URL-like string:

    local                       this machine
    ssh://[user@]host[:port]    a host reached over SSH
    docker://container          a running local container

A bare ``host`` or ``user@host`` is treated as an SSH target.

Example::

    from baseline.transport import connect

    with connect("ssh://admin@10.0.0.5", sudo=True) as session:
        print(session.run("uname -r").stdout)

"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlsplit

import paramiko

from baseline._types import Result
from baseline.errors import TargetConnectionError
from baseline.transport.local import DockerSession, LocalSession
from baseline.transport.ssh import SSHSession

logger = logging.getLogger(__name__)

SCHEMES = ("local", "ssh", "docker")


class Session(Protocol):
    """An open command channel to one target.

    Implementations must allow concurrent ``run()`` calls from worker
    threads.
    """

    @property
    def target(self) -> str: ...

    def run(self, cmd: str, *, timeout: float | None = None) -> Result: ...

    def close(self) -> None: ...

    def __enter__(self) -> Session: ...

    def __exit__(self, *exc) -> None: ...


@dataclass(frozen=True)
class TargetSpec:
    """A parsed target string."""

    scheme: str
    host: str = ""
    user: str | None = None
    port: int | None = None

    def __str__(self) -> str:
        if self.scheme == "local":
            return "local"
        if self.scheme == "docker":
            return f"docker://{self.host}"
        who = f"{self.user}@" if self.user else ""
        port = f":{self.port}" if self.port else ""
        return f"ssh://{who}{self.host}{port}"


def parse_target(target: str) -> TargetSpec:
    """Parse a target string.

    Raises:
        ValueError: If the scheme is unknown or the target names no host.

    Example:
    -------
        >>> parse_target("ssh://admin@web01:2222")
        TargetSpec(scheme='ssh', host='web01', user='admin', port=2222)

    """
    text = target.strip()
    if text in ("", "local", "local://"):
        return TargetSpec("local")
    if "://" not in text:
        text = f"ssh://{text}"

    parts = urlsplit(text)
    if parts.scheme not in SCHEMES:
        raise ValueError(f"unsupported target scheme {parts.scheme!r} (expected one of {', '.join(SCHEMES)})")
    if parts.scheme == "local":
        return TargetSpec("local")
    if parts.scheme == "docker":
        name = parts.netloc or parts.path.lstrip("/")
        if not name:
            raise ValueError(f"docker target names no container: {target!r}")
        return TargetSpec("docker", host=name)

    try:
        port = parts.port
    except ValueError as exc:
        raise ValueError(f"invalid port in target {target!r}") from exc
    if not parts.hostname:
        raise ValueError(f"ssh target names no host: {target!r}")
    return TargetSpec("ssh", host=parts.hostname, user=parts.username, port=port)


def connect(
    target: str | TargetSpec,
    *,
    user: str | None = None,
    key_path: str | None = None,
    password: str | None = None,
    sudo: bool = False,
    timeout: float = 30,
) -> Session:
    """Open a session to a target.

    ``user`` applies only when the target string names no user itself.

    Raises:
        TargetConnectionError: If the target is malformed or unreachable.

    """
    try:
        spec = target if isinstance(target, TargetSpec) else parse_target(target)
    except ValueError as exc:
        raise TargetConnectionError(str(target), str(exc)) from exc

    if spec.scheme == "local":
        return LocalSession(timeout=timeout, sudo=sudo)

    if spec.scheme == "docker":
        docker = DockerSession(spec.host, timeout=timeout, sudo=sudo)
        try:
            docker.connect()
        except RuntimeError as exc:
            raise TargetConnectionError(str(spec), str(exc)) from exc
        return docker

    ssh = SSHSession(
        spec.host,
        port=spec.port or 22,
        user=spec.user or user,
        key_path=key_path,
        password=password,
        timeout=timeout,
        sudo=sudo,
    )
    try:
        ssh.connect()
    except paramiko.AuthenticationException as exc:
        raise TargetConnectionError(ssh.target, f"authentication failed: {exc}") from exc
    except (paramiko.SSHException, socket.error) as exc:
        raise TargetConnectionError(ssh.target, str(exc) or type(exc).__name__) from exc
    logger.info("Connected to %s", ssh.target)
    return ssh


__all__ = ["DockerSession", "LocalSession", "SSHSession", "Session", "TargetSpec", "connect", "parse_target"]
