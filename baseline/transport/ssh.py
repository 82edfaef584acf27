"""SSH session wrapper around paramiko."""

from __future__ import annotations

import logging
import shlex
import threading

import paramiko

from baseline._types import Result

logger = logging.getLogger(__name__)


class SSHSession:
    """Single reusable SSH connection to a remote host.

    One connection is shared by every rule of a run. Concurrent ``run()``
    calls each open their own channel on the shared transport; reconnecting
    after the transport drops is serialized behind a lock so only one
    thread re-authenticates.
    """

    def __init__(
        self,
        hostname: str,
        *,
        port: int = 22,
        user: str | None = None,
        key_path: str | None = None,
        password: str | None = None,
        timeout: float = 30,
        sudo: bool = False,
    ):
        self.hostname = hostname
        self.port = port
        self.user = user
        self.key_path = key_path
        self.password = password
        self.timeout = timeout
        self.sudo = sudo
        self._client: paramiko.SSHClient | None = None
        self._lock = threading.Lock()

    @property
    def target(self) -> str:
        who = f"{self.user}@" if self.user else ""
        port = f":{self.port}" if self.port != 22 else ""
        return f"ssh://{who}{self.hostname}{port}"

    def connect(self) -> None:
        """Establish the SSH connection."""
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_kwargs: dict = {
            "hostname": self.hostname,
            "port": self.port,
            "timeout": self.timeout,
        }
        if self.user:
            connect_kwargs["username"] = self.user
        if self.key_path:
            connect_kwargs["key_filename"] = self.key_path
        if self.password:
            connect_kwargs["password"] = self.password

        # Explicit credentials disable the agent and ~/.ssh key fallbacks.
        if self.key_path or self.password:
            connect_kwargs["look_for_keys"] = False
            connect_kwargs["allow_agent"] = False

        client.connect(**connect_kwargs)
        self._client = client

    @property
    def connected(self) -> bool:
        if self._client is None:
            return False
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    def _ensure_connected(self) -> paramiko.SSHClient:
        if self._client is None:
            raise RuntimeError("Not connected, call connect() first")
        if self.connected:
            return self._client
        with self._lock:
            # Another thread may have reconnected while we waited.
            if not self.connected:
                logger.warning("Connection to %s dropped, reconnecting", self.target)
                self._client.close()
                self.connect()
        return self._client

    def run(self, cmd: str, *, timeout: float | None = None) -> Result:
        """Execute a command and return the result."""
        client = self._ensure_connected()

        if self.sudo:
            cmd = f"sudo -n sh -c {shlex.quote(cmd)}"

        t = timeout if timeout is not None else self.timeout
        _, stdout_ch, stderr_ch = client.exec_command(cmd, timeout=t)

        stdout = stdout_ch.read().decode("utf-8", errors="replace")
        stderr = stderr_ch.read().decode("utf-8", errors="replace")
        exit_code = stdout_ch.channel.recv_exit_status()

        return Result(exit_code=exit_code, stdout=stdout.rstrip("\n"), stderr=stderr.rstrip("\n"))

    def close(self) -> None:
        """Close the SSH connection."""
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    def __enter__(self) -> SSHSession:
        if self._client is None:
            self.connect()
        return self

    def __exit__(self, *exc) -> None:
        self.close()
