"""Sessions that run commands on this machine or inside a local container."""

from __future__ import annotations

import shlex
import subprocess

from baseline._types import Result


class LocalSession:
    """Run commands on the local host through ``sh``."""

    target = "local"

    def __init__(self, *, timeout: float = 30, sudo: bool = False):
        self.timeout = timeout
        self.sudo = sudo

    def _argv(self, cmd: str) -> list[str]:
        argv = ["sh", "-c", cmd]
        return ["sudo", "-n", *argv] if self.sudo else argv

    def run(self, cmd: str, *, timeout: float | None = None) -> Result:
        """Execute a command and return the result.

        Raises:
            subprocess.TimeoutExpired: If the command outlives its timeout.

        """
        proc = subprocess.run(
            self._argv(cmd),
            capture_output=True,
            timeout=timeout if timeout is not None else self.timeout,
            check=False,
        )
        return Result(
            exit_code=proc.returncode,
            stdout=proc.stdout.decode("utf-8", errors="replace").rstrip("\n"),
            stderr=proc.stderr.decode("utf-8", errors="replace").rstrip("\n"),
        )

    def connect(self) -> None:
        pass

    def close(self) -> None:
        pass

    def __enter__(self) -> LocalSession:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class DockerSession(LocalSession):
    """Run commands inside a running container with ``docker exec``."""

    def __init__(self, container: str, *, timeout: float = 30, sudo: bool = False):
        super().__init__(timeout=timeout, sudo=sudo)
        self.container = container

    @property
    def target(self) -> str:
        return f"docker://{self.container}"

    def _argv(self, cmd: str) -> list[str]:
        if self.sudo:
            cmd = f"sudo -n sh -c {shlex.quote(cmd)}"
        return ["docker", "exec", self.container, "sh", "-c", cmd]

    def connect(self) -> None:
        """Check that the container exists and is running.

        Raises:
            RuntimeError: If docker is unavailable or the container is not running.

        """
        try:
            proc = subprocess.run(
                ["docker", "inspect", "-f", "{{.State.Running}}", self.container],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise RuntimeError("docker CLI not found") from exc
        if proc.returncode != 0:
            raise RuntimeError(proc.stderr.strip() or f"no such container: {self.container}")
        if proc.stdout.strip() != "true":
            raise RuntimeError(f"container {self.container} is not running")

    def __enter__(self) -> DockerSession:
        return self
