"""Fact accessors and dispatch.

This module aggregates the accessor functions and provides the facade rules
use to query facts about a target. The set of kinds is closed: a rule that
names an unknown kind is rejected when the profile is loaded.

Accessor Modules:
    - _file: file, file_content, json
    - _system: kernel_parameter, kernel_module, mount, os
    - _service: service, package
    - _network: port, listening_ports
    - _users: user, passwd, shadow
    - _process: process
    - _config: sshd_config, login_defs
    - _command: command

Example::

    from baseline.accessors import AccessorFacade

    facade = AccessorFacade(session, command_timeout=30)
    facade.query("file", "/etc/shadow").attribute("mode").value  # '0000'

"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from baseline._types import Fact, Result
from baseline.accessors._command import COMMAND_PROPERTIES, _query_command
from baseline.accessors._config import _query_login_defs, _query_sshd_config
from baseline.accessors._file import FILE_PROPERTIES, _query_file, _query_file_content, _query_json
from baseline.accessors._network import PORT_PROPERTIES, _query_listening_ports, _query_port
from baseline.accessors._process import PROCESS_PROPERTIES, _query_process
from baseline.accessors._service import PACKAGE_PROPERTIES, SERVICE_PROPERTIES, _query_package, _query_service
from baseline.accessors._system import (
    KERNEL_MODULE_PROPERTIES,
    MOUNT_PROPERTIES,
    OS_PROPERTIES,
    _query_kernel_module,
    _query_kernel_parameter,
    _query_mount,
    _query_os,
)
from baseline.accessors._users import TABLE_PROPERTIES, USER_PROPERTIES, _query_passwd, _query_shadow, _query_user
from baseline.errors import AccessorError, EvaluationCancelled

if TYPE_CHECKING:
    from baseline.transport import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessorSpec:
    """A fact kind: how to query it and which properties it can project.

    An empty ``properties`` set means the fact is scalar and assertions on it
    must not name a property.
    """

    kind: str
    query: Callable[[Session, str], Fact]
    properties: frozenset[str]
    description: str


# ── Accessor registry ─────────────────────────────────────────────────────

ACCESSORS: dict[str, AccessorSpec] = {
    spec.kind: spec
    for spec in (
        # File accessors
        AccessorSpec("file", _query_file, FILE_PROPERTIES, "Path metadata (type, mode, ownership)"),
        AccessorSpec("file_content", _query_file_content, frozenset(), "Full text of a file"),
        AccessorSpec("json", _query_json, frozenset(), "Value inside a JSON document (path#dotted.key)"),
        # System accessors
        AccessorSpec("kernel_parameter", _query_kernel_parameter, frozenset(), "sysctl value"),
        AccessorSpec("kernel_module", _query_kernel_module, KERNEL_MODULE_PROPERTIES, "Kernel module state"),
        AccessorSpec("mount", _query_mount, MOUNT_PROPERTIES, "Mount point device, type and options"),
        AccessorSpec("os", _query_os, OS_PROPERTIES, "Operating system family and version"),
        # Service accessors
        AccessorSpec("service", _query_service, SERVICE_PROPERTIES, "systemd unit state"),
        AccessorSpec("package", _query_package, PACKAGE_PROPERTIES, "Installed package (rpm or dpkg)"),
        # Network accessors
        AccessorSpec("port", _query_port, PORT_PROPERTIES, "Listening sockets on a port"),
        AccessorSpec(
            "listening_ports", _query_listening_ports, frozenset(), "Ports listening on all interfaces (tcp, udp or *)"
        ),
        # Account accessors
        AccessorSpec("user", _query_user, USER_PROPERTIES, "Single account via NSS"),
        AccessorSpec("passwd", _query_passwd, TABLE_PROPERTIES, "Filtered /etc/passwd entries"),
        AccessorSpec("shadow", _query_shadow, TABLE_PROPERTIES, "Filtered /etc/shadow entries"),
        AccessorSpec("process", _query_process, PROCESS_PROPERTIES, "Running processes by command name"),
        # Config accessors
        AccessorSpec("sshd_config", _query_sshd_config, frozenset(), "Effective sshd_config keyword"),
        AccessorSpec("login_defs", _query_login_defs, frozenset(), "login.defs setting"),
        # Command accessor
        AccessorSpec("command", _query_command, COMMAND_PROPERTIES, "Arbitrary command output"),
    )
}


def accessor_kinds() -> dict[str, frozenset[str]]:
    """Map each known kind to the properties it supports."""
    return {kind: spec.properties for kind, spec in ACCESSORS.items()}


# ── Facade ────────────────────────────────────────────────────────────────


class _BoundSession:
    """Session proxy that enforces the run's deadline and cancellation.

    Each command gets the smaller of the per-command timeout and the time
    left before the deadline. A command that fails after the deadline has
    passed is reported as a cancellation, not as a target failure.
    """

    def __init__(self, facade: AccessorFacade):
        self._facade = facade
        self.target = facade.session.target

    def run(self, cmd: str, *, timeout: float | None = None) -> Result:
        facade = self._facade
        facade.check_cancelled()
        limits = [t for t in (timeout, facade.command_timeout, facade.remaining()) if t is not None]
        try:
            return facade.session.run(cmd, timeout=min(limits) if limits else None)
        except Exception as exc:
            if facade.cancelled():
                raise EvaluationCancelled() from exc
            raise


class AccessorFacade:
    """Query facts about one target through its session.

    The facade is shared by every rule of a run and is safe to use from
    worker threads; the session serializes its own channel use.

    Args:
        session: Open session to the target.
        command_timeout: Per-command timeout in seconds (None = session default).
        deadline: ``time.monotonic()`` value after which queries are cancelled.
        cancel_event: Event set by the orchestrator to cancel outstanding work.

    """

    def __init__(
        self,
        session: Session,
        *,
        command_timeout: float | None = None,
        deadline: float | None = None,
        cancel_event: threading.Event | None = None,
    ):
        self.session = session
        self.command_timeout = command_timeout
        self.deadline = deadline
        self.cancel_event = cancel_event or threading.Event()
        self._bound = _BoundSession(self)

    @property
    def target(self) -> str:
        return self.session.target

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return max(self.deadline - time.monotonic(), 0.0)

    def cancelled(self) -> bool:
        if self.cancel_event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check_cancelled(self) -> None:
        if self.cancelled():
            raise EvaluationCancelled()

    def query(self, kind: str, selector: str) -> Fact:
        """Query one fact.

        Raises:
            AccessorError: The fact could not be determined.
            EvaluationCancelled: The run was cancelled or timed out.

        """
        spec = ACCESSORS.get(kind)
        if spec is None:
            raise AccessorError(kind, selector, f"unknown accessor kind: {kind}")

        self.check_cancelled()
        try:
            fact = spec.query(self._bound, selector)
        except (AccessorError, EvaluationCancelled):
            raise
        except Exception as exc:
            if self.cancelled():
                raise EvaluationCancelled() from exc
            logger.debug("%s(%r) failed: %s", kind, selector, exc)
            raise AccessorError(kind, selector, str(exc) or type(exc).__name__) from exc
        logger.debug("%s(%r) -> exists=%s", kind, selector, fact.exists)
        return fact


__all__ = ["ACCESSORS", "AccessorFacade", "AccessorSpec", "accessor_kinds"]
