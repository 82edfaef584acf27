"""Config-file accessors: sshd_config and login.defs keys."""

from __future__ import annotations

from typing import TYPE_CHECKING

from baseline import shell_util
from baseline._types import Fact
from baseline.errors import AccessorError

if TYPE_CHECKING:
    from baseline.transport import Session


SSHD_CONFIG = "/etc/ssh/sshd_config"
SSHD_DROPINS = "/etc/ssh/sshd_config.d/*.conf"
LOGIN_DEFS = "/etc/login.defs"


def _config_key(session: Session, kind: str, main: str, paths: list[str], key: str, *, first: bool, ignore_case: bool) -> Fact:
    if not shell_util.path_exists(session, main):
        return Fact.absent()
    if not session.run(f"test -r {shell_util.quote(main)}").ok:
        raise AccessorError(kind, key, f"permission denied reading {main}")
    result = shell_util.grep_config_key(session, paths, key, first=first, ignore_case=ignore_case)
    line = result.stdout.strip()
    if not line:
        return Fact.absent()
    return Fact(exists=True, value=shell_util.parse_config_value(line, key))


def _query_sshd_config(session: Session, key: str) -> Fact:
    """Effective value of an sshd_config keyword.

    sshd uses the first value it reads and includes drop-ins before the main
    file, so the first match across drop-ins then sshd_config wins. Keywords
    are case-insensitive.
    """
    return _config_key(session, "sshd_config", SSHD_CONFIG, [SSHD_DROPINS, SSHD_CONFIG], key, first=True, ignore_case=True)


def _query_login_defs(session: Session, key: str) -> Fact:
    """Value of a login.defs setting (last occurrence wins)."""
    return _config_key(session, "login_defs", LOGIN_DEFS, [LOGIN_DEFS], key, first=False, ignore_case=False)
