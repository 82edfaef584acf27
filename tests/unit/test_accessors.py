"""
Unit tests for fact accessors.

Each accessor is driven through the facade against a scripted session, so
these tests pin down how command output is mapped to facts and how
failures are classified (absent fact versus accessor error).
"""

import socket
import time

import pytest
from conftest import FakeSession, fail, ok

from baseline._types import Fact, Result
from baseline.accessors import AccessorFacade, accessor_kinds
from baseline.accessors._network import parse_ss_output
from baseline.accessors._users import filter_rows
from baseline.errors import AccessorError, EvaluationCancelled

SS_OUTPUT = """\
tcp   LISTEN 0      128          0.0.0.0:22        0.0.0.0:*    users:(("sshd",pid=812,fd=3))
tcp   LISTEN 0      128             [::]:22           [::]:*    users:(("sshd",pid=812,fd=4))
udp   UNCONN 0      0          127.0.0.1:323       0.0.0.0:*    users:(("chronyd",pid=640,fd=5))
tcp   LISTEN 0      4096       127.0.0.1:5432      0.0.0.0:*
"""

PASSWD = """\
root:x:0:0:root:/root:/bin/bash
daemon:x:1:1:daemon:/usr/sbin:/usr/sbin/nologin
toor:x:0:0::/root:/bin/sh
alice:x:1000:1000:Alice:/home/alice:/bin/bash
"""

SHADOW = """\
root:$6$abc:19000:0:99999:7:::
alice::19000:0:90:7:30::
"""


def _facade(responses: dict) -> AccessorFacade:
    return AccessorFacade(FakeSession(responses), command_timeout=5)


@pytest.mark.unit
class TestRegistry:
    """The set of kinds is closed."""

    def test_known_kinds(self) -> None:
        kinds = accessor_kinds()
        expected = {"file", "kernel_parameter", "service", "package", "port", "listening_ports", "sshd_config", "command"}
        assert expected <= set(kinds)
        assert "mode" in kinds["file"]
        assert kinds["kernel_parameter"] == frozenset()

    def test_unknown_kind_is_accessor_error(self) -> None:
        with pytest.raises(AccessorError, match="unknown accessor kind"):
            _facade({}).query("registry", "HKLM")


@pytest.mark.unit
class TestFileAccessor:
    """Test stat parsing."""

    def test_regular_file(self) -> None:
        facade = _facade({"stat -c": ok("regular file|640|root|shadow|1234|0|42\n")})
        fact = facade.query("file", "/etc/shadow")
        assert fact.exists is True
        assert fact.value["type"] == "file"
        assert fact.value["mode"] == "0640"
        assert fact.value["owner"] == "root"
        assert fact.value["gid"] == 42
        assert fact.value["readable_by_group"] is True
        assert fact.value["readable_by_others"] is False
        assert fact.value["executable"] is False

    def test_world_writable_directory(self) -> None:
        fact = _facade({"stat -c": ok("directory|1777|root|root|4096|0|0")}).query("file", "/tmp")
        assert fact.value["type"] == "directory"
        assert fact.value["mode"] == "1777"
        assert fact.value["writable_by_others"] is True

    def test_missing_path_is_absent(self) -> None:
        facade = _facade({"stat -c": fail("stat: cannot statx '/nope': No such file or directory")})
        assert facade.query("file", "/nope") == Fact.absent()

    def test_permission_problem_is_error(self) -> None:
        facade = _facade({"stat -c": fail("stat: cannot statx '/root/x': Permission denied")})
        with pytest.raises(AccessorError, match="Permission denied"):
            facade.query("file", "/root/x")

    def test_file_content(self) -> None:
        facade = _facade({"cat /etc/issue": ok("Authorized use only\n")})
        assert facade.query("file_content", "/etc/issue").value == "Authorized use only\n"

    def test_json_path(self) -> None:
        facade = _facade({"cat /etc/docker/daemon.json": ok('{"log-opts": {"max-size": "10m"}, "hosts": ["unix://"]}')})
        assert facade.query("json", "/etc/docker/daemon.json#log-opts.max-size").value == "10m"
        assert facade.query("json", "/etc/docker/daemon.json#hosts.0").value == "unix://"
        assert facade.query("json", "/etc/docker/daemon.json#icc").exists is False


@pytest.mark.unit
class TestSystemAccessors:
    """Test sysctl, module, mount and OS detection."""

    def test_numeric_sysctl_value(self) -> None:
        fact = _facade({"sysctl -n": ok("2\n")}).query("kernel_parameter", "kernel.randomize_va_space")
        assert fact.value == 2

    def test_multi_valued_sysctl(self) -> None:
        fact = _facade({"sysctl -n": ok("32768\t60999\n")}).query("kernel_parameter", "net.ipv4.ip_local_port_range")
        assert fact.value == "32768 60999"

    def test_unknown_sysctl_is_absent(self) -> None:
        facade = _facade({"sysctl -n": fail("sysctl: cannot stat /proc/sys/x/y: No such file or directory", 255)})
        assert facade.query("kernel_parameter", "x.y").exists is False

    def test_missing_sysctl_binary_is_error(self) -> None:
        with pytest.raises(AccessorError, match="not available"):
            _facade({"sysctl -n": fail("sysctl: command not found", 127)}).query("kernel_parameter", "x.y")

    def test_disabled_kernel_module(self) -> None:
        facade = _facade(
            {
                "lsmod": fail(),
                "modprobe -n -v": ok("install /bin/true \n"),
                "blacklist": ok("blacklist cramfs\n"),
            }
        )
        fact = facade.query("kernel_module", "cramfs")
        assert fact.value == {"loaded": False, "disabled": True, "blacklisted": True}

    def test_mount_options(self) -> None:
        fact = _facade({"findmnt": ok("tmpfs tmpfs rw,nosuid,nodev,noexec\n")}).query("mount", "/tmp")
        assert fact.value["options"] == ["rw", "nosuid", "nodev", "noexec"]
        assert _facade({"findmnt": fail()}).query("mount", "/var/tmp").exists is False

    def test_os_release(self) -> None:
        os_release = 'NAME="Rocky Linux"\nID="rocky"\nID_LIKE="rhel centos fedora"\nVERSION_ID="9.3"\nPRETTY_NAME="Rocky Linux 9.3"\n'
        fact = _facade({"os-release": ok(os_release)}).query("os", "")
        assert fact.value["family"] == "rhel"
        assert fact.value["version"] == 9
        assert fact.value["release"] == "9.3"

    def test_os_family_from_id_like(self) -> None:
        os_release = "ID=pop\nID_LIKE=\"ubuntu debian\"\nVERSION_ID=22.04\n"
        assert _facade({"os-release": ok(os_release)}).query("os", "").value["family"] == "debian"


@pytest.mark.unit
class TestServiceAccessors:
    """Test systemd and package queries."""

    def test_enabled_running_service(self) -> None:
        out = "LoadState=loaded\nActiveState=active\nUnitFileState=enabled\n"
        fact = _facade({"systemctl show": ok(out)}).query("service", "sshd")
        assert fact.value["enabled"] is True
        assert fact.value["running"] is True

    def test_unit_name_defaults_to_service(self) -> None:
        session = FakeSession({"systemctl show": ok("LoadState=not-found\n")})
        fact = AccessorFacade(session).query("service", "telnet")
        assert fact.exists is False
        assert session.commands[0].endswith("telnet.service")

    def test_masked_service(self) -> None:
        out = "LoadState=masked\nActiveState=inactive\nUnitFileState=masked\n"
        fact = _facade({"systemctl show": ok(out)}).query("service", "rpcbind.socket")
        assert fact.value["enabled"] is False
        assert fact.value["enabled_state"] == "masked"

    def test_rpm_package(self) -> None:
        fact = _facade({"rpm -q": ok("8.7p1-34.el9")}).query("package", "openssh-server")
        assert fact.value == {"installed": True, "version": "8.7p1-34.el9"}

    def test_dpkg_removed_package_is_absent(self) -> None:
        fact = _facade({"rpm -q": ok("deinstall ok config-files 1.2.3")}).query("package", "telnetd")
        assert fact.exists is False

    def test_package_not_installed(self) -> None:
        assert _facade({"rpm -q": fail("package telnet is not installed")}).query("package", "telnet").exists is False


@pytest.mark.unit
class TestNetworkAccessor:
    """Test ss parsing and port selection."""

    def test_parse_ss_output(self) -> None:
        sockets = parse_ss_output(SS_OUTPUT)
        assert len(sockets) == 4
        assert sockets[1] == {"protocol": "tcp", "address": "::", "port": 22, "processes": ["sshd"]}
        assert sockets[3]["processes"] == []

    def test_listening_port(self) -> None:
        fact = _facade({"ss -H": ok(SS_OUTPUT)}).query("port", "22")
        assert fact.value["protocols"] == ["tcp"]
        assert fact.value["addresses"] == ["0.0.0.0", "::"]
        assert fact.value["processes"] == ["sshd"]

    def test_protocol_filter(self) -> None:
        facade = _facade({"ss -H": ok(SS_OUTPUT)})
        assert facade.query("port", "udp/323").exists is True
        assert facade.query("port", "tcp/323").exists is False

    def test_bad_selector(self) -> None:
        with pytest.raises(AccessorError, match="port number"):
            _facade({}).query("port", "ssh")

    def test_listening_ports_skips_loopback(self) -> None:
        facade = _facade({"ss -H": ok(SS_OUTPUT)})
        assert facade.query("listening_ports", "tcp").value == [22]
        assert facade.query("listening_ports", "udp").value == []
        assert facade.query("listening_ports", "*").value == [22]

    def test_listening_ports_bad_selector(self) -> None:
        with pytest.raises(AccessorError, match="tcp, udp"):
            _facade({}).query("listening_ports", "sctp")


@pytest.mark.unit
class TestUserAccessors:
    """Test account lookups and table filtering."""

    def test_user(self) -> None:
        facade = _facade({"getent passwd": ok("alice:x:1000:1000:Alice:/home/alice:/bin/bash\nalice wheel\n")})
        fact = facade.query("user", "alice")
        assert fact.value["uid"] == 1000
        assert fact.value["groups"] == ["alice", "wheel"]

    def test_uid_zero_accounts(self) -> None:
        fact = _facade({"cat /etc/passwd": ok(PASSWD)}).query("passwd", "uid=0")
        assert fact.value == {"users": ["root", "toor"], "uids": [0, 0], "count": 2}

    def test_negated_selector(self) -> None:
        fact = _facade({"cat /etc/passwd": ok(PASSWD)}).query("passwd", "shell!=/usr/sbin/nologin")
        assert fact.value["users"] == ["root", "toor", "alice"]

    def test_empty_shadow_passwords(self) -> None:
        fact = _facade({"cat /etc/shadow": ok(SHADOW)}).query("shadow", "password=")
        assert fact.value["users"] == ["alice"]
        assert fact.value["uids"] == []

    def test_unreadable_shadow_is_error(self) -> None:
        with pytest.raises(AccessorError, match="permission denied"):
            _facade({"cat /etc/shadow": fail("cat: /etc/shadow: Permission denied")}).query("shadow", "*")

    def test_unknown_field(self) -> None:
        with pytest.raises(AccessorError, match="unknown field"):
            filter_rows([{"user": "root"}], "colour=red", "passwd")


@pytest.mark.unit
class TestConfigAccessors:
    """Test sshd_config and login.defs lookups."""

    def test_sshd_keyword(self) -> None:
        session = FakeSession({"test -e": ok(), "test -r": ok(), "grep": ok("PermitRootLogin no\n")})
        fact = AccessorFacade(session).query("sshd_config", "PermitRootLogin")
        assert fact.value == "no"
        grep = [c for c in session.commands if c.startswith("grep")][0]
        assert "-hEi" in grep
        assert "head -1" in grep

    def test_login_defs_last_match(self) -> None:
        session = FakeSession({"test -e": ok(), "test -r": ok(), "grep": ok("PASS_MAX_DAYS\t90\n")})
        assert AccessorFacade(session).query("login_defs", "PASS_MAX_DAYS").value == "90"
        assert "tail -1" in session.commands[-1]

    def test_missing_config_file_is_absent(self) -> None:
        assert _facade({"test -e": fail()}).query("sshd_config", "PermitRootLogin").exists is False

    def test_unset_keyword_is_absent(self) -> None:
        assert _facade({"test -e": ok(), "test -r": ok(), "grep": ok("")}).query("sshd_config", "Banner").exists is False

    def test_unreadable_config_is_error(self) -> None:
        with pytest.raises(AccessorError, match="permission denied"):
            _facade({"test -e": ok(), "test -r": fail()}).query("sshd_config", "PermitRootLogin")


@pytest.mark.unit
class TestProcessAndCommand:
    """Test process listing and raw commands."""

    def test_process(self) -> None:
        out = "root       1 systemd\nroot     812 sshd\nalice   2001 sshd\n"
        fact = _facade({"ps -eo": ok(out)}).query("process", "sshd")
        assert fact.value == {"running": True, "count": 2, "users": ["alice", "root"], "pids": [812, 2001]}

    def test_command(self) -> None:
        fact = _facade({"find /": Result(exit_code=0, stdout=" /tmp/x \n", stderr="")}).query("command", "find / -nouser")
        assert fact.value == {"stdout": "/tmp/x", "stderr": "", "exit_status": 0}


@pytest.mark.unit
class TestFacadeLimits:
    """Test timeouts and cancellation."""

    def test_command_timeout_passed_to_session(self) -> None:
        session = FakeSession({"sysctl": ok("1")})
        AccessorFacade(session, command_timeout=7).query("kernel_parameter", "a.b")
        assert session.timeouts == [7]

    def test_cancelled_facade_refuses_queries(self) -> None:
        facade = _facade({"sysctl": ok("1")})
        facade.cancel_event.set()
        with pytest.raises(EvaluationCancelled):
            facade.query("kernel_parameter", "a.b")

    def test_session_exception_becomes_accessor_error(self) -> None:
        def _boom(cmd: str) -> Result:
            raise OSError("channel closed")

        with pytest.raises(AccessorError, match="channel closed"):
            _facade({"sysctl": _boom}).query("kernel_parameter", "a.b")

    def test_deadline_clamps_command_timeout(self) -> None:
        session = FakeSession({"sysctl": ok("1")})
        AccessorFacade(session, command_timeout=30, deadline=time.monotonic() + 5).query("kernel_parameter", "a.b")
        assert 0 < session.timeouts[0] <= 5

    def test_session_failure_after_deadline_is_cancellation(self) -> None:
        def _stall(cmd: str) -> Result:
            time.sleep(0.1)
            raise socket.timeout("timed out")

        facade = AccessorFacade(FakeSession({"sysctl": _stall}), deadline=time.monotonic() + 0.05)
        with pytest.raises(EvaluationCancelled):
            facade.query("kernel_parameter", "a.b")
