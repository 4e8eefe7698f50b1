import paramiko
import pytest

from helixctl.errors import DialError, RemoteExecError
from helixctl.errors import TemplateRenderError
from helixctl.modules import ssh
from helixctl.modules.ssh import SSHClient, dial

from conftest import FakeMachine


def test_run_strips_trailing_newline(ssh_client):
    assert ssh_client.run("uname -m") == "x86_64"


def test_run_failure_carries_stderr(ssh_client, machine):
    machine.failing["false"] = (3, "boom")
    with pytest.raises(RemoteExecError) as excinfo:
        ssh_client.run("false")
    assert excinfo.value.exit_status == 3
    assert excinfo.value.stderr == "boom"
    assert "boom" in str(excinfo.value)


def test_dry_run_only_logs(machine):
    client = SSHClient(machine, "pi", "node-1", "10.0.0.1", dry_run=True)
    assert client.run("sudo reboot") == ""
    client.update_file("/etc/foo", "bar", 0o644)
    assert machine.commands == []


def test_update_file_read_back(ssh_client, machine):
    content = b"\x00binary\ncontent\n"
    ssh_client.update_file("/etc/helix/test/file.bin", content, 0o600)
    assert ssh_client.read_file("/etc/helix/test/file.bin") == content
    assert machine.modes["/etc/helix/test/file.bin"] == 0o600
    assert machine.modes["/etc/helix/test"] == 0o755


def test_update_file_overwrites(ssh_client):
    ssh_client.update_file("/etc/foo.conf", "one", 0o644)
    ssh_client.update_file("/etc/foo.conf", "two", 0o640)
    assert ssh_client.read_file("/etc/foo.conf") == b"two"


def test_render(ssh_client):
    ssh_client.render("name={{ name | quote }}\n", "/etc/app.conf", {"name": 'a "b"'}, 0o644)
    assert ssh_client.read_file("/etc/app.conf") == b'name="a \\"b\\""\n'


def test_render_missing_option(ssh_client, machine):
    with pytest.raises(TemplateRenderError):
        ssh_client.render("{{ missing }}", "/etc/app.conf", {}, 0o644)
    assert machine.commands == []


def test_remove_is_best_effort(ssh_client, machine):
    ssh_client.update_file("/etc/foo", "x", 0o644)
    ssh_client.remove_file("/etc/foo")
    ssh_client.remove_file("/etc/foo")
    assert "/etc/foo" not in machine.files
    machine.failing["sudo rm -rf"] = (1, "permission denied")
    ssh_client.remove_directory("/var/lib/etcd")


class FlakyParamiko:
    instances = []

    def __init__(self, failures):
        self.failures = failures
        self.closed = False
        FlakyParamiko.instances.append(self)

    def set_missing_host_key_policy(self, policy):
        pass

    def connect(self, **kwargs):
        self.kwargs = kwargs
        if len(FlakyParamiko.instances) <= self.failures:
            raise paramiko.SSHException("Error reading SSH protocol banner")

    def close(self):
        self.closed = True


@pytest.fixture
def no_sleep(monkeypatch):
    sleeps = []
    monkeypatch.setattr(ssh.time, "sleep", lambda s: sleeps.append(s))
    return sleeps


def test_dial_retries_then_succeeds(no_sleep):
    FlakyParamiko.instances = []
    client = dial("pi", "node-1", "10.0.0.1", attempts=3, client_factory=lambda: FlakyParamiko(2))
    assert isinstance(client, SSHClient)
    assert len(FlakyParamiko.instances) == 3
    assert len(no_sleep) == 2
    assert all(0 <= s <= 0.1 for s in no_sleep)
    assert FlakyParamiko.instances[-1].kwargs["hostname"] == "10.0.0.1"
    assert FlakyParamiko.instances[-1].kwargs["username"] == "pi"


def test_dial_gives_up(no_sleep):
    FlakyParamiko.instances = []
    with pytest.raises(DialError):
        dial("pi", "node-1", "10.0.0.1", attempts=3, client_factory=lambda: FlakyParamiko(10))
    assert len(FlakyParamiko.instances) == 3
    assert all(i.closed for i in FlakyParamiko.instances)


class BrokenTransport:
    """A paramiko client whose session dropped after connecting."""

    def __init__(self, error):
        self.error = error

    def exec_command(self, command, timeout=None):
        raise self.error

    def close(self):
        pass


@pytest.mark.parametrize("error", [
    paramiko.SSHException("SSH session not active"),
    EOFError(),
    TimeoutError("timed out"),
])
def test_transport_failure_is_a_remote_exec_error(error):
    client = SSHClient(BrokenTransport(error), "pi", "node-1", "10.0.0.1")
    with pytest.raises(RemoteExecError) as excinfo:
        client.run("uname -m")
    assert excinfo.value.exit_status == -1
    assert excinfo.value.host == "node-1"
    assert excinfo.value.__cause__ is error
