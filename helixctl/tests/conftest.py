import posixpath
import shlex
from typing import Dict, List, Optional, Tuple

import pytest

from helixctl.modules.models import ServiceFlags
from helixctl.modules.ssh import SSHClient


class FakeMachine:
    """Stands in for a connected paramiko.SSHClient and keeps an in-memory filesystem."""

    def __init__(self, machine_type: str = "x86_64"):
        self.machine_type = machine_type
        self.files: Dict[str, bytes] = {}
        self.modes: Dict[str, int] = {}
        self.dirs = {"/"}
        self.commands: List[str] = []
        self.failing: Dict[str, Tuple[int, str]] = {}
        self.closed = False

    # paramiko.SSHClient surface

    def exec_command(self, command, timeout=None):
        self.commands.append(command)
        execution = _Execution(self, command)
        return _Stdin(execution), _Stream(execution, 0), _Stream(execution, 1)

    def close(self):
        self.closed = True

    # helpers

    def mkdirs(self, path: str) -> None:
        while path not in self.dirs:
            self.dirs.add(path)
            path = posixpath.dirname(path)

    def execute(self, command: str, stdin: bytes) -> Tuple[bytes, bytes, int]:
        for prefix, (status, stderr) in self.failing.items():
            if command.startswith(prefix):
                return b"", stderr.encode(), status
        output = b""
        for segment in command.split("&&"):
            out, err, status = self._execute_one(shlex.split(segment), stdin)
            if status != 0:
                return output, err, status
            output += out
        return output, b"", 0

    def _execute_one(self, args: List[str], stdin: bytes) -> Tuple[bytes, bytes, int]:
        if args and args[0] == "sudo":
            args = args[1:]
        cmd = args[0]
        if cmd == "mkdir":
            self.mkdirs(args[-1])
            return b"", b"", 0
        if cmd == "chmod":
            path = args[2]
            if path not in self.files and path not in self.dirs:
                return b"", f"chmod: cannot access '{path}'".encode(), 1
            self.modes[path] = int(args[1], 8)
            return b"", b"", 0
        if cmd == "tee":
            path = args[1]
            if posixpath.dirname(path) not in self.dirs:
                return b"", f"tee: {path}: No such file or directory".encode(), 1
            self.files[path] = stdin
            return b"", b"", 0
        if cmd == "cat":
            if args[1] not in self.files:
                return b"", f"cat: {args[1]}: No such file or directory".encode(), 1
            return self.files[args[1]], b"", 0
        if cmd == "rm":
            path = args[2]
            self.files.pop(path, None)
            if args[1] == "-rf":
                for name in [f for f in self.files if f.startswith(path + "/")]:
                    del self.files[name]
                self.dirs = {d for d in self.dirs if d != path and not d.startswith(path + "/")}
            return b"", b"", 0
        if cmd == "test":
            # test -d PATH || echo 'not'
            return (b"", b"", 0) if args[2] in self.dirs else (b"not\n", b"", 0)
        if cmd == "uname":
            return (self.machine_type + "\n").encode(), b"", 0
        if cmd == "systemctl":
            return b"", b"", 0
        return b"", f"{cmd}: command not found".encode(), 127

    def systemctl_calls(self) -> List[str]:
        return [c for c in self.commands if "systemctl" in c]


class _Execution:
    def __init__(self, machine: FakeMachine, command: str):
        self.machine = machine
        self.command = command
        self.stdin = b""
        self._result: Optional[Tuple[bytes, bytes, int]] = None

    def result(self) -> Tuple[bytes, bytes, int]:
        if self._result is None:
            self._result = self.machine.execute(self.command, self.stdin)
        return self._result


class _Channel:
    def __init__(self, execution: _Execution):
        self.execution = execution

    def shutdown_write(self):
        pass

    def recv_exit_status(self):
        return self.execution.result()[2]


class _Stdin:
    def __init__(self, execution: _Execution):
        self.execution = execution
        self.channel = _Channel(execution)

    def write(self, data):
        if isinstance(data, str):
            data = data.encode()
        self.execution.stdin += data

    def flush(self):
        pass


class _Stream:
    def __init__(self, execution: _Execution, index: int):
        self.execution = execution
        self.index = index
        self.channel = _Channel(execution)

    def read(self):
        return self.execution.result()[self.index]


class FakeKubernetesClient:
    def __init__(self, nodes=None):
        self.nodes = ["node"] if nodes is None else nodes
        self.applied = []

    def list_nodes(self, timeout=None):
        return list(self.nodes)

    def create_or_update(self, body):
        self.applied.append(body)


@pytest.fixture
def machine():
    return FakeMachine()


@pytest.fixture
def ssh_client(machine):
    return SSHClient(machine, "pi", "node-1", "10.0.0.1")


def make_cluster(count: int = 5, control_plane: int = 3):
    """Return (machines by address, member list, control-plane member list)."""
    addresses = [f"10.0.0.{i}" for i in range(1, count + 1)]
    machines = {address: FakeMachine() for address in addresses}
    return machines, addresses, addresses[:control_plane]


def make_flags(tmp_path, members, control_plane_members, **kwargs) -> ServiceFlags:
    flags = ServiceFlags(local_conf_dir=str(tmp_path / "conf"), members=list(members), **kwargs)
    flags.control_plane.members = list(control_plane_members)
    return flags


def fake_dialer(machines: Dict[str, FakeMachine]):
    def dialer(user, hostname, address, dry_run, **kwargs):
        return SSHClient(machines[address], user, hostname, address, dry_run=dry_run)
    return dialer
