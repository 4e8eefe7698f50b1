import pytest

from helixctl.errors import UnsupportedArchitectureError
from helixctl.modules.models import Architecture, ControlPlaneFlags
from helixctl.modules.pipeline import ServiceDependencies
from helixctl.modules.ssh import SSHClient
from helixctl.modules.topology import Node, ServiceContext
from helixctl.services import apiserver, architecture, default_pipeline, etcd, keepalived

from conftest import FakeMachine, make_flags


def _context(vip=""):
    nodes = [
        Node("node-10.0.0.1", "10.0.0.1", True, Architecture.AMD64),
        Node("node-10.0.0.2", "10.0.0.2", True, Architecture.AMD64),
        Node("node-10.0.0.3", "10.0.0.3", False, Architecture.ARM),
    ]
    return ServiceContext(nodes, ControlPlaneFlags(api_server_virtual_ip=vip, api_server_dns_name=""))


def test_default_pipeline_order():
    assert default_pipeline().names == [
        "architecture", "cni", "hyperkube", "keepalived", "ca", "kubelet", "etcd",
        "apiserver", "scheduler", "controller-manager", "controlplane", "proxy",
        "flannel", "coredns",
    ]


@pytest.mark.parametrize("machine,expected", [
    ("x86_64", Architecture.AMD64),
    ("armv7l\n", Architecture.ARM),
])
def test_parse_machine(machine, expected):
    assert architecture.parse_machine(machine) == expected


def test_parse_machine_unsupported():
    with pytest.raises(UnsupportedArchitectureError) as excinfo:
        architecture.parse_machine("aarch64", "node-1")
    assert "aarch64" in str(excinfo.value)


def test_architecture_detection(tmp_path):
    machine = FakeMachine("armv7l")
    node = Node("node-10.0.0.1", "10.0.0.1")
    flags = make_flags(tmp_path, ["10.0.0.1"], ["10.0.0.1"])
    architecture.init_node(node, SSHClient(machine, "pi", node.name, node.address), None, None, flags)
    assert node.architecture == Architecture.ARM
    assert machine.commands == ["uname -m"]


def test_architecture_dry_run_assumes_amd64(tmp_path):
    machine = FakeMachine("armv7l")
    node = Node("node-10.0.0.1", "10.0.0.1")
    flags = make_flags(tmp_path, ["10.0.0.1"], ["10.0.0.1"], dry_run=True)
    client = SSHClient(machine, "pi", node.name, node.address, dry_run=True)
    architecture.init_node(node, client, None, None, flags)
    assert node.architecture == Architecture.AMD64
    assert machine.commands == []


def test_vrrp_settings():
    sctx = _context()
    assert keepalived.vrrp_settings(sctx.nodes[0], sctx) == ("MASTER", 100)
    assert keepalived.vrrp_settings(sctx.nodes[1], sctx) == ("BACKUP", 99)


def test_keepalived_only_with_virtual_ip(tmp_path):
    sctx = _context(vip="10.0.0.100")
    flags = make_flags(tmp_path, ["10.0.0.1"], ["10.0.0.1"])
    flags.control_plane.api_server_virtual_ip = "10.0.0.100"

    worker = FakeMachine()
    keepalived.init_machine(sctx.nodes[2], SSHClient(worker, "pi", "w", "10.0.0.3"), sctx, None, flags)
    assert worker.commands == []

    master = FakeMachine()
    keepalived.init_machine(sctx.nodes[1], SSHClient(master, "pi", "m", "10.0.0.2"), sctx, None, flags)
    conf = master.files[keepalived.CONF_PATH].decode()
    assert "state BACKUP" in conf
    assert "priority 99" in conf
    assert "10.0.0.100" in conf
    assert master.modes[keepalived.CHECK_SCRIPT_PATH] == 0o755


def test_apiserver_alt_names(tmp_path):
    flags = make_flags(tmp_path, ["10.0.0.1"], ["10.0.0.1"])
    names = apiserver.alt_names(_context(vip="10.0.0.100"), flags)
    assert "10.71.0.1" in names
    assert "10.0.0.100" in names
    assert "kubernetes.default.svc.cluster.local" in names
    assert apiserver.alt_names(_context(), flags)[2] == "10.0.0.1"


def test_etcd_cluster_strings():
    nodes = _context().nodes
    assert etcd.initial_cluster(nodes) == \
        "node-10.0.0.1=https://10.0.0.1:2380,node-10.0.0.2=https://10.0.0.2:2380"
    assert etcd.client_endpoints(nodes, secure=False) == "http://10.0.0.1:2379,http://10.0.0.2:2379"


def test_etcd_cluster_state_flag_overrides_probe(tmp_path):
    service = etcd.EtcdService()
    flags = make_flags(tmp_path, ["10.0.0.1"], ["10.0.0.1"])
    flags.etcd.cluster_state = "existing"
    machine = FakeMachine()
    node = _context().nodes[0]
    service.prepare(None, ServiceDependencies(), flags, True)
    service.init_node(node, SSHClient(machine, "pi", node.name, node.address), None, None, flags)
    assert machine.commands == []
    assert service.cluster_state(flags) == "existing"
    assert service.initial_cluster_token
