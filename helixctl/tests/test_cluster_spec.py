import pytest

from helixctl.errors import ConfigurationError
from helixctl.modules.cluster_spec import load_cluster_spec
from helixctl.modules.models import ServiceFlags

CLUSTER_YAML = """
ssh-user: admin
masters:
  - 192.168.1.10
  - 192.168.1.11
workers:
  - 192.168.1.20
api-server:
  virtual-ip: 192.168.1.100
"""


def test_load_and_apply(tmp_path):
    path = tmp_path / "cluster.yaml"
    path.write_text(CLUSTER_YAML)
    spec = load_cluster_spec(str(path))
    assert spec.masters == ["192.168.1.10", "192.168.1.11"]

    flags = ServiceFlags(local_conf_dir=str(tmp_path))
    flags.ssh.user = ""
    flags.control_plane.api_server_dns_name = ""
    spec.apply_to(flags)
    assert flags.ssh.user == "admin"
    assert flags.members == ["192.168.1.10", "192.168.1.11", "192.168.1.20"]
    assert flags.control_plane.members == ["192.168.1.10", "192.168.1.11"]
    assert flags.control_plane.api_server_virtual_ip == "192.168.1.100"


def test_command_line_values_win(tmp_path):
    path = tmp_path / "cluster.yaml"
    path.write_text(CLUSTER_YAML)
    flags = ServiceFlags(local_conf_dir=str(tmp_path), members=["10.0.0.1"])
    flags.ssh.user = "pi"
    load_cluster_spec(str(path)).apply_to(flags)
    assert flags.members == ["10.0.0.1"]
    assert flags.ssh.user == "pi"


@pytest.mark.parametrize("content", [
    "masters: []\n",
    "workers: [10.0.0.1]\n",
    "masters: [10.0.0.1]\nunknown: 1\n",
    "masters: [10.0.0.1]\napi-server:\n  virtual-ip: nope\n",
    "- just\n- a list\n",
    "masters: [\n",
])
def test_invalid_cluster_file(tmp_path, content):
    path = tmp_path / "cluster.yaml"
    path.write_text(content)
    with pytest.raises(ConfigurationError):
        load_cluster_spec(str(path))


def test_missing_cluster_file(tmp_path):
    with pytest.raises(ConfigurationError, match="Cannot read"):
        load_cluster_spec(str(tmp_path / "missing.yaml"))
