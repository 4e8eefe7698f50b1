import pytest

from helixctl.errors import ConfigurationError
from helixctl.modules.models import Architecture, Images, KubernetesFlags, ServiceFlags


def test_setup_defaults_requires_conf_dir():
    flags = ServiceFlags(members=["10.0.0.1"])
    with pytest.raises(ConfigurationError, match="configuration directory"):
        flags.setup_defaults(is_init=True)


def test_setup_defaults_requires_members():
    flags = ServiceFlags(local_conf_dir="/tmp/conf")
    with pytest.raises(ConfigurationError, match="No members"):
        flags.setup_defaults(is_init=False)


def test_init_requires_control_plane_source():
    flags = ServiceFlags(local_conf_dir="/tmp/conf", members=["10.0.0.1"])
    flags.control_plane.api_server_dns_name = ""
    with pytest.raises(ConfigurationError, match="control-plane"):
        flags.setup_defaults(is_init=True)
    # reset does not need to know the control plane
    flags.setup_defaults(is_init=False)


def test_rejects_invalid_virtual_ip_and_etcd_state():
    flags = ServiceFlags(local_conf_dir="/tmp/conf", members=["10.0.0.1"])
    flags.control_plane.members = ["10.0.0.1"]
    flags.control_plane.api_server_virtual_ip = "not-an-ip"
    with pytest.raises(ConfigurationError, match="virtual IP"):
        flags.setup_defaults(is_init=True)

    flags.control_plane.api_server_virtual_ip = "10.0.0.100"
    flags.etcd.cluster_state = "recovering"
    with pytest.raises(ConfigurationError, match="etcd cluster state"):
        flags.setup_defaults(is_init=True)


def test_setup_defaults_copies_kubernetes_version_to_images():
    flags = ServiceFlags(local_conf_dir="/tmp/conf", members=[" 10.0.0.1 ", ""])
    flags.control_plane.members = ["10.0.0.1"]
    flags.kubernetes.version = "v1.11.0"
    flags.setup_defaults(is_init=True)
    assert flags.members == ["10.0.0.1"]
    assert flags.images.hyperkube_image(Architecture.ARM) == "gcr.io/google-containers/hyperkube-arm:v1.11.0"


def test_first_service_ip():
    assert KubernetesFlags().first_service_ip() == "10.71.0.1"
    assert KubernetesFlags(service_cluster_ip_range="10.96.0.0/12").first_service_ip() == "10.96.0.1"


def test_feature_gates_arg():
    flags = KubernetesFlags(feature_gates=["A=true", "B=false"])
    assert flags.feature_gates_arg == "A=true,B=false"


def test_image_names():
    images = Images()
    assert images.etcd_image(Architecture.AMD64) == "gcr.io/google-containers/etcd-amd64:3.2.17"
    assert images.flannel_image("arm") == "quay.io/coreos/flannel:v0.9.1-arm"
    assert images.coredns_image() == "coredns/coredns:1.1.1"
