"""Run flags and defaults for helixctl."""

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from helixctl.config import Config
from helixctl.errors import ConfigurationError

DEFAULT_KUBERNETES_VERSION = "v1.10.1"
DEFAULT_ETCD_VERSION = "3.2.17"
DEFAULT_FLANNEL_VERSION = "v0.9.1"
DEFAULT_COREDNS_VERSION = "1.1.1"

DEFAULT_SERVICE_CLUSTER_IP_RANGE = "10.71.0.0/16"
DEFAULT_CLUSTER_DNS = "10.71.0.10"
DEFAULT_CLUSTER_DOMAIN = "cluster.local"
DEFAULT_POD_NETWORK = "10.244.0.0/16"
DEFAULT_API_SERVER_PORT = 6443

ETCD_IMAGE_TEMPLATE = "gcr.io/google-containers/etcd-{arch}:{version}"
HYPERKUBE_IMAGE_TEMPLATE = "gcr.io/google-containers/hyperkube-{arch}:{version}"
FLANNEL_IMAGE_TEMPLATE = "quay.io/coreos/flannel:{version}-{arch}"
COREDNS_IMAGE_TEMPLATE = "coredns/coredns:{version}"

ETCD_CLUSTER_STATES = ("new", "existing")


class Architecture(str, Enum):
    """CPU architectures we can provision."""
    AMD64 = 'amd64'
    ARM = 'arm'


def _check_ip(value: str, what: str) -> None:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        raise ConfigurationError(f"Invalid {what}: '{value}' is not an IP address")


@dataclass
class SSHFlags:
    """How to reach the machines."""
    user: str = Config.SSH_USER
    port: int = Config.SSH_PORT
    key_path: Optional[str] = Config.SSH_KEY_PATH or None
    timeout: int = Config.SSH_TIMEOUT
    dial_attempts: int = Config.MAX_RETRIES


@dataclass
class ControlPlaneFlags:
    """Control-plane membership and API server access."""
    members: List[str] = field(default_factory=list)
    api_server_virtual_ip: str = ""
    api_server_dns_name: str = Config.K8S_API_DNS_NAME
    keepalived_interface: str = "eth0"
    keepalived_auth_password: str = "helix"

    def setup_defaults(self, is_init: bool) -> None:
        self.members = [m.strip() for m in self.members if m.strip()]
        if self.api_server_virtual_ip:
            _check_ip(self.api_server_virtual_ip, "API server virtual IP")
        if is_init and not self.members and not self.api_server_dns_name:
            raise ConfigurationError("No control-plane members specified")


@dataclass
class EtcdFlags:
    """Consensus store settings."""
    cluster_state: str = ""
    secure_clients: bool = Config.ETCD_SECURE_CLIENTS

    def setup_defaults(self) -> None:
        if self.cluster_state and self.cluster_state not in ETCD_CLUSTER_STATES:
            raise ConfigurationError(
                f"Invalid etcd cluster state '{self.cluster_state}', expected one of: {', '.join(ETCD_CLUSTER_STATES)}"
            )


@dataclass
class KubernetesFlags:
    """Kubernetes component settings."""
    version: str = DEFAULT_KUBERNETES_VERSION
    api_server_port: int = DEFAULT_API_SERVER_PORT
    service_cluster_ip_range: str = DEFAULT_SERVICE_CLUSTER_IP_RANGE
    cluster_dns: str = DEFAULT_CLUSTER_DNS
    cluster_domain: str = DEFAULT_CLUSTER_DOMAIN
    pod_network: str = DEFAULT_POD_NETWORK
    feature_gates: List[str] = field(default_factory=list)
    metadata: str = ""

    def setup_defaults(self) -> None:
        for cidr, what in ((self.service_cluster_ip_range, "service cluster IP range"),
                           (self.pod_network, "pod network")):
            try:
                ipaddress.ip_network(cidr)
            except ValueError as e:
                raise ConfigurationError(f"Invalid {what} '{cidr}': {e}")
        _check_ip(self.cluster_dns, "cluster DNS address")
        if self.api_server_port <= 0:
            raise ConfigurationError(f"Invalid API server port: {self.api_server_port}")

    def first_service_ip(self) -> str:
        """Return the first usable address of the service network (the `kubernetes` service)."""
        network = ipaddress.ip_network(self.service_cluster_ip_range)
        return str(next(network.hosts()))

    @property
    def feature_gates_arg(self) -> str:
        return ",".join(self.feature_gates)


@dataclass
class Images:
    """Container image versions."""
    kubernetes_version: str = DEFAULT_KUBERNETES_VERSION
    etcd_version: str = DEFAULT_ETCD_VERSION
    flannel_version: str = DEFAULT_FLANNEL_VERSION
    coredns_version: str = DEFAULT_COREDNS_VERSION

    def etcd_image(self, arch: Architecture) -> str:
        return ETCD_IMAGE_TEMPLATE.format(arch=Architecture(arch).value, version=self.etcd_version)

    def hyperkube_image(self, arch: Architecture) -> str:
        return HYPERKUBE_IMAGE_TEMPLATE.format(arch=Architecture(arch).value, version=self.kubernetes_version)

    def flannel_image(self, arch: Architecture) -> str:
        return FLANNEL_IMAGE_TEMPLATE.format(arch=Architecture(arch).value, version=self.flannel_version)

    def coredns_image(self) -> str:
        return COREDNS_IMAGE_TEMPLATE.format(version=self.coredns_version)


@dataclass
class ServiceFlags:
    """All flags of a single init or reset run."""
    local_conf_dir: str = ""
    members: List[str] = field(default_factory=list)
    dry_run: bool = False
    architecture: Optional[Architecture] = None
    ssh: SSHFlags = field(default_factory=SSHFlags)
    control_plane: ControlPlaneFlags = field(default_factory=ControlPlaneFlags)
    etcd: EtcdFlags = field(default_factory=EtcdFlags)
    kubernetes: KubernetesFlags = field(default_factory=KubernetesFlags)
    images: Images = field(default_factory=Images)

    def setup_defaults(self, is_init: bool) -> None:
        """Validate the flags and fill in derived defaults.

        Raises:
            ConfigurationError: If required input is missing or invalid
        """
        if not self.local_conf_dir:
            raise ConfigurationError("Local configuration directory is required")
        self.members = [m.strip() for m in self.members if m.strip()]
        if not self.members and not self.control_plane.members:
            raise ConfigurationError("No members specified")
        if self.architecture is not None:
            self.architecture = Architecture(self.architecture)
        self.control_plane.setup_defaults(is_init)
        self.etcd.setup_defaults()
        self.kubernetes.setup_defaults()
        self.images.kubernetes_version = self.kubernetes.version
