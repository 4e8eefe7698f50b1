"""Run etcd as a static pod on every control-plane node.

Before anything is written, every control-plane node is checked for an
existing data directory. If any node already has one the cluster is started
with ``--initial-cluster-state=existing`` so that data is never re-initialized.
"""
import logging
import secrets
import threading
from typing import List

from helixctl.modules.models import Architecture
from helixctl.modules.pipeline import ServiceUnit
from helixctl.modules.template import load_template
from helixctl.modules.topology import Node
from helixctl.services.component import CERT_FILE_MODE, KEY_FILE_MODE, MANIFEST_FILE_MODE, MANIFESTS_DIR

logger = logging.getLogger("helixctl.services.etcd")

DATA_DIR = "/var/lib/etcd"
MEMBER_DIR = f"{DATA_DIR}/member"
CERTS_DIR = "/etc/kubernetes/pki/etcd"
MANIFEST_PATH = f"{MANIFESTS_DIR}/etcd.yaml"
CLIENT_PORT = 2379
PEER_PORT = 2380


def initial_cluster(nodes: List[Node]) -> str:
    """Return the --initial-cluster value for the control-plane nodes."""
    return ",".join(f"{n.name}=https://{n.address}:{PEER_PORT}" for n in nodes if n.is_control_plane)


def client_endpoints(nodes: List[Node], secure: bool = True) -> str:
    scheme = "https" if secure else "http"
    return ",".join(f"{scheme}://{n.address}:{CLIENT_PORT}" for n in nodes if n.is_control_plane)


class EtcdService:
    """State shared by the etcd handlers during one run."""

    def __init__(self):
        self.initial_cluster_token = ""
        self._existing = False
        self._lock = threading.Lock()

    def prepare(self, sctx, deps, flags, will_init: bool) -> None:
        self._existing = False
        if will_init:
            self.initial_cluster_token = secrets.token_hex(16)

    def init_node(self, node, client, sctx, deps, flags) -> None:
        if not node.is_control_plane or flags.etcd.cluster_state:
            return
        result = client.run(f"test -d {MEMBER_DIR} || echo 'not'", quiet=True)
        if flags.dry_run:
            return
        if result.strip() != "not":
            client.log.info(f"Found existing etcd data in {MEMBER_DIR}")
            with self._lock:
                self._existing = True

    def cluster_state(self, flags) -> str:
        if flags.etcd.cluster_state:
            return flags.etcd.cluster_state
        with self._lock:
            return "existing" if self._existing else "new"

    def init_machine(self, node, client, sctx, deps, flags) -> None:
        if not node.is_control_plane:
            return
        etcd_ca = deps.etcd_ca

        client.log.info("Creating etcd TLS certificates")
        server_cert, server_key = etcd_ca.issue_server_certificate(node.name, "etcd", client, "127.0.0.1", "localhost")
        peer_cert, peer_key = etcd_ca.issue_server_certificate(node.name, "etcd-peer", client)
        client.update_file(f"{CERTS_DIR}/ca.crt", etcd_ca.cert_pem, CERT_FILE_MODE)
        client.update_file(f"{CERTS_DIR}/server.crt", server_cert, CERT_FILE_MODE)
        client.update_file(f"{CERTS_DIR}/server.key", server_key, KEY_FILE_MODE)
        client.update_file(f"{CERTS_DIR}/peer.crt", peer_cert, CERT_FILE_MODE)
        client.update_file(f"{CERTS_DIR}/peer.key", peer_key, KEY_FILE_MODE)

        state = self.cluster_state(flags)
        options = {
            "pod_name": f"etcd-{node.name}",
            "name": node.name,
            "address": node.address,
            "data_dir": DATA_DIR,
            "certs_dir": CERTS_DIR,
            "client_scheme": "https" if flags.etcd.secure_clients else "http",
            "secure_clients": flags.etcd.secure_clients,
            "initial_cluster": initial_cluster(sctx.nodes),
            "initial_cluster_token": self.initial_cluster_token,
            "cluster_state": state,
            "image": flags.images.etcd_image(node.architecture),
            "unsupported_arch": node.architecture.value if node.architecture == Architecture.ARM else "",
        }
        client.log.info(f"Creating etcd manifest (cluster state {state})")
        client.render(load_template("etcd.yaml.j2"), MANIFEST_PATH, options, MANIFEST_FILE_MODE)

    def reset_machine(self, node, client, sctx, deps, flags) -> None:
        if not node.is_control_plane:
            return
        client.remove_file(MANIFEST_PATH)
        client.remove_directory(CERTS_DIR)
        client.remove_directory(DATA_DIR)


def new_service() -> ServiceUnit:
    service = EtcdService()
    return ServiceUnit(
        name="etcd",
        prepare=service.prepare,
        init_node=service.init_node,
        init_machine=service.init_machine,
        reset_machine=service.reset_machine,
    )
