"""Run the Kubernetes API server as a static pod on every control-plane node."""
from typing import List

from helixctl.modules.pipeline import ServiceUnit
from helixctl.modules.template import load_template
from helixctl.services import etcd
from helixctl.services.component import CERT_FILE_MODE, KEY_FILE_MODE, MANIFEST_FILE_MODE, Component

component = Component("apiserver")
kubelet_client = Component("apiserver-kubelet-client")
front_proxy_client = Component("front-proxy-client")
etcd_client = Component("apiserver-etcd-client")

MANIFEST_FILE = "kube-apiserver.yaml"


def alt_names(sctx, flags) -> List[str]:
    """Names and addresses the API server certificate must be valid for."""
    domain = flags.kubernetes.cluster_domain
    return [
        "127.0.0.1",
        flags.kubernetes.first_service_ip(),
        sctx.api_server_address,
        f"kubernetes.default.svc.{domain}",
        "kubernetes.default.svc",
        "kubernetes.default",
        "kubernetes",
    ]


def init_machine(node, client, sctx, deps, flags) -> None:
    if not node.is_control_plane:
        return
    ca = deps.kubernetes_ca
    component.upload_certificates("kube-apiserver", "Kubernetes", client, ca, *alt_names(sctx, flags))
    kubelet_client.upload_certificates("kube-apiserver-kubelet-client", "system:masters", client, ca)
    front_proxy_client.upload_certificates("front-proxy-client", "", client, ca)

    cert, key = deps.etcd_ca.issue_server_certificate("kube-apiserver-etcd-client", "", client)
    client.update_file(etcd_client.cert_path, cert, CERT_FILE_MODE)
    client.update_file(etcd_client.key_path, key, KEY_FILE_MODE)

    options = {
        "pod_name": f"kube-apiserver-{node.name}",
        "address": node.address,
        "image": flags.images.hyperkube_image(node.architecture),
        "api_server_port": flags.kubernetes.api_server_port,
        "service_cluster_ip_range": flags.kubernetes.service_cluster_ip_range,
        "feature_gates": flags.kubernetes.feature_gates_arg,
        "certs_dir": component.cert_dir,
        "ca_cert_path": component.ca_cert_path,
        "cert_path": component.cert_path,
        "key_path": component.key_path,
        "sa_pub_path": component.sa_pub_path,
        "kubelet_client_cert_file": kubelet_client.cert_path,
        "kubelet_client_key_file": kubelet_client.key_path,
        "proxy_client_cert_file": front_proxy_client.cert_path,
        "proxy_client_key_file": front_proxy_client.key_path,
        "etcd_ca_file": f"{etcd.CERTS_DIR}/ca.crt",
        "etcd_cert_file": etcd_client.cert_path,
        "etcd_key_file": etcd_client.key_path,
        "etcd_endpoints": etcd.client_endpoints(sctx.nodes, flags.etcd.secure_clients),
    }
    client.log.info("Creating kube-apiserver manifest")
    client.render(load_template("kube-apiserver.yaml.j2"), component.manifest_path(MANIFEST_FILE),
                  options, MANIFEST_FILE_MODE)


def reset_machine(node, client, sctx, deps, flags) -> None:
    if not node.is_control_plane:
        return
    client.remove_file(component.manifest_path(MANIFEST_FILE))
    for c in (component, kubelet_client, front_proxy_client, etcd_client):
        c.remove_certificates(client)


def new_service() -> ServiceUnit:
    return ServiceUnit(name="apiserver", init_machine=init_machine, reset_machine=reset_machine)
