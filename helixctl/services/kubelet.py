"""Run the kubelet on every node."""
from helixctl.modules.pipeline import ServiceUnit
from helixctl.services.cni import CNI_BIN_DIR
from helixctl.services.component import MANIFESTS_DIR, Component, api_server_url
from helixctl.services.hyperkube import hyperkube_path
from helixctl.services.systemd import install_service, remove_service

SERVICE_NAME = "kubelet"

component = Component("kubelet")


def init_machine(node, client, sctx, deps, flags) -> None:
    common_name = f"system:node:{node.name}"
    component.upload_certificates(common_name, "system:nodes", client, deps.kubernetes_ca)
    component.create_kubeconfig(common_name, "system:nodes", client, deps.kubernetes_ca,
                                api_server_url(sctx, flags))
    options = {
        "hyperkube_path": hyperkube_path(flags),
        "cluster_dns": flags.kubernetes.cluster_dns,
        "cluster_domain": flags.kubernetes.cluster_domain,
        "cni_bin_dir": CNI_BIN_DIR,
        "feature_gates": flags.kubernetes.feature_gates_arg,
        "kubeconfig_path": component.kubeconfig_path,
        "node_labels": flags.kubernetes.metadata,
        "node_name": node.name,
        "node_address": node.address,
        "manifests_dir": MANIFESTS_DIR,
        "cert_path": component.cert_path,
        "key_path": component.key_path,
        "client_ca_path": component.ca_cert_path,
    }
    install_service(client, SERVICE_NAME, "kubelet.service.j2", options)


def reset_machine(node, client, sctx, deps, flags) -> None:
    remove_service(client, SERVICE_NAME)
    component.remove_kubeconfig(client)
    component.remove_certificates(client)


def new_service() -> ServiceUnit:
    return ServiceUnit(name="kubelet", init_machine=init_machine, reset_machine=reset_machine)
