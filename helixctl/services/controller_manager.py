"""Run the Kubernetes controller manager as a static pod on every control-plane node."""
from helixctl.modules.pipeline import ServiceUnit
from helixctl.modules.template import load_template
from helixctl.services.component import MANIFEST_FILE_MODE, Component, api_server_url

component = Component("controller-manager")

MANIFEST_FILE = "kube-controller-manager.yaml"
COMMON_NAME = "system:kube-controller-manager"


def init_machine(node, client, sctx, deps, flags) -> None:
    if not node.is_control_plane:
        return
    component.upload_certificates(COMMON_NAME, "", client, deps.kubernetes_ca)
    component.create_kubeconfig(COMMON_NAME, "", client, deps.kubernetes_ca, api_server_url(sctx, flags))
    options = {
        "pod_name": f"kube-controller-manager-{node.name}",
        "image": flags.images.hyperkube_image(node.architecture),
        "kubeconfig_path": component.kubeconfig_path,
        "feature_gates": flags.kubernetes.feature_gates_arg,
        "pod_network": flags.kubernetes.pod_network,
        "service_cluster_ip_range": flags.kubernetes.service_cluster_ip_range,
        "certs_dir": component.cert_dir,
        "ca_cert_path": component.ca_cert_path,
        "ca_key_path": component.ca_key_path,
        "sa_key_path": component.sa_key_path,
    }
    client.log.info("Creating kube-controller-manager manifest")
    client.render(load_template("kube-controller-manager.yaml.j2"), component.manifest_path(MANIFEST_FILE),
                  options, MANIFEST_FILE_MODE)


def reset_machine(node, client, sctx, deps, flags) -> None:
    if not node.is_control_plane:
        return
    client.remove_file(component.manifest_path(MANIFEST_FILE))
    component.remove_kubeconfig(client)
    component.remove_certificates(client)


def new_service() -> ServiceUnit:
    return ServiceUnit(name="controller-manager", init_machine=init_machine, reset_machine=reset_machine)
