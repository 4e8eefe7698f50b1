"""Run the Kubernetes scheduler as a static pod on every control-plane node."""
from helixctl.modules.pipeline import ServiceUnit
from helixctl.modules.template import load_template
from helixctl.services.component import MANIFEST_FILE_MODE, Component, api_server_url

component = Component("scheduler")

MANIFEST_FILE = "kube-scheduler.yaml"
COMMON_NAME = "system:kube-scheduler"


def init_machine(node, client, sctx, deps, flags) -> None:
    if not node.is_control_plane:
        return
    component.upload_certificates(COMMON_NAME, "", client, deps.kubernetes_ca)
    component.create_kubeconfig(COMMON_NAME, "", client, deps.kubernetes_ca, api_server_url(sctx, flags))
    options = {
        "pod_name": f"kube-scheduler-{node.name}",
        "image": flags.images.hyperkube_image(node.architecture),
        "kubeconfig_path": component.kubeconfig_path,
        "feature_gates": flags.kubernetes.feature_gates_arg,
    }
    client.log.info("Creating kube-scheduler manifest")
    client.render(load_template("kube-scheduler.yaml.j2"), component.manifest_path(MANIFEST_FILE),
                  options, MANIFEST_FILE_MODE)


def reset_machine(node, client, sctx, deps, flags) -> None:
    if not node.is_control_plane:
        return
    client.remove_file(component.manifest_path(MANIFEST_FILE))
    component.remove_kubeconfig(client)
    component.remove_certificates(client)


def new_service() -> ServiceUnit:
    return ServiceUnit(name="scheduler", init_machine=init_machine, reset_machine=reset_machine)
