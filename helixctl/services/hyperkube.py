"""Install the hyperkube binary (and kubectl) on every node."""
from helixctl.modules.pipeline import ServiceUnit
from helixctl.services.systemd import install_service, remove_service

SERVICE_NAME = "hyperkube"
KUBECTL_PATH = "/usr/local/bin/kubectl"


def hyperkube_path(flags) -> str:
    return f"/usr/local/bin/hyperkube-{flags.kubernetes.version}"


def init_machine(node, client, sctx, deps, flags) -> None:
    options = {
        "image": flags.images.hyperkube_image(node.architecture),
        "hyperkube_path": hyperkube_path(flags),
        "kubectl_path": KUBECTL_PATH,
    }
    install_service(client, SERVICE_NAME, "hyperkube.service.j2", options)


def reset_machine(node, client, sctx, deps, flags) -> None:
    remove_service(client, SERVICE_NAME)
    client.remove_file(KUBECTL_PATH)
    client.remove_file(hyperkube_path(flags))


def new_service() -> ServiceUnit:
    return ServiceUnit(name="hyperkube", init_machine=init_machine, reset_machine=reset_machine)
