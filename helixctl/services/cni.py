"""Install the CNI plugins on every node."""
from helixctl.modules.pipeline import ServiceUnit
from helixctl.services.systemd import install_service, remove_service

SERVICE_NAME = "cni-installer"
CNI_VERSION = "v0.7.0"
CNI_BIN_DIR = "/opt/cni/bin"
PLUGINS_URL_TEMPLATE = ("https://github.com/containernetworking/plugins/releases/download/"
                        "{version}/cni-plugins-{arch}-{version}.tgz")


def _plugins_tgz_path(arch) -> str:
    return f"/tmp/cni-plugins-{arch.value}-{CNI_VERSION}.tgz"


def init_machine(node, client, sctx, deps, flags) -> None:
    options = {
        "cni_bin_dir": CNI_BIN_DIR,
        "plugins_tgz_path": _plugins_tgz_path(node.architecture),
        "plugins_url": PLUGINS_URL_TEMPLATE.format(version=CNI_VERSION, arch=node.architecture.value),
    }
    install_service(client, SERVICE_NAME, "cni-installer.service.j2", options)


def reset_machine(node, client, sctx, deps, flags) -> None:
    remove_service(client, SERVICE_NAME)
    client.remove_file(_plugins_tgz_path(node.architecture))


def new_service() -> ServiceUnit:
    return ServiceUnit(name="cni", init_machine=init_machine, reset_machine=reset_machine)
