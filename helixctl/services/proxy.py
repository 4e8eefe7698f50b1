"""Deploy kube-proxy as one DaemonSet per architecture."""
from helixctl.modules.pipeline import ServiceUnit
from helixctl.services.component import api_server_url, apply_manifests


def init_cluster(sctx, deps, flags) -> None:
    options = {
        "server": api_server_url(sctx, flags),
        "pod_network": flags.kubernetes.pod_network,
        "images": [(arch.value, flags.images.hyperkube_image(arch)) for arch in sctx.all_architectures()],
    }
    apply_manifests(deps.kubernetes_client(sctx, flags), "kube-proxy.yaml.j2", options)


def new_service() -> ServiceUnit:
    return ServiceUnit(name="proxy", init_cluster=init_cluster)
