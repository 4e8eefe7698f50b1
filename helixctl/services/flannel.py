"""Deploy the flannel overlay network as one DaemonSet per architecture."""
from helixctl.modules.pipeline import ServiceUnit
from helixctl.services.component import apply_manifests


def init_cluster(sctx, deps, flags) -> None:
    options = {
        "pod_network": flags.kubernetes.pod_network,
        "images": [(arch.value, flags.images.flannel_image(arch)) for arch in sctx.all_architectures()],
    }
    apply_manifests(deps.kubernetes_client(sctx, flags), "flannel.yaml.j2", options)


def new_service() -> ServiceUnit:
    return ServiceUnit(name="flannel", init_cluster=init_cluster)
