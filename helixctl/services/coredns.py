"""Deploy CoreDNS as the cluster DNS add-on."""
from helixctl.modules.pipeline import ServiceUnit
from helixctl.services.component import apply_manifests

REPLICAS = 2


def init_cluster(sctx, deps, flags) -> None:
    options = {
        "image": flags.images.coredns_image(),
        "cluster_domain": flags.kubernetes.cluster_domain,
        "cluster_dns": flags.kubernetes.cluster_dns,
        "replicas": REPLICAS,
    }
    apply_manifests(deps.kubernetes_client(sctx, flags), "coredns.yaml.j2", options)


def new_service() -> ServiceUnit:
    return ServiceUnit(name="coredns", init_cluster=init_cluster)
