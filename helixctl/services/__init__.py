"""Service units and the order in which they run.

Order matters: architecture detection comes before anything that picks an
image, the CA before every component that needs certificates, and etcd before
the API server that stores its state there. Reset walks this list backwards.
"""
from helixctl.modules.pipeline import PipelineDefinition
from helixctl.services import (
    apiserver,
    architecture,
    ca,
    cni,
    controller_manager,
    controlplane,
    coredns,
    etcd,
    flannel,
    hyperkube,
    keepalived,
    kubelet,
    proxy,
    scheduler,
)


def default_pipeline() -> PipelineDefinition:
    """Return a fresh pipeline with the standard service units."""
    return PipelineDefinition((
        architecture.new_service(),
        cni.new_service(),
        hyperkube.new_service(),
        keepalived.new_service(),
        ca.new_service(),
        kubelet.new_service(),
        etcd.new_service(),
        apiserver.new_service(),
        scheduler.new_service(),
        controller_manager.new_service(),
        controlplane.new_service(),
        proxy.new_service(),
        flannel.new_service(),
        coredns.new_service(),
    ))
