"""Wait for the control plane to answer before cluster-scoped objects are applied."""
import logging

from helixctl.modules.health import wait_until_responsive
from helixctl.modules.pipeline import ServiceUnit

logger = logging.getLogger("helixctl.services.controlplane")


def init_cluster(sctx, deps, flags) -> None:
    if flags.dry_run:
        logger.info(f"Will wait for the control plane at {sctx.api_server_address}")
        return
    wait_until_responsive(deps.kubernetes_client(sctx, flags))


def new_service() -> ServiceUnit:
    return ServiceUnit(name="controlplane", init_cluster=init_cluster)
