"""Service pipeline: sequences service units across all nodes of the cluster.

A run goes through these phases, strictly one after the other:

1. prepare: every unit, sequentially
2. dial: one SSH client per node, concurrently; any failure aborts the run
3. per unit, in pipeline order:
   - init_node on every node concurrently (read-only classification)
   - init_machine / reset_machine on every node concurrently
   - init_cluster / reset_cluster once

Reset walks the units in reverse order. Node classification handlers still
run first and in forward order so every node's architecture is known before
anything is torn down.

Within a fan-out all nodes run to completion; the first collected error is
then raised. Work already done on other nodes is not undone, the run is meant
to be repeated until it succeeds.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from helixctl.errors import ConfigurationError
from helixctl.modules.certificates import CertificateAuthority, ServiceAccountKeyPair
from helixctl.modules.models import ServiceFlags
from helixctl.modules.ssh import SSHClient, dial
from helixctl.modules.topology import (
    Node,
    Resolver,
    ReverseResolver,
    ServiceContext,
    create_service_context,
)

logger = logging.getLogger("helixctl.pipeline")

KUBERNETES_CA_NAME = "Kubernetes CA"
KUBERNETES_CA_CERT = "kubernetes-ca.crt"
KUBERNETES_CA_KEY = "kubernetes-ca.key"
ETCD_CA_NAME = "ETCD CA"
ETCD_CA_CERT = "etcd-ca.crt"
ETCD_CA_KEY = "etcd-ca.key"
SERVICE_ACCOUNT_PUB = "kubernetes-sa.pub"
SERVICE_ACCOUNT_KEY = "kubernetes-sa.key"


@dataclass(frozen=True)
class ServiceDependencies:
    """Shared, read-only collaborators handed to every service handler."""
    kubernetes_ca: Optional[CertificateAuthority] = None
    etcd_ca: Optional[CertificateAuthority] = None
    service_account: Optional[ServiceAccountKeyPair] = None
    kubernetes_client_factory: Optional[Callable[..., Any]] = None

    def kubernetes_client(self, sctx: ServiceContext, flags: ServiceFlags):
        """Return the run's client for the cluster's API server, built on first use."""
        if self.kubernetes_client_factory is None:
            raise ConfigurationError("No Kubernetes client available in this run")
        return self.kubernetes_client_factory(sctx, self, flags)


PrepareHandler = Callable[[ServiceContext, ServiceDependencies, ServiceFlags, bool], None]
NodeHandler = Callable[[Node, SSHClient, ServiceContext, ServiceDependencies, ServiceFlags], None]
ClusterHandler = Callable[[ServiceContext, ServiceDependencies, ServiceFlags], None]


@dataclass(frozen=True)
class ServiceUnit:
    """A named unit of work; every handler other than the name is optional."""
    name: str
    prepare: Optional[PrepareHandler] = None
    init_node: Optional[NodeHandler] = None
    init_machine: Optional[NodeHandler] = None
    reset_machine: Optional[NodeHandler] = None
    init_cluster: Optional[ClusterHandler] = None
    reset_cluster: Optional[ClusterHandler] = None


@dataclass(frozen=True)
class PipelineDefinition:
    """The ordered list of units; order expresses the dependencies between them."""
    units: Tuple[ServiceUnit, ...]

    def __iter__(self) -> Iterator[ServiceUnit]:
        return iter(self.units)

    def __len__(self) -> int:
        return len(self.units)

    def reversed(self) -> "PipelineDefinition":
        return PipelineDefinition(tuple(reversed(self.units)))

    @property
    def names(self) -> List[str]:
        return [unit.name for unit in self.units]


def _once(factory: Optional[Callable[..., Any]]) -> Optional[Callable[..., Any]]:
    """Wrap a client factory so a run builds at most one client."""
    if factory is None:
        return None
    lock = threading.Lock()
    built: List[Any] = []

    def build(sctx, deps, flags):
        with lock:
            if not built:
                built.append(factory(sctx, deps, flags))
            return built[0]
    return build


def for_each_node(nodes: List[Node], fn: Callable[[Node], Any], description: str) -> None:
    """Call fn for every node concurrently and wait for all of them.

    Raises:
        Exception: The first error collected from any node, after all nodes finished
    """
    if not nodes:
        return
    errors: List[Exception] = []
    with ThreadPoolExecutor(max_workers=len(nodes)) as executor:
        future_to_node = {executor.submit(fn, node): node for node in nodes}
        for future in as_completed(future_to_node):
            node = future_to_node[future]
            error = future.exception()
            if error is not None:
                logger.error(f"{description} failed on {node.name}: {error}")
                errors.append(error)
    if errors:
        raise errors[0]


class PipelineRunner:
    """Drive a pipeline definition through an init or reset run."""

    def __init__(self, pipeline: PipelineDefinition, flags: ServiceFlags,
                 dialer: Callable[..., SSHClient] = dial,
                 resolver: Optional[Resolver] = None,
                 reverse_resolver: Optional[ReverseResolver] = None,
                 kubernetes_client_factory: Optional[Callable[..., Any]] = None):
        self.pipeline = pipeline
        self.flags = flags
        self.dialer = dialer
        self.resolver = resolver
        self.reverse_resolver = reverse_resolver
        self.kubernetes_client_factory = kubernetes_client_factory

    def init(self) -> ServiceContext:
        """Bring up the cluster.

        Returns:
            ServiceContext: The topology the run operated on
        """
        flags = self.flags
        flags.setup_defaults(is_init=True)

        conf_dir = Path(flags.local_conf_dir)
        conf_dir.mkdir(mode=0o755, parents=True, exist_ok=True)

        sctx = create_service_context(flags, True, self.resolver, self.reverse_resolver)
        kubernetes_ca = CertificateAuthority.load_or_create(
            KUBERNETES_CA_NAME,
            os.path.join(flags.local_conf_dir, KUBERNETES_CA_CERT),
            os.path.join(flags.local_conf_dir, KUBERNETES_CA_KEY))
        etcd_ca = CertificateAuthority.load_or_create(
            ETCD_CA_NAME,
            os.path.join(flags.local_conf_dir, ETCD_CA_CERT),
            os.path.join(flags.local_conf_dir, ETCD_CA_KEY))
        service_account = ServiceAccountKeyPair.load_or_create(
            os.path.join(flags.local_conf_dir, SERVICE_ACCOUNT_PUB),
            os.path.join(flags.local_conf_dir, SERVICE_ACCOUNT_KEY))
        deps = ServiceDependencies(
            kubernetes_ca=kubernetes_ca,
            etcd_ca=etcd_ca,
            service_account=service_account,
            kubernetes_client_factory=_once(self.kubernetes_client_factory),
        )

        self._prepare(self.pipeline, sctx, deps, True)
        clients = self._dial_all(sctx)
        try:
            for unit in self.pipeline:
                self._run_node_init(unit, sctx, deps, clients)
                if unit.init_machine is not None:
                    self._run_machine(unit, unit.init_machine, "init_machine", sctx, deps, clients)
                if unit.init_cluster is not None:
                    logger.info(f"Initializing {unit.name} on the cluster")
                    unit.init_cluster(sctx, deps, flags)
        finally:
            self._close_all(clients)
        return sctx

    def reset(self) -> ServiceContext:
        """Tear down what init installed, in reverse unit order."""
        flags = self.flags
        flags.setup_defaults(is_init=False)

        sctx = create_service_context(flags, False, self.resolver, self.reverse_resolver)
        deps = ServiceDependencies(kubernetes_client_factory=_once(self.kubernetes_client_factory))
        teardown = self.pipeline.reversed()

        self._prepare(teardown, sctx, deps, False)
        clients = self._dial_all(sctx)
        try:
            for unit in self.pipeline:
                self._run_node_init(unit, sctx, deps, clients)
            for unit in teardown:
                if unit.reset_machine is not None:
                    self._run_machine(unit, unit.reset_machine, "reset_machine", sctx, deps, clients)
                if unit.reset_cluster is not None:
                    logger.info(f"Resetting {unit.name} on the cluster")
                    unit.reset_cluster(sctx, deps, flags)
        finally:
            self._close_all(clients)
        return sctx

    def _prepare(self, pipeline: PipelineDefinition, sctx: ServiceContext,
                 deps: ServiceDependencies, will_init: bool) -> None:
        for unit in pipeline:
            if unit.prepare is not None:
                logger.debug(f"Preparing {unit.name}")
                unit.prepare(sctx, deps, self.flags, will_init)

    def _dial_all(self, sctx: ServiceContext) -> Dict[str, SSHClient]:
        ssh = self.flags.ssh
        clients: Dict[str, SSHClient] = {}

        def dial_node(node: Node) -> None:
            clients[node.name] = self.dialer(
                ssh.user, node.name, node.address, self.flags.dry_run,
                port=ssh.port, key_path=ssh.key_path, timeout=ssh.timeout,
                attempts=ssh.dial_attempts)

        logger.info(f"Connecting to {len(sctx.nodes)} nodes")
        try:
            for_each_node(sctx.nodes, dial_node, "dial")
        except Exception:
            self._close_all(clients)
            raise
        return clients

    def _run_node_init(self, unit: ServiceUnit, sctx: ServiceContext,
                       deps: ServiceDependencies, clients: Dict[str, SSHClient]) -> None:
        if unit.init_node is None:
            return
        handler = unit.init_node
        logger.info(f"Classifying nodes for {unit.name}")
        for_each_node(
            sctx.nodes,
            lambda node: handler(node, clients[node.name], sctx, deps, self.flags),
            f"{unit.name} init_node")

    def _run_machine(self, unit: ServiceUnit, handler: NodeHandler, phase: str,
                     sctx: ServiceContext, deps: ServiceDependencies,
                     clients: Dict[str, SSHClient]) -> None:
        logger.info(f"Running {unit.name} {phase} on {len(sctx.nodes)} nodes")
        for_each_node(
            sctx.nodes,
            lambda node: handler(node, clients[node.name], sctx, deps, self.flags),
            f"{unit.name} {phase}")

    @staticmethod
    def _close_all(clients: Dict[str, SSHClient]) -> None:
        for client in clients.values():
            client.close()
