"""Detect the CPU architecture of every node."""
import logging
from typing import Optional

from helixctl.errors import UnsupportedArchitectureError
from helixctl.modules.models import Architecture
from helixctl.modules.pipeline import ServiceUnit

logger = logging.getLogger("helixctl.services.architecture")

MACHINE_ARCHITECTURES = {
    "armv7l": Architecture.ARM,
    "x86_64": Architecture.AMD64,
}


def parse_machine(machine: str, host: Optional[str] = None) -> Architecture:
    """Map `uname -m` output to an architecture.

    Raises:
        UnsupportedArchitectureError: For any machine type we do not provision
    """
    try:
        return MACHINE_ARCHITECTURES[machine.strip()]
    except KeyError:
        raise UnsupportedArchitectureError(machine.strip(), host)


def init_node(node, client, sctx, deps, flags) -> None:
    if node.architecture is not None:
        return
    if flags.dry_run:
        client.log.warning("Dry run: assuming amd64, use --architecture to override")
        node.architecture = Architecture.AMD64
        return
    machine = client.run("uname -m", quiet=True)
    node.architecture = parse_machine(machine, node.name)
    client.log.info(f"Architecture is {node.architecture.value}")


def new_service() -> ServiceUnit:
    return ServiceUnit(name="architecture", init_node=init_node)
