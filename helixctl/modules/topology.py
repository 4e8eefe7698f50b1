"""Cluster topology: nodes, name resolution and control-plane membership."""

import ipaddress
import logging
import socket
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from helixctl.errors import ConfigurationError, ResolutionError
from helixctl.modules.models import Architecture, ControlPlaneFlags, ServiceFlags

logger = logging.getLogger("helixctl.topology")

Resolver = Callable[[str], List[str]]
ReverseResolver = Callable[[str], List[str]]


@dataclass
class Node:
    """A machine of the cluster."""
    name: str
    address: str
    is_control_plane: bool = False
    architecture: Optional[Architecture] = None

    @property
    def hostname(self) -> str:
        return self.name


def is_ip_address(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
        return True
    except ValueError:
        return False


def dns_resolver(name: str) -> List[str]:
    """Forward-resolve a hostname into its addresses, preserving resolver order."""
    addresses = []
    for _, _, _, _, sockaddr in socket.getaddrinfo(name, None, proto=socket.IPPROTO_TCP):
        if sockaddr[0] not in addresses:
            addresses.append(sockaddr[0])
    return addresses


def reverse_resolver(address: str) -> List[str]:
    """Reverse-resolve an address into its host names."""
    hostname, aliases, _ = socket.gethostbyaddr(address)
    return [hostname] + list(aliases)


def resolve(names: List[str], is_control_plane: bool = False,
            resolver: Optional[Resolver] = None) -> List[Node]:
    """Turn member names into nodes with a literal IP address.

    Literal IPs are used as-is and never looked up. Hostnames are looked up
    concurrently; the first failure aborts the whole call.

    Args:
        names: Hostnames or IP addresses
        is_control_plane: Mark the resulting nodes as control-plane members
        resolver: Forward lookup function (default: DNS via getaddrinfo)

    Returns:
        Nodes in input order

    Raises:
        ResolutionError: If a name resolves to no address or the lookup fails
    """
    resolver = resolver or dns_resolver
    names = [n.strip() for n in names if n and n.strip()]
    if not names:
        return []

    def resolve_one(name: str) -> Node:
        if is_ip_address(name):
            return Node(name=f"node-{name}", address=name, is_control_plane=is_control_plane)
        try:
            addresses = resolver(name)
        except (OSError, UnicodeError) as e:
            raise ResolutionError(f"Failed to resolve {name}: {e}") from e
        if not addresses:
            raise ResolutionError(f"No addresses found for {name}")
        logger.debug(f"Resolved {name} to {addresses[0]}")
        return Node(name=name, address=addresses[0], is_control_plane=is_control_plane)

    results: Dict[int, Node] = {}
    with ThreadPoolExecutor(max_workers=len(names)) as executor:
        future_to_index = {
            executor.submit(resolve_one, name): index
            for index, name in enumerate(names)
        }
        for future in as_completed(future_to_index):
            results[future_to_index[future]] = future.result()
    return [results[i] for i in range(len(names))]


def merge_nodes(primary: List[Node], control_plane: List[Node]) -> List[Node]:
    """Merge two node lists by name; control-plane entries win. Result is sorted by name."""
    by_name: Dict[str, Node] = {}
    for node in primary:
        by_name[node.name] = node
    for node in control_plane:
        by_name[node.name] = node
    return sorted(by_name.values(), key=lambda n: n.name)


def members_from_dns_name(dns_name: str, resolver: Optional[Resolver] = None,
                          reverse: Optional[ReverseResolver] = None) -> List[Node]:
    """Derive control-plane nodes from the addresses behind the API DNS name.

    Every address is reverse-resolved; the short host name becomes the node name.
    """
    resolver = resolver or dns_resolver
    reverse = reverse or reverse_resolver
    try:
        addresses = resolver(dns_name)
    except (OSError, UnicodeError) as e:
        raise ResolutionError(f"Failed to resolve {dns_name}: {e}") from e
    if not addresses:
        raise ResolutionError(f"No addresses found for {dns_name}")

    nodes = []
    for address in addresses:
        try:
            names = reverse(address)
        except (OSError, UnicodeError) as e:
            raise ResolutionError(f"Failed to reverse-resolve {address}: {e}") from e
        if not names:
            raise ResolutionError(f"No host name found for {address}")
        short_name = names[0].rstrip(".").split(".")[0]
        logger.info(f"Control-plane member {short_name} ({address}) derived from {dns_name}")
        nodes.append(Node(name=short_name, address=address, is_control_plane=True))
    return nodes


class ServiceContext:
    """The resolved topology of one run."""

    def __init__(self, nodes: List[Node], control_plane: Optional[ControlPlaneFlags] = None):
        self.nodes = sorted(nodes, key=lambda n: n.name)
        self.control_plane = control_plane or ControlPlaneFlags()

    @property
    def control_plane_nodes(self) -> List[Node]:
        return [n for n in self.nodes if n.is_control_plane]

    def control_plane_index(self, node: Node) -> int:
        """Return the position of node among the control-plane nodes, or -1."""
        for index, candidate in enumerate(self.control_plane_nodes):
            if candidate.name == node.name or candidate.address == node.address:
                return index
        return -1

    def all_architectures(self) -> List[Architecture]:
        """Return the sorted distinct architectures of all nodes.

        Raises:
            ConfigurationError: If a node has not been classified yet
        """
        found = set()
        for node in self.nodes:
            if node.architecture is None:
                raise ConfigurationError(f"Architecture of node {node.name} is not known")
            found.add(Architecture(node.architecture))
        return sorted(found, key=lambda a: a.value)

    @property
    def api_server_address(self) -> str:
        """Address used to reach the API: virtual IP, then DNS name, then the first control-plane node."""
        if self.control_plane.api_server_virtual_ip:
            return self.control_plane.api_server_virtual_ip
        if self.control_plane.api_server_dns_name:
            return self.control_plane.api_server_dns_name
        control_plane_nodes = self.control_plane_nodes
        if not control_plane_nodes:
            raise ConfigurationError("No control-plane nodes to reach the API server")
        return control_plane_nodes[0].address


def create_service_context(flags: ServiceFlags, will_init: bool,
                           resolver: Optional[Resolver] = None,
                           reverse: Optional[ReverseResolver] = None) -> ServiceContext:
    """Resolve all members of the run into a ServiceContext.

    Raises:
        ResolutionError: If a member cannot be resolved
        ConfigurationError: If an init run ends up without control-plane nodes
    """
    members = resolve(flags.members, False, resolver)
    if flags.control_plane.members:
        control_plane = resolve(flags.control_plane.members, True, resolver)
    elif flags.control_plane.api_server_dns_name:
        control_plane = members_from_dns_name(flags.control_plane.api_server_dns_name, resolver, reverse)
    else:
        control_plane = []

    nodes = merge_nodes(members, control_plane)
    if flags.architecture is not None:
        for node in nodes:
            node.architecture = Architecture(flags.architecture)

    sctx = ServiceContext(nodes, flags.control_plane)
    if will_init and not sctx.control_plane_nodes:
        raise ConfigurationError("No control-plane members specified")
    logger.info(f"Topology: {len(sctx.nodes)} nodes, {len(sctx.control_plane_nodes)} control-plane")
    return sctx
