"""Client for the cluster's API server, authenticated with a local admin certificate."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from kubernetes import client
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic import DynamicClient

from helixctl.errors import ConfigurationError, KubernetesAPIError
from helixctl.modules.certificates import CERT_FILE_MODE, KEY_FILE_MODE, write_pem
from helixctl.modules.pipeline import KUBERNETES_CA_CERT

logger = logging.getLogger("helixctl.kube")

ADMIN_CERT = "admin.crt"
ADMIN_KEY = "admin.key"
ADMIN_USER = "admin"
ADMIN_GROUP = "system:masters"


class KubernetesClient:
    """Create, update and list API objects given as plain manifests (dicts)."""

    def __init__(self, api_client: client.ApiClient, dry_run: bool = False):
        self.api_client = api_client
        self.dry_run = dry_run
        self.core = client.CoreV1Api(api_client)
        self._dynamic: Optional[DynamicClient] = None

    @property
    def dynamic(self) -> DynamicClient:
        if self._dynamic is None:
            self._dynamic = DynamicClient(self.api_client)
        return self._dynamic

    def _resource(self, body: Dict[str, Any]):
        return self.dynamic.resources.get(api_version=body["apiVersion"], kind=body["kind"])

    @staticmethod
    def _describe(body: Dict[str, Any]) -> str:
        metadata = body.get("metadata", {})
        namespace = metadata.get("namespace")
        name = metadata.get("name")
        return f"{body['kind']} {namespace}/{name}" if namespace else f"{body['kind']} {name}"

    def list_nodes(self, timeout: Optional[float] = None) -> List[Any]:
        return self.core.list_node(_request_timeout=timeout).items

    def create(self, body: Dict[str, Any]) -> None:
        self._resource(body).create(body=body, namespace=body.get("metadata", {}).get("namespace"))

    def update(self, body: Dict[str, Any]) -> None:
        """Replace an existing object, carrying over its current resourceVersion."""
        resource = self._resource(body)
        metadata = body.setdefault("metadata", {})
        existing = resource.get(name=metadata["name"], namespace=metadata.get("namespace"))
        metadata["resourceVersion"] = existing.metadata.resourceVersion
        resource.replace(body=body, namespace=metadata.get("namespace"))

    def create_or_update(self, body: Dict[str, Any]) -> None:
        """Create the object, or update it when it already exists.

        Raises:
            KubernetesAPIError: On any API error other than a conflict on create
        """
        description = self._describe(body)
        if self.dry_run:
            logger.info(f"Will apply {description}")
            return
        try:
            self.create(body)
            logger.info(f"Created {description}")
            return
        except ApiException as e:
            if e.status != 409:
                raise KubernetesAPIError(f"Failed to create {description}: {e.status} {e.reason}", e.status) from e
        try:
            self.update(body)
        except ApiException as e:
            raise KubernetesAPIError(f"Failed to update {description}: {e.status} {e.reason}", e.status) from e
        logger.info(f"Updated {description}")


def new_kubernetes_client(sctx, deps, flags) -> KubernetesClient:
    """Build a client for the API server of the given topology.

    A fresh admin client certificate is issued by the Kubernetes CA and stored
    next to the CA in the local configuration directory.

    Raises:
        ConfigurationError: If the run has no Kubernetes CA
    """
    if deps.kubernetes_ca is None:
        raise ConfigurationError("Kubernetes CA is required to talk to the API server")

    conf_dir = Path(flags.local_conf_dir)
    cert_pem, key_pem = deps.kubernetes_ca.issue_client_certificate(ADMIN_USER, ADMIN_GROUP)
    write_pem(conf_dir / ADMIN_CERT, cert_pem.encode(), CERT_FILE_MODE)
    write_pem(conf_dir / ADMIN_KEY, key_pem.encode(), KEY_FILE_MODE)

    configuration = client.Configuration()
    configuration.host = f"https://{sctx.api_server_address}:{flags.kubernetes.api_server_port}"
    configuration.ssl_ca_cert = os.path.join(flags.local_conf_dir, KUBERNETES_CA_CERT)
    configuration.cert_file = str(conf_dir / ADMIN_CERT)
    configuration.key_file = str(conf_dir / ADMIN_KEY)
    configuration.verify_ssl = True
    logger.debug(f"Kubernetes API at {configuration.host}")
    return KubernetesClient(client.ApiClient(configuration), dry_run=flags.dry_run)
