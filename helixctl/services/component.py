"""Helpers shared by the Kubernetes component units.

A component owns a certificate pair under /etc/kubernetes/pki and optionally
a kubeconfig under /var/lib and a static pod manifest.
"""
import base64
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from helixctl.modules.certificates import CertificateAuthority
from helixctl.modules.ssh import SSHClient
from helixctl.modules.template import load_template, render_string

logger = logging.getLogger("helixctl.services.component")

CERTS_DIR = "/etc/kubernetes/pki"
KUBECONFIGS_DIR = "/var/lib"
MANIFESTS_DIR = "/etc/kubernetes/manifests"

CONFIG_FILE_MODE = 0o600
CERT_FILE_MODE = 0o644
KEY_FILE_MODE = 0o600
MANIFEST_FILE_MODE = 0o644


@dataclass(frozen=True)
class Component:
    """File layout and trust material of one Kubernetes component."""
    name: str

    @property
    def cert_dir(self) -> str:
        return CERTS_DIR

    @property
    def ca_cert_path(self) -> str:
        return os.path.join(CERTS_DIR, "ca.crt")

    @property
    def ca_key_path(self) -> str:
        return os.path.join(CERTS_DIR, "ca.key")

    @property
    def cert_path(self) -> str:
        return os.path.join(CERTS_DIR, f"{self.name}.crt")

    @property
    def key_path(self) -> str:
        return os.path.join(CERTS_DIR, f"{self.name}.key")

    @property
    def sa_pub_path(self) -> str:
        return os.path.join(CERTS_DIR, "sa.pub")

    @property
    def sa_key_path(self) -> str:
        return os.path.join(CERTS_DIR, "sa.key")

    @property
    def kubeconfig_path(self) -> str:
        return os.path.join(KUBECONFIGS_DIR, f"{self.name}.conf")

    def manifest_path(self, file_name: Optional[str] = None) -> str:
        return os.path.join(MANIFESTS_DIR, file_name or f"{self.name}.yaml")

    def upload_certificates(self, common_name: str, organization: str, client: SSHClient,
                            ca: CertificateAuthority, *extra_alt_names: str) -> None:
        """Issue a certificate for this component on the client's machine and upload it."""
        client.log.info(f"Creating {self.name} TLS certificates")
        cert, key = ca.issue_server_certificate(common_name, organization, client, *extra_alt_names)
        client.update_file(self.cert_path, cert, CERT_FILE_MODE)
        client.update_file(self.key_path, key, KEY_FILE_MODE)

    def remove_certificates(self, client: SSHClient) -> None:
        client.remove_file(self.cert_path)
        client.remove_file(self.key_path)

    def create_kubeconfig(self, common_name: str, organization: str, client: SSHClient,
                          ca: CertificateAuthority, server: str) -> None:
        """Render a kubeconfig with embedded client credentials for this component."""
        cert, key = ca.issue_server_certificate(common_name, organization, client)
        options = {
            "server": server,
            "context_name": self.name,
            "user_name": self.name,
            "ca_data": base64.b64encode(ca.cert_pem).decode(),
            "client_cert_data": base64.b64encode(cert.encode()).decode(),
            "client_key_data": base64.b64encode(key.encode()).decode(),
        }
        client.render(load_template("kubeconfig.yaml.j2"), self.kubeconfig_path, options, CONFIG_FILE_MODE)

    def remove_kubeconfig(self, client: SSHClient) -> None:
        client.remove_file(self.kubeconfig_path)


def api_server_url(sctx, flags) -> str:
    return f"https://{sctx.api_server_address}:{flags.kubernetes.api_server_port}"


def apply_manifests(kube_client, template_name: str, options: Dict[str, Any]) -> int:
    """Render a multi-document YAML template and create-or-update every object in it.

    Returns:
        int: Number of objects applied
    """
    rendered = render_string(load_template(template_name), options)
    count = 0
    for body in yaml.safe_load_all(rendered):
        if not body:
            continue
        kube_client.create_or_update(body)
        count += 1
    logger.debug(f"Applied {count} objects from {template_name}")
    return count
