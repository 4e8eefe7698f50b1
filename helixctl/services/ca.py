"""Distribute the Kubernetes CA and the service-account keys."""
from helixctl.modules.pipeline import ServiceUnit
from helixctl.services.component import CERT_FILE_MODE, KEY_FILE_MODE, Component

component = Component("ca")


def init_machine(node, client, sctx, deps, flags) -> None:
    client.log.info("Uploading Kubernetes CA certificate")
    client.update_file(component.ca_cert_path, deps.kubernetes_ca.cert_pem, CERT_FILE_MODE)
    if not node.is_control_plane:
        return
    client.update_file(component.ca_key_path, deps.kubernetes_ca.key_pem, KEY_FILE_MODE)
    client.update_file(component.sa_pub_path, deps.service_account.public_pem, CERT_FILE_MODE)
    client.update_file(component.sa_key_path, deps.service_account.private_pem, KEY_FILE_MODE)


def reset_machine(node, client, sctx, deps, flags) -> None:
    for path in (component.ca_cert_path, component.ca_key_path,
                 component.sa_pub_path, component.sa_key_path):
        client.remove_file(path)


def new_service() -> ServiceUnit:
    return ServiceUnit(name="ca", init_machine=init_machine, reset_machine=reset_machine)
