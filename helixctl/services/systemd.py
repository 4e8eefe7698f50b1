"""Install and remove systemd units on a machine."""
import os

from helixctl.errors import RemoteExecError
from helixctl.modules.ssh import SSHClient
from helixctl.modules.template import load_template

UNITS_DIR = "/etc/systemd/system"
SERVICE_FILE_MODE = 0o644


def service_path(name: str) -> str:
    return os.path.join(UNITS_DIR, f"{name}.service")


def install_service(client: SSHClient, name: str, template_name: str, options: dict) -> None:
    """Render a unit file, then reload systemd and (re)start the unit."""
    path = service_path(name)
    client.log.info(f"Creating service {path}")
    client.render(load_template(template_name), path, options, SERVICE_FILE_MODE)
    client.run("sudo systemctl daemon-reload")
    client.run(f"sudo systemctl enable {name}")
    client.run(f"sudo systemctl restart {name}")


def remove_service(client: SSHClient, name: str) -> None:
    """Stop, disable and delete a unit. Stop/disable failures are only warnings."""
    try:
        client.run(f"sudo systemctl stop {name}", quiet=True)
    except RemoteExecError as e:
        client.log.warning(f"Failed to stop {name}: {e}")
    try:
        client.run(f"sudo systemctl disable {name}", quiet=True)
    except RemoteExecError as e:
        client.log.warning(f"Failed to disable {name}: {e}")
    client.remove_file(service_path(name))
