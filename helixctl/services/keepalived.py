"""Float the API server virtual IP across the control-plane nodes with keepalived.

The first control-plane node starts as MASTER, the others as BACKUP with a
priority that decreases with their position.
"""
from helixctl.errors import RemoteExecError
from helixctl.modules.pipeline import ServiceUnit
from helixctl.modules.template import load_template

CONF_PATH = "/etc/keepalived/keepalived.conf"
CHECK_SCRIPT_PATH = "/etc/keepalived/check_apiserver.sh"
CONF_FILE_MODE = 0o644
CHECK_SCRIPT_MODE = 0o755


def _enabled(node, flags) -> bool:
    return node.is_control_plane and bool(flags.control_plane.api_server_virtual_ip)


def vrrp_settings(node, sctx):
    """Return (state, priority) for a control-plane node."""
    index = sctx.control_plane_index(node)
    state = "MASTER" if index == 0 else "BACKUP"
    return state, 100 - index


def init_machine(node, client, sctx, deps, flags) -> None:
    if not _enabled(node, flags):
        return
    state, priority = vrrp_settings(node, sctx)
    options = {
        "state": state,
        "priority": priority,
        "interface": flags.control_plane.keepalived_interface,
        "auth_password": flags.control_plane.keepalived_auth_password,
        "virtual_ip": flags.control_plane.api_server_virtual_ip,
        "api_server_port": flags.kubernetes.api_server_port,
        "check_script_path": CHECK_SCRIPT_PATH,
    }
    client.log.info(f"Configuring keepalived as {state} (priority {priority})")
    client.render(load_template("keepalived.conf.j2"), CONF_PATH, options, CONF_FILE_MODE)
    client.render(load_template("check_apiserver.sh.j2"), CHECK_SCRIPT_PATH, options, CHECK_SCRIPT_MODE)
    try:
        client.run("sudo systemctl restart keepalived")
    except RemoteExecError as e:
        client.log.warning(f"Failed to restart keepalived: {e}")


def reset_machine(node, client, sctx, deps, flags) -> None:
    if not node.is_control_plane:
        return
    try:
        client.run("sudo systemctl stop keepalived", quiet=True)
    except RemoteExecError as e:
        client.log.warning(f"Failed to stop keepalived: {e}")
    client.remove_file(CONF_PATH)
    client.remove_file(CHECK_SCRIPT_PATH)


def new_service() -> ServiceUnit:
    return ServiceUnit(name="keepalived", init_machine=init_machine, reset_machine=reset_machine)
