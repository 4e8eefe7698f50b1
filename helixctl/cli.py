import logging
import sys
from typing import List, Optional

import typer

from helixctl.config import Config
from helixctl.errors import HelixError
from helixctl.logs import setup_logging
from helixctl.modules.cluster_spec import load_cluster_spec
from helixctl.modules.kube import new_kubernetes_client
from helixctl.modules.models import (
    Architecture,
    ControlPlaneFlags,
    EtcdFlags,
    KubernetesFlags,
    ServiceFlags,
    SSHFlags,
)
from helixctl.modules.pipeline import PipelineRunner
from helixctl.services import default_pipeline

logger = logging.getLogger("helixctl.cli")

app = typer.Typer(help="Bootstrap and tear down highly-available Kubernetes control planes over SSH.")

# Global debug flag
debug_mode = False


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def build_flags(
    members: Optional[str],
    control_plane_members: Optional[str],
    conf_dir: str,
    ssh_user: Optional[str],
    dry_run: bool,
    etcd_cluster_state: Optional[str],
    apiserver_virtual_ip: Optional[str],
    apiserver_dns_name: Optional[str],
    architecture: Optional[Architecture],
    kubernetes_version: Optional[str],
    feature_gates: Optional[str],
    k8s_metadata: Optional[str],
    cluster_file: Optional[str],
) -> ServiceFlags:
    """Turn command line options (and an optional cluster file) into run flags."""
    kubernetes = KubernetesFlags(feature_gates=_split(feature_gates), metadata=k8s_metadata or "")
    if kubernetes_version:
        kubernetes.version = kubernetes_version
    flags = ServiceFlags(
        local_conf_dir=conf_dir,
        members=_split(members),
        dry_run=dry_run,
        architecture=architecture,
        ssh=SSHFlags(user=ssh_user or ""),
        control_plane=ControlPlaneFlags(
            members=_split(control_plane_members),
            api_server_virtual_ip=apiserver_virtual_ip or "",
            api_server_dns_name=apiserver_dns_name or Config.K8S_API_DNS_NAME,
        ),
        etcd=EtcdFlags(cluster_state=etcd_cluster_state or ""),
        kubernetes=kubernetes,
    )
    if cluster_file:
        load_cluster_spec(cluster_file).apply_to(flags)
    if not flags.ssh.user:
        flags.ssh.user = Config.SSH_USER
    return flags


def _run(flags: ServiceFlags, will_init: bool) -> None:
    runner = PipelineRunner(default_pipeline(), flags, kubernetes_client_factory=new_kubernetes_client)
    action = "init" if will_init else "reset"
    try:
        Config.validate()
        sctx = runner.init() if will_init else runner.reset()
    except (HelixError, ValueError) as e:
        if debug_mode:
            logger.exception(f"{action} failed")
        else:
            logger.error(f"{action} failed: {e}")
        typer.echo(f"❌ {action} failed: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        logger.error(f"{action} failed unexpectedly", exc_info=True)
        typer.echo(f"❌ {action} failed: {e}", err=True)
        sys.exit(1)
    if will_init:
        typer.echo(f"✅ Cluster with {len(sctx.nodes)} nodes is up, API server at {sctx.api_server_address}")
    else:
        typer.echo(f"✅ Reset {len(sctx.nodes)} nodes")


MEMBERS_HELP = "Comma-separated addresses or host names of all machines"
CONTROL_PLANE_HELP = "Comma-separated addresses or host names of the control-plane machines"


@app.command("init")
def init_cmd(
    members: Optional[str] = typer.Option(None, "--members", "-m", help=MEMBERS_HELP),
    control_plane_members: Optional[str] = typer.Option(None, "--control-plane-members", help=CONTROL_PLANE_HELP),
    conf_dir: str = typer.Option(..., "--conf-dir", "-c", help="Local directory holding CA material"),
    ssh_user: Optional[str] = typer.Option(None, "--ssh-user", help=f"SSH login user (default: {Config.SSH_USER})"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be done without making changes"),
    etcd_cluster_state: Optional[str] = typer.Option(None, "--etcd-cluster-state", help="Force etcd bootstrap state (new|existing)"),
    apiserver_virtual_ip: Optional[str] = typer.Option(None, "--apiserver-virtual-ip", help="Virtual IP of the API server"),
    apiserver_dns_name: Optional[str] = typer.Option(None, "--apiserver-dns-name", help="DNS name of the API server"),
    architecture: Optional[Architecture] = typer.Option(None, "--architecture", help="Skip detection and use this architecture"),
    kubernetes_version: Optional[str] = typer.Option(None, "--kubernetes-version", help="Kubernetes version"),
    feature_gates: Optional[str] = typer.Option(None, "--feature-gates", help="Comma-separated Kubernetes feature gates"),
    k8s_metadata: Optional[str] = typer.Option(None, "--k8s-metadata", help="Node labels for the kubelet"),
    cluster_file: Optional[str] = typer.Option(None, "--cluster-file", "-f", help="YAML file describing the cluster"),
):
    """
    Bring up the control plane and all nodes.
    """
    flags = _flags_or_exit(members, control_plane_members, conf_dir, ssh_user, dry_run, etcd_cluster_state,
                           apiserver_virtual_ip, apiserver_dns_name, architecture, kubernetes_version,
                           feature_gates, k8s_metadata, cluster_file)
    typer.echo(f"🚀 Initializing cluster{' (dry run)' if dry_run else ''}")
    _run(flags, will_init=True)


@app.command("reset")
def reset_cmd(
    members: Optional[str] = typer.Option(None, "--members", "-m", help=MEMBERS_HELP),
    control_plane_members: Optional[str] = typer.Option(None, "--control-plane-members", help=CONTROL_PLANE_HELP),
    conf_dir: str = typer.Option(..., "--conf-dir", "-c", help="Local directory holding CA material"),
    ssh_user: Optional[str] = typer.Option(None, "--ssh-user", help=f"SSH login user (default: {Config.SSH_USER})"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be reset without making changes"),
    apiserver_virtual_ip: Optional[str] = typer.Option(None, "--apiserver-virtual-ip", help="Virtual IP of the API server"),
    apiserver_dns_name: Optional[str] = typer.Option(None, "--apiserver-dns-name", help="DNS name of the API server"),
    architecture: Optional[Architecture] = typer.Option(None, "--architecture", help="Skip detection and use this architecture"),
    kubernetes_version: Optional[str] = typer.Option(None, "--kubernetes-version", help="Kubernetes version"),
    cluster_file: Optional[str] = typer.Option(None, "--cluster-file", "-f", help="YAML file describing the cluster"),
    force: bool = typer.Option(False, "--force", help="Skip confirmation prompt"),
):
    """
    Remove everything init installed from all nodes.
    """
    flags = _flags_or_exit(members, control_plane_members, conf_dir, ssh_user, dry_run, None,
                           apiserver_virtual_ip, apiserver_dns_name, architecture, kubernetes_version,
                           None, None, cluster_file)
    if not force and not dry_run:
        typer.confirm("⚠️  This will remove Kubernetes and etcd data from all nodes. Continue?", abort=True)
    typer.echo(f"🔁 Resetting cluster{' (dry run)' if dry_run else ''}")
    _run(flags, will_init=False)


def _flags_or_exit(*args) -> ServiceFlags:
    try:
        return build_flags(*args)
    except HelixError as e:
        logger.error(f"Invalid configuration: {e}")
        typer.echo(f"❌ {e}", err=True)
        sys.exit(1)


# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """helixctl - HA Kubernetes control plane bootstrapper."""
    global debug_mode
    debug_mode = debug
    setup_logging(debug)
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.debug("Debug mode enabled")


if __name__ == "__main__":
    app()
