"""Control-plane readiness checks."""
import logging
import time
from typing import Callable, Optional

from kubernetes.client.exceptions import ApiException

from helixctl.config import Config
from helixctl.errors import KubernetesAPIError, ReadinessTimeoutError

logger = logging.getLogger("helixctl.health")

# The API answered but will never accept our credentials
FATAL_STATUSES = (401, 403)


def wait_until_responsive(api_client, timeout: Optional[float] = None,
                          attempt_timeout: Optional[float] = None,
                          interval: float = 1.0,
                          clock: Callable[[], float] = time.monotonic,
                          sleep: Callable[[float], None] = time.sleep) -> int:
    """Wait until the API server answers and at least one node has registered.

    A successful list call that returns zero nodes counts as not ready: the
    API may answer before any kubelet has joined.

    Args:
        api_client: Object with a ``list_nodes(timeout=...)`` method
        timeout: Overall timeout in seconds (default: Config.READY_TIMEOUT)
        attempt_timeout: Timeout of a single list call (default: Config.READY_ATTEMPT_TIMEOUT)
        interval: Sleep between attempts in seconds
        clock: Monotonic time source
        sleep: Sleep function

    Returns:
        int: Number of registered nodes

    Raises:
        ReadinessTimeoutError: If the control plane is not ready within timeout
        KubernetesAPIError: If the API server rejects the credentials
    """
    timeout = Config.READY_TIMEOUT if timeout is None else timeout
    attempt_timeout = Config.READY_ATTEMPT_TIMEOUT if attempt_timeout is None else attempt_timeout
    logger.info(f"Waiting up to {timeout}s for the control plane to become responsive...")
    deadline = clock() + timeout
    attempts = 0
    last_error = "no nodes registered"

    while True:
        attempts += 1
        try:
            nodes = api_client.list_nodes(timeout=attempt_timeout)
            if nodes:
                logger.info(f"Control plane is ready ({len(nodes)} nodes registered)")
                return len(nodes)
            logger.debug("API server answered but no nodes are registered yet")
            last_error = "no nodes registered"
        except ApiException as e:
            if e.status in FATAL_STATUSES:
                raise KubernetesAPIError(f"API server rejected the admin credentials: {e.status} {e.reason}",
                                         e.status) from e
            logger.debug(f"Control plane not ready yet: {e.status} {e.reason}")
            last_error = f"{e.status} {e.reason}"
        except Exception as e:
            logger.debug(f"Control plane not ready yet: {e}")
            last_error = str(e)

        if clock() >= deadline:
            raise ReadinessTimeoutError(
                f"Control plane did not become ready within {timeout}s ({attempts} attempts, last error: {last_error})"
            )
        sleep(interval)
