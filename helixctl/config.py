"""Configuration management for the helixctl application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


class Config:
    """Process-wide settings with sensible defaults."""

    # SSH
    SSH_USER: str = os.getenv("HELIX_SSH_USER", "pi")
    SSH_PORT: int = int(os.getenv("HELIX_SSH_PORT", "22"))
    SSH_KEY_PATH: str = os.getenv("HELIX_SSH_KEY_PATH", "")

    # Timeouts (in seconds)
    SSH_TIMEOUT: int = int(os.getenv("SSH_TIMEOUT", "10"))
    READY_TIMEOUT: int = int(os.getenv("HELIX_READY_TIMEOUT", "600"))  # 10 minutes
    READY_ATTEMPT_TIMEOUT: int = int(os.getenv("HELIX_READY_ATTEMPT_TIMEOUT", "15"))

    # Dial retry configuration
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))
    RETRY_DELAY: float = float(os.getenv("RETRY_DELAY", "0.1"))

    # Cluster overrides
    K8S_API_DNS_NAME: str = os.getenv("HELIX_K8S_API_DNS_NAME", "")
    ETCD_SECURE_CLIENTS: bool = os.getenv("HELIX_ETCD_SECURE_CLIENTS", "true").lower() in ("1", "true", "yes")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    @classmethod
    def validate(cls) -> None:
        """Validate numeric settings."""
        if cls.MAX_RETRIES < 1:
            raise ValueError("MAX_RETRIES must be at least 1")
        if cls.SSH_PORT <= 0:
            raise ValueError(f"Invalid HELIX_SSH_PORT: {cls.SSH_PORT}")
        if cls.READY_TIMEOUT <= 0 or cls.READY_ATTEMPT_TIMEOUT <= 0:
            raise ValueError("Readiness timeouts must be positive")

# Don't validate on import to allow for dynamic configuration
# Call Config.validate() explicitly when needed
