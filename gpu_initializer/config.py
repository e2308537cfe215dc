"""Process configuration for the GPU initializer."""

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gpu_initializer.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_INITIALIZER_NAME = "gpu.initializer.kubernetes.io"
DEFAULT_CONFIGMAP = "gpu-initializer"
DEFAULT_CONFIGMAP_KEY = "config"
SERVICE_ACCOUNT_NAMESPACE_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"


def resolve_namespace(namespace_file: str = SERVICE_ACCOUNT_NAMESPACE_FILE) -> str:
    """Find the namespace this process runs in.

    Checks ``POD_NAMESPACE`` first, then the service account namespace file,
    and falls back to ``default`` when running outside a cluster.
    """
    namespace = os.getenv("POD_NAMESPACE")
    if namespace:
        return namespace

    path = Path(namespace_file)
    if path.exists():
        return path.read_text().strip()

    logger.warning(f"Service account namespace file {namespace_file} not found, using 'default'")
    return "default"


class InitializerSettings(BaseModel):
    """Settings supplied at process start. Never changed at runtime."""

    model_config = ConfigDict(frozen=True)

    initializer_name: str = Field(
        default=DEFAULT_INITIALIZER_NAME, description="Initializer name this process owns"
    )
    configmap: str = Field(default=DEFAULT_CONFIGMAP, description="Policy ConfigMap name")
    configmap_key: str = Field(default=DEFAULT_CONFIGMAP_KEY, description="ConfigMap data key holding the policy")
    namespace: Optional[str] = Field(default=None, description="Namespace of the policy ConfigMap")
    metrics_port: int = Field(default=8081, description="Prometheus metrics port")
    liveness_endpoint: str = Field(default="http://0.0.0.0:8080/healthz", description="kopf liveness endpoint")

    @classmethod
    def from_env(cls, **overrides) -> "InitializerSettings":
        """Build settings from environment variables, with explicit overrides taking precedence.

        Raises:
            ConfigError: a value is malformed, such as a non-numeric metrics port.
        """
        values = {
            "initializer_name": os.getenv("GPU_INITIALIZER_NAME", DEFAULT_INITIALIZER_NAME),
            "configmap": os.getenv("GPU_INITIALIZER_CONFIGMAP", DEFAULT_CONFIGMAP),
            "configmap_key": os.getenv("GPU_INITIALIZER_CONFIGMAP_KEY", DEFAULT_CONFIGMAP_KEY),
            "namespace": os.getenv("POD_NAMESPACE"),
            "metrics_port": os.getenv("GPU_INITIALIZER_METRICS_PORT", "8081"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigError(f"Invalid initializer settings: {e}") from e

    def policy_namespace(self) -> str:
        """Namespace to read the policy ConfigMap from."""
        return self.namespace or resolve_namespace()
