"""Container resource inspection."""

from decimal import Decimal
from typing import Any, Dict, Optional

from kubernetes.utils import parse_quantity

GPU_RESOURCE = "nvidia.com/gpu"


def gpu_limit(container: Dict[str, Any]) -> Optional[Decimal]:
    """Return the container's declared GPU limit, or None if it declares none.

    Raises:
        ValueError: the limit is not a valid Kubernetes quantity.
    """
    limits = (container.get("resources") or {}).get("limits") or {}
    if GPU_RESOURCE not in limits:
        return None
    return parse_quantity(limits[GPU_RESOURCE])


def has_gpu_limit(container: Dict[str, Any]) -> bool:
    """Check if container declares a non-zero GPU limit."""
    limit = gpu_limit(container)
    return limit is not None and limit != 0
