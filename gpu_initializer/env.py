"""Container env rewriting for GPU visibility."""

from typing import Any, Dict, List

from gpu_initializer.resources import has_gpu_limit

VISIBLE_DEVICES_ENV = "NVIDIA_VISIBLE_DEVICES"
VISIBLE_DEVICES_NONE = "none"


def strip_visible_devices(env: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop every NVIDIA_VISIBLE_DEVICES entry, keeping the rest in order."""
    return [dict(var) for var in env or [] if var.get("name") != VISIBLE_DEVICES_ENV]


def mutate_container_env(container: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Compute the env list a container should end up with.

    Containers with a non-zero GPU limit manage device visibility themselves and
    get no variable; every other container gets exactly one
    ``NVIDIA_VISIBLE_DEVICES=none``.
    """
    env = strip_visible_devices(container.get("env"))
    if not has_gpu_limit(container):
        env.append({"name": VISIBLE_DEVICES_ENV, "value": VISIBLE_DEVICES_NONE})
    return env


def mutate_containers(containers: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Return fresh container specs with rewritten env lists."""
    mutated = []
    for container in containers or []:
        env = mutate_container_env(container)
        fresh = dict(container)
        # Leave an absent env absent rather than turning it into an empty list.
        if env or "env" in container:
            fresh["env"] = env
        mutated.append(fresh)
    return mutated
