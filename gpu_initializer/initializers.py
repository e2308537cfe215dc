"""Pending initializer queue handling."""

from typing import Any, Dict, List


def pending_initializers(pod: Dict[str, Any]) -> List[str]:
    """Names of the pod's pending initializers, in order."""
    initializers = (pod.get("metadata") or {}).get("initializers") or {}
    return [entry.get("name") for entry in initializers.get("pending") or []]


def is_pending_head(pod: Dict[str, Any], name: str) -> bool:
    """Check if ``name`` is the next initializer owed to the pod."""
    pending = pending_initializers(pod)
    return bool(pending) and pending[0] == name


def advance_initializers(metadata: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return new metadata with ``name`` popped from the head of the pending list.

    The remaining initializers keep their order. When none remain the whole
    ``initializers`` field is dropped: an absent field marks the pod as fully
    initialized, an empty list does not.

    Raises:
        ValueError: ``name`` is not at the head of the pending list.
    """
    initializers = metadata.get("initializers") or {}
    pending = list(initializers.get("pending") or [])
    if not pending or pending[0].get("name") != name:
        raise ValueError(f"Initializer {name} is not at the head of the pending list")

    advanced = {key: value for key, value in metadata.items() if key != "initializers"}
    rest = [dict(entry) for entry in pending[1:]]
    if rest:
        advanced["initializers"] = {**initializers, "pending": rest}
    return advanced
