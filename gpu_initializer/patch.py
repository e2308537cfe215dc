"""Two-way strategic merge patch generation.

Diffs an original and a modified object and produces a strategic merge patch
that only touches the fields that changed. Lists are merged by key where the
Kubernetes API declares a merge key for them, so concurrent changes to other
list elements by other actors survive the patch. Lists without a merge key
are atomic and replaced whole.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from gpu_initializer.errors import SerializationError

SET_ELEMENT_ORDER = "$setElementOrder"
DELETE_FROM_PRIMITIVE_LIST = "$deleteFromPrimitiveList"
PATCH_DIRECTIVE = "$patch"

Schema = Dict[str, Any]


@dataclass(frozen=True)
class Struct:
    """A nested object with its own field annotations."""

    fields: Schema = field(default_factory=dict)


@dataclass(frozen=True)
class MergeList:
    """A list of objects merged by ``key``."""

    key: str
    item: Schema = field(default_factory=dict)


@dataclass(frozen=True)
class PrimitiveMergeList:
    """A list of scalars merged as a set."""


_CONTAINER = {
    "env": MergeList("name"),
    "ports": MergeList("containerPort"),
    "volumeMounts": MergeList("mountPath"),
    "volumeDevices": MergeList("devicePath"),
}

POD_SCHEMA: Schema = {
    "metadata": Struct(
        {
            "initializers": Struct({"pending": MergeList("name")}),
            "finalizers": PrimitiveMergeList(),
            "ownerReferences": MergeList("uid"),
        }
    ),
    "spec": Struct(
        {
            "containers": MergeList("name", _CONTAINER),
            "initContainers": MergeList("name", _CONTAINER),
            "ephemeralContainers": MergeList("name", _CONTAINER),
            "volumes": MergeList("name"),
            "imagePullSecrets": MergeList("name"),
            "hostAliases": MergeList("ip"),
            "topologySpreadConstraints": MergeList("topologyKey"),
        }
    ),
    "status": Struct({"conditions": MergeList("type")}),
}


def create_two_way_merge_patch(
    original: Dict[str, Any], modified: Dict[str, Any], schema: Optional[Schema] = None
) -> Dict[str, Any]:
    """Compute the strategic merge patch turning ``original`` into ``modified``.

    Args:
        original: Object as last read from the API server
        modified: Desired object
        schema: Field annotations, defaults to the Pod schema

    Returns:
        Patch document, empty when the objects are equal
    """
    return _diff_maps(original, modified, POD_SCHEMA if schema is None else schema)


def diff(original: Dict[str, Any], mutated: Dict[str, Any]) -> bytes:
    """Encode both pods and return the strategic merge patch between them as JSON bytes.

    Raises:
        SerializationError: either side cannot be encoded as JSON.
    """
    original_data = _normalize(original, "original")
    mutated_data = _normalize(mutated, "mutated")
    patch = create_two_way_merge_patch(original_data, mutated_data)
    return json.dumps(patch, sort_keys=True, separators=(",", ":")).encode()


def _normalize(obj: Dict[str, Any], side: str) -> Dict[str, Any]:
    try:
        return json.loads(json.dumps(obj))
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Failed to encode {side} object: {e}") from e


def _diff_maps(original: Dict[str, Any], modified: Dict[str, Any], schema: Schema) -> Dict[str, Any]:
    patch: Dict[str, Any] = {}

    for key in original:
        if key not in modified:
            patch[key] = None

    for key, new in modified.items():
        if key not in original:
            patch[key] = new
            continue

        old = original[key]
        if old == new:
            continue

        annotation = schema.get(key)
        if isinstance(old, dict) and isinstance(new, dict):
            fields = annotation.fields if isinstance(annotation, Struct) else {}
            nested = _diff_maps(old, new, fields)
            if nested:
                patch[key] = nested
        elif isinstance(old, list) and isinstance(new, list) and isinstance(annotation, MergeList):
            _diff_merge_list(patch, key, old, new, annotation)
        elif isinstance(old, list) and isinstance(new, list) and isinstance(annotation, PrimitiveMergeList):
            _diff_primitive_list(patch, key, old, new)
        else:
            patch[key] = new

    return patch


def _merge_keys(items: List[Any], key: str) -> Optional[List[Any]]:
    """Merge key of every element, or None if the list cannot be merged by key."""
    keys = []
    for item in items:
        if not isinstance(item, dict) or key not in item:
            return None
        keys.append(item[key])
    if len(set(map(json.dumps, keys))) != len(keys):
        return None
    return keys


def _diff_merge_list(patch: Dict[str, Any], name: str, old: List[Any], new: List[Any], annotation: MergeList):
    old_keys = _merge_keys(old, annotation.key)
    new_keys = _merge_keys(new, annotation.key)
    if old_keys is None or new_keys is None:
        # Duplicate or missing merge keys: merging by key would be ambiguous.
        patch[name] = list(new) + [{PATCH_DIRECTIVE: "replace"}]
        return

    old_by_key = {json.dumps(k): item for k, item in zip(old_keys, old)}
    new_key_set = {json.dumps(k) for k in new_keys}

    entries = []
    for merge_key, item in zip(new_keys, new):
        previous = old_by_key.get(json.dumps(merge_key))
        if previous is None:
            entries.append(item)
        elif previous != item:
            changes = _diff_maps(previous, item, annotation.item)
            entries.append({annotation.key: merge_key, **changes})

    for merge_key in old_keys:
        if json.dumps(merge_key) not in new_key_set:
            entries.append({annotation.key: merge_key, PATCH_DIRECTIVE: "delete"})

    if entries or old_keys != new_keys:
        patch[f"{SET_ELEMENT_ORDER}/{name}"] = [{annotation.key: k} for k in new_keys]
    if entries:
        patch[name] = entries


def _diff_primitive_list(patch: Dict[str, Any], name: str, old: List[Any], new: List[Any]):
    added = [value for value in new if value not in old]
    removed = [value for value in old if value not in new]

    if added:
        patch[name] = added
    if removed:
        patch[f"{DELETE_FROM_PRIMITIVE_LIST}/{name}"] = removed
    patch[f"{SET_ELEMENT_ORDER}/{name}"] = list(new)
