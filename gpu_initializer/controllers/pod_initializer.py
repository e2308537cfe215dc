"""Pod initializer controller.

Releases pods from the pending initializer queue, injecting
``NVIDIA_VISIBLE_DEVICES=none`` into containers that do not ask for GPUs.
Only "added" events are handled. Updates and deletions are never looked at,
so an initializer attached to a pod after creation is not picked up.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import urllib3
from kubernetes import client
from kubernetes.client.rest import ApiException

from gpu_initializer.env import mutate_containers
from gpu_initializer.errors import GPUInitializerError, PatchConflictOrNotFound, PatchError
from gpu_initializer.initializers import advance_initializers, is_pending_head
from gpu_initializer.metrics import metrics
from gpu_initializer.patch import diff
from gpu_initializer.policy import Policy

logger = logging.getLogger(__name__)

STRATEGIC_MERGE_PATCH = "application/strategic-merge-patch+json"

ADDED_EVENT = "ADDED"


@dataclass(frozen=True)
class PodAddedEvent:
    """A pod seen for the first time, with its full snapshot."""

    pod: Dict[str, Any]

    @classmethod
    def from_raw(cls, event: Dict[str, Any]) -> Optional["PodAddedEvent"]:
        """Convert a raw watch event, or return None if it is not an addition."""
        if event.get("type") != ADDED_EVENT:
            return None
        return cls(pod=event["object"])


@dataclass(frozen=True)
class MutationPlan:
    """Original pod and the pod it should become."""

    original: Dict[str, Any]
    mutated: Dict[str, Any]
    ignored: bool = False


class PodInitializer:
    """Initializer that controls GPU visibility for newly created pods."""

    def __init__(self, k8s_client: client.CoreV1Api, policy: Policy, initializer_name: str):
        self.k8s_client = k8s_client
        self.policy = policy
        self.initializer_name = initializer_name

    def plan(self, pod: Dict[str, Any]) -> Optional[MutationPlan]:
        """Build the mutation plan for a pod.

        Args:
            pod: Pod snapshot

        Returns:
            MutationPlan, or None if this initializer is not next in the pod's queue
        """
        if not is_pending_head(pod, self.initializer_name):
            return None

        metadata = pod.get("metadata") or {}
        mutated = dict(pod)
        mutated["metadata"] = advance_initializers(metadata, self.initializer_name)

        ignored = self.policy.is_ignored(metadata.get("namespace", ""))
        spec = pod.get("spec") or {}
        if not ignored and "containers" in spec:
            mutated["spec"] = {**spec, "containers": mutate_containers(spec["containers"])}

        return MutationPlan(original=pod, mutated=mutated, ignored=ignored)

    def handle(self, pod: Dict[str, Any]) -> Optional[client.V1Pod]:
        """Initialize a pod if it is waiting on this initializer.

        Sends exactly one patch request. Nothing is retried here: a later
        delivery of the same pod retries, and is a no-op once a patch has landed.

        Args:
            pod: Pod snapshot

        Returns:
            Updated pod from the API server, or None if the pod was not ours to handle

        Raises:
            SerializationError: the pod could not be encoded for diffing
            PatchConflictOrNotFound: the pod changed or disappeared underneath us
            PatchError: any other failure of the patch request
        """
        plan = self.plan(pod)
        if plan is None:
            return None

        metadata = pod.get("metadata") or {}
        name = metadata.get("name")
        namespace = metadata.get("namespace")
        logger.info(f"Initializing pod: {namespace}/{name}")
        if plan.ignored:
            logger.info(f"Pod: {name} is ignored")

        patch_bytes = diff(plan.original, plan.mutated)
        logger.debug(f"Patch for pod {namespace}/{name}: {patch_bytes.decode()}")

        start_time = time.monotonic()
        try:
            updated = self.k8s_client.patch_namespaced_pod(
                name=name,
                namespace=namespace,
                body=json.loads(patch_bytes),
                _content_type=STRATEGIC_MERGE_PATCH,
            )
        except ApiException as e:
            if e.status in (404, 409):
                raise PatchConflictOrNotFound(
                    f"Pod {namespace}/{name} changed or was deleted before patching: {e.reason}", status=e.status
                ) from e
            raise PatchError(f"Failed to patch pod {namespace}/{name}: {e.status} {e.reason}", status=e.status) from e
        except urllib3.exceptions.HTTPError as e:
            raise PatchError(f"Failed to patch pod {namespace}/{name}: {e}") from e
        finally:
            metrics.observe_patch(time.monotonic() - start_time)

        metrics.record_initialized(plan.ignored)
        logger.info(f"Pod {namespace}/{name} initialized")
        return updated

    def on_event(self, event: PodAddedEvent) -> Optional[client.V1Pod]:
        """Consume one pod-added event.

        Per-pod failures are logged and counted here and never propagate, so
        one bad pod cannot stop the event stream.
        """
        if not is_pending_head(event.pod, self.initializer_name):
            metrics.record_skipped("not_pending_head")
            return None

        try:
            return self.handle(event.pod)
        except (GPUInitializerError, ValueError) as e:
            metadata = event.pod.get("metadata") or {}
            logger.error(f"Failed to initialize pod {metadata.get('namespace')}/{metadata.get('name')}: {e}")
            metrics.record_error(type(e).__name__)
            return None
