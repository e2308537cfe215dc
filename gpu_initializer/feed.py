"""Cluster-wide pod feed that includes pods still awaiting initialization.

The API server leaves uninitialized objects out of list and watch results
unless ``includeUninitialized=true`` is passed. The generated client and kopf
have no way to send that parameter, so the feed issues the list and watch
requests itself and hands every pod-added event to a consumer.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import urllib3
from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from gpu_initializer.controllers.pod_initializer import PodAddedEvent
from gpu_initializer.metrics import metrics

logger = logging.getLogger(__name__)

PODS_PATH = "/api/v1/pods"
INCLUDE_UNINITIALIZED = ("includeUninitialized", "true")


class UninitializedPodFeed:
    """List-then-watch loop over all pods, delivering additions one at a time."""

    def __init__(
        self,
        api_client: client.ApiClient,
        consumer: Callable[[PodAddedEvent], Any],
        timeout_seconds: int = 600,
    ):
        self.api_client = api_client
        self.consumer = consumer
        self.timeout_seconds = timeout_seconds
        self._stop = threading.Event()
        self._watcher: Optional[watch.Watch] = None
        self._thread: Optional[threading.Thread] = None

    def _request(self, query_params: List[Tuple[str, str]], preload_content: bool):
        return self.api_client.call_api(
            PODS_PATH,
            "GET",
            query_params=query_params,
            header_params={"Accept": "application/json"},
            response_type="object" if preload_content else None,
            auth_settings=["BearerToken"],
            _return_http_data_only=True,
            _preload_content=preload_content,
        )

    def list_pods(self) -> Dict[str, Any]:
        """List pods in all namespaces, uninitialized ones included."""
        return self._request([INCLUDE_UNINITIALIZED], preload_content=True)

    def watch_pods(self, **kwargs):
        """Open a pod watch. Called by ``watch.Watch.stream``, which streams the raw response."""
        query_params = [INCLUDE_UNINITIALIZED]
        if kwargs.get("watch"):
            query_params.append(("watch", "true"))
        if kwargs.get("resource_version"):
            query_params.append(("resourceVersion", kwargs["resource_version"]))
        if kwargs.get("timeout_seconds"):
            query_params.append(("timeoutSeconds", str(kwargs["timeout_seconds"])))
        return self._request(query_params, preload_content=kwargs.get("_preload_content", True))

    def _deliver(self, event: PodAddedEvent):
        self.consumer(event)

    def relist(self) -> Optional[str]:
        """Deliver every listed pod as added and return the list's resourceVersion."""
        pod_list = self.list_pods()
        items = pod_list.get("items") or []
        logger.info(f"Listed {len(items)} pods")
        for pod in items:
            self._deliver(PodAddedEvent(pod=pod))
        return (pod_list.get("metadata") or {}).get("resourceVersion")

    def watch_once(self, resource_version: Optional[str]) -> Optional[str]:
        """Watch from ``resource_version`` until the server closes the stream.

        Returns:
            resourceVersion to resume from
        """
        watcher = watch.Watch()
        self._watcher = watcher
        for event in watcher.stream(
            self.watch_pods, resource_version=resource_version, timeout_seconds=self.timeout_seconds
        ):
            if self._stop.is_set():
                break
            pod = event.get("object")
            if isinstance(pod, dict):
                resource_version = (pod.get("metadata") or {}).get("resourceVersion") or resource_version
            added = PodAddedEvent.from_raw(event)
            if added is not None:
                self._deliver(added)
        return resource_version

    def run(self):
        """Run until ``stop`` is called. Relists after the watch's resourceVersion expires."""
        resource_version: Optional[str] = None
        backoff_seconds = 1

        while not self._stop.is_set():
            try:
                if resource_version is None:
                    resource_version = self.relist()
                    if self._stop.is_set():
                        break
                resource_version = self.watch_once(resource_version)
                backoff_seconds = 1
                continue
            except ApiException as e:
                if e.status == 410:
                    logger.warning("Pod watch resource version expired, re-listing")
                    resource_version = None
                    continue
                logger.error(f"Pod watch failed: {e.status} {e.reason}")
                metrics.record_error("watch_failed")
            except urllib3.exceptions.HTTPError as e:
                logger.error(f"Pod watch connection failed: {e}")
                metrics.record_error("watch_failed")

            self._stop.wait(timeout=backoff_seconds)
            backoff_seconds = min(backoff_seconds * 2, 30)

        logger.info("Pod feed stopped")

    def start(self):
        """Run the feed in a background thread."""
        self._thread = threading.Thread(target=self.run, name="uninitialized-pod-feed", daemon=True)
        self._thread.start()
        logger.info("Watching pods in all namespaces, including uninitialized ones")

    def stop(self):
        self._stop.set()
        if self._watcher is not None:
            self._watcher.stop()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
