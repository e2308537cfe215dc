"""Operator runtime using the Kopf framework."""

import logging
from typing import Optional

import kopf
from kubernetes import client, config

from gpu_initializer.config import InitializerSettings
from gpu_initializer.controllers.pod_initializer import PodInitializer
from gpu_initializer.errors import AuthError, ConfigError
from gpu_initializer.feed import UninitializedPodFeed
from gpu_initializer.metrics import metrics
from gpu_initializer.policy import load_policy

logger = logging.getLogger(__name__)


def load_kubernetes_client() -> client.CoreV1Api:
    """Load in-cluster configuration, falling back to the local kubeconfig.

    Raises:
        AuthError: neither configuration could be loaded.
    """
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.info("Loaded local Kubernetes configuration")
        except Exception as e:
            raise AuthError(f"Failed to load Kubernetes configuration: {e}") from e

    return client.CoreV1Api()


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **_):
    """Configure operator settings and load the policy once."""
    settings.posting.level = logging.INFO
    settings.watching.connect_timeout = 1 * 60
    settings.watching.server_timeout = 10 * 60

    try:
        initializer_settings: Optional[InitializerSettings] = memo.get("initializer_settings")
        if initializer_settings is None:
            initializer_settings = InitializerSettings.from_env()
            memo["initializer_settings"] = initializer_settings
        logger.info(f"Initializer name set to: {initializer_settings.initializer_name}")

        k8s_client = load_kubernetes_client()
        policy = load_policy(
            k8s_client,
            name=initializer_settings.configmap,
            namespace=initializer_settings.policy_namespace(),
            key=initializer_settings.configmap_key,
        )
    except (AuthError, ConfigError) as e:
        logger.error(f"GPU initializer startup failed: {e}")
        raise kopf.PermanentError(str(e)) from e

    pod_initializer = PodInitializer(k8s_client, policy, initializer_settings.initializer_name)
    memo["pod_initializer"] = pod_initializer

    try:
        metrics.start_metrics_server(port=initializer_settings.metrics_port)
        logger.info(f"Metrics server started on port {initializer_settings.metrics_port}")
    except OSError as e:
        # Metrics are optional; keep initializing pods without them
        logger.error(f"Failed to start metrics server: {e}")

    pod_feed = UninitializedPodFeed(
        k8s_client.api_client, pod_initializer.on_event, timeout_seconds=settings.watching.server_timeout
    )
    memo["pod_feed"] = pod_feed
    pod_feed.start()

    logger.info("GPU initializer started successfully")


@kopf.on.cleanup()
def cleanup_handler(memo: kopf.Memo, logger, **kwargs):
    """Handle operator shutdown."""
    pod_feed: Optional[UninitializedPodFeed] = memo.get("pod_feed")
    if pod_feed is not None:
        pod_feed.stop()
    logger.info("Shutdown signal received, exiting...")


@kopf.on.probe(id="gpu_initializer")
def health_status(memo: kopf.Memo, **kwargs):
    """Health probe handler for Kubernetes liveness checks."""
    pod_initializer: Optional[PodInitializer] = memo.get("pod_initializer")
    if pod_initializer is None:
        return {"status": "unhealthy", "reason": "pod initializer not configured"}

    pod_feed: Optional[UninitializedPodFeed] = memo.get("pod_feed")
    if pod_feed is None or not pod_feed.is_running():
        return {"status": "unhealthy", "reason": "pod feed not running"}

    return {
        "status": "healthy",
        "initializer_name": pod_initializer.initializer_name,
        "ignore_namespaces": list(pod_initializer.policy.ignore_namespaces),
    }


def run_operator(initializer_settings: InitializerSettings):
    """Run the operator until a shutdown signal arrives."""
    logger.info("Starting the Kubernetes initializer...")
    kopf.run(
        clusterwide=True,
        standalone=True,
        liveness_endpoint=initializer_settings.liveness_endpoint,
        memo=kopf.Memo(initializer_settings=initializer_settings),
    )
