"""Shared fixtures for GPU initializer tests."""

import pytest

INITIALIZER_NAME = "gpu.initializer.kubernetes.io"


def make_pod(name="pod-a", namespace="default", pending=(INITIALIZER_NAME,), containers=None):
    """Build a pod dict the way the API server serializes it."""
    metadata = {"name": name, "namespace": namespace, "resourceVersion": "100", "uid": f"uid-{name}"}
    if pending is not None:
        metadata["initializers"] = {"pending": [{"name": p} for p in pending]}
    if containers is None:
        containers = [{"name": "app", "image": "nginx:latest", "env": []}]
    return {"apiVersion": "v1", "kind": "Pod", "metadata": metadata, "spec": {"containers": containers}}


@pytest.fixture
def pod_factory():
    return make_pod
