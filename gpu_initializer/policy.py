"""Namespace ignore policy, loaded once from a ConfigMap at startup."""

import logging
from typing import List

import yaml
from kubernetes import client
from kubernetes.client.rest import ApiException
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gpu_initializer.errors import ConfigError

logger = logging.getLogger(__name__)

# Document key, matched case-insensitively
POLICY_KEY = "IgnoreNamespaces"


class Policy(BaseModel):
    """Parsed GPU initializer policy."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    ignore_namespaces: List[str] = Field(
        default_factory=list,
        alias=POLICY_KEY,
        description="Namespaces whose pods are let through without GPU env changes",
    )

    @field_validator("ignore_namespaces", mode="before")
    @classmethod
    def _null_means_empty(cls, value):
        return [] if value is None else value

    def is_ignored(self, namespace: str) -> bool:
        return namespace in self.ignore_namespaces

    @classmethod
    def from_yaml(cls, text: str) -> "Policy":
        """Parse a policy document.

        The key is matched regardless of case and the last matching key wins.
        Any other key, including the field's Python name, is ignored.

        Example::

            IgnoreNamespaces:
              - kube-system
        """
        try:
            data = yaml.safe_load(text or "")
        except yaml.YAMLError as e:
            raise ConfigError(f"Policy is not valid YAML: {e}") from e

        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"Policy must be a mapping, got {type(data).__name__}")

        matches = [value for key, value in data.items() if str(key).lower() == POLICY_KEY.lower()]
        if not matches:
            return cls()

        try:
            return cls.model_validate({POLICY_KEY: matches[-1]})
        except ValidationError as e:
            raise ConfigError(f"Invalid policy: {e}") from e


def is_ignored(namespace: str, policy: Policy) -> bool:
    """Check whether pods in ``namespace`` skip env mutation."""
    return policy.is_ignored(namespace)


def load_policy(core_v1: client.CoreV1Api, name: str, namespace: str, key: str = "config") -> Policy:
    """Read and parse the policy ConfigMap.

    Raises:
        ConfigError: the ConfigMap or its key is missing, or the policy is malformed.
    """
    try:
        configmap = core_v1.read_namespaced_config_map(name=name, namespace=namespace)
    except ApiException as e:
        raise ConfigError(f"Failed to read policy ConfigMap {namespace}/{name}: {e.status} {e.reason}") from e

    data = configmap.data or {}
    if key not in data:
        raise ConfigError(f"Policy ConfigMap {namespace}/{name} has no '{key}' key")

    policy = Policy.from_yaml(data[key])
    logger.info(f"Loaded policy from {namespace}/{name}: ignoring namespaces {policy.ignore_namespaces}")
    return policy
