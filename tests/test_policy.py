"""Tests for the namespace ignore policy."""

import pytest
from unittest.mock import Mock

from kubernetes import client
from kubernetes.client.rest import ApiException

from gpu_initializer.errors import ConfigError
from gpu_initializer.policy import Policy, is_ignored, load_policy


class TestPolicy:
    """Test policy parsing and evaluation."""

    def test_from_yaml_ignore_namespaces(self):
        """Test parsing the IgnoreNamespaces list."""
        policy = Policy.from_yaml("IgnoreNamespaces:\n  - kube-system\n  - monitoring\n")

        assert policy.ignore_namespaces == ["kube-system", "monitoring"]
        assert policy.is_ignored("kube-system") is True
        assert policy.is_ignored("default") is False

    def test_from_yaml_empty_document(self):
        """Test that an empty document gives an empty policy."""
        assert Policy.from_yaml("").ignore_namespaces == []

    def test_from_yaml_null_list(self):
        """Test that a key without value ignores nothing."""
        assert Policy.from_yaml("IgnoreNamespaces:\n").ignore_namespaces == []

    def test_from_yaml_unknown_keys_ignored(self):
        """Test that unrelated keys do not break parsing."""
        policy = Policy.from_yaml("Other: 1\nIgnoreNamespaces: [kube-system]\n")

        assert policy.ignore_namespaces == ["kube-system"]

    @pytest.mark.parametrize("key", ["ignoreNamespaces", "ignorenamespaces", "IGNORENAMESPACES"])
    def test_from_yaml_key_is_case_insensitive(self, key):
        """Test that the key matches regardless of case."""
        policy = Policy.from_yaml(f"{key}:\n  - kube-system\n")

        assert policy.ignore_namespaces == ["kube-system"]

    def test_from_yaml_last_matching_key_wins(self):
        """Test that a later spelling of the key overrides an earlier one."""
        policy = Policy.from_yaml("IgnoreNamespaces: [kube-system]\nignoreNamespaces: [monitoring]\n")

        assert policy.ignore_namespaces == ["monitoring"]

    def test_from_yaml_python_field_name_not_accepted(self):
        """Test that the snake_case field name is treated as an unknown key."""
        policy = Policy.from_yaml("ignore_namespaces:\n  - kube-system\n")

        assert policy.ignore_namespaces == []
        assert policy.is_ignored("kube-system") is False

    def test_from_yaml_not_a_mapping(self):
        """Test that a list document is rejected."""
        with pytest.raises(ConfigError):
            Policy.from_yaml("- kube-system\n")

    def test_from_yaml_wrong_type(self):
        """Test that IgnoreNamespaces must be a list."""
        with pytest.raises(ConfigError):
            Policy.from_yaml("IgnoreNamespaces: {a: b}\n")

    def test_from_yaml_invalid_yaml(self):
        """Test that broken YAML raises ConfigError."""
        with pytest.raises(ConfigError):
            Policy.from_yaml("IgnoreNamespaces: [kube-system\n")

    def test_is_ignored_function(self):
        """Test the module-level evaluator."""
        policy = Policy(ignore_namespaces=["kube-system"])

        assert is_ignored("kube-system", policy) is True
        assert is_ignored("kube-public", policy) is False


class TestLoadPolicy:
    """Test loading the policy ConfigMap."""

    @pytest.fixture
    def mock_k8s_client(self):
        """Mock Kubernetes client."""
        return Mock(spec=client.CoreV1Api)

    def test_load_policy_success(self, mock_k8s_client):
        """Test reading the config key of the ConfigMap."""
        mock_k8s_client.read_namespaced_config_map.return_value = client.V1ConfigMap(
            data={"config": "IgnoreNamespaces:\n  - kube-system\n"}
        )

        policy = load_policy(mock_k8s_client, "gpu-initializer", "gpu-system")

        assert policy.ignore_namespaces == ["kube-system"]
        mock_k8s_client.read_namespaced_config_map.assert_called_once_with(
            name="gpu-initializer", namespace="gpu-system"
        )

    def test_load_policy_missing_configmap(self, mock_k8s_client):
        """Test that a missing ConfigMap is a ConfigError."""
        mock_k8s_client.read_namespaced_config_map.side_effect = ApiException(status=404, reason="Not Found")

        with pytest.raises(ConfigError, match="404"):
            load_policy(mock_k8s_client, "gpu-initializer", "gpu-system")

    def test_load_policy_missing_key(self, mock_k8s_client):
        """Test that a ConfigMap without the config key is a ConfigError."""
        mock_k8s_client.read_namespaced_config_map.return_value = client.V1ConfigMap(data={"other": "x"})

        with pytest.raises(ConfigError, match="config"):
            load_policy(mock_k8s_client, "gpu-initializer", "gpu-system")

    def test_load_policy_custom_key(self, mock_k8s_client):
        """Test reading a non-default data key."""
        mock_k8s_client.read_namespaced_config_map.return_value = client.V1ConfigMap(
            data={"policy.yaml": "IgnoreNamespaces: [monitoring]"}
        )

        policy = load_policy(mock_k8s_client, "gpu-initializer", "gpu-system", key="policy.yaml")

        assert policy.is_ignored("monitoring")
