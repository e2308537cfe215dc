"""GPU initializer - Kubernetes initializer that controls GPU visibility for pods."""

__version__ = "0.1.0"
