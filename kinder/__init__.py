"""Helpers for kubeadm test clusters whose nodes are containers."""

__version__ = "0.1.0"