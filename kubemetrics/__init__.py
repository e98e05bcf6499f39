"""Reach the kubelet and group its summary, pod, cAdvisor and node data by entity."""

__version__ = "0.1.0"