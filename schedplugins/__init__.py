"""Scheduling plugins: QoS queue sorting, pod-state scoring, NUMA topology matching and load-aware scoring."""

__version__ = "0.1.0"