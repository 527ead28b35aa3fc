"""Detached terminal workloads with file-based liveness and result exchange."""

__version__ = "0.1.0"
