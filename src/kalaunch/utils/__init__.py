"""Utility namespace for backend discovery."""

from .dispatch import get_available_backend, has_cuda_device, has_host_backend

__all__ = [
    "get_available_backend",
    "has_cuda_device",
    "has_host_backend",
]
