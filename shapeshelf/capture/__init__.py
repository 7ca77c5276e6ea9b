"""Shape capture - host bridges and normalization of their output."""

from shapeshelf.capture.bridge import CaptureBridge, get_platform_bridge
from shapeshelf.capture.normalizer import normalize

__all__ = [
    "CaptureBridge",
    "get_platform_bridge",
    "normalize",
]
