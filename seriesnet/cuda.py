"""
CUDA support module using CuPy for device execution.

Device availability is probed once by the caller (see ``probe``) and passed
down as a ``DeviceCapability``; nothing in the engine falls back from the
device to the host on its own.
"""
import os
import logging

# CuPy is an optional extra (cuda11 / cuda12 / cuda13)
try:
    import cupy as cp
except ImportError:
    cp = None

import numpy as np

from .errors import DeviceUnavailableError

logger = logging.getLogger(__name__)


class DeviceCapability:
    """Result of a one-time device probe."""
    def __init__(self, available: bool, name: str = 'CPU', reason: str = ''):
        self.available = available
        self.name = name
        self.reason = reason

    def __repr__(self):
        return f"DeviceCapability(available={self.available}, name={self.name!r})"


HOST_ONLY = DeviceCapability(False, 'CPU', 'host execution requested')


def probe() -> DeviceCapability:
    """Check once whether a CUDA device can be used.

    Honours ``SERIESNET_DISABLE_CUDA=1``. A device counts as usable only if a
    small allocation on it succeeds.
    """
    if os.environ.get('SERIESNET_DISABLE_CUDA', '0') == '1':
        return DeviceCapability(False, 'CPU', 'disabled by SERIESNET_DISABLE_CUDA')
    if cp is None:
        return DeviceCapability(False, 'CPU', 'cupy is not installed')
    try:
        device = cp.cuda.Device(0)
        device.use()
        cp.array([1, 2, 3])  # Test allocation
        props = cp.cuda.runtime.getDeviceProperties(device.id)
        name = props['name']
        if isinstance(name, bytes):
            name = name.decode()
    except Exception as e:  # any CUDA runtime failure means "no device"
        logger.debug("CUDA probe failed: %s", e)
        return DeviceCapability(False, 'CPU', str(e))
    capability = DeviceCapability(True, f"CUDA:{device.id} ({name})")
    logger.info("Using device %s", capability.name)
    return capability


def require(capability: DeviceCapability):
    """Raise if ``capability`` does not allow device execution."""
    if capability is None or not capability.available:
        reason = getattr(capability, 'reason', '') or 'no capability was probed'
        raise DeviceUnavailableError(f"GPU execution requested but no usable CUDA device: {reason}")


def get_array_module(arr=None):
    """
    Get the appropriate array module (cupy or numpy) for the given array.
    Without an array, numpy is returned.
    """
    if arr is not None and cp is not None:
        return cp.get_array_module(arr)
    return np


def is_cuda_array(arr):
    """Check if array is a CUDA array."""
    return cp is not None and isinstance(arr, cp.ndarray)


def to_cpu(arr):
    """Move array to CPU (NumPy)."""
    if is_cuda_array(arr):
        return cp.asnumpy(arr)
    return arr


def to_gpu(arr):
    """Move array to GPU (CuPy)."""
    if arr is None or is_cuda_array(arr):
        return arr
    if cp is None:
        raise DeviceUnavailableError("cupy is not installed; cannot move data to the GPU")
    return cp.asarray(arr)
