"""Exception types raised by the engine.

Every failure propagates synchronously to the caller of the offending
operation; nothing here is retried.
"""
from __future__ import annotations


class InvalidOperationError(RuntimeError):
    """An operation that the layer or network does not support was invoked."""


class ShapeMismatchError(ValueError):
    """An array or a layer chain does not have the size the layer expects."""


class SizeNotDeterminedError(RuntimeError):
    """Shape inference was requested before the layer's size was resolved."""


class DeviceUnavailableError(RuntimeError):
    """Device execution was requested but no usable CUDA device was found."""
