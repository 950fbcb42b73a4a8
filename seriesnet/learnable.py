"""Learnable parameters and their two representations.

During training a parameter is a plain container whose ``value`` is mutated
in place every iteration. At prediction time the value lives on the host
and, when ``use_gpu`` is set, a device copy is created on first read and
dropped again whenever the value is reassigned.
"""
from __future__ import annotations
import numpy as np

from . import cuda


def _copy_to_host(value):
    if value is None:
        return None
    return np.array(cuda.to_cpu(value), copy=True)


class LearnableParameter:
    """Abstract learnable parameter: a value plus two scalar multipliers."""
    def __init__(self, learn_rate_factor: float = 1.0, l2_factor: float = 1.0):
        self.learn_rate_factor = learn_rate_factor
        self.l2_factor = l2_factor

    value = None

    def host_copy(self):
        return _copy_to_host(self.value)

    def to_training(self, use_gpu: bool = False) -> 'TrainingLearnableParameter':
        value = self.host_copy()
        if use_gpu and value is not None:
            value = cuda.to_gpu(value)
        return TrainingLearnableParameter(value, self.learn_rate_factor, self.l2_factor)

    def to_prediction(self, use_gpu: bool = False) -> 'PredictionLearnableParameter':
        return PredictionLearnableParameter(self.host_copy(), self.learn_rate_factor, self.l2_factor, use_gpu)

    def __repr__(self):
        shape = None if self.value is None else tuple(self.value.shape)
        return (f"{self.__class__.__name__}(shape={shape}, learn_rate_factor={self.learn_rate_factor}, "
                f"l2_factor={self.l2_factor})")


class TrainingLearnableParameter(LearnableParameter):
    """Value stored directly; may be a host array or a device array."""
    def __init__(self, value=None, learn_rate_factor: float = 1.0, l2_factor: float = 1.0):
        super().__init__(learn_rate_factor, l2_factor)
        self.value = value


class PredictionLearnableParameter(LearnableParameter):
    """Host value with a lazily populated device cache.

    The parameter is either host-only (``use_gpu`` false, ``value`` returns
    the host array) or device-resident (``use_gpu`` true, ``value`` returns
    the cached device copy, creating it on first read).
    """
    def __init__(self, value=None, learn_rate_factor: float = 1.0, l2_factor: float = 1.0, use_gpu: bool = False):
        super().__init__(learn_rate_factor, l2_factor)
        self.use_gpu = use_gpu
        self._device_cache = None
        self._host_value = None
        self.value = value

    @property
    def host_value(self):
        return self._host_value

    @property
    def is_cached(self) -> bool:
        return self._device_cache is not None

    @property
    def value(self):
        if self.use_gpu:
            if self._device_cache is None and self._host_value is not None:
                self._device_cache = cuda.to_gpu(self._host_value)
            return self._device_cache
        return self._host_value

    @value.setter
    def value(self, val):
        # a new value always gets a fresh cache
        self._device_cache = None
        self._host_value = cuda.to_cpu(val)

    def host_copy(self):
        return _copy_to_host(self._host_value)

    def with_device(self, use_gpu: bool) -> 'PredictionLearnableParameter':
        """Copy of this parameter with a different residency flag."""
        return PredictionLearnableParameter(self._host_value, self.learn_rate_factor, self.l2_factor, use_gpu)
